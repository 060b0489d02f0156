"""Unit tests for the terraform CLI wrapper."""

import json
import subprocess
from unittest.mock import patch

import pytest

from modules import tfwrapper
from modules.exceptions import TerraformCommandError, ToolNotFoundError


def completed(returncode=0, stdout="", stderr=""):
    return subprocess.CompletedProcess(
        args=["terraform"], returncode=returncode, stdout=stdout, stderr=stderr
    )


class TestPlan:
    def test_no_changes(self):
        with patch("modules.tfwrapper.subprocess.run", return_value=completed(0, "No changes.")):
            result = tfwrapper.tf_plan("/work")
        assert result.has_changes is False
        assert "No changes." in result.output

    def test_changes_present(self):
        with patch(
            "modules.tfwrapper.subprocess.run",
            return_value=completed(2, "Plan: 4 to add, 0 to change, 0 to destroy."),
        ) as mock_run:
            result = tfwrapper.tf_plan("/work")
        assert result.has_changes is True
        command = mock_run.call_args.args[0]
        assert command[:3] == ["terraform", "-chdir=/work", "plan"]
        assert "-detailed-exitcode" in command
        assert "-input=false" in command

    def test_plan_error_raises(self):
        with patch(
            "modules.tfwrapper.subprocess.run",
            return_value=completed(1, stderr="Error: Invalid value for variable"),
        ):
            with pytest.raises(TerraformCommandError) as excinfo:
                tfwrapper.tf_plan("/work")
        assert excinfo.value.returncode == 1
        assert "Invalid value for variable" in excinfo.value.output

    def test_destroy_plan(self):
        with patch("modules.tfwrapper.subprocess.run", return_value=completed(2)) as mock_run:
            tfwrapper.tf_plan("/work", destroy=True)
        assert "-destroy" in mock_run.call_args.args[0]


class TestValidate:
    def test_validate_command(self):
        with patch("modules.tfwrapper.subprocess.run", return_value=completed(0)) as mock_run:
            tfwrapper.tf_validate("/work")
        assert mock_run.call_args.args[0][:3] == ["terraform", "-chdir=/work", "validate"]

    def test_invalid_configuration_raises(self):
        with patch(
            "modules.tfwrapper.subprocess.run",
            return_value=completed(1, stderr="Error: Reference to undeclared input variable"),
        ):
            with pytest.raises(TerraformCommandError, match="terraform validate failed"):
                tfwrapper.tf_validate("/work")


class TestApplyDestroy:
    def test_apply_auto_approves(self):
        with patch("modules.tfwrapper.subprocess.run", return_value=completed(0, "Apply complete!")) as mock_run:
            tfwrapper.tf_apply("/work")
        command = mock_run.call_args.args[0]
        assert "apply" in command
        assert "-auto-approve" in command

    def test_apply_failure_surfaces_output(self):
        with patch(
            "modules.tfwrapper.subprocess.run",
            return_value=completed(1, stderr="Error: Quota 'CPUS' exceeded"),
        ):
            with pytest.raises(TerraformCommandError, match="apply"):
                tfwrapper.tf_apply("/work")

    def test_destroy(self):
        with patch("modules.tfwrapper.subprocess.run", return_value=completed(0, "Destroy complete!")) as mock_run:
            tfwrapper.tf_destroy("/work")
        assert "destroy" in mock_run.call_args.args[0]

    def test_init_backend_config(self):
        with patch("modules.tfwrapper.subprocess.run", return_value=completed()) as mock_run:
            tfwrapper.tf_init("/work", backend_config={"bucket": "tf-state"})
        assert "-backend-config=bucket=tf-state" in mock_run.call_args.args[0]

    def test_missing_binary(self):
        with patch("modules.tfwrapper.subprocess.run", side_effect=FileNotFoundError()):
            with pytest.raises(ToolNotFoundError):
                tfwrapper.tf_init("/work")


class TestOutputs:
    def test_parse_outputs(self):
        raw = json.dumps(
            {
                "instance_ips": {"value": ["34.1.2.3", "34.1.2.4"], "type": ["tuple", []]},
                "image_name": {"value": "apache-web-abc1234", "type": "string"},
            }
        )
        assert tfwrapper.parse_outputs(raw) == {
            "instance_ips": ["34.1.2.3", "34.1.2.4"],
            "image_name": "apache-web-abc1234",
        }

    def test_parse_empty(self):
        assert tfwrapper.parse_outputs("") == {}

    def test_parse_invalid(self):
        with pytest.raises(TerraformCommandError):
            tfwrapper.parse_outputs("not json")

    def test_tf_output(self):
        raw = json.dumps({"image_selection_method": {"value": "explicit image name"}})
        with patch("modules.tfwrapper.subprocess.run", return_value=completed(0, raw)):
            assert tfwrapper.tf_output("/work") == {
                "image_selection_method": "explicit image name"
            }

