"""Unit tests for build/deploy orchestration.

The packer and terraform wrappers are patched; these tests cover sequencing,
validation ordering and how the image name flows between stages.
"""

import json
from unittest.mock import MagicMock, patch

import pytest

from modules import workflow
from modules.config_loader import Settings
from modules.exceptions import (
    DeclarationValidationError,
    ImageBuildError,
    TerraformCommandError,
    ToolNotFoundError,
)
from modules.tfwrapper import PlanResult

OUTPUTS = {
    "instance_ips": ["34.1.2.3", "34.1.2.4"],
    "image_name": "apache-web-abc1234",
    "image_selection_method": "explicit image name",
}


@pytest.fixture
def tf():
    with patch("modules.tfwrapper.tf_init") as init, patch(
        "modules.tfwrapper.tf_validate"
    ) as validate, patch(
        "modules.tfwrapper.tf_plan", return_value=PlanResult(True, "")
    ) as plan, patch("modules.tfwrapper.tf_apply") as apply, patch(
        "modules.tfwrapper.tf_destroy"
    ) as destroy, patch(
        "modules.tfwrapper.tf_output", return_value=dict(OUTPUTS)
    ) as output:
        calls = MagicMock()
        for name, mock in (
            ("init", init),
            ("validate", validate),
            ("plan", plan),
            ("apply", apply),
            ("destroy", destroy),
            ("output", output),
        ):
            calls.attach_mock(mock, name)
        yield {
            "init": init,
            "validate": validate,
            "plan": plan,
            "apply": apply,
            "destroy": destroy,
            "output": output,
            "calls": calls,
        }


def call_order(tf):
    return [c[0] for c in tf["calls"].mock_calls]


def make_settings(**kwargs):
    kwargs.setdefault("project_id", "demo-project")
    kwargs.setdefault("image_name", "apache-web-image")
    return Settings(**kwargs)


def read_vars(workdir):
    with open(workdir / "terraform" / "terraform.tfvars.json") as f:
        return json.load(f)


class TestDeploy:
    def test_deploy_applies_and_returns_outputs(self, tmp_path, tf):
        result = workflow.deploy(make_settings(count=2), str(tmp_path))
        tf["init"].assert_called_once()
        tf["apply"].assert_called_once()
        assert result.changed is True
        assert result.instance_ips == ["34.1.2.3", "34.1.2.4"]
        assert result.image_selection_method == "explicit image name"
        assert read_vars(tmp_path)["instance_count"] == 2

    def test_terraform_steps_in_order(self, tmp_path, tf):
        workflow.deploy(make_settings(), str(tmp_path))
        assert call_order(tf) == ["init", "validate", "plan", "apply", "output"]

    def test_unchanged_declaration_skips_apply(self, tmp_path, tf):
        tf["plan"].return_value = PlanResult(False, "No changes.")
        result = workflow.deploy(make_settings(), str(tmp_path))
        tf["apply"].assert_not_called()
        assert result.changed is False
        assert result.image_name == "apache-web-abc1234"

    def test_count_below_one_fails_before_terraform(self, tmp_path, tf):
        with pytest.raises(DeclarationValidationError):
            workflow.deploy(make_settings(count=0), str(tmp_path))
        tf["init"].assert_not_called()
        tf["plan"].assert_not_called()

    def test_missing_image_selection_fails_before_terraform(self, tmp_path, tf):
        settings = make_settings(image_name="", use_latest_image=False)
        with pytest.raises(DeclarationValidationError):
            workflow.deploy(settings, str(tmp_path))
        tf["init"].assert_not_called()

    def test_latest_image_selection(self, tmp_path, tf):
        settings = make_settings(image_name="", use_latest_image=True)
        workflow.deploy(settings, str(tmp_path))
        values = read_vars(tmp_path)
        assert values["use_latest_image"] is True
        assert values["image_name"] == ""

    def test_explicit_image_overrides_latest(self, tmp_path, tf):
        settings = make_settings(use_latest_image=True)
        workflow.deploy(settings, str(tmp_path), image_name="apache-web-new")
        values = read_vars(tmp_path)
        assert values["use_latest_image"] is False
        assert values["image_name"] == "apache-web-new"

    def test_apply_failure_propagates(self, tmp_path, tf):
        tf["apply"].side_effect = TerraformCommandError("terraform apply failed")
        with pytest.raises(TerraformCommandError):
            workflow.deploy(make_settings(), str(tmp_path))
        tf["output"].assert_not_called()


class TestPlan:
    def test_plan_validates_then_plans(self, tmp_path, tf):
        result = workflow.plan(make_settings(), str(tmp_path))
        assert call_order(tf) == ["init", "validate", "plan"]
        assert result.has_changes is True

    def test_validate_failure_stops_before_plan(self, tmp_path, tf):
        tf["validate"].side_effect = TerraformCommandError("terraform validate failed")
        with pytest.raises(TerraformCommandError):
            workflow.plan(make_settings(), str(tmp_path))
        tf["plan"].assert_not_called()


class TestPipeline:
    def test_image_name_threaded_into_deploy(self, tmp_path, tf):
        with patch(
            "modules.packerwrapper.build_image", return_value="apache-web-abc1234"
        ) as build:
            workflow.pipeline(make_settings(use_latest_image=True), str(tmp_path), "apache-web-abc1234")
        spec = build.call_args.args[0]
        assert spec.image_name == "apache-web-abc1234"
        assert build.call_args.args[1] == str(tmp_path / "image")
        values = read_vars(tmp_path)
        assert values["image_name"] == "apache-web-abc1234"
        assert values["use_latest_image"] is False
        tf["apply"].assert_called_once()

    def test_build_failure_halts_pipeline(self, tmp_path, tf):
        with patch(
            "modules.packerwrapper.build_image",
            side_effect=ImageBuildError("packer build failed", returncode=1),
        ):
            with pytest.raises(ImageBuildError):
                workflow.pipeline(make_settings(), str(tmp_path))
        tf["init"].assert_not_called()


class TestTeardown:
    def test_teardown_destroys_same_declaration(self, tmp_path, tf):
        workflow.teardown(make_settings(count=2), str(tmp_path))
        tf["destroy"].assert_called_once_with(str(tmp_path / "terraform"))
        config = json.loads((tmp_path / "terraform" / "main.tf.json").read_text())
        assert set(config["resource"]["google_compute_firewall"]) == {
            "allow_http",
            "allow_ssh",
        }

    def test_teardown_validates_before_destroy(self, tmp_path, tf):
        workflow.teardown(make_settings(), str(tmp_path))
        assert call_order(tf) == ["init", "validate", "destroy"]

    def test_teardown_without_image_selection(self, tmp_path, tf):
        workflow.teardown(make_settings(image_name=""), str(tmp_path))
        tf["destroy"].assert_called_once()


class TestPreflight:
    def test_all_tools_found(self):
        with patch("modules.workflow.shutil.which", side_effect=lambda exe: f"/usr/bin/{exe}"):
            found = workflow.preflight_check(["packer", "terraform"])
        assert found == {"packer": "/usr/bin/packer", "terraform": "/usr/bin/terraform"}

    def test_missing_tool(self):
        with patch("modules.workflow.shutil.which", return_value=None):
            with pytest.raises(ToolNotFoundError, match="terraform"):
                workflow.preflight_check(["terraform"])
