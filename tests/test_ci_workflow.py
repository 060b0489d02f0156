"""Unit tests for GitHub Actions workflow rendering."""

import yaml

from modules import ci_workflow
from modules.config_loader import Settings


def make_settings(**kwargs):
    kwargs.setdefault("project_id", "demo-project")
    return Settings(**kwargs)


class TestDeployWorkflow:
    def test_triggers(self):
        workflow = ci_workflow.render_deploy_workflow(make_settings())
        assert set(workflow["on"]) == {"workflow_dispatch", "push"}
        assert workflow["on"]["push"]["branches"] == ["main"]

    def test_deploy_needs_build(self):
        jobs = ci_workflow.render_deploy_workflow(make_settings())["jobs"]
        assert list(jobs) == ["build-image", "deploy"]
        assert jobs["deploy"]["needs"] == "build-image"
        assert jobs["deploy"]["env"]["IMAGE_NAME"] == (
            "${{ needs.build-image.outputs.image_name }}"
        )
        assert jobs["build-image"]["outputs"]["image_name"] == (
            "${{ steps.build.outputs.image_name }}"
        )

    def test_build_step_derives_image_name_from_sha(self):
        jobs = ci_workflow.render_deploy_workflow(make_settings())["jobs"]
        build_step = jobs["build-image"]["steps"][-1]
        assert build_step["id"] == "build"
        assert 'IMAGE_NAME="apache-web-${GITHUB_SHA::7}"' in build_step["run"]
        assert "gceweb build" in build_step["run"]
        assert "$GITHUB_OUTPUT" in build_step["run"]

    def test_deploy_step_passes_image(self):
        jobs = ci_workflow.render_deploy_workflow(make_settings(count=2))["jobs"]
        run = jobs["deploy"]["steps"][-1]["run"]
        assert run.startswith("gceweb deploy")
        assert "--count 2" in run
        assert '--image-name "$IMAGE_NAME"' in run

    def test_tool_setup(self):
        jobs = ci_workflow.render_deploy_workflow(make_settings())["jobs"]
        build_uses = [s.get("uses") for s in jobs["build-image"]["steps"]]
        deploy_uses = [s.get("uses") for s in jobs["deploy"]["steps"]]
        assert "hashicorp/setup-packer@main" in build_uses
        assert "hashicorp/setup-terraform@v3" in deploy_uses


class TestTeardownWorkflow:
    def test_manual_trigger_only(self):
        workflow = ci_workflow.render_teardown_workflow(make_settings())
        assert list(workflow["on"]) == ["workflow_dispatch"]
        assert "confirm" in workflow["on"]["workflow_dispatch"]["inputs"]

    def test_guarded_by_confirmation(self):
        job = ci_workflow.render_teardown_workflow(make_settings())["jobs"]["teardown"]
        assert "inputs.confirm == 'destroy'" in job["if"]
        assert job["steps"][-1]["run"].startswith("gceweb destroy")


def test_write_workflows(tmp_path):
    paths = ci_workflow.write_workflows(make_settings(), str(tmp_path / "workflows"))
    assert [p.name for p in paths] == ["deploy.yml", "teardown.yml"]
    deploy = yaml.safe_load(paths[0].read_text())
    assert deploy["name"] == "Build and deploy web fleet"
    assert "build-image" in deploy["jobs"]
    assert "workflow_dispatch" in paths[1].read_text()
