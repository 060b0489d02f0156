"""CI workflow rendering for gceweb.

Generates the GitHub Actions workflows that drive gceweb from CI: a deploy
workflow (manual dispatch or push to main) that bakes the image and then
deploys onto it, and a manually triggered teardown workflow.
"""

import logging
from pathlib import Path
from typing import Any, Dict, List

import yaml

import modules.config.defaults as defaults
from modules.config_loader import Settings

logger = logging.getLogger(__name__)

DEFAULT_BRANCH = "main"
PYTHON_VERSION = "3.12"
CREDENTIALS_SECRET = "GCP_CREDENTIALS"
PROJECT_SECRET = "GCP_PROJECT_ID"
STATE_BUCKET_VAR = "TF_STATE_BUCKET"
TEARDOWN_CONFIRMATION = "destroy"

CHECKOUT = {"name": "Checkout", "uses": "actions/checkout@v4"}
AUTH = {
    "name": "Authenticate to Google Cloud",
    "uses": "google-github-actions/auth@v2",
    "with": {"credentials_json": f"${{{{ secrets.{CREDENTIALS_SECRET} }}}}"},
}
SETUP_PYTHON = {
    "name": "Set up Python",
    "uses": "actions/setup-python@v5",
    "with": {"python-version": PYTHON_VERSION},
}
INSTALL = {"name": "Install gceweb", "run": "pip install ."}
SETUP_PACKER = {"name": "Set up Packer", "uses": "hashicorp/setup-packer@main"}
SETUP_TERRAFORM = {
    "name": "Set up Terraform",
    "uses": "hashicorp/setup-terraform@v3",
    "with": {"terraform_wrapper": False},
}


def _env(settings: Settings) -> Dict[str, str]:
    return {
        "PROJECT_ID": f"${{{{ secrets.{PROJECT_SECRET} }}}}",
        "ZONE": settings.zone,
        "STATE_BUCKET": f"${{{{ vars.{STATE_BUCKET_VAR} }}}}",
    }


def _common_args() -> str:
    return '--project-id "$PROJECT_ID" --zone "$ZONE" --state-bucket "$STATE_BUCKET"'


def render_deploy_workflow(settings: Settings) -> Dict[str, Any]:
    """Render the build-then-deploy workflow.

    The image name is derived from the commit SHA in the build job and
    handed to the deploy job through a job output.
    """
    build_script = "\n".join(
        [
            f'IMAGE_NAME="{settings.image_name_prefix}-${{GITHUB_SHA::7}}"',
            f'gceweb build {_common_args()} --image-name "$IMAGE_NAME"',
            'echo "image_name=$IMAGE_NAME" >> "$GITHUB_OUTPUT"',
        ]
    )
    deploy_script = (
        f"gceweb deploy {_common_args()} --count {settings.count} "
        f'--machine-type {settings.machine_type} --image-name "$IMAGE_NAME"'
    )
    steps_common: List[Dict[str, Any]] = [CHECKOUT, AUTH, SETUP_PYTHON, INSTALL]
    return {
        "name": "Build and deploy web fleet",
        "on": {
            "workflow_dispatch": {},
            "push": {"branches": [DEFAULT_BRANCH]},
        },
        "concurrency": {"group": "gceweb-deploy", "cancel-in-progress": False},
        "env": _env(settings),
        "jobs": {
            "build-image": {
                "runs-on": "ubuntu-latest",
                "outputs": {"image_name": "${{ steps.build.outputs.image_name }}"},
                "steps": steps_common
                + [SETUP_PACKER, {"name": "Build image", "id": "build", "run": build_script}],
            },
            "deploy": {
                "runs-on": "ubuntu-latest",
                "needs": "build-image",
                "env": {"IMAGE_NAME": "${{ needs.build-image.outputs.image_name }}"},
                "steps": steps_common
                + [SETUP_TERRAFORM, {"name": "Deploy instances", "run": deploy_script}],
            },
        },
    }


def render_teardown_workflow(settings: Settings) -> Dict[str, Any]:
    """Render the manual teardown workflow.

    Requires typing the confirmation word before anything is destroyed.
    """
    return {
        "name": "Tear down web fleet",
        "on": {
            "workflow_dispatch": {
                "inputs": {
                    "confirm": {
                        "description": f"Type '{TEARDOWN_CONFIRMATION}' to remove all instances and firewall rules",
                        "required": True,
                        "type": "string",
                    }
                }
            }
        },
        "concurrency": {"group": "gceweb-deploy", "cancel-in-progress": False},
        "env": _env(settings),
        "jobs": {
            "teardown": {
                "runs-on": "ubuntu-latest",
                "if": f"${{{{ inputs.confirm == '{TEARDOWN_CONFIRMATION}' }}}}",
                "steps": [CHECKOUT, AUTH, SETUP_PYTHON, INSTALL, SETUP_TERRAFORM]
                + [{"name": "Destroy", "run": f"gceweb destroy {_common_args()}"}],
            }
        },
    }


def dump_workflow(workflow: Dict[str, Any]) -> str:
    return yaml.safe_dump(workflow, sort_keys=False, default_flow_style=False, width=120)


def write_workflows(settings: Settings, directory: str) -> List[Path]:
    """Write deploy.yml and teardown.yml into ``directory``.

    Returns:
        Paths of the written files
    """
    target = Path(directory)
    target.mkdir(parents=True, exist_ok=True)
    written = []
    for filename, workflow in (
        (defaults.DEPLOY_WORKFLOW_FILE, render_deploy_workflow(settings)),
        (defaults.TEARDOWN_WORKFLOW_FILE, render_teardown_workflow(settings)),
    ):
        path = target / filename
        with open(path, "w") as f:
            f.write(dump_workflow(workflow))
        logger.debug(f"Wrote workflow {path}")
        written.append(path)
    return written
