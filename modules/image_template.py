"""Packer template rendering for gceweb.

Builds the HCL2-JSON template (``image.pkr.json``) that the googlecompute
plugin consumes: boot a temporary VM from the base image, run the fixed
provisioning steps, snapshot the disk as the named web image.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict

import modules.config.defaults as defaults
from modules.models import ImageBuildSpec

logger = logging.getLogger(__name__)

SOURCE_NAME = "web"
SOURCE_ADDRESS = f"source.googlecompute.{SOURCE_NAME}"


def render_template(spec: ImageBuildSpec) -> Dict[str, Any]:
    """Render the Packer template for an image build.

    ``project_id`` is declared without a default so packer refuses to run
    unless the caller passes it; ``image_name`` defaults to the requested image name.

    Args:
        spec: Image build inputs

    Returns:
        Template dictionary ready to be serialised as ``*.pkr.json``
    """
    return {
        "packer": {
            "required_plugins": {
                "googlecompute": {
                    "source": defaults.PACKER_PLUGIN_SOURCE,
                    "version": defaults.PACKER_PLUGIN_VERSION,
                }
            }
        },
        "variable": {
            "project_id": {
                "type": "string",
                "description": "GCP project to build the image in",
            },
            "image_name": {
                "type": "string",
                "default": spec.image_name,
                "description": "Name of the resulting machine image",
            },
            "zone": {"type": "string", "default": spec.zone},
        },
        "source": {
            "googlecompute": {
                SOURCE_NAME: {
                    "project_id": "${var.project_id}",
                    "zone": "${var.zone}",
                    "machine_type": spec.machine_type,
                    "source_image_family": spec.base_image_family,
                    "source_image_project_id": [spec.base_image_project],
                    "ssh_username": spec.ssh_username,
                    "image_name": "${var.image_name}",
                    "image_family": spec.image_family,
                    "image_description": (
                        f"{spec.base_image_family} with {', '.join(spec.packages)}"
                    ),
                    "image_labels": {"service": spec.service, "built-by": "packer"},
                }
            }
        },
        "build": {
            "sources": [SOURCE_ADDRESS],
            "provisioner": [
                {
                    "shell": {
                        "inline_shebang": "/bin/sh -e",
                        "inline": spec.provisioning_steps(),
                    }
                }
            ],
        },
    }


def write_template(spec: ImageBuildSpec, directory: str) -> Path:
    """Write ``image.pkr.json`` into ``directory``.

    Returns:
        Path of the written template
    """
    target = Path(directory)
    target.mkdir(parents=True, exist_ok=True)
    path = target / defaults.PACKER_TEMPLATE_FILE
    with open(path, "w") as f:
        json.dump(render_template(spec), f, indent=2)
    logger.debug(f"Wrote packer template to {path}")
    return path
