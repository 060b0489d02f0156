"""Terraform declaration rendering for gceweb.

Produces the Terraform JSON configuration (``main.tf.json``) for the web
fleet and the matching variable values (``terraform.tfvars.json``). The
declaration is the desired state; terraform owns reconciling it against the
live project.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List

import modules.config.defaults as defaults
from modules.models import FirewallRule, InstanceDeclaration

logger = logging.getLogger(__name__)

INSTANCE_RESOURCE = "google_compute_instance"
INSTANCE_NAME = "web"
FIREWALL_RESOURCE = "google_compute_firewall"
IMAGE_DATA = "google_compute_image"
IMAGE_DATA_NAME = "latest"

IMAGE_SELECTION_ERROR = (
    "No boot image selected: set use_latest_image = true or provide image_name."
)


def _variables() -> Dict[str, Any]:
    return {
        "project_id": {"type": "string", "description": "GCP project id"},
        "instance_count": {
            "type": "number",
            "description": "Number of web instances",
            "default": defaults.DEFAULT_INSTANCE_COUNT,
            "validation": [
                {
                    "condition": "${var.instance_count >= 1}",
                    "error_message": "instance_count must be at least 1.",
                }
            ],
        },
        "machine_type": {
            "type": "string",
            "default": defaults.DEFAULT_MACHINE_TYPE,
        },
        "zone": {"type": "string", "default": defaults.DEFAULT_ZONE},
        "image_name": {
            "type": "string",
            "description": "Explicit boot image name",
            "default": "",
        },
        "use_latest_image": {
            "type": "bool",
            "description": "Resolve the newest image in image_family instead of image_name",
            "default": False,
        },
        "image_family": {"type": "string", "default": defaults.IMAGE_FAMILY},
        "image_project": {
            "type": "string",
            "description": "Project holding the image family (defaults to project_id)",
            "default": "",
        },
    }


def literal(text: str) -> str:
    """Escape template sequences so terraform keeps ``text`` verbatim.

    Every string in Terraform JSON syntax is a template; ``${`` and ``%{``
    must be doubled to survive as plain characters.
    """
    return text.replace("${", "$${").replace("%{", "%%{")


def _firewall(rule: FirewallRule, network: str) -> Dict[str, Any]:
    allow: Dict[str, Any] = {"protocol": rule.protocol}
    if rule.ports:
        allow["ports"] = list(rule.ports)
    return {
        "name": rule.name,
        "network": literal(network),
        "direction": "INGRESS",
        "allow": [allow],
        "source_ranges": list(rule.source_ranges),
        "target_tags": [literal(tag) for tag in rule.target_tags],
    }


def _instance(decl: InstanceDeclaration) -> Dict[str, Any]:
    return {
        "count": "${var.instance_count}",
        "name": f"{decl.name_prefix}-${{count.index + 1}}",
        "machine_type": "${var.machine_type}",
        "zone": "${var.zone}",
        "tags": [literal(tag) for tag in decl.tags],
        "labels": {"role": "web"},
        "boot_disk": [{"initialize_params": [{"image": "${local.boot_image}"}]}],
        "network_interface": [
            {"network": literal(decl.network), "access_config": [{}]}
        ],
        "metadata_startup_script": literal(decl.startup_script),
        "depends_on": [
            f"{FIREWALL_RESOURCE}.{_address(rule.name)}" for rule in decl.firewall_rules
        ],
        "lifecycle": {
            "precondition": [
                {
                    "condition": '${var.use_latest_image || var.image_name != ""}',
                    "error_message": IMAGE_SELECTION_ERROR,
                }
            ]
        },
    }


def _address(name: str) -> str:
    # Terraform resource addresses cannot contain hyphens
    return name.replace("-", "_")


def render_declaration(decl: InstanceDeclaration) -> Dict[str, Any]:
    """Render the Terraform JSON configuration for a declaration.

    Args:
        decl: Fleet declaration

    Returns:
        Configuration dictionary ready to be serialised as ``main.tf.json``
    """
    latest = f"data.{IMAGE_DATA}.{IMAGE_DATA_NAME}[0]"
    terraform_block: Dict[str, Any] = {
        "required_providers": {
            "google": {"source": defaults.TERRAFORM_PROVIDER_SOURCE}
        }
    }
    if decl.state_bucket:
        terraform_block["backend"] = {
            "gcs": {"bucket": decl.state_bucket, "prefix": decl.state_prefix}
        }

    return {
        "terraform": terraform_block,
        "provider": {
            "google": {"project": "${var.project_id}", "zone": "${var.zone}"}
        },
        "variable": _variables(),
        "data": {
            IMAGE_DATA: {
                IMAGE_DATA_NAME: {
                    "count": "${var.use_latest_image ? 1 : 0}",
                    "family": "${var.image_family}",
                    "project": '${var.image_project != "" ? var.image_project : var.project_id}',
                }
            }
        },
        "locals": {
            "boot_image": f"${{var.use_latest_image ? {latest}.self_link : var.image_name}}",
            "resolved_image_name": f"${{var.use_latest_image ? {latest}.name : var.image_name}}",
        },
        "resource": {
            INSTANCE_RESOURCE: {INSTANCE_NAME: _instance(decl)},
            FIREWALL_RESOURCE: {
                _address(rule.name): _firewall(rule, decl.network)
                for rule in decl.firewall_rules
            },
        },
        "output": {
            "instance_ips": {
                "description": "External IP addresses of the web instances",
                "value": (
                    f"${{{INSTANCE_RESOURCE}.{INSTANCE_NAME}[*]"
                    ".network_interface[0].access_config[0].nat_ip}"
                ),
            },
            "image_name": {
                "description": "Boot image the instances were created from",
                "value": "${local.resolved_image_name}",
            },
            "image_selection_method": {
                "value": (
                    '${var.use_latest_image ? "latest image in family ${var.image_family}"'
                    ' : "explicit image name"}'
                ),
            },
        },
    }


def declaration_variables(decl: InstanceDeclaration) -> Dict[str, Any]:
    """Variable values for a declaration, as written to ``terraform.tfvars.json``."""
    return {
        "project_id": decl.project_id,
        "instance_count": decl.count,
        "machine_type": decl.machine_type,
        "zone": decl.zone,
        "image_name": decl.image.name or "",
        "use_latest_image": decl.image.use_latest,
        "image_family": decl.image.family,
        "image_project": decl.image.project or "",
    }


def firewall_addresses(decl: InstanceDeclaration) -> List[str]:
    """Terraform addresses of the firewall resources a declaration owns."""
    return [f"{FIREWALL_RESOURCE}.{_address(rule.name)}" for rule in decl.firewall_rules]


def write_declaration(decl: InstanceDeclaration, directory: str) -> Path:
    """Validate a declaration and write it into ``directory``.

    Writes ``main.tf.json`` and ``terraform.tfvars.json``; terraform picks up
    the latter automatically.

    Returns:
        Path of the written configuration file

    Raises:
        DeclarationValidationError: If the declaration fails validation
    """
    decl.validate()
    target = Path(directory)
    target.mkdir(parents=True, exist_ok=True)
    config_path = target / defaults.TERRAFORM_CONFIG_FILE
    with open(config_path, "w") as f:
        json.dump(render_declaration(decl), f, indent=2)
    with open(target / defaults.TERRAFORM_VARS_FILE, "w") as f:
        json.dump(declaration_variables(decl), f, indent=2)
    logger.debug(f"Wrote terraform declaration to {config_path}")
    return config_path
