"""Build/deploy orchestration for gceweb.

Sequences the two external stages: packer bakes the web image, terraform
converges the fleet onto it. The fresh image name is threaded from the first
stage into the second. A failure in any stage propagates unchanged and halts
the run; nothing is retried or rolled back.
"""

import logging
import os
import shutil
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Optional

import click

from modules import declaration, packerwrapper, tfwrapper
from modules.config_loader import Settings
from modules.exceptions import ToolNotFoundError

logger = logging.getLogger(__name__)

IMAGE_SUBDIR = "image"
TERRAFORM_SUBDIR = "terraform"


@dataclass
class DeployResult:
    changed: bool
    outputs: Dict[str, Any] = field(default_factory=dict)

    @property
    def instance_ips(self):
        return self.outputs.get("instance_ips") or []

    @property
    def image_name(self) -> Optional[str]:
        return self.outputs.get("image_name")

    @property
    def image_selection_method(self) -> Optional[str]:
        return self.outputs.get("image_selection_method")


def preflight_check(tools: Iterable[str] = ("packer", "terraform")) -> Dict[str, str]:
    """Check required command-line tools are available.

    Returns:
        Mapping of tool name to resolved path

    Raises:
        ToolNotFoundError: For the first missing tool
    """
    click.echo(click.style("\nPreflight check..", fg="white", bold=True))
    found = {}
    for exe in tools:
        location = shutil.which(exe)
        if not location:
            raise ToolNotFoundError(
                f"{exe} command executable not detected in path. "
                "Please ensure you have installed all required dependencies first",
                context={"tool": exe},
            )
        click.echo(f"  {exe} command detected: {location}")
        found[exe] = location
    return found


def image_dir(workdir: str) -> str:
    return os.path.join(workdir, IMAGE_SUBDIR)


def terraform_dir(workdir: str) -> str:
    return os.path.join(workdir, TERRAFORM_SUBDIR)


def build(settings: Settings, workdir: str, image_name: Optional[str] = None) -> str:
    """Bake the web image.

    Returns:
        Name of the image packer produced
    """
    spec = settings.to_image_spec(image_name)
    logger.info(f"Building image {spec.image_name} in project {spec.project_id}")
    return packerwrapper.build_image(spec, image_dir(workdir))


def deploy(
    settings: Settings, workdir: str, image_name: Optional[str] = None
) -> DeployResult:
    """Converge the fleet onto the declared state.

    The declaration is validated before terraform is invoked. When the plan
    reports no changes the apply is skipped.

    Args:
        settings: Resolved settings
        workdir: Working directory; the declaration lives in ``<workdir>/terraform``
        image_name: Boot image to use instead of the configured selection

    Returns:
        DeployResult with terraform outputs
    """
    decl = settings.to_declaration(image_name)
    tfdir = terraform_dir(workdir)
    declaration.write_declaration(decl, tfdir)
    logger.info(f"Image selection: {decl.image.method}")

    tfwrapper.tf_init(tfdir)
    tfwrapper.tf_validate(tfdir)
    plan = tfwrapper.tf_plan(tfdir)
    if plan.has_changes:
        tfwrapper.tf_apply(tfdir)
    else:
        click.echo(
            click.style("\nNo changes. Infrastructure is up-to-date.", fg="green")
        )
    outputs = tfwrapper.tf_output(tfdir)
    return DeployResult(changed=plan.has_changes, outputs=outputs)


def plan(settings: Settings, workdir: str, image_name: Optional[str] = None):
    """Render, init, validate and plan without applying."""
    decl = settings.to_declaration(image_name)
    tfdir = terraform_dir(workdir)
    declaration.write_declaration(decl, tfdir)
    tfwrapper.tf_init(tfdir)
    tfwrapper.tf_validate(tfdir)
    return tfwrapper.tf_plan(tfdir)


def pipeline(settings: Settings, workdir: str, image_name: Optional[str] = None) -> DeployResult:
    """Build the image, then deploy instances booting from it."""
    built = build(settings, workdir, image_name)
    click.echo(click.style(f"\nDeploying fleet on image {built}..", fg="white", bold=True))
    return deploy(settings, workdir, image_name=built)


def teardown(settings: Settings, workdir: str, image_name: Optional[str] = None) -> str:
    """Destroy everything the matching declaration created.

    The declaration is re-rendered from the same settings so terraform targets
    exactly the instances and firewall rules it owns in state.
    """
    decl = settings.to_declaration(image_name)
    if not decl.image.use_latest and not decl.image.name:
        # Destroy never boots anything; any name satisfies the precondition
        decl.image.name = "unused"
    tfdir = terraform_dir(workdir)
    declaration.write_declaration(decl, tfdir)
    logger.info(
        f"Destroying instances and firewall rules: "
        f"{', '.join(declaration.firewall_addresses(decl))}"
    )
    tfwrapper.tf_init(tfdir)
    tfwrapper.tf_validate(tfdir)
    return tfwrapper.tf_destroy(tfdir)
