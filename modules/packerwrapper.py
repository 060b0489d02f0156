"""Packer CLI wrapper for gceweb.

Builds the web server image from the rendered template. Each packer step is
one subprocess call; a non-zero exit aborts with ImageBuildError and packer
itself discards the half-built image.
"""

import logging
import subprocess
from pathlib import Path
from typing import Dict, List, Optional

import click

from modules import image_template
from modules.exceptions import ImageBuildError, ToolNotFoundError
from modules.models import ImageBuildSpec

logger = logging.getLogger(__name__)

PACKER = "packer"


def _var_args(variables: Dict[str, str]) -> List[str]:
    args = []
    for key, value in variables.items():
        args += ["-var", f"{key}={value}"]
    return args


def _run(args: List[str], workdir: str, step: str) -> str:
    command = [PACKER] + args
    logger.debug(f"Running {' '.join(command)} in {workdir}")
    try:
        result = subprocess.run(command, cwd=workdir, capture_output=True, text=True)
    except FileNotFoundError as e:
        raise ToolNotFoundError(
            "packer command executable not detected in path", context={"step": step}
        ) from e
    output = (result.stdout or "") + (result.stderr or "")
    if result.returncode != 0:
        raise ImageBuildError(
            f"packer {step} failed",
            command=command,
            returncode=result.returncode,
            output=output,
            context={"workdir": workdir},
        )
    return output


def packer_init(workdir: str, template: str) -> None:
    click.echo(click.style("\nInstalling packer plugins..\n", fg="white", bold=True))
    _run(["init", template], workdir, "init")


def packer_validate(workdir: str, template: str, variables: Dict[str, str]) -> None:
    _run(["validate"] + _var_args(variables) + [template], workdir, "validate")


def packer_build(workdir: str, template: str, variables: Dict[str, str]) -> str:
    click.echo(
        click.style(
            f"\nBuilding image {variables.get('image_name', '')}.. (this may take a while)\n",
            fg="white",
            bold=True,
        )
    )
    args = ["build", "-machine-readable", "-color=false"]
    return _run(args + _var_args(variables) + [template], workdir, "build")


def parse_artifact_id(output: str) -> Optional[str]:
    """Extract the artifact id from ``-machine-readable`` build output.

    Machine-readable lines look like
    ``timestamp,target,type,data...``; the artifact id is reported as
    ``<ts>,<target>,artifact,0,id,<value>``.

    Returns:
        The last reported artifact id, or None if packer reported none
    """
    artifact_id = None
    for line in output.splitlines():
        fields = line.split(",")
        if len(fields) >= 6 and fields[2] == "artifact" and fields[4] == "id":
            artifact_id = ",".join(fields[5:]).replace("%!(PACKER_COMMA)", ",").strip()
    return artifact_id or None


def build_image(spec: ImageBuildSpec, workdir: str) -> str:
    """Build the web image and return its name.

    Args:
        spec: Image build inputs
        workdir: Directory the template is written to and packer runs in

    Returns:
        Name of the produced image

    Raises:
        DeclarationValidationError: If the build inputs are invalid (before packer runs)
        ImageBuildError: If any packer step exits non-zero
    """
    spec.validate()
    template_path = image_template.write_template(spec, workdir)
    template = Path(template_path).name
    variables = {"project_id": spec.project_id, "image_name": spec.image_name}
    packer_init(workdir, template)
    packer_validate(workdir, template, variables)
    output = packer_build(workdir, template, variables)
    artifact_id = parse_artifact_id(output)
    if artifact_id and artifact_id != spec.image_name:
        logger.warning(
            f"Packer reported artifact '{artifact_id}', requested '{spec.image_name}'"
        )
    image_name = artifact_id or spec.image_name
    click.echo(click.style(f"\nImage {image_name} built.", fg="green", bold=True))
    return image_name
