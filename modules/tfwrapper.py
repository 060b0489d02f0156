"""Terraform CLI wrapper for gceweb.

Runs ``terraform`` against a working directory holding a rendered
declaration. Every step is a single subprocess call; a non-zero exit is
raised as TerraformCommandError with the tool's output attached verbatim.
Nothing here retries.
"""

import json
import logging
import os
import subprocess
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import click

from modules.exceptions import TerraformCommandError, ToolNotFoundError

logger = logging.getLogger(__name__)

TERRAFORM = "terraform"

# terraform plan -detailed-exitcode
PLAN_NO_CHANGES = 0
PLAN_CHANGES_PRESENT = 2


@dataclass
class PlanResult:
    has_changes: bool
    output: str


def _run(
    args: List[str], workdir: str, step: str, ok_codes=(0,)
) -> subprocess.CompletedProcess:
    command = [TERRAFORM, f"-chdir={workdir}"] + args
    logger.debug(f"Running {' '.join(command)}")
    env = dict(os.environ, TF_IN_AUTOMATION="1")
    try:
        result = subprocess.run(command, capture_output=True, text=True, env=env)
    except FileNotFoundError as e:
        raise ToolNotFoundError(
            "terraform command executable not detected in path",
            context={"step": step},
        ) from e
    output = (result.stdout or "") + (result.stderr or "")
    if result.returncode not in ok_codes:
        raise TerraformCommandError(
            f"terraform {step} failed",
            command=command,
            returncode=result.returncode,
            output=output,
            context={"workdir": workdir},
        )
    return result


def tf_init(workdir: str, backend_config: Optional[Dict[str, str]] = None) -> None:
    click.echo(click.style("\nInitialising terraform..\n", fg="white", bold=True))
    args = ["init", "-input=false", "-no-color"]
    for key, value in (backend_config or {}).items():
        args.append(f"-backend-config={key}={value}")
    result = _run(args, workdir, "init")
    logger.debug(result.stdout)


def tf_validate(workdir: str) -> None:
    _run(["validate", "-no-color"], workdir, "validate")


def tf_plan(workdir: str, destroy: bool = False) -> PlanResult:
    """Plan the declaration against live state.

    Uses ``-detailed-exitcode`` so an unchanged declaration is reported as a
    no-op instead of an empty apply.

    Returns:
        PlanResult with ``has_changes`` False when terraform found nothing to do
    """
    click.echo(click.style("\nGenerating Terraform Plan..\n", fg="white", bold=True))
    args = ["plan", "-input=false", "-no-color", "-detailed-exitcode"]
    if destroy:
        args.append("-destroy")
    result = _run(
        args, workdir, "plan", ok_codes=(PLAN_NO_CHANGES, PLAN_CHANGES_PRESENT)
    )
    output = (result.stdout or "") + (result.stderr or "")
    click.echo(output)
    return PlanResult(
        has_changes=result.returncode == PLAN_CHANGES_PRESENT, output=output
    )


def tf_apply(workdir: str) -> str:
    click.echo(click.style("\nApplying declaration..\n", fg="white", bold=True))
    result = _run(
        ["apply", "-input=false", "-no-color", "-auto-approve"], workdir, "apply"
    )
    click.echo(result.stdout)
    return result.stdout


def tf_destroy(workdir: str) -> str:
    click.echo(click.style("\nDestroying declared resources..\n", fg="white", bold=True))
    result = _run(
        ["destroy", "-input=false", "-no-color", "-auto-approve"], workdir, "destroy"
    )
    click.echo(result.stdout)
    return result.stdout


def parse_outputs(raw: str) -> Dict[str, Any]:
    """Flatten ``terraform output -json`` into ``{name: value}``."""
    if not raw.strip():
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise TerraformCommandError(
            "Invalid output from 'terraform output -json' command",
            output=raw,
        ) from e
    return {name: entry.get("value") for name, entry in data.items()}


def tf_output(workdir: str) -> Dict[str, Any]:
    result = _run(["output", "-json", "-no-color"], workdir, "output")
    return parse_outputs(result.stdout)

