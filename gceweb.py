#!/usr/bin/env python
import functools
import json
import logging
import sys

import click

import modules.ci_workflow as ci_workflow
import modules.config.defaults as defaults
import modules.declaration as declaration
import modules.gitlibs as gitlibs
import modules.image_template as image_template
import modules.workflow as workflow
from modules.config_loader import load_settings
from modules.exceptions import GceWebError, ToolCommandError


__version__ = "0.3"


def _show_banner():
    banner = (
        "\n"
        "  __ _  ___ ___  __      _____| |__  \n"
        " / _` |/ __/ _ \\ \\ \\ /\\ / / _ \\ '_ \\ \n"
        "| (_| | (_|  __/  \\ V  V /  __/ |_) |\n"
        " \\__, |\\___\\___|   \\_/\\_/ \\___|_.__/ \n"
        " |___/                               \n"
    )
    click.echo(banner)


def _setup_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


def _fail(error: GceWebError, debug: bool):
    if debug:
        raise error
    click.echo(click.style(f"\nERROR: {error}", fg="red", bold=True), err=True)
    if isinstance(error, ToolCommandError):
        if error.output:
            click.echo(error.output, err=True)
        sys.exit(error.returncode or 1)
    sys.exit(1)


def common_options(func):
    """Options shared by every command that resolves settings."""

    @click.option("--debug", is_flag=True, default=False, help="Dump exception tracebacks")
    @click.option(
        "--config",
        "config_file",
        default=None,
        help=f"Path to settings YAML file (default {defaults.SETTINGS_FILE} if present)",
    )
    @click.option(
        "--varfile", multiple=True, default=[], help="Path to .tfvars variables file"
    )
    @click.option(
        "--workdir",
        default=".gceweb",
        show_default=True,
        help="Directory for rendered templates and terraform state",
    )
    @click.option("--project-id", default=None, help="GCP project id")
    @click.option("--zone", default=None, help="Compute Engine zone")
    @click.option("--machine-type", default=None, help="Instance machine type")
    @click.option("--count", type=int, default=None, help="Number of instances (>= 1)")
    @click.option(
        "--use-latest-image/--no-use-latest-image",
        default=None,
        help="Boot from the newest image in the image family",
    )
    @click.option(
        "--image-name",
        default=None,
        help="Explicit image name; takes precedence over --use-latest-image",
    )
    @click.option("--state-bucket", default=None, help="GCS bucket for terraform state")
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        return func(*args, **kwargs)

    return wrapper


def _settings(options: dict):
    overrides = {
        "project_id": options["project_id"],
        "zone": options["zone"],
        "machine_type": options["machine_type"],
        "count": options["count"],
        "use_latest_image": options["use_latest_image"],
        "state_bucket": options["state_bucket"],
    }
    if options["image_name"] and options["use_latest_image"]:
        click.echo(
            click.style(
                f"WARNING: --image-name {options['image_name']} overrides --use-latest-image",
                fg="yellow",
            ),
            err=True,
        )
    return load_settings(options["config_file"], options["varfile"], overrides)


def _image_name(options: dict, settings) -> str:
    return (
        options["image_name"]
        or settings.image_name
        or gitlibs.default_image_name(settings.image_name_prefix)
    )


def _run(options: dict, action):
    _setup_logging(options["debug"])
    try:
        settings = _settings(options)
        return action(settings)
    except GceWebError as error:
        _fail(error, options["debug"])


def _echo_outputs(result: workflow.DeployResult) -> None:
    click.echo(click.style("\nOutputs :", fg="white", bold=True))
    click.echo(json.dumps(result.outputs, indent=4, sort_keys=True))


@click.version_option(version=__version__, prog_name="gceweb")
@click.group()
def cli():
    """
    gceweb bakes an Apache web image with Packer and deploys Compute Engine
    instances booting from it with Terraform

    For help with a specific command type:

    gceweb [COMMAND] --help

    """
    pass


@cli.command()
@common_options
def validate(**options):
    """Validate settings without calling any tool"""

    def action(settings):
        settings.to_declaration(options["image_name"]).validate()
        settings.to_image_spec(options["image_name"]).validate()
        click.echo(click.style("Declaration is valid.", fg="green", bold=True))

    _run(options, action)


@cli.command()
@common_options
@click.option("--outdir", default="rendered", help="Output directory")
def render(**options):
    """Write the packer template and terraform declaration"""

    def action(settings):
        spec = settings.to_image_spec(options["image_name"])
        spec.validate()
        template = image_template.write_template(spec, options["outdir"])
        config = declaration.write_declaration(
            settings.to_declaration(options["image_name"]), options["outdir"]
        )
        click.echo(f"Wrote {template}")
        click.echo(f"Wrote {config}")

    _run(options, action)


@cli.command()
@common_options
def build(**options):
    """Bake the web server image with Packer"""

    def action(settings):
        _show_banner()
        workflow.preflight_check(["packer"])
        name = _image_name(options, settings)
        image = workflow.build(settings, options["workdir"], name)
        click.echo(image)

    _run(options, action)


@cli.command()
@common_options
def plan(**options):
    """Show what terraform would change"""

    def action(settings):
        workflow.preflight_check(["terraform"])
        result = workflow.plan(settings, options["workdir"], options["image_name"])
        if result.has_changes:
            click.echo(click.style("\nChanges pending.", fg="yellow", bold=True))
        else:
            click.echo(click.style("\nNo changes.", fg="green", bold=True))

    _run(options, action)


@cli.command()
@common_options
def deploy(**options):
    """Create or update the instances and firewall rules"""

    def action(settings):
        _show_banner()
        workflow.preflight_check(["terraform"])
        result = workflow.deploy(settings, options["workdir"], options["image_name"])
        _echo_outputs(result)

    _run(options, action)


@cli.command()
@common_options
def pipeline(**options):
    """Bake a fresh image, then deploy onto it"""

    def action(settings):
        _show_banner()
        workflow.preflight_check(["packer", "terraform"])
        name = _image_name(options, settings)
        # Fail on a bad declaration before spending time on the image build
        settings.to_declaration(name).validate()
        result = workflow.pipeline(settings, options["workdir"], name)
        _echo_outputs(result)

    _run(options, action)


@cli.command()
@common_options
def destroy(**options):
    """Remove every resource the declaration created"""

    def action(settings):
        _show_banner()
        workflow.preflight_check(["terraform"])
        workflow.teardown(settings, options["workdir"], options["image_name"])
        click.echo(click.style("\nCompleted!", fg="green", bold=True))

    _run(options, action)


@cli.command()
@common_options
@click.option(
    "--outdir", default=".github/workflows", show_default=True, help="Output directory"
)
def workflows(**options):
    """Write the GitHub Actions deploy and teardown workflows"""

    def action(settings):
        for path in ci_workflow.write_workflows(settings, options["outdir"]):
            click.echo(f"Wrote {path}")

    _run(options, action)


if __name__ == "__main__":
    cli()
