"""
Command-line entry point.

Usage:
    deploykit deploy --file site.zip --environment live
    deploykit start-deployment --artifact-id ID --environment live
    deploykit check-status --deployment-id ID --environment live
    deploykit add-artifact --file site.zip
    deploykit get-changes --deployment-id ID --environment live
    deploykit apply-patch --change-id ID --environment live

Configuration comes from the environment (see Settings.from_env). Outputs are
appended to $GITHUB_OUTPUT when it is set and printed as JSON otherwise.
"""

import json
import logging
import os
import sys
from pathlib import Path
from typing import Any

import click

from deploykit import __version__
from deploykit.client import DeployKitClient
from deploykit.config import Settings
from deploykit.driver import DeploymentPipeline, run_action
from deploykit.exceptions import DeployKitError
from deploykit.logging import configure_logging, get_logger

logger = get_logger()


def _write_outputs(outputs: dict[str, str]) -> None:
    target = os.environ.get("GITHUB_OUTPUT")
    if not target:
        click.echo(json.dumps(outputs, indent=2))
        return
    with Path(target).open("a", encoding="utf-8") as fh:
        for key, value in outputs.items():
            # Multiline values use the heredoc form
            fh.write(f"{key}<<__DEPLOYKIT_EOF__\n{value}\n__DEPLOYKIT_EOF__\n")


def _run(action: str, **inputs: Any) -> None:
    try:
        settings = Settings.from_env()
        outputs = run_action(action, settings, **inputs)
    except DeployKitError as e:
        logger.error("%s", e)
        sys.exit(1)

    _write_outputs(outputs)
    if outputs.get("deploymentState") == "Failed":
        logger.error("Deployment failed")
        sys.exit(1)


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(__version__, "-V", "--version", prog_name="deploykit")
@click.option("--debug", is_flag=True, help="Log HTTP traffic and debug detail.")
def cli(debug: bool) -> None:
    """Deploy to a cloud project and recover from failed deployments."""
    configure_logging(logging.DEBUG if debug else logging.INFO)


environment_option = click.option(
    "--environment",
    "target_environment_alias",
    required=True,
    help="Target environment alias.",
)


@cli.command()
@click.option("--file", "file_path", required=True, type=click.Path(dir_okay=False))
@environment_option
@click.option("--commit-message", default="Deployment from GitHub Actions", show_default=True)
@click.option("--description", default=None)
@click.option("--version", "artifact_version", default=None)
def deploy(
    file_path: str,
    target_environment_alias: str,
    commit_message: str,
    description: str | None,
    artifact_version: str | None,
) -> None:
    """Upload an artifact, deploy it and recover if the deployment fails."""
    try:
        with DeployKitClient.from_env() as client:
            result = DeploymentPipeline.from_client(client).run(
                file_path,
                target_environment_alias,
                commit_message=commit_message,
                description=description,
                version=artifact_version,
            )
    except DeployKitError as e:
        logger.error("%s", e)
        sys.exit(1)

    _write_outputs(result.outputs())
    if not result.succeeded:
        sys.exit(1)


@cli.command("start-deployment")
@click.option("--artifact-id", required=True)
@environment_option
@click.option("--commit-message", default=None)
@click.option("--no-build-and-restore", is_flag=True)
@click.option("--skip-version-check", is_flag=True)
def start_deployment(**inputs: Any) -> None:
    """Start a deployment of an uploaded artifact and wait for it."""
    _run("start-deployment", **inputs)


@cli.command("check-status")
@click.option("--deployment-id", required=True)
@environment_option
def check_status(**inputs: Any) -> None:
    """Wait for a deployment, then report its changes or recover."""
    _run("check-status", **inputs)


@cli.command("add-artifact")
@click.option("--file", "file_path", required=True)
@click.option("--description", default=None)
@click.option("--version", "version", default=None)
def add_artifact(**inputs: Any) -> None:
    """Upload an artifact zip."""
    _run("add-artifact", **inputs)


@cli.command("get-changes")
@click.option("--deployment-id", required=True)
@environment_option
def get_changes(**inputs: Any) -> None:
    """Print the change-set of a deployment."""
    _run("get-changes", **inputs)


@cli.command("apply-patch")
@click.option("--change-id", required=True)
@environment_option
def apply_patch(**inputs: Any) -> None:
    """Apply a remote change to an environment."""
    _run("apply-patch", **inputs)


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
