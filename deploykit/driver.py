"""
Pipeline driver.

Sequences artifact upload, deployment start, status polling and, depending on
the terminal state, change-set retrieval or failure recovery. Also hosts the
single-action handlers (`run_action`) that expose each stage on its own.
"""

import json
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from deploykit.client import DeployKitClient
from deploykit.clients.artifacts import ArtifactsClient
from deploykit.clients.deployments import DeploymentsClient
from deploykit.config import Settings
from deploykit.exceptions import ConflictError, DeployKitError, PipelineError, ValidationError
from deploykit.logging import get_logger
from deploykit.polling import DeploymentPoller
from deploykit.recovery.pipeline import RecoveryOutcome, RecoveryPipeline
from deploykit.types.deployments import (
    ChangeSet,
    DeploymentRequest,
    DeploymentState,
    DeploymentStatus,
)

logger = get_logger()

_NULL_DEPLOYMENT_MARKER = "CloudNullDeployment"


@dataclass
class PipelineResult:
    """Everything a pipeline run produced, stage by stage."""

    artifact_id: str | None = None
    deployment_id: str | None = None
    status: DeploymentStatus | None = None
    changes: ChangeSet | None = None
    recovery: RecoveryOutcome | None = None
    recovery_error: DeployKitError | None = None

    @property
    def succeeded(self) -> bool:
        return self.status is not None and self.status.state is DeploymentState.COMPLETED

    def outputs(self) -> dict[str, str]:
        """Named outputs, keyed the way CI steps consume them."""
        outputs: dict[str, str] = {}
        if self.artifact_id:
            outputs["artifactId"] = self.artifact_id
        if self.deployment_id:
            outputs["deploymentId"] = self.deployment_id
        if self.status is not None:
            outputs["deploymentState"] = self.status.state.value
            outputs["deploymentStatus"] = json.dumps(self.status.to_dict())

        changes = self.changes
        if changes is None and self.recovery is not None:
            changes = self.recovery.change_set
        if changes is not None:
            outputs["changes"] = json.dumps(changes.to_dict())

        if self.recovery is not None:
            latest = self.recovery.latest_completed_deployment_id
            if latest:
                outputs["latestCompletedDeploymentId"] = latest
            review = self.recovery.review
            if review is not None and review.url:
                outputs["prUrl"] = review.url
                outputs["prNumber"] = str(review.number)
        return outputs


class DeploymentPipeline:
    """
    Runs a deployment end to end.

    Example:
        ```python
        with DeployKitClient.from_env() as client:
            pipeline = DeploymentPipeline.from_client(client)
            result = pipeline.run("site.zip", "live")
            print(result.outputs())
        ```
    """

    def __init__(
        self,
        deployments: DeploymentsClient,
        artifacts: ArtifactsClient,
        poller: DeploymentPoller,
        recovery: Callable[[], RecoveryPipeline] | None = None,
        no_build_and_restore: bool = False,
        skip_version_check: bool = False,
    ) -> None:
        """
        Initialize the pipeline.

        Args:
            deployments: Deployments client
            artifacts: Artifacts client
            poller: Poller used to wait for a terminal state
            recovery: Builds the recovery pipeline on a failed deployment
                (None disables recovery)
            no_build_and_restore: Passed through to every started deployment
            skip_version_check: Passed through to every started deployment
        """
        self.deployments = deployments
        self.artifacts = artifacts
        self.poller = poller
        self._recovery = recovery
        self.no_build_and_restore = no_build_and_restore
        self.skip_version_check = skip_version_check

    @classmethod
    def from_client(cls, client: DeployKitClient) -> "DeploymentPipeline":
        return cls(
            deployments=client.deployments,
            artifacts=client.artifacts,
            poller=client.poller(),
            recovery=client.recovery,
            no_build_and_restore=client.settings.no_build_and_restore,
            skip_version_check=client.settings.skip_version_check,
        )

    def run(
        self,
        file_path: str | Path,
        target_environment_alias: str,
        commit_message: str = "Deployment from GitHub Actions",
        description: str | None = None,
        version: str | None = None,
    ) -> PipelineResult:
        """
        Upload an artifact, deploy it and wait for the outcome.

        Args:
            file_path: Artifact zip to upload
            target_environment_alias: Environment to deploy to
            commit_message: Message recorded with the deployment
            description: Optional artifact description
            version: Optional artifact version

        Returns:
            PipelineResult; a Failed deployment is a result, not an exception

        Raises:
            PipelineError: If a stage yields no identifier for the next one
            DeploymentTimeoutError: If the deployment did not finish in time
        """
        result = PipelineResult()

        artifact = self.artifacts.upload(file_path, description=description, version=version)
        if not artifact.artifact_id:
            raise PipelineError("Artifact upload returned no artifact id")
        result.artifact_id = artifact.artifact_id
        logger.info("Artifact uploaded successfully with ID: %s", artifact.artifact_id)

        deployment_id = self.deployments.start(
            DeploymentRequest(
                target_environment_alias=target_environment_alias,
                artifact_id=artifact.artifact_id,
                commit_message=commit_message,
                no_build_and_restore=self.no_build_and_restore,
                skip_version_check=self.skip_version_check,
            )
        )
        if not deployment_id:
            raise PipelineError("Deployment start returned no deployment id")
        result.deployment_id = deployment_id
        logger.info("Deployment started successfully with ID: %s", deployment_id)

        return self.check_status(deployment_id, target_environment_alias, result)

    def check_status(
        self,
        deployment_id: str,
        target_environment_alias: str,
        result: PipelineResult | None = None,
    ) -> PipelineResult:
        """
        Wait for a deployment to finish, then fetch its changes or recover.

        Recovery errors are logged and kept on the result; they never replace
        the deployment's own outcome.
        """
        result = result or PipelineResult(deployment_id=deployment_id)
        logger.info(
            "Checking status for deployment ID: %s, environment: %s",
            deployment_id,
            target_environment_alias,
        )

        status = self.poller.poll(deployment_id)
        result.status = status

        if status.state is DeploymentState.COMPLETED:
            logger.info("Deployment completed successfully")
            result.changes = self._completed_changes(deployment_id, target_environment_alias)
        elif status.state is DeploymentState.FAILED:
            logger.error("Deployment failed")
            self._recover(status, target_environment_alias, result)
        return result

    def _completed_changes(self, deployment_id: str, alias: str) -> ChangeSet | None:
        try:
            changes = self.deployments.get_changes(deployment_id, alias)
        except ConflictError as e:
            if _NULL_DEPLOYMENT_MARKER in str(e):
                logger.info(
                    "Deployment completed successfully, but there were no changes "
                    "to apply to the cloud repository."
                )
            else:
                logger.warning("Could not retrieve changes for completed deployment: %s", e)
            return None
        except DeployKitError as e:
            logger.warning("Could not retrieve changes for completed deployment: %s", e)
            return None

        logger.info("Deployment completed. Here is the diff/patch:")
        logger.info("%s", changes.changes)
        return changes

    def _recover(self, status: DeploymentStatus, alias: str, result: PipelineResult) -> None:
        if self._recovery is None:
            logger.info("Recovery is disabled; not attempting to fix the failed deployment")
            return
        try:
            result.recovery = self._recovery().recover(status, alias)
        except DeployKitError as e:
            logger.warning("Failed to recover from the failed deployment: %s", e)
            result.recovery_error = e


# Single actions


def _require(inputs: dict[str, Any], *names: str) -> None:
    missing = [name for name in names if not inputs.get(name)]
    if missing:
        raise ValidationError("MISSING_INPUTS", f"Missing required inputs: {', '.join(missing)}")


def _start_deployment(client: DeployKitClient, inputs: dict[str, Any]) -> dict[str, str]:
    _require(inputs, "artifact_id", "target_environment_alias")
    deployment_id = client.deployments.start(
        DeploymentRequest(
            target_environment_alias=inputs["target_environment_alias"],
            artifact_id=inputs["artifact_id"],
            commit_message=inputs.get("commit_message") or "Deployment from GitHub Actions",
            no_build_and_restore=bool(inputs.get("no_build_and_restore", False)),
            skip_version_check=bool(inputs.get("skip_version_check", False)),
        )
    )
    if not deployment_id:
        raise PipelineError("Deployment start returned no deployment id")
    logger.info("Deployment started successfully with ID: %s", deployment_id)

    status = client.poller().poll(deployment_id)
    return {"deploymentId": deployment_id, "deploymentState": status.state.value}


def _check_status(client: DeployKitClient, inputs: dict[str, Any]) -> dict[str, str]:
    _require(inputs, "deployment_id", "target_environment_alias")
    pipeline = DeploymentPipeline.from_client(client)
    result = pipeline.check_status(inputs["deployment_id"], inputs["target_environment_alias"])
    return result.outputs()


def _add_artifact(client: DeployKitClient, inputs: dict[str, Any]) -> dict[str, str]:
    _require(inputs, "file_path")
    artifact = client.artifacts.upload(
        inputs["file_path"],
        description=inputs.get("description"),
        version=inputs.get("version"),
    )
    logger.info("Artifact uploaded successfully with ID: %s", artifact.artifact_id)
    return {"artifactId": artifact.artifact_id}


def _get_changes(client: DeployKitClient, inputs: dict[str, Any]) -> dict[str, str]:
    _require(inputs, "deployment_id", "target_environment_alias")
    changes = client.deployments.get_changes(
        inputs["deployment_id"], inputs["target_environment_alias"]
    )
    logger.info(
        "Changes retrieved successfully for deployment ID: %s, targetEnvironmentAlias: %s",
        inputs["deployment_id"],
        inputs["target_environment_alias"],
    )
    return {"changes": json.dumps(changes.to_dict())}


def _apply_patch(client: DeployKitClient, inputs: dict[str, Any]) -> dict[str, str]:
    _require(inputs, "change_id", "target_environment_alias")
    client.deployments.apply_change(inputs["change_id"], inputs["target_environment_alias"])
    logger.info("Patch applied successfully for change ID: %s", inputs["change_id"])
    return {}


ACTIONS: dict[str, Callable[[DeployKitClient, dict[str, Any]], dict[str, str]]] = {
    "start-deployment": _start_deployment,
    "check-status": _check_status,
    "add-artifact": _add_artifact,
    "get-changes": _get_changes,
    "apply-patch": _apply_patch,
}


def run_action(
    action: str,
    settings: Settings,
    client: DeployKitClient | None = None,
    **inputs: Any,
) -> dict[str, str]:
    """
    Run one pipeline stage on its own.

    Args:
        action: One of ACTIONS
        settings: Run configuration
        client: Client to use (default: one built from settings and closed afterwards)
        **inputs: Action inputs (snake_case, e.g. deployment_id=...)

    Returns:
        Named outputs of the action

    Raises:
        ValidationError: On an unknown action or missing inputs
    """
    handler = ACTIONS.get(action)
    if handler is None:
        raise ValidationError(
            "UNKNOWN_ACTION",
            f"Unknown action: {action}. Supported actions: {', '.join(ACTIONS)}",
        )

    if client is not None:
        return handler(client, inputs)
    with DeployKitClient(settings) as owned:
        return handler(owned, inputs)
