"""Deployments resource client."""

from typing import TYPE_CHECKING, Any

from deploykit.exceptions import DeployKitError
from deploykit.logging import get_logger
from deploykit.retry import RequestExecutor
from deploykit.types.deployments import (
    ChangeProbe,
    ChangeSet,
    DeploymentPage,
    DeploymentRequest,
    DeploymentState,
    DeploymentStatus,
    DeploymentSummary,
)

if TYPE_CHECKING:
    from deploykit.transport import HTTPTransport

logger = get_logger()

_ERROR_KEYWORDS = ("error", "failed", "exception")


class DeploymentsClient:
    """Client for deployment operations of one cloud project."""

    # Bounds for the newest-first scan for a usable change-set
    SCAN_PAGE_SIZE = 10
    SCAN_MAX_PAGES = 20

    def __init__(
        self,
        transport: "HTTPTransport",
        project_id: str,
        executor: RequestExecutor | None = None,
    ) -> None:
        """
        Initialize the deployments client.

        Args:
            transport: HTTP transport for the deployment API
            project_id: The cloud project identifier
            executor: Retry strategies (default: RequestExecutor())
        """
        self.transport = transport
        self.project_id = project_id
        self.executor = executor or RequestExecutor()

    @property
    def _base_path(self) -> str:
        return f"/v2/projects/{self.project_id}/deployments"

    def start(self, request: DeploymentRequest) -> str | None:
        """
        Start a deployment.

        Retries once with the lower-cased environment alias when the remote
        cannot resolve the alias as supplied.

        Args:
            request: What to deploy and where

        Returns:
            The new deployment id, or None if the response carried none

        Raises:
            DeployKitError: On API errors
        """
        def send(body: dict[str, Any]) -> str | None:
            logger.debug("Starting deployment at %s", self._base_path)
            data = self.transport.request_json("POST", self._base_path, json=body)
            return data.get("deploymentId")

        return self.executor.with_alias_fallback(
            lambda: send(request.to_body()),
            lambda alias: send(request.to_body(alias)),
            alias=request.target_environment_alias,
            operation="start_deployment",
        )

    def get_status(self, deployment_id: str, since: str | None = None) -> DeploymentStatus:
        """
        Get the current status of a deployment.

        Args:
            deployment_id: The deployment identifier
            since: Cursor; when set only status messages newer than it are returned

        Returns:
            DeploymentStatus

        Raises:
            DeployKitError: On API errors (no retry)
        """
        params = {"lastModifiedUtc": since} if since else None
        data = self.transport.request_json(
            "GET", f"{self._base_path}/{deployment_id}", params=params
        )
        return DeploymentStatus.from_api(data)

    def list_deployments(
        self,
        skip: int = 0,
        take: int = 100,
        include_null_deployments: bool = True,
        target_environment_alias: str | None = None,
    ) -> DeploymentPage:
        """
        List deployments, newest first.

        Args:
            skip: Number of deployments to skip
            take: Page size
            include_null_deployments: Include deployments that changed nothing
            target_environment_alias: Optional environment filter

        Returns:
            DeploymentPage
        """
        params: dict[str, Any] = {
            "skip": skip,
            "take": take,
            "includeNullDeployments": str(include_null_deployments).lower(),
        }
        if target_environment_alias:
            params["targetEnvironmentAlias"] = target_environment_alias

        data = self.executor.with_rate_limit(
            lambda: self.transport.request_json("GET", self._base_path, params=params)
        )

        return DeploymentPage(
            project_id=data.get("projectId", self.project_id),
            items=[self._parse_summary(item) for item in data.get("data", [])],
            total_items=data.get("totalItems", 0),
            skipped_items=data.get("skippedItems", skip),
            taken_items=data.get("takenItems", take),
        )

    def get_changes(self, deployment_id: str, target_environment_alias: str) -> ChangeSet:
        """
        Get the change-set (unified diff) of a deployment.

        Args:
            deployment_id: The deployment identifier
            target_environment_alias: Environment the diff is computed against

        Returns:
            ChangeSet; a 204 response yields an empty change-set tagged NO_CONTENT

        Raises:
            DeployKitError: On API errors
        """
        logger.debug(
            "Getting changes for deployment %s, environment %s",
            deployment_id,
            target_environment_alias,
        )
        return self.executor.with_alias_fallback(
            lambda: self._fetch_diff(deployment_id, target_environment_alias),
            lambda alias: self._fetch_diff(deployment_id, alias),
            alias=target_environment_alias,
            operation="get_changes",
        )

    def probe_changes(self, deployment_id: str, target_environment_alias: str) -> ChangeSet:
        """
        Check whether a deployment carries a non-empty change-set.

        Never raises for API errors: they are logged at DEBUG and reported as
        NO_CONTENT.
        """
        try:
            return self.get_changes(deployment_id, target_environment_alias)
        except DeployKitError as e:
            logger.debug("Error checking changes for deployment %s: %s", deployment_id, e)
            return ChangeSet(deployment_id=deployment_id, changes="", probe=ChangeProbe.NO_CONTENT)

    def find_completed_with_changes(
        self,
        target_environment_alias: str,
        max_results: int = 5,
    ) -> list[str]:
        """
        Find the newest Completed deployments whose change-set is non-empty.

        Scans at most SCAN_MAX_PAGES pages of SCAN_PAGE_SIZE deployments.

        Args:
            target_environment_alias: Environment to scan
            max_results: Stop after this many matches

        Returns:
            Deployment ids, newest first (possibly empty)
        """
        found: list[str] = []
        skip = 0
        take = self.SCAN_PAGE_SIZE

        for _ in range(self.SCAN_MAX_PAGES):
            logger.debug("Checking deployments batch: skip=%d, take=%d", skip, take)
            page = self.list_deployments(
                skip=skip,
                take=take,
                include_null_deployments=False,
                target_environment_alias=target_environment_alias,
            )

            for deployment in page.items:
                if deployment.state != DeploymentState.COMPLETED.value:
                    continue

                probe = self.probe_changes(deployment.id, target_environment_alias)
                if probe.has_changes:
                    logger.debug("Found deployment %s with changes", deployment.id)
                    found.append(deployment.id)
                    if len(found) >= max_results:
                        return found
                elif probe.probe is ChangeProbe.EMPTY:
                    logger.debug("Deployment %s returned an empty diff, checking next...", deployment.id)
                else:
                    logger.debug("Deployment %s has no diff content, checking next...", deployment.id)

            if len(page.items) < take or skip + take >= page.total_items:
                break
            skip += take

        logger.debug("Found %d completed deployments with changes", len(found))
        return found

    def find_latest_completed_with_changes(self, target_environment_alias: str) -> str | None:
        """Return the newest Completed deployment with a non-empty change-set, or None."""
        found = self.find_completed_with_changes(target_environment_alias, max_results=1)
        return found[0] if found else None

    def get_error_details(self, deployment_id: str) -> list[str]:
        """
        Collect the error-looking status messages of a deployment.

        Best effort: any API failure yields an empty list.

        Returns:
            Messages formatted as "[timestamp] message"
        """
        try:
            status = self.executor.with_rate_limit(lambda: self.get_status(deployment_id))
        except DeployKitError as e:
            logger.debug("Could not retrieve deployment error details: %s", e)
            return []

        return [
            str(message)
            for message in status.messages
            if any(keyword in message.message.lower() for keyword in _ERROR_KEYWORDS)
        ]

    def apply_change(self, change_id: str, target_environment_alias: str) -> None:
        """
        Apply a remote change to an environment.

        Args:
            change_id: The change identifier
            target_environment_alias: Environment to apply the change to
        """
        self.transport.request(
            "POST",
            f"/v2/projects/{self.project_id}/changes/{change_id}/apply",
            json={"targetEnvironmentAlias": target_environment_alias},
        )
        logger.info("Patch applied successfully")

    def _fetch_diff(self, deployment_id: str, alias: str) -> ChangeSet:
        response = self.transport.request(
            "GET",
            f"{self._base_path}/{deployment_id}/diff",
            params={"targetEnvironmentAlias": alias},
        )
        if response.status_code == 204:
            return ChangeSet(deployment_id=deployment_id, changes="", probe=ChangeProbe.NO_CONTENT)

        changes = response.text or ""
        probe = ChangeProbe.CONTENT if changes.strip() else ChangeProbe.EMPTY
        return ChangeSet(deployment_id=deployment_id, changes=changes, probe=probe)

    def _parse_summary(self, data: dict[str, Any]) -> DeploymentSummary:
        return DeploymentSummary(
            id=data["id"],
            state=data.get("state", ""),
            artifact_id=data.get("artifactId"),
            target_environment_alias=data.get("targetEnvironmentAlias"),
            created_utc=data.get("createdUtc"),
            modified_utc=data.get("modifiedUtc"),
            completed_utc=data.get("completedUtc"),
        )
