"""Deployment artifacts resource client."""

import time
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING

from deploykit.exceptions import DeployKitError, ValidationError
from deploykit.logging import get_logger
from deploykit.types.deployments import Artifact

if TYPE_CHECKING:
    from deploykit.transport import HTTPTransport

logger = get_logger()


class ArtifactsClient:
    """Client for uploading deployment artifacts (zip archives)."""

    def __init__(
        self,
        transport: "HTTPTransport",
        project_id: str,
        retries: int = 3,
        retry_delay: float = 10.0,
        timeout: float = 60.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """
        Initialize the artifacts client.

        Args:
            transport: HTTP transport for the deployment API
            project_id: The cloud project identifier
            retries: Upload attempts before giving up
            retry_delay: Base delay in seconds, doubled after every failed attempt
            timeout: Per-attempt timeout in seconds
            sleep: Sleep function (injectable for tests)
        """
        self.transport = transport
        self.project_id = project_id
        self.retries = max(1, retries)
        self.retry_delay = retry_delay
        self.timeout = timeout
        self._sleep = sleep

    def upload(
        self,
        file_path: str | Path,
        description: str | None = None,
        version: str | None = None,
    ) -> Artifact:
        """
        Upload an artifact zip.

        Args:
            file_path: Path to the zip archive
            description: Optional artifact description
            version: Optional artifact version

        Returns:
            Artifact with the assigned artifact_id

        Raises:
            ValidationError: If the file path is missing or does not exist
            DeployKitError: The last upload error after all attempts failed
        """
        if not file_path:
            raise ValidationError("MISSING_FILE", "File path is required for artifact upload")

        path = Path(file_path)
        if not path.is_file():
            raise ValidationError("MISSING_FILE", f"File does not exist: {path}")

        fields: dict[str, str] = {}
        if description:
            fields["description"] = description
        if version:
            fields["version"] = version

        endpoint = f"/v2/projects/{self.project_id}/deployments/artifacts"
        logger.debug("Uploading artifact: %s", path)

        for attempt in range(1, self.retries + 1):
            logger.info("Upload attempt %d/%d...", attempt, self.retries)
            try:
                with path.open("rb") as handle:
                    response = self.transport.request(
                        "POST",
                        endpoint,
                        files={"file": (path.name, handle, "application/zip")},
                        data=fields or None,
                        timeout=self.timeout,
                    )
                artifact = self._parse_artifact(self.transport.decode_json(response, endpoint))
                logger.info("Artifact uploaded successfully: %s", artifact.artifact_id)
                return artifact
            except DeployKitError as e:
                if e.code == "TIMEOUT":
                    logger.warning("Upload attempt %d timed out after %.0fs", attempt, self.timeout)
                else:
                    logger.warning("Upload attempt %d failed: %s", attempt, e)

                if attempt == self.retries:
                    raise

                delay = self.retry_delay * 2 ** (attempt - 1)
                logger.info("Waiting %.1fs before retry...", delay)
                self._sleep(delay)

        raise DeployKitError("UPLOAD_FAILED", "Upload failed after all retry attempts")

    def _parse_artifact(self, data: object) -> Artifact:
        if not isinstance(data, dict):
            raise ValidationError("INVALID_RESPONSE", "Artifact response is not a JSON object")
        return Artifact(
            artifact_id=data.get("artifactId", ""),
            file_name=data.get("fileName"),
            blob_url=data.get("blobUrl"),
            file_size=data.get("filesize"),
            created_utc=data.get("createdUtc"),
            description=data.get("description"),
            version=data.get("version"),
        )
