"""Deployment-related data models."""

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from deploykit.exceptions import ValidationError

_FRACTION = re.compile(r"\.(\d+)")


def parse_timestamp(value: str) -> datetime:
    """
    Parse an API timestamp into an aware UTC datetime.

    The API emits up to seven fractional digits and a trailing "Z"; both are
    normalised before parsing.
    """
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    text = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class DeploymentState(str, Enum):
    """Remote deployment lifecycle states."""

    PENDING = "Pending"
    QUEUED = "Queued"
    IN_PROGRESS = "InProgress"
    COMPLETED = "Completed"
    FAILED = "Failed"

    @property
    def is_terminal(self) -> bool:
        return self in (DeploymentState.COMPLETED, DeploymentState.FAILED)

    @classmethod
    def parse(cls, value: Any) -> "DeploymentState":
        """
        Parse a remote state string.

        Raises:
            ValidationError: If the remote reported a state outside the known set
        """
        try:
            return cls(value)
        except ValueError:
            raise ValidationError(
                "UNKNOWN_DEPLOYMENT_STATE", f"Unknown deployment state: {value!r}"
            ) from None


IN_FLIGHT_STATES = frozenset(
    {DeploymentState.PENDING, DeploymentState.QUEUED, DeploymentState.IN_PROGRESS}
)


@dataclass(frozen=True)
class StatusMessage:
    """One timestamped progress message of a deployment."""

    timestamp_utc: str
    message: str

    def __str__(self) -> str:
        return f"[{self.timestamp_utc}] {self.message}"


@dataclass
class DeploymentStatus:
    """Observed state of a deployment, with the status messages new since the cursor."""

    deployment_id: str
    state: DeploymentState
    modified_utc: str
    messages: list[StatusMessage] = field(default_factory=list)
    raw: dict[str, Any] = field(default_factory=dict, repr=False)

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "DeploymentStatus":
        """Parse a deployment status response."""
        messages = data.get("deploymentStatusMessages")
        if messages is None:
            messages = data.get("statusMessages") or []

        try:
            return cls(
                deployment_id=data.get("deploymentId") or data["id"],
                state=DeploymentState.parse(data.get("deploymentState") or data.get("state")),
                modified_utc=data.get("modifiedUtc", ""),
                messages=[
                    StatusMessage(
                        timestamp_utc=m.get("timestampUtc", ""),
                        message=m.get("message", ""),
                    )
                    for m in messages
                ],
                raw=data,
            )
        except KeyError as e:
            raise ValidationError(
                "INVALID_RESPONSE", f"Deployment status is missing {e}"
            ) from e

    def to_dict(self) -> dict[str, Any]:
        """Serialise in the API's own shape."""
        return {
            "deploymentId": self.deployment_id,
            "deploymentState": self.state.value,
            "modifiedUtc": self.modified_utc,
            "deploymentStatusMessages": [
                {"timestampUtc": m.timestamp_utc, "message": m.message}
                for m in self.messages
            ],
        }


@dataclass(frozen=True)
class DeploymentRequest:
    """Input for starting a deployment."""

    target_environment_alias: str
    artifact_id: str
    commit_message: str = "Deployment from GitHub Actions"
    no_build_and_restore: bool = False
    skip_version_check: bool = False

    def to_body(self, target_environment_alias: str | None = None) -> dict[str, Any]:
        """Build the request body, optionally overriding the alias."""
        return {
            "targetEnvironmentAlias": target_environment_alias or self.target_environment_alias,
            "artifactId": self.artifact_id,
            "commitMessage": self.commit_message,
            "noBuildAndRestore": self.no_build_and_restore,
            "skipVersionCheck": self.skip_version_check,
        }


@dataclass
class DeploymentSummary:
    """One entry of the deployment list."""

    id: str
    state: str
    artifact_id: str | None
    target_environment_alias: str | None
    created_utc: str | None
    modified_utc: str | None
    completed_utc: str | None


@dataclass
class DeploymentPage:
    """A page of the deployment list, newest first."""

    project_id: str
    items: list[DeploymentSummary]
    total_items: int
    skipped_items: int
    taken_items: int


class ChangeProbe(Enum):
    """What the diff endpoint returned for a deployment."""

    NO_CONTENT = "no_content"  # HTTP 204
    EMPTY = "empty"  # HTTP 200 with a blank body
    CONTENT = "content"


@dataclass
class ChangeSet:
    """Unified-diff text associated with one deployment."""

    deployment_id: str
    changes: str
    probe: ChangeProbe

    @property
    def has_changes(self) -> bool:
        return self.probe is ChangeProbe.CONTENT

    def to_dict(self) -> dict[str, str]:
        return {"changes": self.changes}


@dataclass
class Artifact:
    """An uploaded deployment artifact."""

    artifact_id: str
    file_name: str | None
    blob_url: str | None
    file_size: int | None
    created_utc: str | None
    description: str | None
    version: str | None
