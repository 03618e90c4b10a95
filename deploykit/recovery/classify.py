"""Failure classification for failed deployments."""

from collections.abc import Iterable
from enum import Enum


class FailureKind(Enum):
    """Why a deployment failed, as far as its error messages tell."""

    DEPENDENCY_RESTORE = "dependency_restore"
    VERSION_CONFLICT = "version_conflict"
    OTHER = "other"


# Checked in order; the first kind with a matching (lower-case) signature wins.
FAILURE_SIGNATURES: dict[FailureKind, tuple[str, ...]] = {
    # Package restore failures are credential/feed problems a patch cannot fix
    FailureKind.DEPENDENCY_RESTORE: ("error restoring packages", "nu1301", "nu1302"),
    FailureKind.VERSION_CONFLICT: ("downgraded", "version", "package"),
}


def classify_failure(error_details: Iterable[str]) -> FailureKind:
    """
    Classify a failed deployment from its error messages.

    Args:
        error_details: Error-looking status messages of the deployment

    Returns:
        The first FailureKind whose signature appears in any message
    """
    lowered = [detail.lower() for detail in error_details]
    for kind, signatures in FAILURE_SIGNATURES.items():
        if any(signature in detail for detail in lowered for signature in signatures):
            return kind
    return FailureKind.OTHER
