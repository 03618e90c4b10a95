"""deploykit type definitions.

This module exports all data model types used by the package.
"""

from deploykit.types.deployments import (
    IN_FLIGHT_STATES,
    Artifact,
    ChangeProbe,
    ChangeSet,
    DeploymentPage,
    DeploymentRequest,
    DeploymentState,
    DeploymentStatus,
    DeploymentSummary,
    StatusMessage,
    parse_timestamp,
)
from deploykit.types.pulls import BranchRef, PullRequestInfo, ReviewRequest

__all__ = [
    # Deployment types
    "Artifact",
    "ChangeProbe",
    "ChangeSet",
    "DeploymentPage",
    "DeploymentRequest",
    "DeploymentState",
    "DeploymentStatus",
    "DeploymentSummary",
    "IN_FLIGHT_STATES",
    "StatusMessage",
    "parse_timestamp",
    # Pull request types
    "BranchRef",
    "PullRequestInfo",
    "ReviewRequest",
]
