"""Failure recovery: turn a failed deployment into a reviewable pull request."""

from deploykit.recovery.classify import FAILURE_SIGNATURES, FailureKind, classify_failure
from deploykit.recovery.pipeline import (
    PatchRecovery,
    RecoveryOutcome,
    RecoveryPipeline,
    RecoveryStatus,
    Strategy,
)
from deploykit.recovery.pull_request import (
    BRANCH_NAMESPACE,
    commit_author,
    create_review_branch,
    validate_deployment_id,
)
from deploykit.recovery.rejects import (
    ArtifactStore,
    DirectoryArtifactStore,
    DirEntry,
    RejectedHunkFile,
    collect_rejected_hunks,
    find_rejected_hunks,
    read_tree,
)
from deploykit.recovery.workspace import scoped_workspace

__all__ = [
    "BRANCH_NAMESPACE",
    "FAILURE_SIGNATURES",
    "ArtifactStore",
    "DirEntry",
    "DirectoryArtifactStore",
    "FailureKind",
    "PatchRecovery",
    "RecoveryOutcome",
    "RecoveryPipeline",
    "RecoveryStatus",
    "RejectedHunkFile",
    "Strategy",
    "classify_failure",
    "collect_rejected_hunks",
    "commit_author",
    "create_review_branch",
    "find_rejected_hunks",
    "read_tree",
    "scoped_workspace",
    "validate_deployment_id",
]
