"""Review branch creation and pull request helpers."""

import re
import time
from collections.abc import Callable
from typing import TYPE_CHECKING

from deploykit.config import DEFAULT_ACTOR, DEFAULT_ACTOR_ID
from deploykit.exceptions import BranchCreationError, DeployKitError, RecoveryError
from deploykit.logging import get_logger
from deploykit.retry import ErrorKind, classify_error
from deploykit.types.pulls import BranchRef, ReviewRequest

if TYPE_CHECKING:
    from deploykit.clients.github import GitHubClient

logger = get_logger("recovery")

BRANCH_NAMESPACE = "umbcloud"

_GUID = re.compile(
    r"^\{?[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}\}?$"
)
_SAFE_ID = re.compile(r"^[A-Za-z0-9-]+$")


def validate_deployment_id(deployment_id: str) -> str:
    """
    Check that a deployment id is safe to use in a branch name.

    Raises:
        RecoveryError: If the id is neither a GUID nor alphanumeric-with-dashes
    """
    if not deployment_id or not (_GUID.match(deployment_id) or _SAFE_ID.match(deployment_id)):
        raise RecoveryError(f"Invalid deployment ID format: {deployment_id!r}")
    return deployment_id


def branch_name_for(deployment_id: str) -> str:
    return f"{BRANCH_NAMESPACE}/{validate_deployment_id(deployment_id)}"


def commit_author(actor: str | None = None, actor_id: str | None = None) -> tuple[str, str]:
    """
    Commit identity for the invoking actor.

    Falls back to the generic bot identity when no actor is known.

    Returns:
        (name, email) using the hosting platform's no-reply address
    """
    name = actor or DEFAULT_ACTOR
    user_id = actor_id or (DEFAULT_ACTOR_ID if name == DEFAULT_ACTOR else None)
    if user_id:
        return name, f"{user_id}+{name}@users.noreply.github.com"
    return name, f"{name}@users.noreply.github.com"


def timestamp_token() -> str:
    return str(int(time.time() * 1000))


def create_review_branch(
    github: "GitHubClient",
    review: ReviewRequest,
    sha: str,
    token: Callable[[], str] = timestamp_token,
) -> BranchRef:
    """
    Create the review branch, resolving a name collision once.

    When the name is already taken, `review` is renamed with a `-<token>`
    suffix and marked conflict-resolved before the single retry.

    Args:
        github: Hosting client
        review: Review request whose branch_name is created (and may be renamed)
        sha: Commit the branch points at
        token: Supplies the disambiguating suffix (milliseconds since epoch)

    Returns:
        The created BranchRef

    Raises:
        BranchCreationError: On any other error, or if the retry fails too
    """
    logger.info("Creating branch %s from %s", review.branch_name, review.base)
    try:
        return github.create_branch(review.branch_name, sha)
    except DeployKitError as e:
        if classify_error(e) is not ErrorKind.BRANCH_EXISTS:
            raise BranchCreationError(review.branch_name, e) from e
        logger.warning("Branch %s already exists, adding a timestamp suffix", review.branch_name)

    review.rename_for_conflict(token())
    try:
        return github.create_branch(review.branch_name, sha)
    except DeployKitError as e:
        raise BranchCreationError(review.branch_name, e) from e
