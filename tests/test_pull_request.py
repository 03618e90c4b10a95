"""
Tests for review-branch creation, deployment id validation and PR rendering.
"""

import pytest

from deploykit.exceptions import BranchCreationError, RecoveryError, ServerError, ValidationError
from deploykit.recovery.pull_request import (
    branch_name_for,
    commit_author,
    create_review_branch,
    validate_deployment_id,
)
from deploykit.testing import MockGitHubClient
from deploykit.types.pulls import CONFLICT_NOTE, CONFLICT_TITLE_SUFFIX, ReviewRequest

BRANCH_EXISTS = ValidationError(
    "HTTP_422", "422 Unprocessable Entity - Reference already exists", status_code=422
)


def make_review() -> ReviewRequest:
    return ReviewRequest(
        branch_name="umbcloud/dep-1",
        title="Fix: Apply changes from failed deployment dep-1",
        body="Body",
        base="main",
    )


def test_create_branch_first_try() -> None:
    github = MockGitHubClient()
    review = make_review()

    ref = create_review_branch(github, review, "sha1", token=lambda: "123")

    assert ref.name == "umbcloud/dep-1"
    assert not review.conflict_resolved
    assert github.call_count("create_branch") == 1


def test_create_branch_conflict_retries_once_with_suffix() -> None:
    github = MockGitHubClient()
    github.branch_errors = [BRANCH_EXISTS]
    review = make_review()

    ref = create_review_branch(github, review, "sha1", token=lambda: "1700000000000")

    assert ref.name == "umbcloud/dep-1-1700000000000"
    assert review.branch_name == "umbcloud/dep-1-1700000000000"
    assert review.conflict_resolved
    assert review.rendered_title().endswith(CONFLICT_TITLE_SUFFIX)
    assert CONFLICT_NOTE in review.rendered_body()
    names = [call.args[0] for call in github.get_calls("create_branch")]
    assert names == ["umbcloud/dep-1", "umbcloud/dep-1-1700000000000"]


def test_create_branch_second_conflict_is_fatal() -> None:
    github = MockGitHubClient()
    github.branch_errors = [BRANCH_EXISTS, BRANCH_EXISTS]

    with pytest.raises(BranchCreationError):
        create_review_branch(github, make_review(), "sha1", token=lambda: "1")

    assert github.call_count("create_branch") == 2


def test_create_branch_other_error_aborts_without_retry() -> None:
    github = MockGitHubClient()
    github.branch_errors = [ServerError("HTTP_500", "500 Internal Server Error")]
    review = make_review()

    with pytest.raises(BranchCreationError) as exc_info:
        create_review_branch(github, review, "sha1")

    assert github.call_count("create_branch") == 1
    assert review.branch_name == "umbcloud/dep-1"
    assert isinstance(exc_info.value.cause, ServerError)


@pytest.mark.parametrize(
    "deployment_id",
    [
        "3f2504e0-4f89-11d3-9a0c-0305e82c3301",
        "{3F2504E0-4F89-11D3-9A0C-0305E82C3301}",
        "deploy-123",
        "abc",
    ],
)
def test_validate_deployment_id_accepts(deployment_id: str) -> None:
    assert validate_deployment_id(deployment_id) == deployment_id


@pytest.mark.parametrize("deployment_id", ["", "../etc", "dep 1", "dep;rm", "a/b"])
def test_validate_deployment_id_rejects(deployment_id: str) -> None:
    with pytest.raises(RecoveryError):
        validate_deployment_id(deployment_id)


def test_branch_name_uses_namespace() -> None:
    assert branch_name_for("dep-9") == "umbcloud/dep-9"


def test_commit_author_from_actor() -> None:
    assert commit_author("octocat", "583231") == (
        "octocat",
        "583231+octocat@users.noreply.github.com",
    )


def test_commit_author_falls_back_to_bot() -> None:
    assert commit_author(None, None) == (
        "github-actions[bot]",
        "41898282+github-actions[bot]@users.noreply.github.com",
    )


def test_rendered_body_lists_rejected_files() -> None:
    review = make_review()
    review.rejected_files = ["a.cs.rej", "src/b.cs.rej"]
    review.rejection_artifact = "patch-rejections-dep-1"

    body = review.rendered_body()

    assert "`a.cs.rej`" in body
    assert "`src/b.cs.rej`" in body
    assert "patch-rejections-dep-1" in body
    assert CONFLICT_NOTE not in body
    assert review.rendered_title() == review.title
