"""
Failure recovery for failed deployments.

`RecoveryPipeline` decides whether and from which deployment a change-set
should be proposed back to the repository; `PatchRecovery` turns a change-set
into a reviewed pull request inside an isolated clone.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

from deploykit.exceptions import CommandError, DeployKitError, PatchApplyError, RecoveryError
from deploykit.git import GitHelper
from deploykit.logging import get_logger
from deploykit.polling import has_upgrade_marker_block
from deploykit.recovery.classify import FailureKind, classify_failure
from deploykit.recovery.pull_request import (
    branch_name_for,
    commit_author,
    create_review_branch,
    timestamp_token,
)
from deploykit.recovery.rejects import (
    DEFAULT_RETENTION_DAYS,
    ArtifactStore,
    collect_rejected_hunks,
)
from deploykit.recovery.workspace import remove_file, scoped_workspace
from deploykit.types.deployments import ChangeSet, DeploymentStatus
from deploykit.types.pulls import ReviewRequest

if TYPE_CHECKING:
    from deploykit.clients.deployments import DeploymentsClient
    from deploykit.clients.github import GitHubClient

logger = get_logger("recovery")

# stderr signatures of remote access failures and what to do about them
REMOTE_ACCESS_GUIDANCE: tuple[tuple[tuple[str, ...], str], ...] = (
    (
        ("Authentication failed",),
        "Git authentication failed, which points at the GITHUB_TOKEN. Ensure the "
        "workflow grants write permissions and the token can access the repository.",
    ),
    (
        ("Repository not found", "fatal: repository"),
        "Repository not found or not accessible. Check that the repository exists "
        "and the token has the necessary permissions.",
    ),
)


def remote_access_error(error: CommandError) -> RecoveryError | None:
    """Turn a clone or push failure with a known cause into an actionable RecoveryError."""
    for signatures, guidance in REMOTE_ACCESS_GUIDANCE:
        if any(signature in error.stderr for signature in signatures):
            return RecoveryError(f"{guidance} ({error.message})")
    return None


class RecoveryStatus(Enum):
    """How a recovery attempt ended."""

    PULL_REQUEST_CREATED = "pull_request_created"
    NO_CHANGES = "no_changes"  # patch applied but nothing to commit
    NO_CANDIDATE = "no_candidate"  # no deployment with a usable change-set
    SKIPPED_DEPENDENCY_RESTORE = "skipped_dependency_restore"
    SKIPPED_UPGRADE_MARKER = "skipped_upgrade_marker"


class Strategy(Enum):
    """Where the change-set for a recovery comes from."""

    FAILED_DEPLOYMENT = "failed_deployment"
    LATEST_COMPLETED = "latest_completed"


@dataclass
class RecoveryOutcome:
    """Result of `RecoveryPipeline.recover`."""

    status: RecoveryStatus
    failed_deployment_id: str
    failure_kind: FailureKind | None = None
    strategy: Strategy | None = None
    error_details: list[str] = field(default_factory=list)
    change_set: ChangeSet | None = None
    review: ReviewRequest | None = None

    @property
    def source_deployment_id(self) -> str | None:
        return self.change_set.deployment_id if self.change_set else None

    @property
    def latest_completed_deployment_id(self) -> str | None:
        if self.strategy is Strategy.LATEST_COMPLETED:
            return self.source_deployment_id
        return None


class PatchRecovery:
    """
    Applies a change-set in a scratch clone and opens a pull request for it.

    All git commands run against an explicit repository root inside a scoped
    workspace; the invoking process's own checkout is never touched.

    Example:
        ```python
        patcher = PatchRecovery(
            git=GitHelper(),
            github=client.github,
            artifacts=DirectoryArtifactStore("/tmp/artifacts"),
            clone_url=client.clone_url,
            base_branch="main",
        )
        review = patcher.apply(change_set, title, body)
        ```
    """

    def __init__(
        self,
        git: GitHelper,
        github: "GitHubClient",
        artifacts: ArtifactStore,
        clone_url: str,
        base_branch: str,
        actor: str | None = None,
        actor_id: str | None = None,
        workspace_parent: str | Path | None = None,
        token: Callable[[], str] = timestamp_token,
    ) -> None:
        """
        Initialize the patch recovery.

        Args:
            git: Git helper used for every local operation
            github: Hosting client for branches and pull requests
            artifacts: Where rejected hunks are uploaded
            clone_url: Repository clone URL (may embed an access token)
            base_branch: Branch the clone starts from and the PR targets
            actor: Login of the invoking user, for commit attribution
            actor_id: Numeric id of the invoking user
            workspace_parent: Directory for scratch workspaces (default: system temp)
            token: Supplies the branch-collision suffix
        """
        self.git = git
        self.github = github
        self.artifacts = artifacts
        self.clone_url = clone_url
        self.base_branch = base_branch
        self.actor = actor
        self.actor_id = actor_id
        self.workspace_parent = workspace_parent
        self._token = token
        self.last_patch_path: Path | None = None

    def apply(self, change_set: ChangeSet, title: str, body: str) -> ReviewRequest | None:
        """
        Propose a change-set as a pull request against the base branch.

        Args:
            change_set: Diff to apply; its deployment id names the branch
            title: Pull request title
            body: Pull request body

        Returns:
            The ReviewRequest with url/number set, or None if the patch
            produced no changes to commit

        Raises:
            RecoveryError: If the deployment id cannot name a branch
            BranchCreationError: If the review branch cannot be created
            PatchApplyError: If the patch applies in neither mode
            RecoveryError: If the remote rejects our credentials or cannot be
                found, or the workspace cannot be written
            CommandError: If a git command (clone, commit, push) fails
        """
        deployment_id = change_set.deployment_id
        review = ReviewRequest(
            branch_name=branch_name_for(deployment_id),
            title=title,
            body=body,
            base=self.base_branch,
        )

        with scoped_workspace("pr-workspace-", parent=self.workspace_parent) as workspace:
            root = workspace / "repo"
            patch_path = workspace / f"git-patch-{deployment_id}.diff"
            self.last_patch_path = patch_path

            try:
                logger.info("Cloning %s into %s", self.base_branch, root)
                self._with_remote(self.git.clone, self.clone_url, root, branch=self.base_branch)
                self.git.ensure_clean(root)

                base = self.github.get_branch(self.base_branch)
                logger.info("Base branch SHA: %s", base.sha)
                create_review_branch(self.github, review, base.sha, token=self._token)

                self.git.fetch(root)
                self.git.checkout(root, review.branch_name)

                try:
                    patch_path.write_text(change_set.changes, encoding="utf-8")
                except OSError as e:
                    raise RecoveryError(f"Could not write patch file {patch_path}: {e}") from e
                self._apply_patch(root, patch_path, workspace, review, deployment_id)

                remove_file(patch_path)
                self.git.add_all(root)
                if not self.git.has_staged_changes(root):
                    logger.info("No changes to commit after applying the patch")
                    return None

                name, email = commit_author(self.actor, self.actor_id)
                self.git.commit(
                    root,
                    f"Apply Umbraco Cloud changes from deployment {deployment_id}",
                    author_name=name,
                    author_email=email,
                )
                self._with_remote(self.git.push, root, review.branch_name)

                pull = self.github.create_pull_request(
                    title=review.rendered_title(),
                    body=review.rendered_body(),
                    head=review.branch_name,
                    base=review.base,
                )
                review.url = pull.url
                review.number = pull.number
                logger.info("Pull request created: %s", pull.url)
                return review
            finally:
                remove_file(patch_path)
                if root.exists():
                    try:
                        self.git.checkout(root, self.base_branch)
                    except DeployKitError as e:
                        logger.warning("Could not switch back to %s: %s", self.base_branch, e)

    def _with_remote(
        self, operation: Callable[..., object], *args: object, **kwargs: object
    ) -> None:
        try:
            operation(*args, **kwargs)
        except CommandError as e:
            guided = remote_access_error(e)
            if guided is None:
                raise
            logger.error("%s", guided.message)
            raise guided from e

    def _apply_patch(
        self,
        root: Path,
        patch_path: Path,
        workspace: Path,
        review: ReviewRequest,
        deployment_id: str,
    ) -> None:
        result = self.git.apply_patch(root, patch_path)
        if result.ok:
            logger.info("Patch applied cleanly")
            return

        logger.warning("Strict apply failed, retrying with --reject: %s", result.stderr.strip())
        result = self.git.apply_patch(root, patch_path, reject=True)
        if not result.ok and not self.git.status_porcelain(root).strip():
            raise PatchApplyError()
        if not result.ok:
            logger.warning("Some hunks could not be applied; collecting rejected hunks")

        artifact_name = f"patch-rejections-{deployment_id}"
        rejects = collect_rejected_hunks(
            root,
            workspace / "reject-files",
            self.artifacts,
            artifact_name,
            retention_days=DEFAULT_RETENTION_DAYS,
        )
        if rejects:
            review.rejected_files = [str(r.relative_path) for r in rejects]
            review.rejection_artifact = artifact_name


class RecoveryPipeline:
    """
    Decides how to recover from a failed deployment and runs the recovery.

    Example:
        ```python
        pipeline = RecoveryPipeline(client.deployments, patcher)
        outcome = pipeline.recover(failed_status, "live")
        if outcome.review:
            print(outcome.review.url)
        ```
    """

    def __init__(self, deployments: "DeploymentsClient", patcher: PatchRecovery) -> None:
        self.deployments = deployments
        self.patcher = patcher
        self._strategies: dict[FailureKind, Callable[..., RecoveryOutcome]] = {
            FailureKind.DEPENDENCY_RESTORE: self._skip_dependency_restore,
            FailureKind.VERSION_CONFLICT: self._from_failed_deployment,
            FailureKind.OTHER: self._from_latest_completed,
        }

    def recover(self, failed: DeploymentStatus, target_environment_alias: str) -> RecoveryOutcome:
        """
        Attempt to recover from a failed deployment.

        Args:
            failed: Terminal status of the failed deployment
            target_environment_alias: Environment the deployment targeted

        Returns:
            RecoveryOutcome describing what happened

        Raises:
            DeployKitError: If patching, pushing or opening the PR fails
        """
        deployment_id = failed.deployment_id

        if has_upgrade_marker_block(failed.messages):
            logger.warning(
                "Deployment %s failed on a leftover upgrade marker. Remove the "
                "'upgrading', 'upgrade-failed' or 'failed-upgrade' marker files "
                "(site > locks in KUDU) and redeploy. Skipping recovery.",
                deployment_id,
            )
            return RecoveryOutcome(RecoveryStatus.SKIPPED_UPGRADE_MARKER, deployment_id)

        error_details = self.deployments.get_error_details(deployment_id)
        if error_details:
            logger.warning("Deployment failed with the following errors:")
            for detail in error_details:
                logger.warning("- %s", detail)

        kind = classify_failure(error_details)
        logger.info("Failure classified as %s", kind.value)
        outcome = self._strategies[kind](failed, target_environment_alias, error_details)
        outcome.failure_kind = kind
        outcome.error_details = error_details
        return outcome

    def _skip_dependency_restore(
        self,
        failed: DeploymentStatus,
        alias: str,
        error_details: list[str],
    ) -> RecoveryOutcome:
        logger.warning(
            "Deployment failed while restoring packages. This usually means a private "
            "package feed is unreachable or its credentials are wrong; a patch cannot fix it."
        )
        return RecoveryOutcome(RecoveryStatus.SKIPPED_DEPENDENCY_RESTORE, failed.deployment_id)

    def _from_failed_deployment(
        self,
        failed: DeploymentStatus,
        alias: str,
        error_details: list[str],
    ) -> RecoveryOutcome:
        deployment_id = failed.deployment_id
        logger.info("Version-related failure detected; fetching the failed deployment's change-set")
        try:
            change_set = self.deployments.get_changes(deployment_id, alias)
        except DeployKitError as e:
            logger.warning("Could not retrieve change-set from failed deployment: %s", e)
            change_set = None

        if change_set is None or not change_set.has_changes:
            logger.info("Falling back to the latest completed deployment")
            return self._from_latest_completed(failed, alias, error_details)

        title = f"Fix: Update package versions for deployment {deployment_id}"
        errors = "\n".join(f"- {detail}" for detail in error_details) or "- (none reported)"
        body = (
            f"This PR applies the git patch from Umbraco Cloud to fix package version "
            f"issues in deployment {deployment_id}.\n\n"
            f"**Failed Deployment ID:** {deployment_id}\n"
            f"**Target Environment:** {alias}\n"
            f"**Issue:** Package version downgrade detected\n\n"
            f"**Errors:**\n{errors}"
        )
        return self._propose(failed, change_set, Strategy.FAILED_DEPLOYMENT, title, body)

    def _from_latest_completed(
        self,
        failed: DeploymentStatus,
        alias: str,
        error_details: list[str],
    ) -> RecoveryOutcome:
        deployment_id = failed.deployment_id
        source_id = self.deployments.find_latest_completed_with_changes(alias)
        if source_id is None:
            logger.warning("No completed deployments with changes found to create a PR from")
            return RecoveryOutcome(
                RecoveryStatus.NO_CANDIDATE,
                deployment_id,
                strategy=Strategy.LATEST_COMPLETED,
            )

        logger.info("Using change-set of completed deployment %s", source_id)
        change_set = self.deployments.get_changes(source_id, alias)
        title = f"Fix: Apply changes from failed deployment {deployment_id}"
        body = (
            f"This PR applies changes from completed deployment ({source_id}) to fix the "
            f"failed deployment ({deployment_id}).\n\n"
            f"**Failed Deployment ID:** {deployment_id}\n"
            f"**Source Deployment ID:** {source_id}\n"
            f"**Target Environment:** {alias}"
        )
        return self._propose(failed, change_set, Strategy.LATEST_COMPLETED, title, body)

    def _propose(
        self,
        failed: DeploymentStatus,
        change_set: ChangeSet,
        strategy: Strategy,
        title: str,
        body: str,
    ) -> RecoveryOutcome:
        review = self.patcher.apply(change_set, title, body)
        status = RecoveryStatus.PULL_REQUEST_CREATED if review else RecoveryStatus.NO_CHANGES
        return RecoveryOutcome(
            status,
            failed.deployment_id,
            strategy=strategy,
            change_set=change_set,
            review=review,
        )
