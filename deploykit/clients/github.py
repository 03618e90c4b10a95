"""Source-hosting (GitHub REST) client for branches and pull requests."""

from typing import TYPE_CHECKING
from urllib.parse import quote

from deploykit.exceptions import ValidationError
from deploykit.logging import get_logger
from deploykit.types.pulls import BranchRef, PullRequestInfo

if TYPE_CHECKING:
    from deploykit.transport import HTTPTransport

logger = get_logger()


def github_headers(token: str) -> dict[str, str]:
    """Default headers for GitHub REST calls."""
    return {
        "Authorization": f"Bearer {token}",
        "Accept": "application/vnd.github+json",
        "X-GitHub-Api-Version": "2022-11-28",
    }


class GitHubClient:
    """Client for the branch and pull request operations recovery needs."""

    def __init__(self, transport: "HTTPTransport", owner: str, repo: str) -> None:
        """
        Initialize the GitHub client.

        Args:
            transport: HTTP transport configured with github_headers()
            owner: Repository owner
            repo: Repository name
        """
        self.transport = transport
        self.owner = owner
        self.repo = repo

    @property
    def _repo_path(self) -> str:
        return f"/repos/{self.owner}/{self.repo}"

    def get_branch(self, branch: str) -> BranchRef:
        """
        Get a branch and its head commit.

        Raises:
            NotFoundError: If the branch does not exist
        """
        data = self.transport.request_json(
            "GET", f"{self._repo_path}/branches/{quote(branch, safe='/')}"
        )
        try:
            sha = data["commit"]["sha"]
        except (KeyError, TypeError) as e:
            raise ValidationError("INVALID_RESPONSE", f"Branch {branch} has no head commit") from e
        return BranchRef(name=data.get("name", branch), sha=sha)

    def create_branch(self, name: str, sha: str) -> BranchRef:
        """
        Create a branch pointing at a commit.

        Raises:
            ValidationError: "Reference already exists" when the name is taken
        """
        self.transport.request_json(
            "POST",
            f"{self._repo_path}/git/refs",
            json={"ref": f"refs/heads/{name}", "sha": sha},
        )
        logger.info("Branch created successfully: %s", name)
        return BranchRef(name=name, sha=sha)

    def create_pull_request(self, title: str, body: str, head: str, base: str) -> PullRequestInfo:
        """
        Open a pull request.

        Returns:
            PullRequestInfo with the html url and number
        """
        data = self.transport.request_json(
            "POST",
            f"{self._repo_path}/pulls",
            json={"title": title, "body": body, "head": head, "base": base},
        )
        return PullRequestInfo(url=data["html_url"], number=data["number"])
