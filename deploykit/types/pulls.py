"""Review-request (pull request) data models."""

from dataclasses import dataclass, field

CONFLICT_TITLE_SUFFIX = " (Conflict Resolution)"
CONFLICT_NOTE = (
    "**Note:** A timestamp was added to the branch name due to an existing branch conflict."
)


@dataclass
class PullRequestInfo:
    """A created pull request."""

    url: str
    number: int


@dataclass
class BranchRef:
    """A branch and its head commit."""

    name: str
    sha: str


@dataclass
class ReviewRequest:
    """
    Pull request descriptor built during recovery.

    `branch_name` is the only field that changes after construction: it gets
    a disambiguating suffix when the first name is already taken.
    """

    branch_name: str
    title: str
    body: str
    base: str
    conflict_resolved: bool = False
    rejected_files: list[str] = field(default_factory=list)
    rejection_artifact: str | None = None
    url: str | None = None
    number: int | None = None

    def rename_for_conflict(self, token: str) -> None:
        """Append the disambiguating token to the branch name."""
        self.branch_name = f"{self.branch_name}-{token}"
        self.conflict_resolved = True

    def rendered_title(self) -> str:
        if self.conflict_resolved:
            return f"{self.title}{CONFLICT_TITLE_SUFFIX}"
        return self.title

    def rendered_body(self) -> str:
        sections = [self.body]
        if self.rejected_files:
            listing = "\n".join(f"- `{path}`" for path in self.rejected_files)
            sections.append(
                f"**Rejected hunks:** {len(self.rejected_files)} hunk file(s) could not be "
                f"applied and were uploaded as artifact `{self.rejection_artifact}`:\n{listing}"
            )
        if self.conflict_resolved:
            sections.append(CONFLICT_NOTE)
        return "\n\n".join(sections)
