"""
Runtime configuration.

Settings are plain values. `Settings.from_env()` reads them from the
environment a CI job provides, through a pydantic-settings model that owns
the variable names, defaults and type coercion.
"""

import os
from dataclasses import dataclass, field

from pydantic import AliasChoices, Field
from pydantic import ValidationError as PydanticValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from deploykit.exceptions import ConfigurationError

DEFAULT_BASE_URL = "https://api.cloud.umbraco.com"
DEFAULT_GITHUB_API_URL = "https://api.github.com"

DEFAULT_POLL_TIMEOUT = 1200  # seconds
DEFAULT_POLL_INTERVAL = 25  # seconds

# Identity used for recovery commits when no actor is known
DEFAULT_ACTOR = "github-actions[bot]"
DEFAULT_ACTOR_ID = "41898282"


class EnvironmentSettings(BaseSettings):
    """
    The environment variables a pipeline run reads.

    `DEPLOYKIT_*` variables configure the deployment API; the `GITHUB_*`
    ones are the CI context. Empty variables count as unset.
    """

    model_config = SettingsConfigDict(
        env_prefix="DEPLOYKIT_",
        case_sensitive=False,
        env_ignore_empty=True,
        str_strip_whitespace=True,
        extra="ignore",
    )

    project_id: str = ""
    api_key: str = ""
    base_url: str = DEFAULT_BASE_URL
    timeout_seconds: int = DEFAULT_POLL_TIMEOUT
    poll_interval: int = DEFAULT_POLL_INTERVAL
    upload_retries: int = 3
    upload_retry_delay: float = 10.0
    upload_timeout: float = 60.0
    no_build_and_restore: bool = False
    skip_version_check: bool = False
    base_branch: str | None = None
    artifact_dir: str | None = None

    github_token: str | None = Field(None, validation_alias=AliasChoices("GITHUB_TOKEN", "GH_TOKEN"))
    github_repository: str | None = Field(None, validation_alias="GITHUB_REPOSITORY")
    github_api_url: str = Field(DEFAULT_GITHUB_API_URL, validation_alias="GITHUB_API_URL")
    github_ref: str | None = Field(None, validation_alias="GITHUB_REF")
    github_actor: str = Field(DEFAULT_ACTOR, validation_alias="GITHUB_ACTOR")
    github_actor_id: str = Field(DEFAULT_ACTOR_ID, validation_alias="GITHUB_ACTOR_ID")
    github_run_id: str | None = Field(None, validation_alias="GITHUB_RUN_ID")
    github_workspace: str | None = Field(None, validation_alias="GITHUB_WORKSPACE")


@dataclass
class Settings:
    """Configuration for a single pipeline run."""

    project_id: str
    api_key: str
    base_url: str = DEFAULT_BASE_URL
    timeout: float = 30.0

    # Polling
    poll_timeout: int = DEFAULT_POLL_TIMEOUT  # seconds
    poll_interval: int = DEFAULT_POLL_INTERVAL  # seconds

    # Artifact upload
    upload_retries: int = 3
    upload_retry_delay: float = 10.0  # seconds
    upload_timeout: float = 60.0  # seconds

    # Deployment behaviour
    no_build_and_restore: bool = False
    skip_version_check: bool = False

    # Source hosting
    github_token: str | None = None
    github_repository: str | None = None  # "owner/repo"
    github_api_url: str = DEFAULT_GITHUB_API_URL
    github_ref: str | None = None
    base_branch: str | None = None

    # Invoking actor
    actor: str = DEFAULT_ACTOR
    actor_id: str = DEFAULT_ACTOR_ID
    run_id: str | None = None
    workspace: str = field(default_factory=os.getcwd)
    artifact_dir: str | None = None  # where rejected hunks are kept

    @classmethod
    def from_env(cls) -> "Settings":
        """
        Create settings from environment variables.

        Environment variables:
            DEPLOYKIT_PROJECT_ID: Cloud project identifier (required)
            DEPLOYKIT_API_KEY: Deployment API key (required)
            DEPLOYKIT_BASE_URL: Deployment API base URL (optional)
            DEPLOYKIT_TIMEOUT_SECONDS: Polling budget in seconds (default: 1200)
            DEPLOYKIT_POLL_INTERVAL: Seconds between status polls (default: 25)
            DEPLOYKIT_UPLOAD_RETRIES / DEPLOYKIT_UPLOAD_RETRY_DELAY / DEPLOYKIT_UPLOAD_TIMEOUT
            DEPLOYKIT_NO_BUILD_AND_RESTORE / DEPLOYKIT_SKIP_VERSION_CHECK: booleans
            DEPLOYKIT_BASE_BRANCH: Branch recovery pull requests target
            DEPLOYKIT_ARTIFACT_DIR: Directory for rejected-hunk artifacts
            GITHUB_TOKEN or GH_TOKEN: Token for branch/pull request operations
            GITHUB_REPOSITORY, GITHUB_REF, GITHUB_ACTOR, GITHUB_ACTOR_ID,
            GITHUB_RUN_ID, GITHUB_WORKSPACE: CI context

        Raises:
            ConfigurationError: If required environment variables are missing
                or a value has the wrong type
        """
        try:
            env = EnvironmentSettings()
        except PydanticValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
                for error in e.errors()
            )
            raise ConfigurationError(f"Invalid environment configuration: {problems}") from e

        if not env.project_id:
            raise ConfigurationError("DEPLOYKIT_PROJECT_ID environment variable not set")

        if not env.api_key:
            raise ConfigurationError("DEPLOYKIT_API_KEY environment variable not set")

        return cls(
            project_id=env.project_id,
            api_key=env.api_key,
            base_url=env.base_url,
            poll_timeout=env.timeout_seconds,
            poll_interval=env.poll_interval,
            upload_retries=env.upload_retries,
            upload_retry_delay=env.upload_retry_delay,
            upload_timeout=env.upload_timeout,
            no_build_and_restore=env.no_build_and_restore,
            skip_version_check=env.skip_version_check,
            github_token=env.github_token,
            github_repository=env.github_repository,
            github_api_url=env.github_api_url,
            github_ref=env.github_ref,
            base_branch=env.base_branch,
            actor=env.github_actor,
            actor_id=env.github_actor_id,
            run_id=env.github_run_id,
            workspace=env.github_workspace or os.getcwd(),
            artifact_dir=env.artifact_dir,
        )

    @property
    def current_branch(self) -> str | None:
        """The branch the run was triggered on, or the configured base branch."""
        if self.base_branch:
            return self.base_branch
        if self.github_ref:
            return self.github_ref.removeprefix("refs/heads/")
        return None

    def repository(self) -> tuple[str, str]:
        """
        Split `github_repository` into (owner, repo).

        Raises:
            ConfigurationError: If the repository is not configured as "owner/repo"
        """
        parts = (self.github_repository or "").split("/")
        if len(parts) != 2 or not all(parts):
            raise ConfigurationError(
                "GITHUB_REPOSITORY must be set as 'owner/repo' for recovery pull requests"
            )
        return parts[0], parts[1]

    def require_github_token(self) -> str:
        """
        Return the source-hosting token.

        Raises:
            ConfigurationError: If neither GITHUB_TOKEN nor GH_TOKEN was provided
        """
        if not self.github_token:
            raise ConfigurationError(
                "GITHUB_TOKEN or GH_TOKEN environment variable is not available. "
                "Ensure the workflow has proper permissions."
            )
        return self.github_token
