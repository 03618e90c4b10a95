"""deploykit exception classes."""

from collections.abc import Sequence


class DeployKitError(Exception):
    """Base exception for all deploykit errors."""

    def __init__(
        self,
        code: str,
        message: str,
        request_id: str | None = None,
        status_code: int | None = None,
    ) -> None:
        self.code = code
        self.message = message
        self.request_id = request_id
        self.status_code = status_code
        super().__init__(f"[{code}] {message}")


class ConfigurationError(DeployKitError):
    """Raised when configuration is invalid or missing."""

    def __init__(self, message: str) -> None:
        super().__init__("CONFIGURATION_ERROR", message)


class AuthenticationError(DeployKitError):
    """Raised when the API key or token is rejected (401)."""

    pass


class AuthorizationError(DeployKitError):
    """Raised when access is denied (403)."""

    pass


class NotFoundError(DeployKitError):
    """Raised when a resource is not found (404)."""

    pass


class ConflictError(DeployKitError):
    """Raised on conflicts (409)."""

    pass


class RateLimitedError(DeployKitError):
    """Raised when rate limited (429)."""

    def __init__(
        self,
        code: str,
        message: str,
        retry_after: int | None = None,
        request_id: str | None = None,
    ) -> None:
        super().__init__(code, message, request_id, status_code=429)
        self.retry_after = retry_after


class ValidationError(DeployKitError):
    """Raised on validation errors (other 4xx, bad inputs, malformed payloads)."""

    pass


class ServerError(DeployKitError):
    """Raised on server errors (5xx) and connection failures."""

    pass


class RetryExhaustedError(DeployKitError):
    """Raised when a rate-limited request keeps failing past the attempt ceiling."""

    def __init__(self, attempts: int, last_error: Exception | None = None) -> None:
        super().__init__("RETRY_EXHAUSTED", f"Failed after {attempts} attempts")
        self.attempts = attempts
        self.last_error = last_error


class DeploymentTimeoutError(DeployKitError):
    """Raised when a deployment does not reach a terminal state in time."""

    def __init__(self, deployment_id: str, elapsed: float) -> None:
        super().__init__(
            "DEPLOYMENT_TIMEOUT",
            "Deployment did not complete within the expected time.",
        )
        self.deployment_id = deployment_id
        self.elapsed = elapsed


class CommandError(DeployKitError):
    """Raised when an external command exits unsuccessfully."""

    def __init__(self, args: Sequence[str], exit_code: int, stderr: str = "") -> None:
        super().__init__(
            "COMMAND_FAILED",
            f"{' '.join(args)} exited with code {exit_code}: {stderr.strip()}",
        )
        self.args_list = list(args)
        self.exit_code = exit_code
        self.stderr = stderr


class PatchApplyError(DeployKitError):
    """Raised when a change-set cannot be applied in strict or reject mode."""

    def __init__(self, message: str = "Failed to apply git patch") -> None:
        super().__init__("PATCH_APPLY_FAILED", message)


class BranchCreationError(DeployKitError):
    """Raised when the review branch cannot be created."""

    def __init__(self, branch_name: str, cause: Exception) -> None:
        super().__init__(
            "BRANCH_CREATION_FAILED",
            f"Could not create branch {branch_name}: {cause}",
        )
        self.branch_name = branch_name
        self.cause = cause


class RecoveryError(DeployKitError):
    """Raised when the failure-recovery pipeline cannot complete."""

    def __init__(self, message: str) -> None:
        super().__init__("RECOVERY_FAILED", message)


class PipelineError(DeployKitError):
    """Raised when a pipeline stage does not yield the identifier the next stage needs."""

    def __init__(self, message: str) -> None:
        super().__init__("PIPELINE_ERROR", message)
