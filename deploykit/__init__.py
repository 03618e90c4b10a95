"""deploykit - Cloud deployment automation with failure recovery."""

from deploykit.client import DeployKitClient
from deploykit.config import Settings
from deploykit.driver import DeploymentPipeline, PipelineResult, run_action
from deploykit.exceptions import (
    AuthenticationError,
    AuthorizationError,
    BranchCreationError,
    CommandError,
    ConfigurationError,
    ConflictError,
    DeployKitError,
    DeploymentTimeoutError,
    NotFoundError,
    PatchApplyError,
    PipelineError,
    RateLimitedError,
    RecoveryError,
    RetryExhaustedError,
    ServerError,
    ValidationError,
)
from deploykit.git import CommandResult, CommandRunner, GitHelper
from deploykit.logging import configure_logging, get_logger
from deploykit.polling import (
    Continue,
    DeploymentPoller,
    Fatal,
    PollOutcome,
    Terminal,
    poll_deployment_status,
)
from deploykit.recovery import PatchRecovery, RecoveryOutcome, RecoveryPipeline, RecoveryStatus
from deploykit.retry import ErrorKind, RequestExecutor, RetryConfig, classify_error
from deploykit.transport import HTTPTransport
from deploykit.types import (
    ChangeSet,
    DeploymentRequest,
    DeploymentState,
    DeploymentStatus,
    ReviewRequest,
)

__version__ = "0.1.0"

__all__ = [
    "__version__",
    # Main Client
    "DeployKitClient",
    "Settings",
    # Driver
    "DeploymentPipeline",
    "PipelineResult",
    "run_action",
    # Polling
    "DeploymentPoller",
    "PollOutcome",
    "Continue",
    "Terminal",
    "Fatal",
    "poll_deployment_status",
    # Recovery
    "PatchRecovery",
    "RecoveryPipeline",
    "RecoveryOutcome",
    "RecoveryStatus",
    # Request execution
    "RequestExecutor",
    "RetryConfig",
    "ErrorKind",
    "classify_error",
    "HTTPTransport",
    # Git
    "GitHelper",
    "CommandRunner",
    "CommandResult",
    # Types
    "ChangeSet",
    "DeploymentRequest",
    "DeploymentState",
    "DeploymentStatus",
    "ReviewRequest",
    # Exceptions
    "DeployKitError",
    "AuthenticationError",
    "AuthorizationError",
    "NotFoundError",
    "ConflictError",
    "RateLimitedError",
    "ValidationError",
    "ServerError",
    "ConfigurationError",
    "RetryExhaustedError",
    "DeploymentTimeoutError",
    "CommandError",
    "PatchApplyError",
    "BranchCreationError",
    "RecoveryError",
    "PipelineError",
    # Logging
    "configure_logging",
    "get_logger",
]
