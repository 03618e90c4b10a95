"""
Resilient request execution.

Two independent retry strategies wrap a single outbound call:

- rate-limit backoff: retry a request that was throttled, waiting an
  exponentially growing delay or the delay the server asked for;
- alias fallback: re-issue a request with the lower-cased environment alias
  when the remote could not resolve the alias as supplied.

Both decide what to do from `classify_error`, which maps any exception to a
closed set of `ErrorKind` tags.
"""

import random
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import TypeVar

from deploykit.exceptions import (
    AuthenticationError,
    DeployKitError,
    NotFoundError,
    RateLimitedError,
    RetryExhaustedError,
    ServerError,
)
from deploykit.logging import get_logger

T = TypeVar("T")

logger = get_logger("http")


class ErrorKind(Enum):
    """What a failed request means for the caller."""

    RATE_LIMITED = "rate_limited"
    AMBIGUOUS_ALIAS = "ambiguous_alias"
    BRANCH_EXISTS = "branch_exists"
    TRANSIENT = "transient"
    OTHER = "other"


# Remote wording these cases are recognised by. Neither the deployment API nor
# the hosting API returns a machine-readable code for them, so a change in the
# remote wording silently disables the matching recovery; keep this table the
# only place that knows the phrases.
ERROR_SIGNATURES: dict[ErrorKind, tuple[str, ...]] = {
    ErrorKind.RATE_LIMITED: ("429 Too Many Requests",),
    ErrorKind.AMBIGUOUS_ALIAS: (
        "No environments matches the provided alias",
        "Unable to resolve target environment by Alias",
    ),
    ErrorKind.BRANCH_EXISTS: ("Reference already exists",),
}

_TRANSIENT_TYPES = (AuthenticationError, NotFoundError, ServerError)


def classify_error(error: BaseException) -> ErrorKind:
    """
    Classify an exception raised by a request.

    Typed information (exception class, HTTP status) wins over message text.

    Args:
        error: The exception to classify

    Returns:
        The matching ErrorKind (OTHER when nothing matches)
    """
    if isinstance(error, RateLimitedError):
        return ErrorKind.RATE_LIMITED

    message = str(error)
    for kind, signatures in ERROR_SIGNATURES.items():
        if any(signature in message for signature in signatures):
            return kind

    if isinstance(error, _TRANSIENT_TYPES):
        return ErrorKind.TRANSIENT

    return ErrorKind.OTHER


@dataclass
class RetryConfig:
    """Configuration for rate-limit retry behavior."""

    max_attempts: int = 3
    base_delay: float = 1.0  # seconds before the second attempt
    backoff_factor: float = 2.0
    respect_retry_after: bool = True
    retry_after_buffer: float = 1.0  # added to a server-supplied delay
    max_backoff: float = 60.0
    jitter: float = 0.0  # Jitter factor (0.1 = ±10%)


def backoff_delay(config: RetryConfig, attempt: int, retry_after: float | None = None) -> float:
    """
    Calculate the wait before the next attempt.

    Args:
        config: Retry configuration
        attempt: The attempt that just failed (1-indexed)
        retry_after: Server-supplied delay in seconds, if any

    Returns:
        Time to wait in seconds
    """
    if retry_after is not None and config.respect_retry_after:
        return float(retry_after) + config.retry_after_buffer

    base_wait = config.base_delay * config.backoff_factor ** (attempt - 1)

    jitter_range = base_wait * config.jitter
    wait_time = base_wait + random.uniform(-jitter_range, jitter_range)

    return min(wait_time, config.max_backoff)


class RequestExecutor:
    """
    Runs request functions under the rate-limit and alias-fallback strategies.

    Example:
        ```python
        executor = RequestExecutor(RetryConfig(max_attempts=5))

        deployments = executor.with_rate_limit(lambda: client.list_page(0, 10))

        changes = executor.with_alias_fallback(
            lambda: fetch_diff("Live"),
            lambda alias: fetch_diff(alias),
            alias="Live",
            operation="get_changes",
        )
        ```
    """

    def __init__(
        self,
        retry_config: RetryConfig | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.retry_config = retry_config or RetryConfig()
        self._sleep = sleep

    def with_rate_limit(self, request_fn: Callable[[], T]) -> T:
        """
        Execute a request, retrying while it is rate limited.

        Args:
            request_fn: Zero-argument function performing the request

        Returns:
            The first successful result

        Raises:
            RetryExhaustedError: If every attempt up to the ceiling was rate limited
            DeployKitError: Any other error, immediately
        """
        config = self.retry_config
        last_error: DeployKitError | None = None

        for attempt in range(1, config.max_attempts + 1):
            try:
                return request_fn()
            except DeployKitError as error:
                if classify_error(error) is not ErrorKind.RATE_LIMITED:
                    raise
                last_error = error
                if attempt >= config.max_attempts:
                    break

                retry_after = getattr(error, "retry_after", None)
                delay = backoff_delay(config, attempt, retry_after)
                logger.warning(
                    "Rate limit exceeded (attempt %d/%d). Retrying in %.1fs...",
                    attempt,
                    config.max_attempts,
                    delay,
                )
                self._sleep(delay)

        raise RetryExhaustedError(config.max_attempts, last_error) from last_error

    def with_alias_fallback(
        self,
        primary: Callable[[], T],
        alternate: Callable[[str], T],
        alias: str,
        operation: str,
    ) -> T:
        """
        Execute a request, falling back to the lower-cased alias once.

        The alternate runs only when the primary failed because the remote
        could not resolve the alias and the alias is not already lower-case.

        Args:
            primary: Request using the alias as supplied
            alternate: Request taking the canonical alias
            alias: The environment alias supplied by the caller
            operation: Operation name for log messages

        Returns:
            The primary result, or the alternate result after a fallback

        Raises:
            DeployKitError: The primary error when no fallback applies, or the
                alternate's error
        """
        try:
            return primary()
        except DeployKitError as error:
            canonical = alias.lower()
            if classify_error(error) is not ErrorKind.AMBIGUOUS_ALIAS or alias == canonical:
                raise

            logger.info(
                "Environment alias case sensitivity detected in %s. "
                "Retrying with lowercase: %s -> %s",
                operation,
                alias,
                canonical,
            )

        try:
            result = alternate(canonical)
        except DeployKitError as retry_error:
            logger.error("Error in %s (retry with lowercase): %s", operation, retry_error)
            raise

        logger.debug("%s succeeded with lowercase retry", operation)
        return result
