"""
Deployment status polling.

A deployment moves through Pending/Queued/InProgress until it is Completed
or Failed. `DeploymentPoller.step` performs one status query and returns a
tagged outcome; `DeploymentPoller.poll` drives steps until a terminal state
or the time budget runs out.

Each query carries the previous response's `modifiedUtc` as a cursor so the
remote returns only status messages that have not been seen yet.
"""

import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from deploykit.clients.deployments import DeploymentsClient
from deploykit.config import DEFAULT_BASE_URL, DEFAULT_POLL_INTERVAL, DEFAULT_POLL_TIMEOUT
from deploykit.exceptions import (
    AuthenticationError,
    DeployKitError,
    DeploymentTimeoutError,
    NotFoundError,
    ValidationError,
)
from deploykit.logging import API_KEY_HEADER, get_logger
from deploykit.transport import HTTPTransport
from deploykit.types.deployments import DeploymentStatus, StatusMessage, parse_timestamp

logger = get_logger("polling")

UPGRADE_MARKER_SIGNATURES = (
    "The site can't be upgraded as it's blocked with the following markers: updating",
    "CheckBlockingMarkers",
    "blocked with the following markers: updating",
)


def has_upgrade_marker_block(messages: Iterable[StatusMessage]) -> bool:
    """True if any message reports the environment blocked by a leftover upgrade marker."""
    return any(
        signature in message.message
        for message in messages
        for signature in UPGRADE_MARKER_SIGNATURES
    )


@dataclass(frozen=True)
class Continue:
    """Keep polling; `cursor` is what the next query should send."""

    cursor: str | None
    reason: str = "in-flight"


@dataclass(frozen=True)
class Terminal:
    """The deployment reached Completed or Failed."""

    status: DeploymentStatus


@dataclass(frozen=True)
class Fatal:
    """Polling cannot continue."""

    error: Exception


PollOutcome = Continue | Terminal | Fatal


def advance_cursor(previous: str | None, candidate: str | None) -> str | None:
    """
    Return the cursor for the next query; never older than `previous`.

    Unparseable or missing candidates keep the previous cursor.
    """
    if not candidate:
        return previous
    if not previous:
        return candidate
    try:
        if parse_timestamp(candidate) < parse_timestamp(previous):
            return previous
    except ValueError:
        return previous
    return candidate


class DeploymentPoller:
    """
    Polls one deployment until it reaches a terminal state.

    Example:
        ```python
        poller = DeploymentPoller(client.deployments, interval=25, max_duration=1200)
        status = poller.poll(deployment_id)
        if status.state is DeploymentState.FAILED:
            ...
        ```
    """

    def __init__(
        self,
        deployments: DeploymentsClient,
        interval: float = DEFAULT_POLL_INTERVAL,
        max_duration: float = DEFAULT_POLL_TIMEOUT,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """
        Initialize the poller.

        Args:
            deployments: Deployments client used for status queries
            interval: Seconds to wait between queries
            max_duration: Overall polling budget in seconds
            clock: Monotonic clock (injectable for tests)
            sleep: Sleep function (injectable for tests)
        """
        self.deployments = deployments
        self.interval = interval
        self.max_duration = max_duration
        self._clock = clock
        self._sleep = sleep
        self.cursor: str | None = None
        self.run = 0

    def step(self, deployment_id: str) -> PollOutcome:
        """
        Perform one status query.

        Transient failures (network errors, 401, 404, any other error status)
        yield Continue with the cursor unchanged. A malformed response yields
        Fatal.
        """
        self.run += 1
        logger.info("[Run %d] Checking deployment status...", self.run)

        try:
            status = self.deployments.get_status(deployment_id, since=self.cursor)
        except AuthenticationError:
            logger.warning(
                "Unauthorized: The API key may have expired or lost permissions. Will retry."
            )
            return Continue(self.cursor, reason="unauthorized")
        except NotFoundError:
            logger.warning(
                "Not Found: The project or deployment ID could not be found. Will retry."
            )
            return Continue(self.cursor, reason="not-found")
        except ValidationError as e:
            if e.status_code is None:
                logger.error("Unreadable deployment status: %s", e)
                return Fatal(e)
            logger.warning("Failed to get deployment status: %s. Will retry.", e.message)
            return Continue(self.cursor, reason="http-error")
        except DeployKitError as e:
            if e.code in ("CONNECTION_ERROR", "TIMEOUT"):
                logger.warning("Network error while polling deployment status: %s", e.message)
                return Continue(self.cursor, reason="network")
            logger.warning("Failed to get deployment status: %s. Will retry.", e.message)
            return Continue(self.cursor, reason="http-error")

        logger.info("Deployment status: %s", status.state.value)
        for message in status.messages:
            logger.info("%s", message)

        if has_upgrade_marker_block(status.messages):
            logger.warning(
                "The environment reports a leftover upgrade marker blocking the deployment. "
                "It will fail unless the marker is removed (site > locks in KUDU)."
            )

        if status.is_terminal:
            return Terminal(status)

        self.cursor = advance_cursor(self.cursor, status.modified_utc)
        return Continue(self.cursor)

    def poll(self, deployment_id: str) -> DeploymentStatus:
        """
        Poll until the deployment is Completed or Failed.

        Returns:
            The terminal DeploymentStatus

        Raises:
            DeploymentTimeoutError: If max_duration elapsed first
            ValidationError: If the remote returned an unreadable status
        """
        start = self._clock()

        while self._clock() - start < self.max_duration:
            outcome = self.step(deployment_id)

            if isinstance(outcome, Terminal):
                logger.info("Deployment %s", outcome.status.state.value)
                return outcome.status
            if isinstance(outcome, Fatal):
                raise outcome.error

            self._sleep(self.interval)

        raise DeploymentTimeoutError(deployment_id, self._clock() - start)


def poll_deployment_status(
    api_key: str,
    project_id: str,
    deployment_id: str,
    max_duration: float = DEFAULT_POLL_TIMEOUT,
    poll_interval: float = DEFAULT_POLL_INTERVAL,
    base_url: str = DEFAULT_BASE_URL,
) -> DeploymentStatus:
    """
    Poll a deployment to a terminal state with a dedicated transport.

    Args:
        api_key: Deployment API key
        project_id: Cloud project identifier
        deployment_id: Deployment to observe
        max_duration: Overall polling budget in seconds
        poll_interval: Seconds between queries
        base_url: Deployment API base URL

    Returns:
        The terminal DeploymentStatus

    Raises:
        DeploymentTimeoutError: If the deployment did not finish in time
    """
    with HTTPTransport(base_url, headers={API_KEY_HEADER: api_key}) as transport:
        poller = DeploymentPoller(
            DeploymentsClient(transport, project_id),
            interval=poll_interval,
            max_duration=max_duration,
        )
        return poller.poll(deployment_id)
