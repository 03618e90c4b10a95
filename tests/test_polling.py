"""
Tests for the deployment status poller.

The poller runs against MockDeploymentsClient with a FakeClock, so no test
waits on a real timer.
"""

from unittest.mock import patch

import httpx
import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from deploykit.clients.deployments import DeploymentsClient
from deploykit.config import Settings
from deploykit.exceptions import (
    AuthenticationError,
    DeploymentTimeoutError,
    NotFoundError,
    ServerError,
    ValidationError,
)
from deploykit.polling import (
    Continue,
    DeploymentPoller,
    Fatal,
    Terminal,
    advance_cursor,
    has_upgrade_marker_block,
)
from deploykit.testing import FakeClock, MockDeploymentsClient, create_status
from deploykit.transport import HTTPTransport
from deploykit.types.deployments import IN_FLIGHT_STATES, DeploymentState, StatusMessage

in_flight = st.sampled_from(sorted(IN_FLIGHT_STATES, key=lambda s: s.value))
terminal = st.sampled_from([DeploymentState.COMPLETED, DeploymentState.FAILED])


def make_poller(
    deployments: MockDeploymentsClient,
    clock: FakeClock,
    interval: float = 25.0,
    max_duration: float = 900.0,
) -> DeploymentPoller:
    return DeploymentPoller(
        deployments,
        interval=interval,
        max_duration=max_duration,
        clock=clock,
        sleep=clock.sleep,
    )


def timestamp(minute: int) -> str:
    return f"2024-05-01T10:{minute:02d}:00.1234567Z"


# ============================================================================
# Single step
# ============================================================================


@given(state=in_flight)
@settings(max_examples=20)
def test_step_in_flight_continues_with_new_cursor(state: DeploymentState) -> None:
    deployments = MockDeploymentsClient()
    deployments.configure_statuses(create_status(state, modified_utc=timestamp(5)))
    poller = make_poller(deployments, FakeClock())

    outcome = poller.step("dep-1")

    assert outcome == Continue(cursor=timestamp(5))
    assert poller.cursor == timestamp(5)


@given(state=terminal)
@settings(max_examples=10)
def test_step_terminal(state: DeploymentState) -> None:
    status = create_status(state)
    deployments = MockDeploymentsClient()
    deployments.configure_statuses(status)

    outcome = make_poller(deployments, FakeClock()).step("dep-1")

    assert isinstance(outcome, Terminal)
    assert outcome.status is status


@pytest.mark.parametrize(
    "error, reason",
    [
        (AuthenticationError("HTTP_401", "401 Unauthorized", status_code=401), "unauthorized"),
        (NotFoundError("HTTP_404", "404 Not Found", status_code=404), "not-found"),
        (ServerError("HTTP_502", "502 Bad Gateway", status_code=502), "http-error"),
        (ValidationError("HTTP_400", "400 Bad Request", status_code=400), "http-error"),
        (ServerError("CONNECTION_ERROR", "connection reset"), "network"),
        (ServerError("TIMEOUT", "timed out"), "network"),
    ],
)
def test_step_absorbs_transient_errors_without_moving_cursor(
    error: Exception, reason: str
) -> None:
    deployments = MockDeploymentsClient()
    deployments.configure_statuses(error)
    poller = make_poller(deployments, FakeClock())
    poller.cursor = timestamp(1)

    outcome = poller.step("dep-1")

    assert outcome == Continue(cursor=timestamp(1), reason=reason)
    assert poller.cursor == timestamp(1)


def test_step_unreadable_status_is_fatal() -> None:
    error = ValidationError("UNKNOWN_DEPLOYMENT_STATE", "Unknown deployment state: Paused")
    deployments = MockDeploymentsClient()
    deployments.configure_statuses(error)

    outcome = make_poller(deployments, FakeClock()).step("dep-1")

    assert outcome == Fatal(error)


def test_step_warns_on_upgrade_marker(caplog: pytest.LogCaptureFixture) -> None:
    deployments = MockDeploymentsClient()
    deployments.configure_statuses(
        create_status(
            DeploymentState.IN_PROGRESS,
            messages=["CheckBlockingMarkers: blocked with the following markers: updating"],
        )
    )

    with caplog.at_level("WARNING", logger="deploykit"):
        outcome = make_poller(deployments, FakeClock()).step("dep-1")

    assert isinstance(outcome, Continue)
    assert "upgrade marker" in caplog.text


# ============================================================================
# Full poll
# ============================================================================


@given(in_flight_polls=st.integers(min_value=0, max_value=8), final=terminal)
@settings(max_examples=50)
def test_poll_threads_cursor_through_every_request(
    in_flight_polls: int, final: DeploymentState
) -> None:
    """
    A deployment that is in flight for N-1 polls and terminal on poll N is
    returned after exactly N requests, each carrying the previous response's
    modifiedUtc.
    """
    responses = [
        create_status(DeploymentState.IN_PROGRESS, modified_utc=timestamp(i))
        for i in range(in_flight_polls)
    ]
    responses.append(create_status(final, modified_utc=timestamp(in_flight_polls)))
    deployments = MockDeploymentsClient()
    deployments.configure_statuses(*responses)
    clock = FakeClock()

    result = make_poller(deployments, clock).poll("dep-1")

    calls = deployments.get_calls("get_status")
    assert result is responses[-1]
    assert len(calls) == in_flight_polls + 1
    assert calls[0].kwargs["since"] is None
    for previous, call in zip(responses, calls[1:]):
        assert call.kwargs["since"] == previous.modified_utc
    assert clock.sleeps == [25.0] * in_flight_polls


def test_poll_times_out_and_always_sleeps() -> None:
    deployments = MockDeploymentsClient()
    deployments.configure_statuses(create_status(DeploymentState.IN_PROGRESS))
    clock = FakeClock()

    with pytest.raises(DeploymentTimeoutError) as exc_info:
        make_poller(deployments, clock, interval=25.0, max_duration=100.0).poll("dep-1")

    assert "did not complete within the expected time" in str(exc_info.value)
    assert deployments.call_count("get_status") == 4
    assert clock.sleeps == [25.0] * 4
    assert clock.now >= 100.0


def test_poll_continues_through_transient_errors() -> None:
    completed = create_status(DeploymentState.COMPLETED, modified_utc=timestamp(9))
    deployments = MockDeploymentsClient()
    deployments.configure_statuses(
        create_status(DeploymentState.QUEUED, modified_utc=timestamp(1)),
        ServerError("CONNECTION_ERROR", "reset"),
        NotFoundError("HTTP_404", "404 Not Found", status_code=404),
        completed,
    )

    result = make_poller(deployments, FakeClock()).poll("dep-1")

    calls = deployments.get_calls("get_status")
    assert result is completed
    assert [c.kwargs["since"] for c in calls] == [None, timestamp(1), timestamp(1), timestamp(1)]


def test_poll_raises_fatal_error() -> None:
    error = ValidationError("INVALID_RESPONSE", "Expected JSON")
    deployments = MockDeploymentsClient()
    deployments.configure_statuses(error)

    with pytest.raises(ValidationError):
        make_poller(deployments, FakeClock()).poll("dep-1")

    assert deployments.call_count("get_status") == 1


def test_poll_sends_cursor_as_query_parameter() -> None:
    transport = HTTPTransport("https://api.cloud.umbraco.com")
    client = DeploymentsClient(transport, "proj")
    responses = [
        httpx.Response(
            200,
            json={
                "deploymentId": "dep-1",
                "deploymentState": "InProgress",
                "modifiedUtc": timestamp(3),
                "deploymentStatusMessages": [],
            },
        ),
        httpx.Response(
            200,
            json={
                "deploymentId": "dep-1",
                "deploymentState": "Completed",
                "modifiedUtc": timestamp(4),
                "deploymentStatusMessages": [
                    {"timestampUtc": timestamp(4), "message": "Deployment completed"}
                ],
            },
        ),
    ]
    clock = FakeClock()
    poller = DeploymentPoller(client, interval=1, max_duration=60, clock=clock, sleep=clock.sleep)

    with patch.object(transport._client, "request", side_effect=responses) as mock_request:
        status = poller.poll("dep-1")

    assert status.state is DeploymentState.COMPLETED
    first, second = mock_request.call_args_list
    assert first.kwargs["params"] is None
    assert second.kwargs["params"] == {"lastModifiedUtc": timestamp(3)}
    assert first.args[1] == "/v2/projects/proj/deployments/dep-1"


# ============================================================================
# Cursor and marker helpers
# ============================================================================


@given(a=st.integers(min_value=0, max_value=59), b=st.integers(min_value=0, max_value=59))
@settings(max_examples=100)
def test_cursor_is_monotonic(a: int, b: int) -> None:
    result = advance_cursor(timestamp(a), timestamp(b))
    assert result == timestamp(max(a, b))


def test_cursor_keeps_previous_on_missing_or_garbage() -> None:
    assert advance_cursor(timestamp(1), None) == timestamp(1)
    assert advance_cursor(timestamp(1), "") == timestamp(1)
    assert advance_cursor(timestamp(1), "not-a-date") == timestamp(1)
    assert advance_cursor(None, timestamp(2)) == timestamp(2)


def test_upgrade_marker_detection() -> None:
    blocked = StatusMessage(
        timestamp(0),
        "The site can't be upgraded as it's blocked with the following markers: updating",
    )
    normal = StatusMessage(timestamp(0), "Build succeeded")

    assert has_upgrade_marker_block([normal, blocked])
    assert not has_upgrade_marker_block([normal])
    assert not has_upgrade_marker_block([])


def test_poller_defaults_match_settings_defaults() -> None:
    poller = DeploymentPoller(MockDeploymentsClient())
    configured = Settings(project_id="p", api_key="k")

    assert poller.max_duration == configured.poll_timeout == 1200
    assert poller.interval == configured.poll_interval == 25
