"""
HTTP Transport for deploykit.

Handles HTTP communication with the deployment API and the source-hosting
API, request/response logging and parsing of error responses into typed
exceptions. Retry policy lives in `deploykit.retry`; the transport performs
exactly one attempt per call.
"""

import re
import time
from typing import Any

import httpx

from deploykit.exceptions import (
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    DeployKitError,
    NotFoundError,
    RateLimitedError,
    ServerError,
    ValidationError,
)
from deploykit.logging import log_http_request, log_http_response

_TRY_AGAIN_PATTERN = re.compile(r"Try again in (\d+) seconds")


class HTTPTransport:
    """
    HTTP transport layer over a shared `httpx.Client`.

    Handles:
    - Default headers (API key or bearer token) on every request
    - Connection failures surfaced as ServerError("CONNECTION_ERROR")
    - Error response parsing into typed exceptions whose message keeps the
      remote error text
    """

    def __init__(
        self,
        base_url: str,
        headers: dict[str, str] | None = None,
        timeout: float = 30.0,
    ) -> None:
        """
        Initialize HTTP transport.

        Args:
            base_url: Base URL for API requests (e.g., "https://api.cloud.umbraco.com")
            headers: Headers sent with every request
            timeout: Request timeout in seconds
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.headers = dict(headers or {})

        self._client = httpx.Client(
            base_url=self.base_url,
            timeout=timeout,
            headers=self.headers,
        )

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()

    def __enter__(self) -> "HTTPTransport":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
        files: dict[str, Any] | None = None,
        data: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> httpx.Response:
        """
        Make a single request.

        Args:
            method: HTTP method
            path: API path relative to the base URL
            params: Query parameters
            json: JSON request body
            files: Multipart file fields
            data: Multipart/form fields
            timeout: Per-request timeout override in seconds

        Returns:
            The successful (< 400) response

        Raises:
            DeployKitError: Typed subclass for error statuses and connection failures
        """
        log_http_request(method, f"{self.base_url}{path}", body=json)
        started = time.monotonic()

        try:
            response = self._client.request(
                method,
                path,
                params=params,
                json=json,
                files=files,
                data=data,
                timeout=timeout if timeout is not None else self.timeout,
            )
        except httpx.TimeoutException as e:
            raise ServerError("TIMEOUT", f"Request to {path} timed out: {e}") from e
        except httpx.RequestError as e:
            raise ServerError("CONNECTION_ERROR", str(e)) from e

        log_http_response(
            response.status_code,
            f"{self.base_url}{path}",
            elapsed_ms=(time.monotonic() - started) * 1000,
        )

        if response.status_code >= 400:
            raise self._parse_error_response(response)

        return response

    def request_json(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Make a request and return the decoded JSON body."""
        response = self.request(method, path, params=params, json=json)
        return self.decode_json(response, path)

    def decode_json(self, response: httpx.Response, path: str) -> Any:
        """
        Decode a successful response body.

        Raises:
            ValidationError: If the body is not JSON
        """
        try:
            return response.json()
        except ValueError as e:
            raise ValidationError(
                "INVALID_RESPONSE", f"Expected JSON from {path}: {e}"
            ) from e

    def _parse_error_response(self, response: httpx.Response) -> DeployKitError:
        """
        Parse an error response into a typed exception.

        The message has the form "<status> <reason> - <remote detail>" so the
        remote wording stays available to error classification.

        Args:
            response: HTTP response with error status

        Returns:
            Appropriate DeployKitError subclass
        """
        status_code = response.status_code
        text = response.text or ""

        try:
            data = response.json()
        except Exception:
            data = {}
        if not isinstance(data, dict):
            data = {}

        error = data.get("error") if isinstance(data.get("error"), dict) else {}
        code = error.get("code") or f"HTTP_{status_code}"
        detail = (
            error.get("message")
            or data.get("message")
            or data.get("detail")
            or data.get("title")
            or text
        )
        reason = response.reason_phrase or ""
        message = f"{status_code} {reason}".strip()
        if detail:
            message = f"{message} - {detail}"

        request_id = (
            data.get("meta", {}).get("requestId")
            if isinstance(data.get("meta"), dict)
            else None
        ) or response.headers.get("x-request-id") or response.headers.get(
            "x-github-request-id"
        )

        if status_code == 401:
            return AuthenticationError(code, message, request_id, status_code)
        elif status_code == 403:
            return AuthorizationError(code, message, request_id, status_code)
        elif status_code == 404:
            return NotFoundError(code, message, request_id, status_code)
        elif status_code == 409:
            return ConflictError(code, message, request_id, status_code)
        elif status_code == 429:
            return RateLimitedError(
                code, message, self._parse_retry_after(response, text), request_id
            )
        elif status_code >= 500:
            return ServerError(code, message, request_id, status_code)
        else:
            return ValidationError(code, message, request_id, status_code)

    @staticmethod
    def _parse_retry_after(response: httpx.Response, text: str) -> int | None:
        """Read a retry delay from the Retry-After header or the error text."""
        header = response.headers.get("Retry-After")
        if header:
            try:
                return int(header)
            except ValueError:
                pass

        match = _TRY_AGAIN_PATTERN.search(text)
        if match:
            return int(match.group(1))
        return None
