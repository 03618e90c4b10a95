"""
deploykit logging utilities.

Provides configurable logging for HTTP traffic, deployment polling and
failure recovery. API keys and access tokens never reach the log output.
"""

import logging
import re
from typing import Any

# Package loggers
_package_logger = logging.getLogger("deploykit")
_http_logger = logging.getLogger("deploykit.http")
_git_logger = logging.getLogger("deploykit.git")
_installed_handler: logging.Handler | None = None

_DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

API_KEY_HEADER = "Umbraco-Cloud-Api-Key"

# Patterns for sensitive data that should be masked
_SENSITIVE_PATTERNS = [
    # Credentials embedded in clone URLs
    (re.compile(r"x-access-token:[^@\s]+@"), "x-access-token:[REDACTED]@"),
    # Bearer / token authorization headers
    (re.compile(r"(Bearer|token)\s+[A-Za-z0-9_\-\.]{8,}"), r"\1 [REDACTED]"),
    # GitHub token formats
    (re.compile(r"\bgh[pousr]_[A-Za-z0-9]{20,}\b"), "[TOKEN_REDACTED]"),
    # The deployment API key header
    (re.compile(re.escape(API_KEY_HEADER) + r"['\"]?\s*[:=]\s*['\"]?[^'\"\s,}]+", re.IGNORECASE), f"{API_KEY_HEADER}: [REDACTED]"),
    # Secret/token patterns
    (re.compile(r"(secret|token|password|api_key|apikey)['\"]?\s*[:=]\s*['\"][^'\"]+['\"]", re.IGNORECASE), r"\1: [REDACTED]"),
]

_SENSITIVE_KEYS = {
    "api_key",
    "apikey",
    "token",
    "password",
    "secret",
    "authorization",
    API_KEY_HEADER.lower(),
}


def configure_logging(
    level: int = logging.INFO,
    http_level: int | None = None,
    git_level: int | None = None,
    handler: logging.Handler | None = None,
    format_string: str | None = None,
) -> None:
    """
    Configure deploykit logging.

    Calling it again replaces the handler installed by the previous call.

    Args:
        level: Default log level for all deploykit loggers (default: INFO)
        http_level: Log level for HTTP request/response logging (default: same as level)
        git_level: Log level for git commands and their streamed output (default: same as level)
        handler: Custom handler to use (default: StreamHandler to stderr)
        format_string: Custom format string (default: includes timestamp, level, logger name)

    Example:
        ```python
        import logging
        from deploykit.logging import configure_logging

        # Show every poll request and response, hide `git apply` chatter
        configure_logging(http_level=logging.DEBUG, git_level=logging.WARNING)
        ```
    """
    global _installed_handler

    if handler is None:
        handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(format_string or _DEFAULT_FORMAT))

    if _installed_handler is not None:
        _package_logger.removeHandler(_installed_handler)
    _package_logger.addHandler(handler)
    _installed_handler = handler

    _package_logger.setLevel(level)
    _http_logger.setLevel(http_level if http_level is not None else level)
    _git_logger.setLevel(git_level if git_level is not None else level)


def get_logger(name: str | None = None) -> logging.Logger:
    """
    Get a deploykit logger.

    Args:
        name: Logger name suffix (e.g., "http", "polling"). If None, returns the package logger.

    Returns:
        Logger instance
    """
    if name is None:
        return _package_logger
    return logging.getLogger(f"deploykit.{name}")


def mask_sensitive_data(text: str) -> str:
    """
    Mask sensitive data in a string.

    Replaces API keys, access tokens and credentials embedded in URLs
    with redacted placeholders.

    Args:
        text: Text that may contain sensitive data

    Returns:
        Text with sensitive data masked
    """
    result = text
    for pattern, replacement in _SENSITIVE_PATTERNS:
        result = pattern.sub(replacement, result)
    return result


def safe_log_dict(data: dict[str, Any], sensitive_keys: set[str] | None = None) -> dict[str, Any]:
    """
    Create a copy of a dictionary with sensitive values masked.

    Args:
        data: Dictionary that may contain sensitive values
        sensitive_keys: Set of lower-case keys to mask (default: api keys, tokens, passwords, secrets)

    Returns:
        Dictionary with sensitive values replaced with "[REDACTED]"
    """
    if sensitive_keys is None:
        sensitive_keys = _SENSITIVE_KEYS

    result: dict[str, Any] = {}
    for key, value in data.items():
        key_lower = key.lower()
        if key_lower in sensitive_keys or any(sk in key_lower for sk in sensitive_keys):
            result[key] = "[REDACTED]"
        elif isinstance(value, dict):
            result[key] = safe_log_dict(value, sensitive_keys)
        elif isinstance(value, list):
            result[key] = [
                safe_log_dict(item, sensitive_keys) if isinstance(item, dict) else item
                for item in value
            ]
        else:
            result[key] = value

    return result


def log_http_request(
    method: str,
    url: str,
    headers: dict[str, str] | None = None,
    body: dict[str, Any] | None = None,
) -> None:
    """Log an HTTP request at DEBUG level with sensitive data masked."""
    if not _http_logger.isEnabledFor(logging.DEBUG):
        return

    log_parts = [f"{method} {mask_sensitive_data(url)}"]

    if headers:
        log_parts.append(f"headers={safe_log_dict(headers)}")

    if body:
        log_parts.append(f"body={safe_log_dict(body)}")

    _http_logger.debug(" | ".join(log_parts))


def log_http_response(
    status_code: int,
    url: str,
    elapsed_ms: float | None = None,
) -> None:
    """Log an HTTP response at DEBUG level."""
    if not _http_logger.isEnabledFor(logging.DEBUG):
        return

    log_parts = [f"Response {status_code} from {mask_sensitive_data(url)}"]

    if elapsed_ms is not None:
        log_parts.append(f"elapsed={elapsed_ms:.2f}ms")

    _http_logger.debug(" | ".join(log_parts))


__all__ = [
    "API_KEY_HEADER",
    "configure_logging",
    "get_logger",
    "mask_sensitive_data",
    "safe_log_dict",
    "log_http_request",
    "log_http_response",
]
