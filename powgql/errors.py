"""Typed failures surfaced by the analysis tools.

Every failure that reaches a tool caller is a ``ToolFailure`` carrying one of
the ``ErrorCode`` values.  Upstream (capture API) exceptions are mapped by
``wrap_upstream_error``; per-entry failures inside a pipeline walk are skipped
by the callers and never reach this module.
"""

from __future__ import annotations

from enum import Enum
import logging
import threading

import requests

logger = logging.getLogger(__name__)


class ErrorCode(str, Enum):
    INVALID_INPUT = "INVALID_INPUT"
    NOT_FOUND = "NOT_FOUND"
    TIMEOUT = "TIMEOUT"
    POWHTTP_ERROR = "POWHTTP_ERROR"
    INTERNAL = "INTERNAL"
    CANCELLED = "CANCELLED"


class ConfigurationError(Exception):
    """Raised when the environment configuration is unusable.

    The CLI reports it as a one-line message instead of a traceback.
    """


class ApiError(Exception):
    """An HTTP error status returned by the capture API."""

    def __init__(self, status_code: int, message: str):
        super().__init__(f"powhttp API error {status_code}: {message}")
        self.status_code = status_code
        self.message = message


class ToolFailure(Exception):
    """A coded failure returned to the tool caller."""

    def __init__(self, code: ErrorCode, message: str, cause: BaseException | None = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.cause = cause

    def __str__(self) -> str:
        return f"[{self.code.value}] {self.message}"


def invalid_input(message: str) -> ToolFailure:
    return ToolFailure(ErrorCode.INVALID_INPUT, message)


def not_found(message: str) -> ToolFailure:
    return ToolFailure(ErrorCode.NOT_FOUND, message)


def internal(message: str, cause: BaseException | None = None) -> ToolFailure:
    return ToolFailure(ErrorCode.INTERNAL, message, cause)


def cancelled() -> ToolFailure:
    return ToolFailure(ErrorCode.CANCELLED, "operation cancelled")


def check_cancelled(cancel: threading.Event | None) -> None:
    """Raise ``CANCELLED`` when the caller's cancellation handle is set."""
    if cancel is not None and cancel.is_set():
        raise cancelled()


def wrap_upstream_error(exc: BaseException) -> ToolFailure:
    """Map a capture API exception onto the tool error taxonomy."""
    if isinstance(exc, ToolFailure):
        return exc

    if isinstance(exc, ApiError) and exc.status_code == 404:
        failure = ToolFailure(ErrorCode.NOT_FOUND, f"not found: {exc.message}", exc)
    elif isinstance(exc, requests.Timeout):
        failure = ToolFailure(
            ErrorCode.TIMEOUT,
            "powhttp request timed out; check that powhttp is running and responsive",
            exc,
        )
    else:
        failure = ToolFailure(ErrorCode.POWHTTP_ERROR, f"powhttp API error: {exc}", exc)

    logger.warning("upstream failure mapped to %s: %s", failure.code.value, exc)
    return failure
