"""Error taxonomy for calls to the admin API.

A cache miss is not an error (it's a ``None``), and the availability probe
encodes failure in its result.  Everything here is raised by the gateway or
the loaders built on top of it.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import httpx

_DEFAULT_MESSAGES = {
    400: "Bad request. Please check your input and try again.",
    401: "You are not authorized to perform this action.",
    403: "You do not have permission to access this resource.",
    404: "The requested resource was not found.",
    409: "A conflict occurred. The resource may already exist.",
    422: "The request could not be processed due to validation errors.",
    429: "Too many requests. Please wait a moment and try again.",
    500: "An internal server error occurred. Please try again later.",
    502: "Bad gateway. The server is temporarily unavailable.",
    503: "Service unavailable. Please try again later.",
    504: "Gateway timeout. The request took too long to process.",
}

UNAVAILABLE_STATUSES = frozenset({502, 503, 504})


def default_message(status: int) -> str:
    return _DEFAULT_MESSAGES.get(
        status, "An unexpected error occurred. Please try again."
    )


class MQPanelError(Exception):
    """Base class for every error raised by this package."""


class ApiError(MQPanelError):
    """The admin API answered with a non-success status."""

    retryable = False

    def __init__(
        self,
        status: int,
        message: str,
        *,
        error: str = "",
        path: str = "unknown",
        details: Any = None,
    ) -> None:
        super().__init__(message)
        self.status = status
        self.message = message
        self.error = error
        self.path = path
        self.details = details
        self.timestamp = datetime.now(timezone.utc).isoformat()

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "status": self.status,
            "error": self.error,
            "message": self.message,
            "path": self.path,
            "details": self.details,
            "retryable": self.retryable,
        }


class AuthenticationRequired(ApiError):
    """Credential expired or could not be refreshed; the user must log in."""


class AuthorizationDenied(ApiError):
    """The credential was valid but the action is forbidden."""


class ResourceNotFound(ApiError):
    pass


class RateLimited(ApiError):
    retryable = True

    def __init__(self, *args, retry_after: int | None = None, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.retry_after = retry_after


class ServerError(ApiError):
    retryable = True


class ClusterUnavailable(ServerError):
    """The target cluster is unreachable or timed out."""


class NetworkError(MQPanelError):
    """No response was received at all."""

    retryable = True
    status = 0

    def __init__(self, message: str, *, path: str = "unknown", timed_out: bool = False) -> None:
        super().__init__(message)
        self.message = message
        self.path = path
        self.timed_out = timed_out

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": 0,
            "error": "Network Error",
            "message": self.message,
            "path": self.path,
            "retryable": True,
        }


def _error_class(status: int) -> type[ApiError]:
    if status == 401:
        return AuthenticationRequired
    if status == 403:
        return AuthorizationDenied
    if status == 404:
        return ResourceNotFound
    if status == 429:
        return RateLimited
    if status in UNAVAILABLE_STATUSES:
        return ClusterUnavailable
    if status >= 500:
        return ServerError
    return ApiError


def raise_for_api_status(response: httpx.Response) -> None:
    """Raise the matching ``ApiError`` for a non-2xx response.

    Structured error bodies (``{"error", "message", "details"}``) from the
    admin API are preserved; anything else gets a default message.
    """
    if response.is_success:
        return

    status = response.status_code
    try:
        path = response.request.url.path
    except RuntimeError:  # response built without a request
        path = "unknown"
    error = response.reason_phrase
    message = default_message(status)
    details = None

    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and body.get("message"):
        message = body["message"]
        error = body.get("error") or error
        path = body.get("path") or path
        details = body.get("details")

    cls = _error_class(status)
    kwargs: dict[str, Any] = {"error": error, "path": path, "details": details}
    if cls is RateLimited:
        retry_after = response.headers.get("retry-after", "")
        kwargs["retry_after"] = int(retry_after) if retry_after.isdigit() else None
    raise cls(status, message, **kwargs)
