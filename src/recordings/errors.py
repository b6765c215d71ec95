"""Exceptions raised while turning a stream token into recording audio.

Each error carries the HTTP status and message the stream route renders.
"""

from __future__ import annotations


class RecordingProxyError(Exception):
    status_code: int = 500
    default_detail: str = "Server error"

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail or self.default_detail)
        self.detail = detail or self.default_detail


class MissingToken(RecordingProxyError):
    status_code = 400
    default_detail = "Missing token"


class MalformedToken(RecordingProxyError):
    status_code = 400
    default_detail = "Invalid token"


class TokenExpired(RecordingProxyError):
    status_code = 401
    default_detail = "Token expired"


class InvalidSignature(RecordingProxyError):
    status_code = 401
    default_detail = "Invalid signature"


class ConfigurationError(RecordingProxyError):
    status_code = 500
    default_detail = "Server not configured"


class ResourceNotFound(RecordingProxyError):
    status_code = 404
    default_detail = "Call not found"


class ResourceNotAvailable(RecordingProxyError):
    status_code = 404
    default_detail = "Recording not available"


class UpstreamUnavailable(RecordingProxyError):
    status_code = 502
    default_detail = "Failed to fetch recording audio"


class RequestCancelled(RecordingProxyError):
    # nginx convention for "client closed request"; the client never sees it.
    status_code = 499
    default_detail = "Client closed request"


class InternalError(RecordingProxyError):
    status_code = 500
    default_detail = "Server error"
