"""
Error types for webmention sending and mention records.

All errors raised by this package derive from WebmentionError so callers
can isolate a whole send with a single except clause.

    WebmentionError
    ├── ValidationError   malformed Mention input
    ├── SecurityError     endpoint resolves to a non-permitted address
    ├── ProtocolError     endpoint answered with a non-2xx status
    └── NetworkError      DNS, connection or timeout failure
"""
from typing import Optional


class WebmentionError(Exception):
    """Base class for webmention errors."""


class ValidationError(WebmentionError):
    """Raised when Mention input violates a construction rule."""


class SecurityError(WebmentionError):
    """Raised before any request when an endpoint points at a private address."""

    def __init__(self, message: str, address: Optional[str] = None):
        super().__init__(message)
        self.address = address


class ProtocolError(WebmentionError):
    """Raised when a webmention endpoint rejects the notification."""

    def __init__(self, message: str, status_code: int):
        super().__init__(message)
        self.status_code = status_code


class NetworkError(WebmentionError):
    """Raised when the endpoint cannot be reached at all."""

    def __init__(self, message: str, cause: Optional[str] = None):
        super().__init__(message)
        self.cause = cause if cause is not None else message
