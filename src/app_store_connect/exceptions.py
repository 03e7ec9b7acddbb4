"""
Exception classes for app-store-connect-cli.
"""

from typing import Optional


class AppStoreConnectError(Exception):
    """Base exception class for App Store Connect errors."""

    pass


class ConfigurationError(AppStoreConnectError):
    """Raised when credentials or client settings are missing or invalid."""

    pass


class ValidationError(AppStoreConnectError):
    """Raised when request validation fails."""

    pass


class ApiError(AppStoreConnectError):
    """Raised when the API or an upload target reports a failure."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class AuthenticationError(ApiError):
    """Raised when authentication fails."""

    pass


class PermissionError(ApiError):
    """Raised when insufficient permissions for operation."""

    pass


class NotFoundError(ApiError):
    """Raised when requested resource is not found."""

    pass


class RateLimitError(ApiError):
    """Raised when rate limits are exceeded."""

    pass


class ServerError(ApiError):
    """Raised when server returns 5xx error."""

    pass


class TransportError(ApiError):
    """Raised on connection resets, DNS failures, timeouts and SSL faults."""

    pass


class UploadError(ApiError):
    """Raised when an asset part upload or asset processing fails."""

    pass


class PollTimeoutError(ApiError):
    """Raised when an asset does not reach a terminal state in time."""

    pass
