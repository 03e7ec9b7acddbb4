"""
app-store-connect-cli

A Python client for the Apple App Store Connect API and the ``asc``
command-line tool built on it: app status, review submissions, metadata,
screenshots, TestFlight, releases, pricing and team management.
"""

from .client import AppStoreConnectAPI
from .config import Configuration
from .metadata import MetadataManager, create_metadata_manager
from .session import Session
from .exceptions import (
    AppStoreConnectError,
    ConfigurationError,
    ValidationError,
    ApiError,
    AuthenticationError,
    PermissionError,
    NotFoundError,
    RateLimitError,
    ServerError,
    TransportError,
    UploadError,
    PollTimeoutError,
)
from . import utils

__version__ = "0.1.0"

__all__ = [
    "AppStoreConnectAPI",
    "Configuration",
    "MetadataManager",
    "Session",
    "create_metadata_manager",
    "AppStoreConnectError",
    "ConfigurationError",
    "ValidationError",
    "ApiError",
    "AuthenticationError",
    "PermissionError",
    "NotFoundError",
    "RateLimitError",
    "ServerError",
    "TransportError",
    "UploadError",
    "PollTimeoutError",
    "utils",
]
