"""API clients package for the Google source services."""

from .base import (
    BaseGoogleClient,
    RemoteFileDescriptor,
    AuthenticationError,
    SourceUnavailable,
    ResolutionFailed,
    InvalidReferenceFormat,
    SourceFetchError,
    RateLimitError,
    load_service_account_credentials
)

from .google_drive import GoogleDriveClient, parse_file_id
from .google_sheets import GoogleSheetsClient

__all__ = [
    # Base classes and exceptions
    "BaseGoogleClient",
    "RemoteFileDescriptor",
    "AuthenticationError",
    "SourceUnavailable",
    "ResolutionFailed",
    "InvalidReferenceFormat",
    "SourceFetchError",
    "RateLimitError",
    "load_service_account_credentials",

    # Client implementations
    "GoogleDriveClient",
    "GoogleSheetsClient",
    "parse_file_id"
]
