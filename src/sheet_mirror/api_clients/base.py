"""Base Google API client and source-side error types."""

import asyncio
import json
from abc import ABC
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from google.oauth2 import service_account
from googleapiclient.discovery import build
import google.auth.exceptions

from ..config.settings import ConfigurationMissing, GoogleSettings, get_settings
from ..utils.logging import get_logger


@dataclass(frozen=True)
class RemoteFileDescriptor:
    """Authoritative description of a file in the source object store."""

    file_id: str
    name: str
    byte_size: Optional[int] = None
    content_hash: Optional[str] = None
    mime_type: Optional[str] = None

    @property
    def verifiable(self) -> bool:
        """Whether a destination copy can be compared against this descriptor."""
        return self.byte_size is not None and bool(self.content_hash)


class BaseGoogleClient(ABC):
    """Shared service-account authentication for Google API clients."""

    service_name: str = ""
    api_version: str = ""
    scopes: List[str] = []

    def __init__(self, google_settings: Optional[GoogleSettings] = None, service: Any = None):
        """Initialize the client.

        Args:
            google_settings: Credential settings, defaults to the global settings
            service: Pre-built API resource, skips authentication when given
        """
        self.google_settings = google_settings or get_settings().google
        self.service = service
        self.logger = get_logger(self.__class__.__name__)
        self._authenticated = service is not None

    def authenticate(self) -> bool:
        """Build the API resource from service account credentials."""
        credentials = load_service_account_credentials(self.google_settings, self.scopes)
        self.service = build(
            self.service_name,
            self.api_version,
            credentials=credentials,
            cache_discovery=False
        )
        self._authenticated = True
        self.logger.info("Google API client authenticated", service=self.service_name)
        return True

    async def _execute(self, request):
        """Execute a Google API request in the default thread pool."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, request.execute)

    def _ensure_service(self):
        if not self._authenticated:
            self.authenticate()
        return self.service


def load_service_account_credentials(
    google_settings: GoogleSettings,
    scopes: List[str]
) -> service_account.Credentials:
    """Load service account credentials from inline JSON or a key file.

    Raises:
        ConfigurationMissing: If neither source is configured or the file is absent
        AuthenticationError: If the credentials cannot be parsed
    """
    try:
        if google_settings.service_account_key:
            info = json.loads(google_settings.service_account_key)
            return service_account.Credentials.from_service_account_info(info, scopes=scopes)

        path = google_settings.credentials_path
        if not path:
            raise ConfigurationMissing(["GOOGLE_CREDENTIALS_PATH", "GOOGLE_SERVICE_ACCOUNT_KEY"])
        return service_account.Credentials.from_service_account_file(path, scopes=scopes)

    except FileNotFoundError:
        raise ConfigurationMissing(["GOOGLE_CREDENTIALS_PATH"])
    except json.JSONDecodeError as e:
        raise AuthenticationError(f"Invalid service account key format: {e}")
    except (ValueError, google.auth.exceptions.DefaultCredentialsError) as e:
        raise AuthenticationError(f"Invalid credentials: {e}")


def http_status(error: Any) -> Optional[int]:
    """Extract the HTTP status code from a googleapiclient HttpError."""
    resp = getattr(error, "resp", None)
    status = getattr(resp, "status", None)
    try:
        return int(status) if status is not None else None
    except (TypeError, ValueError):
        return None


def retry_after(error: Any, default: int = 60) -> int:
    """Read the Retry-After header of a rate-limited response."""
    headers: Dict[str, Any] = getattr(getattr(error, "resp", None), "headers", None) or {}
    try:
        return int(headers.get("Retry-After", default))
    except (TypeError, ValueError):
        return default


class AuthenticationError(Exception):
    """Raised when Google API authentication fails."""
    pass


class SourceUnavailable(Exception):
    """Raised when the tabular source cannot be read."""
    pass


class ResolutionFailed(Exception):
    """Raised when a file link cannot be resolved to a descriptor."""
    pass


class InvalidReferenceFormat(ResolutionFailed):
    """Raised when a link does not contain a recognizable file identifier."""

    def __init__(self, link: str):
        super().__init__(f"Invalid Drive link format: {link!r}")
        self.link = link


class SourceFetchError(ResolutionFailed):
    """Raised when the object store call fails, including not-found."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class RateLimitError(SourceFetchError):
    """Raised when the object store rate limit is exceeded."""

    def __init__(self, message: str, retry_after: Optional[int] = None):
        super().__init__(message, status=429)
        self.retry_after = retry_after
