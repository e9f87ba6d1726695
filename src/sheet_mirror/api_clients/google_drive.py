"""Google Drive client: resolves file links and downloads their content."""

import asyncio
import re
from pathlib import Path
from typing import Any, Dict, Union

from googleapiclient.errors import HttpError
from googleapiclient.http import MediaIoBaseDownload

from .base import (
    BaseGoogleClient,
    RemoteFileDescriptor,
    InvalidReferenceFormat,
    SourceFetchError,
    RateLimitError,
    http_status,
    retry_after,
)
from ..config.settings import ConfigurationMissing
from ..utils.logging import log_async_execution_time


DRIVE_LINK_PATTERN = re.compile(r"/d/([a-zA-Z0-9_-]{25,})")


def parse_file_id(link: str) -> str:
    """Extract the Drive file identifier from a share link.

    Raises:
        InvalidReferenceFormat: If the link has no ``/d/<id>`` segment
    """
    match = DRIVE_LINK_PATTERN.search(link or "")
    if not match:
        raise InvalidReferenceFormat(link)
    return match.group(1)


class GoogleDriveClient(BaseGoogleClient):
    """Google Drive API client for resolving and downloading source files."""

    service_name = "drive"
    api_version = "v3"
    scopes = ["https://www.googleapis.com/auth/drive.readonly"]

    metadata_fields = "id, name, size, md5Checksum, mimeType"
    chunk_size = 8 * 1024 * 1024

    @log_async_execution_time
    async def resolve(self, link: str) -> RemoteFileDescriptor:
        """Resolve a Drive link to the file's name, size and content hash.

        Args:
            link: Drive share link containing ``/d/<id>``

        Returns:
            RemoteFileDescriptor for the linked file

        Raises:
            InvalidReferenceFormat: If the link cannot be parsed
            SourceFetchError: If Drive returns an error, including not-found
        """
        file_id = parse_file_id(link)
        self.logger.debug("Resolving Drive file", file_id=file_id)

        try:
            service = self._ensure_service()
            request = service.files().get(
                fileId=file_id,
                fields=self.metadata_fields,
                supportsAllDrives=True
            )
            file_data = await self._execute(request)

        except HttpError as e:
            raise self._translate_error(e, file_id)

        except (SourceFetchError, ConfigurationMissing):
            raise

        except Exception as e:
            raise SourceFetchError(f"Error getting file metadata for {file_id}: {e}")

        return self._convert_to_descriptor(file_data)

    @log_async_execution_time
    async def download_to(self, file_id: str, local_path: Union[str, Path]) -> Path:
        """Stream a Drive file's content into a local file.

        Raises:
            SourceFetchError: If the download fails
        """
        local_path = Path(local_path)
        service = self._ensure_service()
        request = service.files().get_media(fileId=file_id, supportsAllDrives=True)

        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self._download_blocking, request, local_path)
        except HttpError as e:
            raise self._translate_error(e, file_id)

        self.logger.debug("Downloaded Drive file", file_id=file_id, path=str(local_path))
        return local_path

    def _download_blocking(self, request, local_path: Path) -> None:
        with open(local_path, "wb") as fh:
            downloader = MediaIoBaseDownload(fh, request, chunksize=self.chunk_size)
            done = False
            while not done:
                _, done = downloader.next_chunk()

    def _convert_to_descriptor(self, file_data: Dict[str, Any]) -> RemoteFileDescriptor:
        """Convert Drive file data to a RemoteFileDescriptor."""
        # Google-native documents report no size or checksum
        byte_size = None
        if file_data.get("size") is not None:
            try:
                byte_size = int(file_data["size"])
            except (ValueError, TypeError):
                self.logger.warning("Unparseable file size", file_id=file_data.get("id"))

        return RemoteFileDescriptor(
            file_id=file_data["id"],
            name=Path(file_data.get("name", "")).name,
            byte_size=byte_size,
            content_hash=file_data.get("md5Checksum"),
            mime_type=file_data.get("mimeType"),
        )

    def _translate_error(self, error: HttpError, file_id: str) -> SourceFetchError:
        status = http_status(error)
        if status == 404:
            self.logger.warning("File not found", file_id=file_id)
            return SourceFetchError(f"Drive file not found: {file_id}", status=404)
        if status == 429:
            return RateLimitError("Google Drive rate limit exceeded", retry_after(error))
        return SourceFetchError(f"Google Drive API error for {file_id}: {error}", status=status)
