"""Single-file mirroring from the source object store to the destination store."""

import posixpath
from pathlib import Path
from typing import Optional, Protocol, Union

from .hashing import ContentVerifier
from .models import FileReference, SyncOutcome
from .scratch import ScratchSpace
from ..api_clients.base import RemoteFileDescriptor, ResolutionFailed
from ..config.settings import ConfigurationMissing
from ..destination.base import (
    DestinationStore,
    DestinationEntry,
    DestinationError,
    DestinationNotFound,
    join_remote,
)
from ..utils.logging import get_logger


BACKUP_MARKER = "(m)"


def backup_name(name: str) -> str:
    """Backup name of a destination file: ``clip.mp4`` becomes ``clip(m).mp4``."""
    base, ext = posixpath.splitext(name)
    return f"{base}{BACKUP_MARKER}{ext}"


class SourceStore(Protocol):
    """Object store the mirror reads from."""

    async def resolve(self, link: str) -> RemoteFileDescriptor:
        ...

    async def download_to(self, file_id: str, local_path: Union[str, Path]) -> Path:
        ...


class TransferFailed(Exception):
    """Raised when downloading from the source or uploading to the destination fails."""

    def __init__(self, message: str, remote_path: Optional[str] = None):
        super().__init__(message)
        self.remote_path = remote_path


class FileMirror:
    """Keeps one destination file byte-identical to its source.

    An existing stale copy is renamed to a backup name before the new bytes
    are uploaded, and the backup is removed only after the upload succeeded.
    At every point the destination folder holds at least one valid copy.
    """

    def __init__(
        self,
        source: SourceStore,
        destination: DestinationStore,
        verifier: Optional[ContentVerifier] = None,
        scratch: Optional[ScratchSpace] = None
    ):
        """Initialize file mirror.

        Args:
            source: Object store holding the authoritative files
            destination: Connected destination store session
            verifier: Content hasher, MD5 by default
            scratch: Scratch storage for files in transit
        """
        self.source = source
        self.destination = destination
        self.verifier = verifier or ContentVerifier()
        self.scratch = scratch or ScratchSpace()
        self.logger = get_logger(self.__class__.__name__)

    async def sync(
        self,
        source_ref: FileReference,
        dest_folder: str,
        dest_name: Optional[str] = None
    ) -> SyncOutcome:
        """Make ``dest_folder/dest_name`` match the referenced source file.

        Args:
            source_ref: Link and kind of the source file
            dest_folder: Destination folder, created if missing
            dest_name: Destination file name, defaults to the source file name

        Returns:
            SKIPPED if the destination was already identical, REPLACED if a
            stale copy was overwritten, UPLOADED if there was no copy

        Raises:
            ResolutionFailed: If the link cannot be resolved
            TransferFailed: If the download or upload fails
            DestinationError: If the folder cannot be created or listed
        """
        try:
            descriptor = await self.source.resolve(source_ref.link)
        except ResolutionFailed as e:
            self.logger.error(
                "Failed to resolve source file",
                kind=source_ref.kind.value,
                link=source_ref.link,
                error=str(e)
            )
            raise

        name = dest_name or descriptor.name
        if not name:
            raise TransferFailed(f"No destination name for Drive file {descriptor.file_id}")
        remote_path = join_remote(dest_folder, name)

        await self.destination.ensure_dir(dest_folder)
        existing = await self._find_entry(dest_folder, name)

        if existing is not None and await self._is_up_to_date(existing, descriptor, remote_path):
            self.logger.info(
                "Destination already identical, skipping upload",
                remote_path=remote_path,
                size=descriptor.byte_size
            )
            return SyncOutcome.SKIPPED

        backup_path = None
        if existing is not None:
            backup_path = await self._backup(remote_path)

        try:
            await self._transfer(descriptor, remote_path)
        except TransferFailed:
            if backup_path:
                self.logger.warning(
                    "Upload failed, previous copy kept under backup name",
                    remote_path=remote_path,
                    backup_path=backup_path
                )
            raise

        if backup_path:
            await self._discard_backup(backup_path)

        outcome = SyncOutcome.REPLACED if existing is not None else SyncOutcome.UPLOADED
        self.logger.info(
            "Mirrored file",
            outcome=outcome.value,
            kind=source_ref.kind.value,
            file_id=descriptor.file_id,
            remote_path=remote_path,
            size=descriptor.byte_size
        )
        return outcome

    async def _find_entry(self, folder: str, name: str) -> Optional[DestinationEntry]:
        try:
            entries = await self.destination.list(folder)
        except DestinationNotFound:
            return None
        return next((entry for entry in entries if entry.name == name), None)

    async def _is_up_to_date(
        self,
        entry: DestinationEntry,
        descriptor: RemoteFileDescriptor,
        remote_path: str
    ) -> bool:
        """Compare size first, then hash a downloaded copy only if sizes match."""
        if not descriptor.verifiable:
            self.logger.info(
                "Source has no size or checksum, treating destination as stale",
                remote_path=remote_path
            )
            return False

        if entry.size != descriptor.byte_size:
            self.logger.info(
                "Size mismatch, destination is stale",
                remote_path=remote_path,
                destination_size=entry.size,
                source_size=descriptor.byte_size
            )
            return False

        with self.scratch.file(suffix=posixpath.splitext(entry.name)[1]) as local_copy:
            try:
                await self.destination.download_to(local_copy, remote_path)
            except DestinationError as e:
                self.logger.warning(
                    "Could not fetch destination copy for verification",
                    remote_path=remote_path,
                    error=str(e)
                )
                return False
            digest = await self.verifier.hash_file_async(local_copy)

        if self.verifier.matches(digest, descriptor.content_hash):
            return True

        self.logger.info(
            "Hash mismatch, destination is stale",
            remote_path=remote_path,
            destination_hash=digest,
            source_hash=descriptor.content_hash
        )
        return False

    async def _backup(self, remote_path: str) -> Optional[str]:
        """Rename the stale copy out of the way. Returns the backup path if renamed."""
        folder, name = posixpath.split(remote_path)
        backup_path = join_remote(folder, backup_name(name))
        try:
            await self.destination.rename(remote_path, backup_path)
        except DestinationNotFound:
            self.logger.debug("Stale copy vanished before backup", remote_path=remote_path)
            return None
        except DestinationError as e:
            self.logger.error(
                "Failed to rename file to backup, continuing",
                remote_path=remote_path,
                backup_path=backup_path,
                error=str(e)
            )
            return None

        self.logger.info("Renamed existing file to backup", backup_path=backup_path)
        return backup_path

    async def _transfer(self, descriptor: RemoteFileDescriptor, remote_path: str) -> None:
        """Download the source to scratch storage and upload it."""
        suffix = posixpath.splitext(remote_path)[1]
        with self.scratch.file(suffix=suffix) as local_copy:
            try:
                await self.source.download_to(descriptor.file_id, local_copy)
                await self.destination.upload_from(local_copy, remote_path)
            except ConfigurationMissing:
                raise
            except Exception as e:
                self.logger.error(
                    "Transfer failed",
                    file_id=descriptor.file_id,
                    remote_path=remote_path,
                    error=str(e)
                )
                raise TransferFailed(
                    f"Transfer of {descriptor.file_id} to {remote_path} failed: {e}",
                    remote_path=remote_path
                ) from e

    async def _discard_backup(self, backup_path: str) -> None:
        try:
            await self.destination.remove(backup_path)
        except DestinationError as e:
            self.logger.warning(
                "Failed to delete backup file",
                backup_path=backup_path,
                error=str(e)
            )
