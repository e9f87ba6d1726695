"""Destination store interface and common functionality."""

import posixpath
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Union

from ..utils.logging import get_logger


LocalPath = Union[str, Path]


@dataclass(frozen=True)
class DestinationEntry:
    """A file as listed on the destination store."""

    name: str
    size: Optional[int] = None


def join_remote(folder: str, name: str) -> str:
    """Join a destination folder and file name with forward slashes."""
    if not folder:
        return name
    return posixpath.join(folder, name)


class DestinationStore(ABC):
    """Abstract remote file tree that mirrored files are written to.

    Remote paths are relative to the directory the session starts in.
    A missing file or directory is reported as DestinationNotFound.
    """

    def __init__(self):
        self.logger = get_logger(self.__class__.__name__)

    @abstractmethod
    async def connect(self) -> None:
        """Open the session."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close the session. Never raises."""
        pass

    @abstractmethod
    async def ensure_dir(self, path: str) -> None:
        """Create a directory and its parents if missing."""
        pass

    @abstractmethod
    async def change_dir(self, path: str) -> None:
        """Change the working directory."""
        pass

    @abstractmethod
    async def list(self, path: str) -> List[DestinationEntry]:
        """List the files of a directory."""
        pass

    @abstractmethod
    async def download_to(self, local_path: LocalPath, remote_path: str) -> None:
        """Copy a remote file into a local file."""
        pass

    @abstractmethod
    async def upload_from(self, local_path: LocalPath, remote_path: str) -> None:
        """Copy a local file to a remote path, replacing any existing file."""
        pass

    @abstractmethod
    async def rename(self, old_path: str, new_path: str) -> None:
        """Rename a remote file."""
        pass

    @abstractmethod
    async def remove(self, path: str) -> None:
        """Delete a remote file."""
        pass


class DestinationError(Exception):
    """Raised when a destination store operation fails."""

    def __init__(self, message: str, code: Optional[int] = None):
        super().__init__(message)
        self.code = code


class DestinationNotFound(DestinationError):
    """Raised when a remote file or directory does not exist."""
    pass


def breaks_session(error: BaseException) -> bool:
    """Whether a failure leaves the destination session unusable.

    A missing path is an ordinary reply. Any other destination error, raised
    directly or as the cause of a wrapping exception, drops the session.
    """
    while error is not None:
        if isinstance(error, DestinationError):
            return not isinstance(error, DestinationNotFound)
        error = error.__cause__
    return False
