"""FTP implementation of the destination store."""

import asyncio
import ftplib
import posixpath
from typing import Callable, List, Optional

from .base import (
    DestinationStore,
    DestinationEntry,
    DestinationError,
    DestinationNotFound,
    LocalPath,
)
from ..config.settings import FTPSettings, get_settings


FTP_NOT_FOUND = 550
# Replies of servers that do not implement MLSD
FTP_NOT_IMPLEMENTED = (500, 501, 502, 504)


def reply_code(error: BaseException) -> Optional[int]:
    """Extract the three digit FTP reply code from an ftplib error."""
    text = str(error)
    if len(text) >= 3 and text[:3].isdigit():
        return int(text[:3])
    return None


class FTPDestination(DestinationStore):
    """Destination store backed by a single ftplib session.

    ftplib is blocking, so every call runs in the default thread pool. A
    session must not be shared by concurrent tasks.
    """

    def __init__(
        self,
        ftp_settings: Optional[FTPSettings] = None,
        ftp_factory: Callable[[], ftplib.FTP] = ftplib.FTP
    ):
        """Initialize FTP destination.

        Args:
            ftp_settings: Connection settings, defaults to the global settings
            ftp_factory: Callable creating an unconnected ftplib.FTP
        """
        super().__init__()
        self.ftp_settings = ftp_settings or get_settings().ftp
        self._ftp_factory = ftp_factory
        self._ftp: Optional[ftplib.FTP] = None
        self._root = "/"

    @property
    def connected(self) -> bool:
        return self._ftp is not None

    async def connect(self) -> None:
        settings = self.ftp_settings.require()
        self._ftp = await self._run(self._connect_blocking, settings)
        self._root = await self._run(self._ftp.pwd)
        self.logger.info(
            "FTP session opened",
            host=settings.host,
            port=settings.port,
            root=self._root
        )

    async def close(self) -> None:
        ftp, self._ftp = self._ftp, None
        if ftp is None:
            return

        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._close_blocking, ftp)
        self.logger.info("FTP session closed")

    async def ensure_dir(self, path: str) -> None:
        await self._run(self._ensure_dir_blocking, path)

    async def change_dir(self, path: str) -> None:
        await self._run(self._session().cwd, self._abs(path))

    async def list(self, path: str) -> List[DestinationEntry]:
        return await self._run(self._list_blocking, path)

    async def download_to(self, local_path: LocalPath, remote_path: str) -> None:
        await self._run(self._download_blocking, local_path, remote_path)

    async def upload_from(self, local_path: LocalPath, remote_path: str) -> None:
        await self._run(self._upload_blocking, local_path, remote_path)

    async def rename(self, old_path: str, new_path: str) -> None:
        await self._run(self._session().rename, self._abs(old_path), self._abs(new_path))

    async def remove(self, path: str) -> None:
        await self._run(self._session().delete, self._abs(path))

    # Blocking helpers, executed in the thread pool

    def _connect_blocking(self, settings: FTPSettings) -> ftplib.FTP:
        ftp = self._ftp_factory()
        ftp.connect(settings.host, settings.port, timeout=settings.timeout)
        ftp.login(settings.username, settings.password)
        return ftp

    def _close_blocking(self, ftp: ftplib.FTP) -> None:
        try:
            ftp.quit()
        except ftplib.all_errors:
            ftp.close()

    def _ensure_dir_blocking(self, path: str) -> None:
        ftp = self._session()
        current = self._root
        for part in [p for p in path.split("/") if p]:
            current = posixpath.join(current, part)
            try:
                ftp.cwd(current)
            except ftplib.error_perm:
                ftp.mkd(current)
        ftp.cwd(self._root)

    def _list_blocking(self, path: str) -> List[DestinationEntry]:
        ftp = self._session()
        target = self._abs(path)

        try:
            return [
                DestinationEntry(name=name, size=_to_int(facts.get("size")))
                for name, facts in ftp.mlsd(target, facts=["type", "size"])
                if facts.get("type", "file") == "file"
            ]
        except ftplib.error_perm as e:
            if reply_code(e) not in FTP_NOT_IMPLEMENTED:
                raise

        # SIZE is only reliable in binary mode
        ftp.voidcmd("TYPE I")
        entries = []
        for listed in ftp.nlst(target):
            name = posixpath.basename(listed)
            if name in (".", ".."):
                continue
            try:
                size = ftp.size(posixpath.join(target, name))
            except ftplib.error_perm:
                continue  # directory
            entries.append(DestinationEntry(name=name, size=size))
        return entries

    def _download_blocking(self, local_path: LocalPath, remote_path: str) -> None:
        ftp = self._session()
        with open(local_path, "wb") as fh:
            ftp.retrbinary(f"RETR {self._abs(remote_path)}", fh.write)

    def _upload_blocking(self, local_path: LocalPath, remote_path: str) -> None:
        ftp = self._session()
        with open(local_path, "rb") as fh:
            ftp.storbinary(f"STOR {self._abs(remote_path)}", fh)

    def _session(self) -> ftplib.FTP:
        if self._ftp is None:
            raise DestinationError("FTP session is not connected")
        return self._ftp

    def _abs(self, path: str) -> str:
        return posixpath.normpath(posixpath.join(self._root, path))

    async def _run(self, func, *args):
        """Run a blocking ftplib call and translate its errors."""
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, func, *args)
        except ftplib.error_perm as e:
            code = reply_code(e)
            if code == FTP_NOT_FOUND:
                raise DestinationNotFound(str(e), code) from e
            raise DestinationError(str(e), code) from e
        except ftplib.all_errors as e:
            raise DestinationError(f"FTP error: {e}", reply_code(e)) from e


def _to_int(value) -> Optional[int]:
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None
