"""Sync orchestrator: mirrors the files of every changed sheet row."""

import asyncio
import functools
import time
from datetime import datetime, timezone
from typing import Callable, List, Optional

from .change_detector import ChangeDetector
from .file_mirror import FileMirror, SourceStore, TransferFailed
from .hashing import ContentVerifier
from .models import (
    ChangedRow,
    FileReference,
    FileSyncResult,
    MalformedRow,
    RunSummary,
    SheetRow,
    SyncOutcome,
)
from .scratch import ScratchSpace
from ..api_clients.base import SourceFetchError
from ..config.settings import ConfigurationMissing, FTPSettings
from ..destination.base import DestinationStore, breaks_session
from ..performance import AsyncPool, ConcurrentExecutor, execute_with_retries
from ..utils.logging import get_logger, log_async_execution_time


RUN_IN_PROGRESS_MESSAGE = "Previous sync run still in progress; skipped."


class SyncOrchestrator:
    """Drives the file mirror for each row reported by the change detector."""

    def __init__(
        self,
        detector: ChangeDetector,
        source: SourceStore,
        destination_factory: Callable[[], DestinationStore],
        ftp_settings: Optional[FTPSettings] = None,
        verifier: Optional[ContentVerifier] = None,
        scratch: Optional[ScratchSpace] = None,
        max_concurrent_rows: int = 1,
        max_retries: int = 0,
        retry_backoff_seconds: float = 1.0,
        database_service=None
    ):
        """Initialize sync orchestrator.

        Args:
            detector: Change detector over the mirror worksheet
            source: Object store resolving and serving file links
            destination_factory: Creates an unconnected destination session
            ftp_settings: Destination settings validated before each run
            verifier: Content hasher shared by all mirrors
            scratch: Scratch storage shared by all mirrors
            max_concurrent_rows: Rows processed at once, also the session limit
            max_retries: Per-file retries on transient failures
            retry_backoff_seconds: Delay before the first retry
            database_service: Optional run log persistence
        """
        self.detector = detector
        self.source = source
        self.destination_factory = destination_factory
        self.ftp_settings = ftp_settings
        self.verifier = verifier or ContentVerifier()
        self.scratch = scratch or ScratchSpace()
        self.max_concurrent_rows = max_concurrent_rows
        self.max_retries = max_retries
        self.retry_backoff_seconds = retry_backoff_seconds
        self.db_service = database_service

        self.last_summary: Optional[RunSummary] = None
        self.last_run_at: Optional[datetime] = None
        self._run_lock = asyncio.Lock()

        self.logger = get_logger(self.__class__.__name__)

    @property
    def running(self) -> bool:
        return self._run_lock.locked()

    @log_async_execution_time
    async def run(self) -> str:
        """Poll for changes and mirror the files of each changed row.

        Returns:
            Human-readable summary of the run

        Raises:
            ConfigurationMissing: If destination settings are incomplete
            SourceUnavailable: If the sheet cannot be read
        """
        if self._run_lock.locked():
            self.logger.warning("Previous sync run still in progress, skipping tick")
            return RUN_IN_PROGRESS_MESSAGE

        async with self._run_lock:
            summary = await self._run_once()

        self.last_summary = summary
        self.last_run_at = datetime.now(timezone.utc)
        self._log_run(summary)

        message = summary.message()
        self.logger.info("Sync run finished", **summary.to_dict())
        return message

    async def _run_once(self) -> RunSummary:
        start_time = time.monotonic()

        # Validate before polling: a change set cannot be replayed
        if self.ftp_settings is not None:
            self.ftp_settings.require()

        changes = await self.detector.poll()
        summary = RunSummary(rows_changed=len(changes))

        if not changes:
            self.logger.info("No changes detected in the sheet", baseline=changes.baseline)
            summary.duration = time.monotonic() - start_time
            return summary

        pool = AsyncPool(
            create_func=self._open_destination,
            close_func=self._close_destination,
            max_size=self.max_concurrent_rows
        )
        executor = ConcurrentExecutor(max_concurrent=self.max_concurrent_rows)

        try:
            results = await executor.execute_batch(
                [functools.partial(self._sync_row, row, pool) for row in changes],
                return_exceptions=True
            )
        finally:
            await pool.close()

        for changed, result in zip(changes, results):
            if isinstance(result, ConfigurationMissing):
                raise result
            if isinstance(result, MalformedRow):
                summary.rows_malformed += 1
                self.logger.warning("Ignoring malformed row", row=changed.index + 1, reason=result.reason)
            elif isinstance(result, BaseException):
                self.logger.error("Row processing failed", row=changed.index + 1, error=str(result))
            else:
                summary.files.extend(result)

        summary.duration = time.monotonic() - start_time
        return summary

    async def _sync_row(self, changed: ChangedRow, pool: AsyncPool) -> List[FileSyncResult]:
        """Mirror every file of one row. File failures are recorded, not raised."""
        row = SheetRow.from_cells(changed.index, changed.cells)
        if row is None:
            self.logger.info("Row is empty, nothing to mirror", row=changed.index + 1)
            return []

        pairs = row.destination_names()
        if not pairs:
            self.logger.info("Row has no file links", row=row.index + 1, folder=row.folder)
            return []

        results = [FileSyncResult(row.index, row.folder, ref) for ref, _ in pairs]

        for result, (ref, dest_name) in zip(results, pairs):
            try:
                result.outcome = await execute_with_retries(
                    functools.partial(self._sync_file, pool, ref, row.folder, dest_name),
                    max_retries=self.max_retries,
                    backoff_factor=self.retry_backoff_seconds,
                    exceptions_to_retry=(SourceFetchError, TransferFailed)
                )
            except ConfigurationMissing:
                raise
            except Exception as e:
                result.error = str(e)
                self.logger.error(
                    "Error processing file",
                    kind=ref.kind.value,
                    link=ref.link,
                    row=row.index + 1,
                    folder=row.folder,
                    error=str(e)
                )

        self.logger.info(
            "Completed updating folder",
            folder=row.folder,
            row=row.index + 1,
            outcomes=[r.outcome.value if r.outcome else "failed" for r in results]
        )
        return results

    async def _sync_file(
        self,
        pool: AsyncPool,
        ref: FileReference,
        folder: str,
        dest_name: Optional[str]
    ) -> SyncOutcome:
        """Mirror one file over a pooled session, dropping the session if it broke."""
        async with pool.get_resource() as destination:
            mirror = FileMirror(self.source, destination, self.verifier, self.scratch)
            try:
                return await mirror.sync(ref, folder, dest_name)
            except Exception as e:
                if breaks_session(e):
                    self.logger.warning(
                        "Discarding destination session after failure",
                        folder=folder,
                        error=str(e)
                    )
                    await pool.discard(destination)
                raise

    async def _open_destination(self) -> DestinationStore:
        destination = self.destination_factory()
        await destination.connect()
        return destination

    async def _close_destination(self, destination: DestinationStore) -> None:
        await destination.close()

    def _log_run(self, summary: RunSummary) -> None:
        """Write the run to the run log, if one is configured."""
        if self.db_service is None or summary.rows_changed == 0:
            return
        try:
            self.db_service.log_sync_run(summary)
        except Exception as e:
            self.logger.warning("Failed to log sync run", error=str(e))
