"""Tests for the sync orchestrator."""

import asyncio
from unittest.mock import Mock

import pytest

from sheet_mirror.config.settings import ConfigurationMissing, FTPSettings
from sheet_mirror.core.change_detector import ChangeDetector, SnapshotStore
from sheet_mirror.core.models import SyncOutcome
from sheet_mirror.core.orchestrator import RUN_IN_PROGRESS_MESSAGE, SyncOrchestrator
from sheet_mirror.destination.base import DestinationError

from fakes import IMAGE_ID, VIDEO_ID, FakeSheetSource, InMemoryDestination, drive_link


IDLE_MESSAGE = "No changes detected in the sheet."
VIDEO_BYTES = b"video" * 100
IMAGE_BYTES = b"image" * 40


def ftp_settings():
    return FTPSettings(host="ftp.example.com", username="mirror", password="secret")


def make_orchestrator(sheet, drive, destination, **kwargs):
    """Orchestrator whose detector already holds an empty baseline."""
    detector = ChangeDetector(sheet, "Sheet1!A:D", store=SnapshotStore([]))
    kwargs.setdefault("ftp_settings", ftp_settings())
    return SyncOrchestrator(detector, drive, lambda: destination, **kwargs)


class RefusingDestination(InMemoryDestination):
    async def connect(self) -> None:
        self.connect_count += 1
        raise DestinationError("Login incorrect", code=530)


class BlockingSheet(FakeSheetSource):
    def __init__(self, rows=None):
        super().__init__(rows)
        self.release = asyncio.Event()

    async def get_values(self, cell_range):
        await self.release.wait()
        return await super().get_values(cell_range)


class DroppingDestination(InMemoryDestination):
    """Session whose control connection dies once an upload fails."""

    def __init__(self, fail_upload=()):
        super().__init__()
        self.fail_upload = set(fail_upload)
        self.dropped = False

    def _check(self):
        if self.dropped:
            raise DestinationError("Broken pipe")

    async def ensure_dir(self, path: str) -> None:
        self._check()
        await super().ensure_dir(path)

    async def list(self, path: str):
        self._check()
        return await super().list(path)

    async def upload_from(self, local_path, remote_path: str) -> None:
        self._check()
        try:
            await super().upload_from(local_path, remote_path)
        except DestinationError:
            self.dropped = True
            raise


class TestSyncOrchestrator:
    """Test SyncOrchestrator.run."""

    @pytest.fixture(autouse=True)
    def setup_source(self, drive):
        drive.add(VIDEO_ID, "clip1.mp4", VIDEO_BYTES)
        drive.add(IMAGE_ID, "poster.jpg", IMAGE_BYTES)

    @pytest.mark.asyncio
    async def test_idle_run_opens_no_session(self, sheet, drive, destination, scratch):
        orchestrator = make_orchestrator(sheet, drive, destination, scratch=scratch)

        message = await orchestrator.run()

        assert message == IDLE_MESSAGE
        assert destination.connect_count == 0
        assert orchestrator.last_summary.rows_changed == 0

    @pytest.mark.asyncio
    async def test_first_poll_without_baseline_does_nothing(self, sheet, drive, destination, scratch):
        sheet.rows = [["promoA", drive_link(VIDEO_ID)]]
        detector = ChangeDetector(sheet, "Sheet1!A:D")
        orchestrator = SyncOrchestrator(detector, drive, lambda: destination, ftp_settings(), scratch=scratch)

        assert await orchestrator.run() == IDLE_MESSAGE
        assert destination.files == {}

    @pytest.mark.asyncio
    async def test_upload_then_skip(self, sheet, drive, destination, scratch):
        sheet.rows = [["promoA", drive_link(VIDEO_ID), None, "clip1.mp4"]]
        orchestrator = make_orchestrator(sheet, drive, destination, scratch=scratch)

        first = await orchestrator.run()

        assert first == (
            "Folders updated for 1 changed row(s): 1 uploaded, 0 replaced, 0 skipped, 0 failed."
        )
        assert destination.files == {"promoA/clip1.mp4": VIDEO_BYTES}

        # Unchanged sheet: nothing to do
        assert await orchestrator.run() == IDLE_MESSAGE
        assert destination.connect_count == 1

        # Row edited without changing the file: verified and skipped
        sheet.rows = [["promoA", drive_link(VIDEO_ID), "", "clip1.mp4"]]
        third = await orchestrator.run()

        assert "1 skipped" in third
        assert destination.uploads == ["promoA/clip1.mp4"]
        assert orchestrator.last_summary.count(SyncOutcome.SKIPPED) == 1

    @pytest.mark.asyncio
    async def test_row_with_video_and_image(self, sheet, drive, destination, scratch):
        sheet.rows = [["promoA", drive_link(VIDEO_ID), drive_link(IMAGE_ID), "launch.mp4"]]
        orchestrator = make_orchestrator(sheet, drive, destination, scratch=scratch)

        await orchestrator.run()

        assert destination.files == {
            "promoA/launch.mp4": VIDEO_BYTES,
            "promoA/poster.jpg": IMAGE_BYTES,
        }
        assert destination.uploads == ["promoA/launch.mp4", "promoA/poster.jpg"]

    @pytest.mark.asyncio
    async def test_file_failure_does_not_stop_other_rows(self, sheet, drive, destination, scratch):
        missing_link = drive_link("1MissingMissingMissingMissing0")
        sheet.rows = [
            ["promoA", missing_link],
            ["promoB", drive_link(VIDEO_ID)],
        ]
        orchestrator = make_orchestrator(sheet, drive, destination, scratch=scratch)

        message = await orchestrator.run()

        assert message == (
            "Folders updated for 2 changed row(s): 1 uploaded, 0 replaced, 0 skipped, 1 failed."
        )
        assert destination.files == {"promoB/clip1.mp4": VIDEO_BYTES}
        failed = [f for f in orchestrator.last_summary.files if not f.success]
        assert failed[0].row_index == 0
        assert "not found" in failed[0].error

    @pytest.mark.asyncio
    async def test_malformed_and_empty_rows(self, sheet, drive, destination, scratch):
        sheet.rows = [
            ["", drive_link(VIDEO_ID)],
            [],
            ["promoB", drive_link(IMAGE_ID)],
        ]
        orchestrator = make_orchestrator(sheet, drive, destination, scratch=scratch)

        message = await orchestrator.run()

        assert orchestrator.last_summary.rows_malformed == 1
        assert message.endswith("; 1 malformed row(s) ignored.")
        assert destination.files == {"promoB/poster.jpg": IMAGE_BYTES}

    @pytest.mark.asyncio
    async def test_missing_ftp_settings_abort_before_polling(self, sheet, drive, destination, scratch):
        sheet.rows = [["promoA", drive_link(VIDEO_ID)]]
        settings = FTPSettings(host=None, username=None, password=None)
        orchestrator = make_orchestrator(sheet, drive, destination, ftp_settings=settings, scratch=scratch)

        with pytest.raises(ConfigurationMissing) as exc_info:
            await orchestrator.run()

        assert "FTP_HOST" in exc_info.value.missing
        assert sheet.ranges == []
        assert orchestrator.detector.store.version == 0

    @pytest.mark.asyncio
    async def test_overlapping_run_is_skipped(self, drive, destination, scratch):
        sheet = BlockingSheet([["promoA", drive_link(VIDEO_ID)]])
        orchestrator = make_orchestrator(sheet, drive, destination, scratch=scratch)

        first = asyncio.create_task(orchestrator.run())
        await asyncio.sleep(0)
        assert orchestrator.running

        assert await orchestrator.run() == RUN_IN_PROGRESS_MESSAGE

        sheet.release.set()
        assert "1 uploaded" in await first
        assert len(sheet.ranges) == 1

    @pytest.mark.asyncio
    async def test_transient_resolve_failure_is_retried(self, sheet, drive, destination, scratch):
        drive.fail_resolve[VIDEO_ID] = 1
        sheet.rows = [["promoA", drive_link(VIDEO_ID)]]
        orchestrator = make_orchestrator(
            sheet, drive, destination, scratch=scratch, max_retries=1, retry_backoff_seconds=0
        )

        message = await orchestrator.run()

        assert "1 uploaded" in message
        assert drive.resolve_calls == [VIDEO_ID, VIDEO_ID]

    @pytest.mark.asyncio
    async def test_no_retry_by_default(self, sheet, drive, destination, scratch):
        drive.fail_resolve[VIDEO_ID] = 1
        sheet.rows = [["promoA", drive_link(VIDEO_ID)]]
        orchestrator = make_orchestrator(sheet, drive, destination, scratch=scratch)

        assert "1 failed" in await orchestrator.run()
        assert drive.resolve_calls == [VIDEO_ID]

    @pytest.mark.asyncio
    async def test_sessions_bounded_and_closed(self, sheet, drive, scratch):
        created = []

        def factory():
            destination = InMemoryDestination()
            created.append(destination)
            return destination

        sheet.rows = [["promo%d" % i, drive_link(VIDEO_ID)] for i in range(4)]
        detector = ChangeDetector(sheet, "Sheet1!A:D", store=SnapshotStore([]))
        orchestrator = SyncOrchestrator(
            detector, drive, factory, ftp_settings(), scratch=scratch, max_concurrent_rows=2
        )

        message = await orchestrator.run()

        assert "4 uploaded" in message
        assert 1 <= len(created) <= 2
        assert all(d.close_count == 1 for d in created)

    @pytest.mark.asyncio
    async def test_destination_session_failure_marks_files_failed(self, sheet, drive, scratch):
        destination = RefusingDestination()
        sheet.rows = [["promoA", drive_link(VIDEO_ID), drive_link(IMAGE_ID)]]
        orchestrator = make_orchestrator(sheet, drive, destination, scratch=scratch)

        message = await orchestrator.run()

        assert "2 failed" in message
        assert all("Login incorrect" in f.error for f in orchestrator.last_summary.files)

    @pytest.mark.asyncio
    async def test_run_is_logged_only_when_rows_changed(self, sheet, drive, destination, scratch):
        db_service = Mock()
        sheet.rows = [["promoA", drive_link(VIDEO_ID)]]
        orchestrator = make_orchestrator(
            sheet, drive, destination, scratch=scratch, database_service=db_service
        )

        await orchestrator.run()
        await orchestrator.run()

        db_service.log_sync_run.assert_called_once()
        summary = db_service.log_sync_run.call_args[0][0]
        assert summary.count(SyncOutcome.UPLOADED) == 1

    @pytest.mark.asyncio
    async def test_run_log_failure_is_not_fatal(self, sheet, drive, destination, scratch):
        db_service = Mock()
        db_service.log_sync_run.side_effect = RuntimeError("database is locked")
        sheet.rows = [["promoA", drive_link(VIDEO_ID)]]
        orchestrator = make_orchestrator(
            sheet, drive, destination, scratch=scratch, database_service=db_service
        )

        assert "1 uploaded" in await orchestrator.run()

    @pytest.mark.asyncio
    async def test_failed_file_in_row_does_not_stop_next_file(self, sheet, drive, destination, scratch):
        missing_link = drive_link("1MissingMissingMissingMissing0")
        sheet.rows = [["promoA", missing_link, drive_link(IMAGE_ID)]]
        orchestrator = make_orchestrator(sheet, drive, destination, scratch=scratch)

        message = await orchestrator.run()

        assert message == (
            "Folders updated for 1 changed row(s): 1 uploaded, 0 replaced, 0 skipped, 1 failed."
        )
        assert destination.files == {"promoA/poster.jpg": IMAGE_BYTES}
        video, image = orchestrator.last_summary.files
        assert "not found" in video.error
        assert image.outcome == SyncOutcome.UPLOADED

    @pytest.mark.asyncio
    async def test_broken_session_is_replaced_for_later_rows(self, sheet, drive, scratch):
        created = []

        def factory():
            fail_upload = ["promoA/clip1.mp4"] if not created else []
            destination = DroppingDestination(fail_upload)
            created.append(destination)
            return destination

        sheet.rows = [
            ["promoA", drive_link(VIDEO_ID)],
            ["promoB", drive_link(VIDEO_ID)],
            ["promoC", drive_link(IMAGE_ID)],
        ]
        detector = ChangeDetector(sheet, "Sheet1!A:D", store=SnapshotStore([]))
        orchestrator = SyncOrchestrator(detector, drive, factory, ftp_settings(), scratch=scratch)

        message = await orchestrator.run()

        assert message == (
            "Folders updated for 3 changed row(s): 2 uploaded, 0 replaced, 0 skipped, 1 failed."
        )
        assert len(created) == 2
        assert created[0].dropped
        assert created[1].files == {
            "promoB/clip1.mp4": VIDEO_BYTES,
            "promoC/poster.jpg": IMAGE_BYTES,
        }
        assert all(d.close_count == 1 for d in created)

    @pytest.mark.asyncio
    async def test_retry_runs_on_fresh_session(self, sheet, drive, scratch):
        created = []

        def factory():
            fail_upload = ["promoA/clip1.mp4"] if not created else []
            destination = DroppingDestination(fail_upload)
            created.append(destination)
            return destination

        sheet.rows = [["promoA", drive_link(VIDEO_ID)]]
        detector = ChangeDetector(sheet, "Sheet1!A:D", store=SnapshotStore([]))
        orchestrator = SyncOrchestrator(
            detector, drive, factory, ftp_settings(),
            scratch=scratch, max_retries=1, retry_backoff_seconds=0
        )

        assert "1 uploaded" in await orchestrator.run()
        assert len(created) == 2
        assert created[1].files == {"promoA/clip1.mp4": VIDEO_BYTES}

    @pytest.mark.asyncio
    async def test_missing_file_keeps_session(self, sheet, drive, scratch):
        created = []

        def factory():
            destination = InMemoryDestination()
            created.append(destination)
            return destination

        missing_link = drive_link("1MissingMissingMissingMissing0")
        sheet.rows = [["promoA", missing_link], ["promoB", drive_link(VIDEO_ID)]]
        detector = ChangeDetector(sheet, "Sheet1!A:D", store=SnapshotStore([]))
        orchestrator = SyncOrchestrator(detector, drive, factory, ftp_settings(), scratch=scratch)

        assert "1 uploaded" in await orchestrator.run()
        assert len(created) == 1
