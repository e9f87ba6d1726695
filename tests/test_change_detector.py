"""Tests for snapshot diffing and change detection."""

import asyncio

import pytest

from sheet_mirror.api_clients.base import SourceUnavailable
from sheet_mirror.core.change_detector import (
    ChangeDetector,
    SnapshotConflict,
    SnapshotStore,
    diff_snapshots,
)

from fakes import FakeSheetSource


class TestDiffSnapshots:
    """Test the index-based snapshot diff."""

    def test_identical_snapshots(self):
        rows = [["a", "b"], ["c"]]
        assert diff_snapshots(rows, [list(r) for r in rows]) == []

    def test_changed_and_appended_rows(self):
        previous = [["a", "1"], ["b", "2"]]
        current = [["a", "1"], ["b", "3"], ["c", "4"]]

        changed = diff_snapshots(previous, current)

        assert [row.index for row in changed] == [1, 2]
        assert changed[0].cells == ["b", "3"]

    def test_removed_rows_are_not_reported(self):
        assert diff_snapshots([["a"], ["b"]], [["a"]]) == []

    def test_trailing_cell_difference_counts(self):
        changed = diff_snapshots([["a", "x"]], [["a"]])
        assert [row.index for row in changed] == [0]

    def test_insertion_shifts_following_rows(self):
        previous = [["a"], ["b"]]
        current = [["new"], ["a"], ["b"]]

        assert [row.index for row in diff_snapshots(previous, current)] == [0, 1, 2]


class TestSnapshotStore:
    """Test versioned snapshot replacement."""

    def test_replace_bumps_version(self):
        store = SnapshotStore()
        version, rows = store.read()
        assert rows is None

        assert store.replace([["a"]], expected_version=version) == version + 1
        assert store.read() == (version + 1, [["a"]])

    def test_stale_version_is_rejected(self):
        store = SnapshotStore()
        store.replace([["a"]], expected_version=0)

        with pytest.raises(SnapshotConflict):
            store.replace([["b"]], expected_version=0)


class TestChangeDetector:
    """Test ChangeDetector.poll."""

    @pytest.mark.asyncio
    async def test_first_poll_is_baseline(self):
        source = FakeSheetSource([["promoA", "link"]])
        detector = ChangeDetector(source, "Sheet1!A:D")

        changes = await detector.poll()

        assert changes.baseline is True
        assert len(changes) == 0
        assert source.ranges == ["Sheet1!A:D"]

    @pytest.mark.asyncio
    async def test_unchanged_sheet_reports_nothing(self):
        source = FakeSheetSource([["promoA", "link"]])
        detector = ChangeDetector(source, "Sheet1!A:D")
        await detector.poll()

        changes = await detector.poll()

        assert not changes
        assert changes.baseline is False

    @pytest.mark.asyncio
    async def test_edit_is_reported_once(self):
        source = FakeSheetSource([["promoA", "v1"], ["promoB", "v1"]])
        detector = ChangeDetector(source, "Sheet1!A:D")
        await detector.poll()

        source.rows = [["promoA", "v1"], ["promoB", "v2"]]
        first = await detector.poll()
        second = await detector.poll()

        assert [row.index for row in first] == [1]
        assert first.rows[0].cells == ["promoB", "v2"]
        assert not second

    @pytest.mark.asyncio
    async def test_preloaded_store_reports_against_it(self):
        store = SnapshotStore([])
        source = FakeSheetSource([["promoA", "link", None, "clip1.mp4"]])
        detector = ChangeDetector(source, "Sheet1!A:D", store=store)

        changes = await detector.poll()

        assert [row.index for row in changes] == [0]
        assert store.version == 1

    @pytest.mark.asyncio
    async def test_source_error_keeps_previous_snapshot(self):
        source = FakeSheetSource([["promoA"]])
        detector = ChangeDetector(source, "Sheet1!A:D")
        await detector.poll()
        version = detector.store.version

        source.error = SourceUnavailable("quota exceeded")
        with pytest.raises(SourceUnavailable):
            await detector.poll()

        assert detector.store.version == version
        source.error = None
        source.rows = [["promoB"]]
        assert [row.index for row in await detector.poll()] == [0]

    @pytest.mark.asyncio
    async def test_snapshot_is_not_aliased_to_source(self):
        grid = [["promoA", "v1"]]

        class AliasingSource:
            async def get_values(self, cell_range):
                return grid

        detector = ChangeDetector(AliasingSource(), "Sheet1!A:D")
        await detector.poll()
        grid[0][1] = "v2"

        changes = await detector.poll()

        assert [row.index for row in changes] == [0]

    @pytest.mark.asyncio
    async def test_overlapping_polls_on_one_store_conflict(self):
        store = SnapshotStore([])
        release = asyncio.Event()

        class SlowSource(FakeSheetSource):
            async def get_values(self, cell_range):
                await release.wait()
                return await super().get_values(cell_range)

        slow = ChangeDetector(SlowSource([["promoA"]]), "Sheet1!A:D", store=store)
        fast = ChangeDetector(FakeSheetSource([["promoA"]]), "Sheet1!A:D", store=store)

        pending = asyncio.create_task(slow.poll())
        await asyncio.sleep(0)
        assert [row.index for row in await fast.poll()] == [0]

        release.set()
        with pytest.raises(SnapshotConflict):
            await pending
        assert store.version == 1

    @pytest.mark.asyncio
    async def test_row_cleared_counts_as_change(self):
        source = FakeSheetSource([["promoA", "link"], ["promoB", "link"]])
        detector = ChangeDetector(source, "Sheet1!A:D")
        await detector.poll()

        source.rows = [["promoA", "link"], []]
        changes = await detector.poll()

        assert [row.index for row in changes] == [1]
