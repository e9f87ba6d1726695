"""Change detection over a polled tabular source."""

from typing import List, Optional, Protocol, Tuple

from .models import ChangeSet, ChangedRow, RowSnapshot
from ..utils.logging import get_logger


class TabularSource(Protocol):
    """Anything that can return a worksheet range as rows of cells."""

    async def get_values(self, cell_range: str) -> RowSnapshot:
        ...


class SnapshotConflict(Exception):
    """Raised when the stored snapshot changed while a poll was in flight."""
    pass


class SnapshotStore:
    """Versioned holder of the last snapshot seen by a detector.

    Every replacement must name the version it was computed from, so two
    overlapping polls sharing one store cannot both commit.
    """

    def __init__(self, rows: Optional[RowSnapshot] = None):
        self._rows = _copy(rows) if rows is not None else None
        self._version = 0

    @property
    def version(self) -> int:
        return self._version

    def read(self) -> Tuple[int, Optional[RowSnapshot]]:
        return self._version, self._rows

    def replace(self, rows: RowSnapshot, expected_version: int) -> int:
        """Store a new snapshot and return the new version.

        Raises:
            SnapshotConflict: If another poll replaced the snapshot first
        """
        if expected_version != self._version:
            raise SnapshotConflict(
                f"Snapshot moved from version {expected_version} to {self._version} during poll"
            )
        self._rows = rows
        self._version += 1
        return self._version


def _copy(rows: RowSnapshot) -> RowSnapshot:
    return [list(row) for row in rows]


def diff_snapshots(previous: RowSnapshot, current: RowSnapshot) -> List[ChangedRow]:
    """Rows of ``current`` that differ from the same index in ``previous``.

    Rows beyond the end of ``previous`` are new and always included. Rows
    that disappeared from ``current`` are not reported.
    """
    changed = []
    for index, row in enumerate(current):
        if index >= len(previous) or previous[index] != row:
            changed.append(ChangedRow(index=index, cells=list(row)))
    return changed


class ChangeDetector:
    """Reports the rows of a worksheet range that changed since the last poll."""

    def __init__(
        self,
        source: TabularSource,
        cell_range: str,
        store: Optional[SnapshotStore] = None
    ):
        """Initialize change detector.

        Args:
            source: Tabular source to poll
            cell_range: Range to read, e.g. ``Sheet1!A:D``
            store: Snapshot holder; a fresh one starts without a baseline
        """
        self.source = source
        self.cell_range = cell_range
        self.store = store if store is not None else SnapshotStore()
        self.logger = get_logger(self.__class__.__name__)

    async def poll(self) -> ChangeSet:
        """Fetch the range and return the rows that changed.

        The stored snapshot is replaced whether or not the caller acts on the
        result. The first poll only records a baseline and returns no rows.

        Raises:
            SourceUnavailable: If the source cannot be read
            SnapshotConflict: If another poll committed first
        """
        version, previous = self.store.read()
        snapshot = _copy(await self.source.get_values(self.cell_range))

        if previous is None:
            self.store.replace(snapshot, expected_version=version)
            self.logger.info("Captured baseline snapshot", rows=len(snapshot))
            return ChangeSet(baseline=True)

        changes = ChangeSet(rows=diff_snapshots(previous, snapshot))
        self.store.replace(snapshot, expected_version=version)

        self.logger.info(
            "Polled tabular source",
            rows=len(snapshot),
            previous_rows=len(previous),
            changed_rows=len(changes),
            changed_indexes=[row.index for row in changes]
        )
        return changes
