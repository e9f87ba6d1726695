"""Data structures shared by the change detector, file mirror and orchestrator."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator, List, Optional, Sequence


Cell = Optional[str]
Row = List[Cell]
RowSnapshot = List[Row]


class FileKind(str, Enum):
    """Kind of file referenced by a sheet row."""
    VIDEO = "video"
    IMAGE = "image"


class SyncOutcome(str, Enum):
    """Result of mirroring a single file."""
    SKIPPED = "skipped"
    REPLACED = "replaced"
    UPLOADED = "uploaded"


@dataclass(frozen=True)
class FileReference:
    """A link to a source file and the kind of file it is."""

    link: str
    kind: FileKind


@dataclass(frozen=True)
class ChangedRow:
    """A row of the latest snapshot that differs from the previous poll."""

    index: int
    cells: Row


@dataclass
class ChangeSet:
    """Rows that changed since the previous poll, in ascending index order."""

    rows: List[ChangedRow] = field(default_factory=list)
    baseline: bool = False  # True when this poll only captured the first snapshot

    def __len__(self) -> int:
        return len(self.rows)

    def __iter__(self) -> Iterator[ChangedRow]:
        return iter(self.rows)

    def __bool__(self) -> bool:
        return bool(self.rows)


class MalformedRow(ValueError):
    """Raised when a sheet row cannot be interpreted as a mirror row."""

    def __init__(self, index: int, reason: str):
        super().__init__(f"Row {index + 1}: {reason}")
        self.index = index
        self.reason = reason


def _cell(cells: Sequence[Cell], position: int) -> Optional[str]:
    if position >= len(cells):
        return None
    value = cells[position]
    if value is None:
        return None
    value = str(value).strip()
    return value or None


@dataclass(frozen=True)
class SheetRow:
    """A mirror row: destination folder, video link, image link, name override."""

    index: int
    folder: str
    video_link: Optional[str] = None
    image_link: Optional[str] = None
    name_override: Optional[str] = None

    @classmethod
    def from_cells(cls, index: int, cells: Sequence[Cell]) -> Optional["SheetRow"]:
        """Parse positional cells into a typed row.

        Returns None for a row without any content.

        Raises:
            MalformedRow: If the row has content but no destination folder
        """
        if not any(_cell(cells, i) for i in range(len(cells))):
            return None

        folder = _cell(cells, 0)
        if folder is None:
            raise MalformedRow(index, "missing destination folder")

        return cls(
            index=index,
            folder=folder,
            video_link=_cell(cells, 1),
            image_link=_cell(cells, 2),
            name_override=_cell(cells, 3),
        )

    def file_references(self) -> List[FileReference]:
        """References present in this row, video first."""
        refs = []
        if self.video_link:
            refs.append(FileReference(self.video_link, FileKind.VIDEO))
        if self.image_link:
            refs.append(FileReference(self.image_link, FileKind.IMAGE))
        return refs

    def destination_names(self) -> List[tuple]:
        """Pair each reference with its destination name.

        The name override applies to the first reference only; ``None`` means
        the source file's own name is used.
        """
        pairs = []
        for position, ref in enumerate(self.file_references()):
            pairs.append((ref, self.name_override if position == 0 else None))
        return pairs


@dataclass
class FileSyncResult:
    """Outcome of one file sync attempt."""

    row_index: int
    folder: str
    reference: FileReference
    outcome: Optional[SyncOutcome] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.outcome is not None


@dataclass
class RunSummary:
    """Aggregate of one orchestrator run."""

    rows_changed: int = 0
    rows_malformed: int = 0
    files: List[FileSyncResult] = field(default_factory=list)
    duration: Optional[float] = None

    def count(self, outcome: SyncOutcome) -> int:
        return sum(1 for f in self.files if f.outcome == outcome)

    @property
    def files_failed(self) -> int:
        return sum(1 for f in self.files if not f.success)

    @property
    def success(self) -> bool:
        return self.files_failed == 0 and self.rows_malformed == 0

    def message(self) -> str:
        """Human-readable summary of the run."""
        if self.rows_changed == 0:
            return "No changes detected in the sheet."
        parts = [
            f"{self.count(SyncOutcome.UPLOADED)} uploaded",
            f"{self.count(SyncOutcome.REPLACED)} replaced",
            f"{self.count(SyncOutcome.SKIPPED)} skipped",
            f"{self.files_failed} failed",
        ]
        text = f"Folders updated for {self.rows_changed} changed row(s): {', '.join(parts)}"
        if self.rows_malformed:
            text += f"; {self.rows_malformed} malformed row(s) ignored"
        return text + "."

    def to_dict(self) -> dict:
        return {
            "rows_changed": self.rows_changed,
            "rows_malformed": self.rows_malformed,
            "files_uploaded": self.count(SyncOutcome.UPLOADED),
            "files_replaced": self.count(SyncOutcome.REPLACED),
            "files_skipped": self.count(SyncOutcome.SKIPPED),
            "files_failed": self.files_failed,
            "duration": self.duration,
            "message": self.message(),
        }
