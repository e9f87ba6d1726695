"""Core mirroring components."""

from .change_detector import ChangeDetector, SnapshotConflict, SnapshotStore, diff_snapshots
from .file_mirror import FileMirror, TransferFailed, backup_name
from .hashing import ContentVerifier
from .models import (
    ChangeSet,
    ChangedRow,
    FileKind,
    FileReference,
    FileSyncResult,
    MalformedRow,
    RunSummary,
    SheetRow,
    SyncOutcome,
)
from .orchestrator import SyncOrchestrator
from .record_sync import RecordSync
from .scratch import ScratchSpace

__all__ = [
    "ChangeDetector",
    "SnapshotConflict",
    "SnapshotStore",
    "diff_snapshots",
    "FileMirror",
    "TransferFailed",
    "backup_name",
    "ContentVerifier",
    "ChangeSet",
    "ChangedRow",
    "FileKind",
    "FileReference",
    "FileSyncResult",
    "MalformedRow",
    "RunSummary",
    "SheetRow",
    "SyncOutcome",
    "SyncOrchestrator",
    "RecordSync",
    "ScratchSpace",
]
