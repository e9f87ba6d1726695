"""High-level database service layer."""

from contextlib import contextmanager
from typing import Any, Dict, List, Optional

from .database import DatabaseManager, get_db_manager
from .models import SheetRecordResponse, SyncRunResponse
from .operations import SheetRecordRepository, SyncRunRepository
from ..core.models import RunSummary, SyncOutcome
from ..utils.logging import get_logger, log_execution_time


logger = get_logger("database.service")


class DatabaseService:
    """High-level database service for record sync and the run log."""

    def __init__(self, db_manager: Optional[DatabaseManager] = None):
        self.db_manager = db_manager or get_db_manager()

    @contextmanager
    def transaction(self):
        """Context manager for database transactions."""
        with self.db_manager.session_scope() as session:
            yield session

    # Record operations

    @log_execution_time
    def upsert_record(
        self,
        collection: str,
        identifier_field: str,
        identifier: str,
        data: Dict[str, Any]
    ) -> bool:
        """Insert or replace one record. Returns True if it was created."""
        with self.transaction() as session:
            _, created = SheetRecordRepository(session).upsert(
                collection, identifier_field, identifier, data
            )
            return created

    @log_execution_time
    def get_record(self, collection: str, identifier: str) -> Optional[SheetRecordResponse]:
        """Get a record by its identifier."""
        with self.transaction() as session:
            record = SheetRecordRepository(session).get(collection, identifier)
            return SheetRecordResponse.model_validate(record) if record else None

    @log_execution_time
    def get_records(self, collection: str) -> List[SheetRecordResponse]:
        """Get every record of a collection in insertion order."""
        with self.transaction() as session:
            records = SheetRecordRepository(session).get_all(collection)
            return [SheetRecordResponse.model_validate(r) for r in records]

    # Run log operations

    @log_execution_time
    def log_sync_run(self, summary: RunSummary) -> SyncRunResponse:
        """Persist the outcome of one orchestrator run."""
        errors = {
            f"row {f.row_index + 1} {f.reference.kind.value}": f.error
            for f in summary.files if f.error
        }
        with self.transaction() as session:
            run = SyncRunRepository(session).create(
                rows_changed=summary.rows_changed,
                rows_malformed=summary.rows_malformed,
                files_uploaded=summary.count(SyncOutcome.UPLOADED),
                files_replaced=summary.count(SyncOutcome.REPLACED),
                files_skipped=summary.count(SyncOutcome.SKIPPED),
                files_failed=summary.files_failed,
                message=summary.message(),
                error_details=errors or None,
                duration_seconds=summary.duration
            )
            logger.info("Logged sync run", run_id=run.id, files_failed=run.files_failed)
            return SyncRunResponse.model_validate(run)

    @log_execution_time
    def get_recent_runs(self, limit: int = 10) -> List[SyncRunResponse]:
        """Get the most recent logged runs, newest first."""
        with self.transaction() as session:
            runs = SyncRunRepository(session).get_recent(limit)
            return [SyncRunResponse.model_validate(r) for r in runs]
