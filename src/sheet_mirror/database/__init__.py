"""Database package for Sheet Mirror."""

from .database import (
    DatabaseManager,
    get_db_manager,
    init_database,
    close_database
)

from .models import (
    SheetRecordModel,
    SyncRunModel,
    SheetRecordResponse,
    SyncRunResponse
)

from .operations import (
    SheetRecordRepository,
    SyncRunRepository
)

from .service import (
    DatabaseService
)

__all__ = [
    # Database management
    "DatabaseManager",
    "get_db_manager",
    "init_database",
    "close_database",

    # Models
    "SheetRecordModel",
    "SyncRunModel",
    "SheetRecordResponse",
    "SyncRunResponse",

    # Repositories
    "SheetRecordRepository",
    "SyncRunRepository",

    # Service
    "DatabaseService"
]
