"""Engine and session handling for the record store and run log.

The default store is a SQLite file under ``./data``. Sessions are opened from
executor threads as well as the event loop thread, so SQLite connections are
shared across threads and wait on a busy database instead of failing.
"""

from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from .models import Base
from ..config.settings import get_settings
from ..utils.logging import get_logger


logger = get_logger("database")

SQLITE_BUSY_TIMEOUT_MS = 20000


def _sqlite_engine(url) -> Engine:
    if url.database in (None, "", ":memory:"):
        # One shared connection, otherwise every session sees an empty database
        return create_engine(url, poolclass=StaticPool, connect_args={"check_same_thread": False})

    Path(url.database).expanduser().parent.mkdir(parents=True, exist_ok=True)
    engine = create_engine(url, connect_args={"check_same_thread": False})

    @event.listens_for(engine, "connect")
    def _configure(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute(f"PRAGMA busy_timeout = {SQLITE_BUSY_TIMEOUT_MS}")
        cursor.execute("PRAGMA journal_mode = WAL")
        cursor.close()

    return engine


class DatabaseManager:
    """Owns the engine and hands out transactional sessions."""

    def __init__(self, database_url: Optional[str] = None):
        url = make_url(database_url or get_settings().database.url)
        self.database_url = url.render_as_string(hide_password=True)

        if url.get_backend_name() == "sqlite":
            self.engine = _sqlite_engine(url)
        else:
            self.engine = create_engine(url, pool_pre_ping=True)

        self.SessionLocal = sessionmaker(bind=self.engine, autoflush=False, expire_on_commit=False)
        logger.info("Database engine ready", database_url=self.database_url)

    def create_tables(self):
        """Create the record and run log tables if they are missing."""
        Base.metadata.create_all(bind=self.engine)
        logger.info("Database tables ready", tables=sorted(Base.metadata.tables))

    def ping(self):
        """Run a trivial query. Raises if the database is unreachable."""
        with self.engine.connect() as connection:
            connection.execute(text("SELECT 1"))

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        """Session committed on success and rolled back on error."""
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception as e:
            session.rollback()
            logger.error("Database transaction rolled back", error=str(e))
            raise
        finally:
            session.close()

    def dispose(self):
        self.engine.dispose()


_db_manager: Optional[DatabaseManager] = None


def get_db_manager() -> DatabaseManager:
    """Get the process-wide manager, built from settings on first use."""
    global _db_manager
    if _db_manager is None:
        _db_manager = DatabaseManager()
    return _db_manager


def init_database(database_url: Optional[str] = None, create_tables: bool = True) -> DatabaseManager:
    """Build the process-wide manager and check that the database answers."""
    global _db_manager
    manager = DatabaseManager(database_url)

    if create_tables:
        manager.create_tables()
    manager.ping()

    _db_manager = manager
    return manager


def close_database():
    """Dispose of the process-wide manager's connections."""
    global _db_manager
    if _db_manager is not None:
        _db_manager.dispose()
        _db_manager = None
        logger.info("Database connections closed")
