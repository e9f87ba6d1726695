"""Database models for the sheet mirror."""

from datetime import datetime, timezone
from typing import Optional, Dict, Any

from sqlalchemy import Column, Integer, String, DateTime, JSON, Float, Text, UniqueConstraint
from sqlalchemy.orm import declarative_base
from pydantic import BaseModel, ConfigDict


Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# SQLAlchemy Models (Database Tables)

class SheetRecordModel(Base):
    """A worksheet row stored as a document keyed by its first column."""

    __tablename__ = "sheet_records"
    __table_args__ = (UniqueConstraint("collection", "identifier", name="uq_record_identifier"),)

    id = Column(Integer, primary_key=True, index=True)
    collection = Column(String(100), nullable=False, index=True)
    identifier_field = Column(String(255), nullable=False)
    identifier = Column(String(500), nullable=False)
    data = Column(JSON, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    def __repr__(self):
        return f"<SheetRecordModel(id={self.id}, collection='{self.collection}', identifier='{self.identifier}')>"


class SyncRunModel(Base):
    """One orchestrator run that found changed rows."""

    __tablename__ = "sync_runs"

    id = Column(Integer, primary_key=True, index=True)
    completed_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False, index=True)

    # Results
    rows_changed = Column(Integer, default=0, nullable=False)
    rows_malformed = Column(Integer, default=0, nullable=False)
    files_uploaded = Column(Integer, default=0, nullable=False)
    files_replaced = Column(Integer, default=0, nullable=False)
    files_skipped = Column(Integer, default=0, nullable=False)
    files_failed = Column(Integer, default=0, nullable=False)

    message = Column(Text, nullable=True)
    # Per-file errors, which the summary string does not carry
    error_details = Column(JSON, nullable=True)
    duration_seconds = Column(Float, nullable=True)

    def __repr__(self):
        return f"<SyncRunModel(id={self.id}, rows_changed={self.rows_changed}, files_failed={self.files_failed})>"


# Pydantic Models (API/Transfer Objects)

class SheetRecordResponse(BaseModel):
    """Pydantic model for a stored sheet record."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    collection: str
    identifier_field: str
    identifier: str
    data: Dict[str, Any]
    created_at: datetime
    updated_at: datetime


class SyncRunResponse(BaseModel):
    """Pydantic model for a logged sync run."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    completed_at: datetime
    rows_changed: int
    rows_malformed: int
    files_uploaded: int
    files_replaced: int
    files_skipped: int
    files_failed: int
    message: Optional[str] = None
    error_details: Optional[Dict[str, Any]] = None
    duration_seconds: Optional[float] = None
