"""Repository classes for sheet records and the sync run log."""

from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from .models import SheetRecordModel, SyncRunModel
from ..utils.logging import get_logger


logger = get_logger("database.operations")


class SheetRecordRepository:
    """Repository for worksheet rows stored as documents."""

    def __init__(self, session: Session):
        self.session = session

    def get(self, collection: str, identifier: str) -> Optional[SheetRecordModel]:
        return self.session.query(SheetRecordModel).filter(
            SheetRecordModel.collection == collection,
            SheetRecordModel.identifier == identifier
        ).first()

    def get_all(self, collection: str) -> List[SheetRecordModel]:
        return self.session.query(SheetRecordModel).filter(
            SheetRecordModel.collection == collection
        ).order_by(SheetRecordModel.id).all()

    def upsert(
        self,
        collection: str,
        identifier_field: str,
        identifier: str,
        data: Dict[str, Any]
    ) -> Tuple[SheetRecordModel, bool]:
        """Replace the document for ``identifier`` or insert it. Returns (record, created)."""
        record = self.get(collection, identifier)
        if record is not None:
            record.identifier_field = identifier_field
            record.data = dict(data)
            self.session.flush()
            return record, False

        record = SheetRecordModel(
            collection=collection,
            identifier_field=identifier_field,
            identifier=identifier,
            data=dict(data)
        )
        self.session.add(record)
        self.session.flush()
        logger.debug("Inserted sheet record", collection=collection, identifier=identifier)
        return record, True


class SyncRunRepository:
    """Repository for the sync run log."""

    def __init__(self, session: Session):
        self.session = session

    def create(self, **fields) -> SyncRunModel:
        run = SyncRunModel(**fields)
        self.session.add(run)
        self.session.flush()
        return run

    def get_recent(self, limit: int = 10) -> List[SyncRunModel]:
        return self.session.query(SyncRunModel).order_by(
            SyncRunModel.completed_at.desc(), SyncRunModel.id.desc()
        ).limit(limit).all()
