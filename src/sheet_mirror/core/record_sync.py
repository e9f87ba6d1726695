"""Pushes a header-keyed worksheet into the record store."""

from typing import Any, Dict, Optional

from .change_detector import TabularSource
from .models import Row
from ..utils.logging import get_logger, log_async_execution_time


DEFAULT_RECORDS_RANGE = "Sheet2!A1:Z1000"
DEFAULT_COLLECTION = "Sheet2Collection"


def row_to_document(headers: Row, row: Row) -> Dict[str, Any]:
    """Map each header to the cell in its column; missing or empty cells are None."""
    document = {}
    for position, header in enumerate(headers):
        if header is None or str(header).strip() == "":
            continue
        value = row[position] if position < len(row) else None
        document[str(header)] = value if value not in ("", None) else None
    return document


class RecordSync:
    """Upserts every data row of a worksheet, keyed by its first column."""

    def __init__(
        self,
        source: TabularSource,
        database_service,
        cell_range: str = DEFAULT_RECORDS_RANGE,
        collection: str = DEFAULT_COLLECTION
    ):
        self.source = source
        self.db_service = database_service
        self.cell_range = cell_range
        self.collection = collection
        self.logger = get_logger(self.__class__.__name__)

    @log_async_execution_time
    async def push(self) -> int:
        """Read the range and upsert each row. Returns the number of upserted rows.

        Raises:
            SourceUnavailable: If the worksheet cannot be read
        """
        rows = await self.source.get_values(self.cell_range)
        if not rows:
            self.logger.info("No data found in records range", range=self.cell_range)
            return 0

        headers = rows[0]
        identifier_field = _identifier_field(headers)
        if identifier_field is None:
            self.logger.warning("Records range has no identifier header", range=self.cell_range)
            return 0

        upserted = created = 0
        for offset, row in enumerate(rows[1:], start=2):
            identifier = _identifier(row)
            if identifier is None:
                self.logger.debug("Skipping row without identifier", row=offset)
                continue

            if self.db_service.upsert_record(
                self.collection,
                identifier_field,
                identifier,
                row_to_document(headers, row)
            ):
                created += 1
            upserted += 1

        self.logger.info(
            "Pushed records",
            collection=self.collection,
            upserted=upserted,
            created=created,
            updated=upserted - created
        )
        return upserted


def _identifier_field(headers: Row) -> Optional[str]:
    if not headers or headers[0] is None or str(headers[0]).strip() == "":
        return None
    return str(headers[0])


def _identifier(row: Row) -> Optional[str]:
    if not row or row[0] is None:
        return None
    value = str(row[0]).strip()
    return value or None
