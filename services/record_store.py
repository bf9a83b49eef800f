"""
Record Store - Batch persistence of mapped records.

Wraps a SQLAlchemy session. One import run produces one batch insert;
duplicate keys and other database errors surface as PersistenceError.
"""

import logging
from typing import Any, Dict, List, Sequence

from pydantic.alias_generators import to_camel
from sqlalchemy import insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.models.records import MappedRecord
from backend.models.schema import RECORD_TABLES
from services.errors import PersistenceError

logger = logging.getLogger(__name__)


class RecordStore:
    """Persist and read back imported records."""

    def __init__(self, db_session: Session):
        self.db_session = db_session

    @staticmethod
    def _table_for(template_name: str):
        table = RECORD_TABLES.get(template_name)
        if table is None:
            raise PersistenceError(f"No table registered for template '{template_name}'")
        return table

    def insert_batch(self, template_name: str, records: Sequence[MappedRecord]) -> int:
        """
        Insert all records in one statement and commit.

        Args:
            template_name: Template the records belong to
            records: Validated records of that template

        Returns:
            Number of inserted rows

        Raises:
            PersistenceError: If the insert or commit fails
        """
        if not records:
            return 0

        table = self._table_for(template_name)
        rows = [record.to_row() for record in records]

        try:
            self.db_session.execute(insert(table), rows)
            self.db_session.commit()
        except SQLAlchemyError as e:
            self.db_session.rollback()
            logger.error(f"Batch insert of {len(rows)} {template_name} rows failed: {e}")
            raise PersistenceError(f"Failed to save {template_name} records: {e}") from e

        logger.info(f"Inserted {len(rows)} {template_name} rows")
        return len(rows)

    def fetch_page(self, template_name: str, page: int = 1, limit: int = 10) -> List[Dict[str, Any]]:
        """
        Newest records first, keyed by template column key.

        Args:
            template_name: Template whose records to read
            page: 1-based page number
            limit: Page size
        """
        table = self._table_for(template_name)
        query = self.db_session.query(table)\
            .order_by(table.created_at.desc(), table.id.desc())\
            .offset((max(page, 1) - 1) * limit)\
            .limit(limit)

        return [self._to_document(row) for row in query.all()]

    @staticmethod
    def _to_document(row) -> Dict[str, Any]:
        return {
            to_camel(attribute): getattr(row, attribute)
            for attribute in row.__table__.columns.keys()
        }
