"""
Local Store
On-device object store backed by SQLite through SQLAlchemy.

Serves as the primary backend when the app runs in local mode and as the
offline mirror of the remote backend otherwise.
"""

import logging
from contextlib import contextmanager
from typing import Dict, List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from sandwich_pos.errors import BackendRejectedError, NotFoundError, StorageUnavailableError
from sandwich_pos.models import db, LocalRecord
from sandwich_pos.utils.records import TABLE_INDEXES, UNIQUE_FIELDS, apply_filters, check_table

logger = logging.getLogger(__name__)


class LocalStore:
    """Per-table object store keyed by id"""

    kind = 'local'

    def __init__(self):
        self.is_open = False

    @contextmanager
    def _storage_errors(self):
        try:
            yield
        except IntegrityError as e:
            db.session.rollback()
            raise BackendRejectedError(f"Constraint violation: {e.orig}") from e
        except SQLAlchemyError as e:
            db.session.rollback()
            raise StorageUnavailableError(f"Local store unavailable: {e}") from e

    def open(self):
        """Create the store tables if needed"""
        with self._storage_errors():
            db.create_all()
        self.is_open = True
        logger.info("Local store ready")

    def close(self):
        db.session.remove()
        self.is_open = False

    def _row(self, table, record_id):
        check_table(table)
        return db.session.get(LocalRecord, (table, str(record_id)))

    def get(self, table: str, record_id) -> Optional[Dict]:
        """Get a record by id, or None"""
        with self._storage_errors():
            row = self._row(table, record_id)
            return row.data if row else None

    def read(self, table: str, filters: Optional[Dict] = None) -> List[Dict]:
        """Get all records of a table matching the filters"""
        check_table(table)
        with self._storage_errors():
            rows = LocalRecord.query.filter_by(table_name=table).order_by(
                LocalRecord.created_at, LocalRecord.record_id
            ).all()
            return apply_filters((row.data for row in rows), filters)

    def query(self, table: str, index_name: str, value) -> List[Dict]:
        """Get records by secondary index"""
        check_table(table)
        field = TABLE_INDEXES[table].get(index_name)
        if field is None:
            raise BackendRejectedError(f"No index '{index_name}' on {table}")
        return self.read(table, {'where': {field: value}})

    def _check_unique(self, table, record):
        """Reject a record whose unique fields clash with another record of the table"""
        fields = [f for f in UNIQUE_FIELDS.get(table, ()) if record.get(f) is not None]
        if not fields:
            return
        rows = LocalRecord.query.filter(
            LocalRecord.table_name == table, LocalRecord.record_id != str(record['id'])
        ).all()
        for row in rows:
            other = row.data
            for field in fields:
                if other.get(field) == record[field]:
                    raise BackendRejectedError(
                        f"Constraint violation: {table}.{field} '{record[field]}' already exists",
                        status_code=409,
                    )

    def create(self, table: str, record: Dict) -> Dict:
        """Add a new record; an existing id or unique value is a constraint violation"""
        with self._storage_errors():
            if self._row(table, record['id']) is not None:
                raise BackendRejectedError(
                    f"Record with id {record['id']} already exists in {table}", status_code=409
                )
            self._check_unique(table, record)
            row = LocalRecord(table_name=table, record_id=str(record['id']))
            row.data = record
            db.session.add(row)
            db.session.commit()
        logger.debug(f"Created record in {table}: {record['id']}")
        return dict(record)

    def update(self, table: str, record_id, patch: Dict) -> Dict:
        """Merge a patch into an existing record"""
        with self._storage_errors():
            row = self._row(table, record_id)
            if row is None:
                raise NotFoundError(table, record_id)
            merged = {**row.data, **patch}
            self._check_unique(table, merged)
            row.data = merged
            db.session.commit()
        logger.debug(f"Updated record in {table}: {record_id}")
        return merged

    def delete(self, table: str, record_id) -> Dict:
        """Delete a record and return it"""
        with self._storage_errors():
            row = self._row(table, record_id)
            if row is None:
                raise NotFoundError(table, record_id)
            data = row.data
            db.session.delete(row)
            db.session.commit()
        logger.debug(f"Deleted record from {table}: {record_id}")
        return data

    def put(self, table: str, record: Dict) -> Dict:
        """Insert or replace a record verbatim"""
        with self._storage_errors():
            row = self._row(table, record['id'])
            if row is None:
                row = LocalRecord(table_name=table, record_id=str(record['id']))
                db.session.add(row)
            row.data = record
            db.session.commit()
        return dict(record)

    def put_many(self, table: str, records: List[Dict]):
        """Insert or replace several records in one transaction"""
        latest = {str(record['id']): record for record in records}
        with self._storage_errors():
            for record in latest.values():
                row = self._row(table, record['id'])
                if row is None:
                    row = LocalRecord(table_name=table, record_id=str(record['id']))
                    db.session.add(row)
                row.data = record
            db.session.commit()

    def remove(self, table: str, record_id) -> bool:
        """Delete a record if present"""
        with self._storage_errors():
            row = self._row(table, record_id)
            if row is None:
                return False
            db.session.delete(row)
            db.session.commit()
        return True

    def clear(self, table: str) -> int:
        """Delete every record of a table"""
        check_table(table)
        with self._storage_errors():
            removed = LocalRecord.query.filter_by(table_name=table).delete()
            db.session.commit()
        return removed

    def count(self, table: str) -> int:
        check_table(table)
        with self._storage_errors():
            return LocalRecord.query.filter_by(table_name=table).count()
