"""
Offline Write Queue
Durable FIFO of mutations waiting to be replayed against the remote backend
"""

import json
import logging

from sqlalchemy.exc import SQLAlchemyError

from sandwich_pos.errors import StorageUnavailableError
from sandwich_pos.models import db, PendingOperation, utcnow

logger = logging.getLogger(__name__)

OPERATIONS = ('create', 'update', 'delete')


class OfflineQueue:
    """Append-only queue persisted in the local database"""

    def _commit(self, action):
        try:
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error(f"Offline queue {action} failed: {e}")
            raise StorageUnavailableError(f"Offline queue {action} failed: {e}") from e

    def enqueue(self, operation, table, record_id, payload=None):
        """
        Append a pending operation

        The commit happens before returning; a storage failure raises instead
        of dropping the operation.

        Args:
            operation: create, update or delete
            table: Target table
            record_id: Target record id
            payload: Record (create) or patch (update)

        Returns:
            PendingOperation: The queued entry
        """
        if operation not in OPERATIONS:
            raise ValueError(f"Unknown operation: {operation}")

        entry = PendingOperation(
            operation=operation,
            table_name=table,
            record_id=str(record_id) if record_id is not None else None,
            payload_json=json.dumps(payload) if payload is not None else None,
        )
        try:
            db.session.add(entry)
        except SQLAlchemyError as e:
            raise StorageUnavailableError(f"Offline queue enqueue failed: {e}") from e
        self._commit('enqueue')
        logger.info(f"Queued {operation} on {table}/{record_id} for sync")
        return entry

    def pending(self):
        """All queued operations in submission order"""
        try:
            return PendingOperation.query.order_by(PendingOperation.id).all()
        except SQLAlchemyError as e:
            raise StorageUnavailableError(f"Offline queue unavailable: {e}") from e

    def has_pending(self, table, record_id):
        """Whether a record still has operations waiting for replay"""
        try:
            return PendingOperation.query.filter_by(
                table_name=table, record_id=str(record_id)
            ).first() is not None
        except SQLAlchemyError as e:
            raise StorageUnavailableError(f"Offline queue unavailable: {e}") from e

    def pending_for(self, table, record_id):
        """Queued operations of one record, oldest first"""
        try:
            return PendingOperation.query.filter_by(
                table_name=table, record_id=str(record_id)
            ).order_by(PendingOperation.id).all()
        except SQLAlchemyError as e:
            raise StorageUnavailableError(f"Offline queue unavailable: {e}") from e

    def pending_ids(self, table):
        """Ids of the records of a table with operations waiting for replay"""
        try:
            rows = PendingOperation.query.with_entities(PendingOperation.record_id).filter_by(
                table_name=table
            ).distinct().all()
        except SQLAlchemyError as e:
            raise StorageUnavailableError(f"Offline queue unavailable: {e}") from e
        return {row.record_id for row in rows}

    def remove(self, entry):
        """Drop an operation after a successful replay"""
        db.session.delete(entry)
        self._commit('remove')

    def discard(self, entry_id):
        """
        Drop an operation by hand, e.g. one the backend keeps rejecting

        Returns:
            bool: False when no such operation is queued
        """
        try:
            entry = db.session.get(PendingOperation, entry_id)
        except SQLAlchemyError as e:
            raise StorageUnavailableError(f"Offline queue unavailable: {e}") from e
        if entry is None:
            return False
        logger.warning(
            f"Discarding queued {entry.operation} on {entry.table_name}/{entry.record_id} "
            f"after {entry.attempts} attempts"
        )
        self.remove(entry)
        return True

    def mark_failed(self, entry, error):
        """Keep an operation in place, recording the failed attempt"""
        entry.attempts = (entry.attempts or 0) + 1
        entry.last_error = str(error)[:2000]
        entry.last_attempt_at = utcnow()
        self._commit('update')

    def count(self):
        try:
            return PendingOperation.query.count()
        except SQLAlchemyError as e:
            raise StorageUnavailableError(f"Offline queue unavailable: {e}") from e

    def status(self):
        """Summary for the sync status endpoint"""
        entries = self.pending()
        return {
            'pending': len(entries),
            'retrying': sum(1 for entry in entries if entry.attempts),
            'oldest': entries[0].created_at.isoformat() if entries else None,
        }
