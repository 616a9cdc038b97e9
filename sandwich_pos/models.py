"""
Database Models
SQLAlchemy ORM models for the on-device store: table records, the offline
write queue and the versioned response caches
"""

import json
from datetime import datetime, timezone
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()


def utcnow():
    """Naive UTC timestamp, the form SQLite compares reliably"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class LocalRecord(db.Model):
    """One record of a logical table, keyed by (table, id)"""
    __tablename__ = 'local_records'

    table_name = db.Column(db.String(64), primary_key=True)
    record_id = db.Column(db.String(128), primary_key=True)
    data_json = db.Column(db.Text, nullable=False)  # JSON serialized record

    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    @property
    def data(self):
        return json.loads(self.data_json)

    @data.setter
    def data(self, value):
        self.data_json = json.dumps(value)

    def __repr__(self):
        return f'<LocalRecord {self.table_name}/{self.record_id}>'


class PendingOperation(db.Model):
    """Queue of mutations that failed to reach the remote backend"""
    __tablename__ = 'pending_operations'

    id = db.Column(db.Integer, primary_key=True)  # FIFO order
    operation = db.Column(db.String(16), nullable=False)  # create, update, delete
    table_name = db.Column(db.String(64), nullable=False)
    record_id = db.Column(db.String(128), index=True)
    payload_json = db.Column(db.Text)  # JSON serialized data

    attempts = db.Column(db.Integer, default=0, nullable=False)
    last_error = db.Column(db.Text)

    created_at = db.Column(db.DateTime, default=utcnow, index=True)
    last_attempt_at = db.Column(db.DateTime)

    @property
    def payload(self):
        return json.loads(self.payload_json) if self.payload_json else {}

    def to_dict(self):
        return {
            'id': self.id,
            'operation': self.operation,
            'table': self.table_name,
            'record_id': self.record_id,
            'payload': self.payload,
            'attempts': self.attempts,
            'last_error': self.last_error,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f'<PendingOperation {self.operation} {self.table_name}/{self.record_id}>'


class CacheStore(db.Model):
    """A named, versioned response cache"""
    __tablename__ = 'cache_stores'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), unique=True, nullable=False, index=True)
    created_at = db.Column(db.DateTime, default=utcnow)

    def __repr__(self):
        return f'<CacheStore {self.name}>'


class CacheEntry(db.Model):
    """A stored response inside a cache store"""
    __tablename__ = 'cache_entries'
    __table_args__ = (
        db.UniqueConstraint('store_id', 'request_key', name='uq_cache_entry_key'),
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey('cache_stores.id'), nullable=False)
    request_key = db.Column(db.String(1024), nullable=False, index=True)

    status_code = db.Column(db.Integer, nullable=False, default=200)
    headers_json = db.Column(db.Text)
    body = db.Column(db.LargeBinary)

    stored_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    @property
    def headers(self):
        return json.loads(self.headers_json) if self.headers_json else {}

    def __repr__(self):
        return f'<CacheEntry {self.request_key}>'
