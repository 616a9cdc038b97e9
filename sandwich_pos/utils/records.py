"""
Record Utilities
Record type, table catalogue, id/timestamp generation and the filter
evaluation shared by both data backends
"""

import random
import string
import time
import uuid
from datetime import datetime, timezone
from enum import Enum

from sandwich_pos.errors import BackendRejectedError


# Logical tables and the secondary indexes of the on-device store
# (index name -> record field)
TABLE_INDEXES = {
    'menu_categories': {'name': 'name', 'display_order': 'display_order'},
    'menu_items': {'name': 'name', 'category': 'category', 'price': 'price',
                   'is_available': 'is_available'},
    'ingredients': {'name': 'name', 'quantity': 'quantity', 'category': 'category'},
    'recipes': {'menu_item_id': 'menu_item_id', 'ingredient_id': 'ingredient_id'},
    'ingredient_usage': {'ingredient_id': 'ingredient_id', 'date': 'date', 'type': 'type'},
    'sales': {'date': 'created_at', 'total': 'total', 'payment_method': 'payment_method'},
    'sale_items': {'sale_id': 'sale_id', 'menu_item_id': 'menu_item_id'},
    'expenses': {'date': 'date', 'type': 'type', 'amount': 'amount'},
    'customers': {'name': 'name', 'phone': 'phone', 'email': 'email'},
    'daily_operations': {'date': 'date', 'revenue': 'total_sales', 'profit': 'total_profit'},
    'settings': {'key': 'key'},
    'notifications': {'type': 'type', 'created_at': 'created_at'},
}

TABLES = tuple(TABLE_INDEXES)

# Unique indexes of the on-device store; records without the field are not indexed
UNIQUE_FIELDS = {
    'menu_categories': ('name',),
    'ingredients': ('name',),
    'customers': ('phone',),
}

OPERATORS = ('eq', 'gte', 'lte', 'like')

_BASE36 = string.digits + string.ascii_lowercase


class SyncStatus(str, Enum):
    """Outcome carried by every record the facade returns"""
    SYNCED = 'synced'   # stored by the primary backend
    QUEUED = 'queued'   # applied locally, waiting in the offline queue
    CACHED = 'cached'   # served from the local mirror while offline


class Record(dict):
    """A table row as a field -> value mapping, tagged with its sync state"""

    def __init__(self, data=None, sync_status=SyncStatus.SYNCED):
        super().__init__(data or {})
        self.sync_status = SyncStatus(sync_status)

    @property
    def is_synced(self):
        return self.sync_status == SyncStatus.SYNCED

    @property
    def is_queued(self):
        return self.sync_status == SyncStatus.QUEUED

    def __repr__(self):
        return f'<Record {self.get("id")} ({self.sync_status.value})>'


def check_table(table):
    """Reject table names outside the catalogue"""
    if table not in TABLE_INDEXES:
        raise BackendRejectedError(f"Unknown table: {table}")


def _to_base36(number):
    digits = []
    while True:
        number, remainder = divmod(number, 36)
        digits.append(_BASE36[remainder])
        if number == 0:
            break
    return ''.join(reversed(digits))


def generate_id():
    """
    Generate a client-side record id

    Format: base-36 millisecond timestamp followed by a random base-36 suffix.
    Used by the local backend only; the remote tables key on UUIDs
    (see generate_uuid).

    Returns:
        str: Record id
    """
    timestamp = _to_base36(int(time.time() * 1000))
    random_part = ''.join(random.choices(_BASE36, k=10))
    return f"{timestamp}{random_part}"


def generate_uuid():
    """
    Generate a client-side id for the remote backend

    A version 7 layout UUID: 48-bit millisecond timestamp followed by random
    bits. It fits the UUID primary keys of the remote tables and is assigned
    before the first attempt, so a queued create replays under the same key.

    Returns:
        str: Canonical UUID string
    """
    timestamp = int(time.time() * 1000) & ((1 << 48) - 1)
    value = (timestamp << 80) | random.getrandbits(80)
    value = (value & ~(0xF << 76)) | (0x7 << 76)
    value = (value & ~(0x3 << 62)) | (0x2 << 62)
    return str(uuid.UUID(int=value))


def now_iso():
    """Current UTC time as an ISO-8601 string"""
    return datetime.now(timezone.utc).isoformat()


def today_iso():
    """Today's date as YYYY-MM-DD"""
    return datetime.now(timezone.utc).date().isoformat()


def normalize_conditions(expected):
    """
    Turn a where-clause value into a list of (operator, value) pairs

    Accepts a plain value (equality), a condition dict
    ``{'operator': 'gte', 'value': 10}`` or a list of condition dicts.
    """
    items = expected if isinstance(expected, list) else [expected]
    conditions = []
    for item in items:
        if isinstance(item, dict) and 'operator' in item:
            operator = item['operator']
            if operator not in OPERATORS:
                raise BackendRejectedError(f"Unsupported filter operator: {operator}")
            conditions.append((operator, item.get('value')))
        else:
            conditions.append(('eq', item))
    return conditions


def date_range(start_date=None, end_date=None):
    """
    Condition list for a timestamp field between two ISO dates (inclusive)

    A date-only end bound is widened to the last instant of that UTC day.
    Only gte/lte are used so the remote service can compare timestamptz
    columns.
    """
    conditions = []
    if start_date:
        conditions.append({'operator': 'gte', 'value': start_date})
    if end_date:
        if len(end_date) == 10:
            end_date = f"{end_date}T23:59:59.999999+00:00"
        conditions.append({'operator': 'lte', 'value': end_date})
    return conditions


def _compare(actual, operator, value):
    if operator == 'eq':
        return actual == value
    if operator == 'like':
        return isinstance(actual, str) and str(value).lower() in actual.lower()
    if actual is None:
        return False
    try:
        if operator == 'gte':
            return actual >= value
        return actual <= value
    except TypeError:
        return False


def matches(record, where):
    """Check a record against every condition of a where clause"""
    for field, expected in (where or {}).items():
        for operator, value in normalize_conditions(expected):
            if not _compare(record.get(field), operator, value):
                return False
    return True


def _sorted(records, field, descending):
    present = [r for r in records if r.get(field) is not None]
    missing = [r for r in records if r.get(field) is None]
    try:
        present.sort(key=lambda r: r[field], reverse=descending)
    except TypeError:
        present.sort(key=lambda r: str(r[field]), reverse=descending)
    return present + missing


def apply_filters(records, filters=None):
    """
    Apply where / order_by / limit to an iterable of records

    Args:
        records: Iterable of dicts
        filters: Dict with optional 'where', 'order_by' and 'limit' keys

    Returns:
        list: Matching records
    """
    filters = filters or {}
    results = [r for r in records if matches(r, filters.get('where'))]

    order_by = filters.get('order_by')
    if order_by:
        results = _sorted(results, order_by['field'],
                          order_by.get('direction', 'asc') == 'desc')

    limit = filters.get('limit')
    if limit:
        results = results[:int(limit)]

    return results
