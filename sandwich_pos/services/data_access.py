"""
Data Access Service
Single entry point for every data operation of the POS.

The facade talks to one primary backend chosen at startup:
- remote: the Supabase service, with the local store as offline mirror and
  failed writes parked in the offline queue until the reconciler replays them
- local: the on-device store only; failures are terminal

Domain helpers (sales, inventory, expenses, dashboard, backup) are built
exclusively on create / read / update / delete.
"""

import logging
import threading
import time
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

from flask import current_app

from sandwich_pos.errors import (
    BackendRejectedError, DataAccessError, NetworkUnavailableError, StorageUnavailableError
)
from sandwich_pos.services.change_feed import ChangeFeed
from sandwich_pos.services.local_store import LocalStore
from sandwich_pos.services.offline_queue import OfflineQueue
from sandwich_pos.services.remote_store import RemoteStore
from sandwich_pos.utils.records import (
    TABLES, Record, SyncStatus, check_table, date_range, generate_id, generate_uuid, now_iso,
    today_iso
)
from sandwich_pos.utils.seed_data import default_data

logger = logging.getLogger(__name__)

EXPORT_FORMAT_VERSION = '1.0'

# Fields a patch may not change
PROTECTED_FIELDS = ('id', 'created_at')


class DataAccess:
    """Backend-agnostic data access facade"""

    def __init__(self, backend, local_store: Optional[LocalStore] = None,
                 queue: Optional[OfflineQueue] = None,
                 change_feed: Optional[ChangeFeed] = None,
                 low_stock_threshold: int = 5,
                 retry_interval: float = 30,
                 auto_replay: bool = True):
        self.backend = backend
        self.local_store = local_store
        self.queue = queue
        self.change_feed = change_feed or ChangeFeed()
        self.low_stock_threshold = low_stock_threshold
        # Seconds after a network failure before calls try the remote backend again
        self.retry_interval = retry_interval
        self.auto_replay = auto_replay
        self.is_online = True
        self.is_ready = False
        self._offline_since = None
        self._replay_lock = threading.Lock()

    # ==================== LIFECYCLE ====================

    @property
    def is_remote(self):
        return self.backend.kind == 'remote'

    def init(self):
        """
        Open local storage

        A local store that cannot be opened is fatal for the local backend;
        the remote backend keeps running without an offline mirror.
        """
        if self.local_store is not None:
            try:
                self.local_store.open()
            except StorageUnavailableError:
                if not self.is_remote:
                    raise
                logger.warning("Local store unavailable, running remote-only without offline mirror")
                self.local_store = None
        self.is_ready = True
        logger.info(f"Data access ready ({self.backend.kind} backend)")

    def close(self):
        if self.is_remote:
            self.backend.close()
        if self.local_store is not None:
            self.local_store.close()
        self.change_feed.clear()
        self.is_ready = False

    def subscribe(self, callback: Callable[[str, str, Dict], None], table: Optional[str] = None):
        """Observe data changes; returns an unsubscribe function"""
        return self.change_feed.subscribe(callback, table)

    def mark_offline(self):
        if self.is_online:
            logger.warning("Remote backend unreachable, switching to offline mode")
        self.is_online = False
        self._offline_since = time.monotonic()

    def mark_online(self):
        """Record reachability; returns True on an offline -> online transition"""
        was_offline = not self.is_online
        self.is_online = True
        self._offline_since = None
        return was_offline

    def _remote_available(self):
        """
        Whether a call should go to the remote backend

        While offline, calls are served from the queue and the mirror until
        retry_interval has passed since the last network failure.
        """
        if self.is_online or self._offline_since is None:
            return True
        return time.monotonic() - self._offline_since >= self.retry_interval

    # ==================== INTERNALS ====================

    def _mirror(self, action, *args):
        """Apply an action to the offline mirror, tolerating its absence"""
        if not self.is_remote or self.local_store is None:
            return None
        try:
            return getattr(self.local_store, action)(*args)
        except StorageUnavailableError as e:
            logger.warning(f"Offline mirror {action} failed: {e}")
            return None

    def _has_queued(self, table, record_id):
        return self.queue is not None and self.queue.has_pending(table, record_id)

    def _stored(self, table, operation, data):
        record = Record(data, SyncStatus.SYNCED)
        self.change_feed.on_data_change(table, operation, record)
        return record

    def _queue_write(self, operation, table, record_id, payload, error=None):
        """Park a write in the offline queue and return its best-effort local result"""
        if self.queue is None:
            raise error or NetworkUnavailableError("Remote backend unreachable")

        self.queue.enqueue(operation, table, record_id, payload)

        if operation == 'create':
            local = dict(payload)
            self._mirror('put', table, local)
        elif operation == 'update':
            existing = self._mirror('get', table, record_id)
            local = {**(existing or {'id': record_id}), **payload}
            if existing is not None:
                self._mirror('put', table, local)
        else:
            local = self._mirror('get', table, record_id) or {'id': record_id}
            self._mirror('remove', table, record_id)

        record = Record(local, SyncStatus.QUEUED)
        self.change_feed.on_data_change(table, operation, record)
        return record

    def _remote_write(self, operation, table, record_id, payload, send):
        """
        Run a write against the remote backend

        A record with queued operations first has the queue replayed so the
        new write lands after them. If the backend still holds one of them
        back after a reachable pass, it was rejected, and the new write is
        refused with that rejection instead of being parked behind it.

        Returns:
            tuple: (saved row or None, queued Record or None)
        """
        if not self._remote_available():
            return None, self._queue_write(operation, table, record_id, payload)

        if self._has_queued(table, record_id):
            if not self.auto_replay:
                return None, self._queue_write(operation, table, record_id, payload)
            self.replay_queue()
            if self._has_queued(table, record_id):
                if not self.is_online:
                    return None, self._queue_write(operation, table, record_id, payload)
                blocked = self.queue.pending_for(table, record_id)[0]
                raise BackendRejectedError(
                    f"Queued {blocked.operation} on {table}/{record_id} was rejected: {blocked.last_error}"
                )

        try:
            saved = send()
        except NetworkUnavailableError as e:
            self.mark_offline()
            return None, self._queue_write(operation, table, record_id, payload, error=e)
        self.mark_online()
        return saved, None

    def _cached_read(self, table, filters, error=None):
        """Serve a read from the offline mirror, tagged as cached"""
        if self.local_store is None:
            raise error or NetworkUnavailableError("Remote backend unreachable")
        try:
            cached = self.local_store.read(table, filters)
        except StorageUnavailableError:
            if error is not None:
                raise error
            raise
        logger.info(f"Serving {len(cached)} {table} records from offline mirror")
        return [Record(row, SyncStatus.CACHED) for row in cached]

    # ==================== CRUD ====================

    def create(self, table: str, data: Dict) -> Record:
        """
        Create a record

        The id is generated client side when missing so a queued create
        replays with the same key.
        """
        check_table(table)
        record = dict(data)
        if not record.get('id'):
            record['id'] = generate_uuid() if self.is_remote else generate_id()
        timestamp = now_iso()
        record['created_at'] = record.get('created_at') or timestamp
        record['updated_at'] = timestamp

        if not self.is_remote:
            return self._stored(table, 'create', self.backend.create(table, record))

        saved, queued = self._remote_write(
            'create', table, record['id'], record, lambda: self.backend.create(table, record)
        )
        if queued is not None:
            return queued

        self._mirror('put', table, saved)
        return self._stored(table, 'create', saved)

    def read(self, table: str, filters: Optional[Dict] = None) -> List[Record]:
        """
        Read records matching the filters

        A remote read that cannot reach the network is served from the
        offline mirror, tagged as cached. While offline the mirror answers
        directly until the retry interval has passed.
        """
        check_table(table)
        if not self.is_remote:
            return [Record(row) for row in self.backend.read(table, filters)]

        if not self._remote_available() and self.local_store is not None:
            return self._cached_read(table, filters)

        try:
            rows = self.backend.read(table, filters)
        except NetworkUnavailableError as e:
            self.mark_offline()
            return self._cached_read(table, filters, error=e)
        self.mark_online()

        # Rows with queued local changes keep their local version in the mirror
        pending = self.queue.pending_ids(table) if self.queue is not None else set()
        self._mirror('put_many', table, [row for row in rows if str(row.get('id')) not in pending])
        return [Record(row) for row in rows]

    def find_by_id(self, table: str, record_id) -> Optional[Record]:
        rows = self.read(table, {'where': {'id': record_id}, 'limit': 1})
        return rows[0] if rows else None

    def update(self, table: str, record_id, patch: Dict) -> Record:
        """Merge a patch into a record; a missing id raises NotFoundError"""
        check_table(table)
        changes = {k: v for k, v in patch.items() if k not in PROTECTED_FIELDS}
        changes['updated_at'] = now_iso()

        if not self.is_remote:
            return self._stored(table, 'update', self.backend.update(table, record_id, changes))

        saved, queued = self._remote_write(
            'update', table, record_id, changes, lambda: self.backend.update(table, record_id, changes)
        )
        if queued is not None:
            return queued

        self._mirror('put', table, saved)
        return self._stored(table, 'update', saved)

    def delete(self, table: str, record_id) -> Record:
        """Delete a record and return it; a missing id raises NotFoundError"""
        check_table(table)

        if not self.is_remote:
            return self._stored(table, 'delete', self.backend.delete(table, record_id))

        deleted, queued = self._remote_write(
            'delete', table, record_id, None, lambda: self.backend.delete(table, record_id)
        )
        if queued is not None:
            return queued

        self._mirror('remove', table, record_id)
        return self._stored(table, 'delete', deleted)

    def replay(self, entry) -> Record:
        """
        Send a queued operation to the remote backend

        Creates are sent as upserts keyed by the locally generated id, so a
        replay interrupted after the server stored the row does not duplicate it.
        """
        if not self.is_remote:
            raise BackendRejectedError("Queued operations can only be replayed against the remote backend")

        table = entry.table_name
        if entry.operation == 'create':
            saved = self.backend.create(table, entry.payload, upsert=True)
            self._mirror('put', table, saved)
        elif entry.operation == 'update':
            saved = self.backend.update(table, entry.record_id, entry.payload)
            self._mirror('put', table, saved)
        else:
            saved = self.backend.delete(table, entry.record_id)
            self._mirror('remove', table, entry.record_id)

        logger.info(f"Replayed {entry.operation} on {table}/{entry.record_id}")
        return self._stored(table, entry.operation, saved)

    def replay_queue(self) -> Dict:
        """
        Replay every queued operation in submission order

        A replay that cannot reach the network ends the pass; the failed
        operation and everything after it stay queued in order. A rejected
        operation stays queued with its attempt recorded and the pass moves on.
        One pass runs at a time.

        Returns:
            dict: Counts of synced, failed and remaining operations
        """
        summary = {'synced': 0, 'failed': 0, 'remaining': 0}
        if self.queue is None:
            return summary

        with self._replay_lock:
            pending_items = self.queue.pending()
            if not pending_items:
                logger.debug("No pending items to sync")
                return summary

            logger.info(f"Processing {len(pending_items)} pending sync items")

            for item in pending_items:
                try:
                    self.replay(item)
                except NetworkUnavailableError as e:
                    self.queue.mark_failed(item, e)
                    summary['failed'] += 1
                    self.mark_offline()
                    logger.warning(f"Sync interrupted at item {item.id}: {e}")
                    break
                except DataAccessError as e:
                    self.queue.mark_failed(item, e)
                    self.mark_online()
                    summary['failed'] += 1
                    logger.error(f"Error processing sync item {item.id}: {e}")
                    continue

                self.queue.remove(item)
                self.mark_online()
                summary['synced'] += 1

            summary['remaining'] = self.queue.count()

        return summary

    # ==================== BUSINESS QUERIES ====================

    def get_sales_data(self, start_date: Optional[str] = None, end_date: Optional[str] = None):
        """Sales created between two ISO dates (inclusive)"""
        conditions = date_range(start_date, end_date)
        filters = {'where': {'created_at': conditions}} if conditions else None
        return self.read('sales', filters)

    def get_inventory_items(self):
        return self.read('ingredients', {'order_by': {'field': 'name', 'direction': 'asc'}})

    def get_menu_items(self):
        return self.read('menu_items', {'order_by': {'field': 'name', 'direction': 'asc'}})

    def get_low_stock_items(self):
        """Ingredients at or below their minimum stock level"""
        low_stock = []
        for ingredient in self.read('ingredients'):
            minimum = ingredient.get('minimum_stock')
            if minimum is None:
                minimum = self.low_stock_threshold
            if (ingredient.get('quantity') or 0) <= minimum:
                low_stock.append(ingredient)
        return low_stock

    def get_daily_sales_total(self, day: Optional[str] = None) -> float:
        """Sum of sale totals for one day (YYYY-MM-DD, default today)"""
        day = day or today_iso()
        sales = self.read('sales', {'where': {'created_at': date_range(day, day)}})
        return round(sum(float(sale.get('total') or 0) for sale in sales), 2)

    def get_top_selling_items(self, limit: int = 5) -> List[Dict]:
        """Menu items ranked by quantity sold"""
        stats = defaultdict(lambda: {'quantity_sold': 0, 'total_revenue': 0.0})
        for item in self.read('sale_items'):
            entry = stats[item.get('menu_item_id')]
            entry['quantity_sold'] += item.get('quantity') or 0
            entry['total_revenue'] += float(item.get('subtotal') or 0)

        menu_items = {item['id']: item for item in self.get_menu_items()}
        ranked = sorted(stats.items(), key=lambda pair: pair[1]['quantity_sold'], reverse=True)

        top_items = []
        for menu_item_id, entry in ranked[:limit]:
            menu_item = menu_items.get(menu_item_id) or {}
            top_items.append({
                'menu_item_id': menu_item_id,
                'quantity_sold': entry['quantity_sold'],
                'total_revenue': round(entry['total_revenue'], 2),
                'name': menu_item.get('name', 'Unknown'),
                'price': menu_item.get('price', 0),
            })
        return top_items

    def get_dashboard_data(self) -> Dict:
        """Headline numbers for the dashboard; zeroed when data is unavailable"""
        try:
            today = datetime.now(timezone.utc).date()
            week_start = today - timedelta(days=(today.weekday() + 1) % 7)
            week_sales = self.get_sales_data(week_start.isoformat(), today.isoformat())
            low_stock_items = self.get_low_stock_items()

            return {
                'today_sales': self.get_daily_sales_total(today.isoformat()),
                'week_sales': round(sum(float(s.get('total') or 0) for s in week_sales), 2),
                'sales_count': len(week_sales),
                'low_stock_count': len(low_stock_items),
                'top_selling_items': self.get_top_selling_items(3),
                'low_stock_items': low_stock_items[:5],
            }
        except DataAccessError as e:
            logger.error(f"Error getting dashboard data: {e}")
            return {
                'today_sales': 0,
                'week_sales': 0,
                'sales_count': 0,
                'low_stock_count': 0,
                'top_selling_items': [],
                'low_stock_items': [],
            }

    # ==================== BUSINESS OPERATIONS ====================

    def record_sale_with_inventory_deduction(self, sale: Dict) -> Record:
        """
        Record a sale, its line items and the ingredient consumption

        Steps run in order and are not rolled back: a failure after the sale
        is created leaves the earlier records in place and propagates.

        Args:
            sale: Sale fields plus 'items', each with menu_item_id, quantity
                and unit_price (subtotal optional)

        Returns:
            Record: The sale with its created 'items'; queued when any part
            of it is waiting for sync
        """
        lines = []
        for item in sale.get('items') or []:
            line = dict(item)
            line['quantity'] = line.get('quantity', 1)
            if line.get('subtotal') is None:
                line['subtotal'] = round(float(line.get('unit_price') or 0) * line['quantity'], 2)
            lines.append(line)

        sale_fields = {k: v for k, v in sale.items() if k != 'items'}
        if sale_fields.get('total') is None:
            sale_fields['total'] = round(sum(line['subtotal'] for line in lines), 2)

        created_sale = self.create('sales', sale_fields)
        statuses = [created_sale.sync_status]

        sale_items = []
        for line in lines:
            line['sale_id'] = created_sale['id']
            sale_item = self.create('sale_items', line)
            statuses.append(sale_item.sync_status)
            sale_items.append(dict(sale_item))
            statuses.extend(self._deduct_inventory(line['menu_item_id'], line['quantity'], created_sale['id']))

        status = SyncStatus.QUEUED if SyncStatus.QUEUED in statuses else SyncStatus.SYNCED
        result = Record(created_sale, status)
        result['items'] = sale_items
        logger.info(f"Sale recorded: {created_sale['id']} ({status.value})")
        return result

    def _deduct_inventory(self, menu_item_id, quantity_sold, sale_id):
        """Consume recipe ingredients for a sold menu item, never below zero"""
        statuses = []
        recipes = self.read('recipes', {'where': {'menu_item_id': menu_item_id}})
        for recipe in recipes:
            ingredient = self.find_by_id('ingredients', recipe['ingredient_id'])
            if ingredient is None:
                logger.warning(f"Recipe {recipe['id']} references missing ingredient {recipe['ingredient_id']}")
                continue

            required = (recipe.get('quantity') or 0) * quantity_sold
            remaining = (ingredient.get('quantity') or 0) - required
            if remaining < 0:
                logger.warning(
                    f"Oversold {ingredient.get('name', ingredient['id'])}: "
                    f"needed {required}, had {ingredient.get('quantity')}; clamping to 0"
                )

            updated = self.update('ingredients', ingredient['id'], {'quantity': max(0, remaining)})
            usage = self.create('ingredient_usage', {
                'ingredient_id': ingredient['id'],
                'quantity': required,
                'type': 'sale',
                'reference_id': sale_id,
                'date': today_iso(),
            })
            statuses.extend([updated.sync_status, usage.sync_status])
        return statuses

    def record_expense(self, expense: Dict) -> Record:
        """Record an expense, dated today unless given"""
        record = {'date': today_iso(), **expense}
        created = self.create('expenses', record)
        logger.info(f"Expense recorded: {created['id']}")
        return created

    def seed_default_data(self, seed) -> bool:
        """
        Insert first-run data unless the store already holds menu categories

        Args:
            seed: (table, records) pairs in insertion order

        Returns:
            bool: True when data was inserted
        """
        if self.read('menu_categories', {'limit': 1}):
            logger.info("Database already contains data, skipping seed")
            return False

        logger.info("Seeding default data...")
        for table, records in seed:
            for record in records:
                self.create(table, record)
        logger.info("Default data seeded successfully")
        return True

    # ==================== EXPORT / IMPORT ====================

    def export_data(self) -> Dict:
        """One array per table plus export timestamp and format version"""
        data = {table: [dict(record) for record in self.read(table)] for table in TABLES}
        data['export_date'] = now_iso()
        data['version'] = EXPORT_FORMAT_VERSION
        return data

    def import_data(self, data: Dict) -> Dict:
        """
        Replace the local store contents with an export document

        Every known table is cleared, then the provided arrays are inserted
        verbatim (no merge).

        Returns:
            dict: Number of records imported per table
        """
        if self.local_store is None:
            raise StorageUnavailableError("No local store to import into")

        for table in TABLES:
            for row in data.get(table) or []:
                if not isinstance(row, dict) or not row.get('id'):
                    raise BackendRejectedError(f"Import row without id in {table}")

        if self.is_remote:
            logger.warning("Importing into the offline mirror; remote data is not changed")

        for table in TABLES:
            self.local_store.clear(table)

        counts = {}
        for table in TABLES:
            rows = data.get(table) or []
            if rows:
                self.local_store.put_many(table, rows)
            counts[table] = len(rows)

        logger.info(f"Data imported successfully: {sum(counts.values())} records")
        return counts


def build_data_access(app, remote_session=None):
    """
    Construct the facade selected by DATA_BACKEND

    Must run inside an application context.
    """
    cfg = app.config
    backend_kind = cfg.get('DATA_BACKEND', 'local')
    local_store = LocalStore()

    if backend_kind == 'remote':
        backend = RemoteStore.from_config(cfg, session=remote_session)
        queue = OfflineQueue()
    elif backend_kind == 'local':
        backend = local_store
        queue = None
    else:
        raise ValueError(f"Unknown DATA_BACKEND: {backend_kind}")

    data_access = DataAccess(
        backend,
        local_store=local_store,
        queue=queue,
        low_stock_threshold=cfg.get('LOW_STOCK_THRESHOLD', 5),
        retry_interval=cfg.get('CONNECTIVITY_CHECK_SECONDS', 30),
        auto_replay=bool(cfg.get('ENABLE_CLOUD_SYNC')),
    )
    data_access.init()

    if backend_kind == 'local' and cfg.get('SEED_DEFAULT_DATA'):
        data_access.seed_default_data(default_data(cfg))

    return data_access


def get_data_access() -> DataAccess:
    """The facade of the current application"""
    return current_app.extensions['data_access']
