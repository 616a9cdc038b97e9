"""
Offline Cache Service
Versioned static/runtime response caches with install and activate phases,
per-request routing strategies and daily maintenance
"""

import json
import logging
from datetime import timedelta
from typing import Dict, List, Optional
from urllib.parse import urljoin, urlparse

import requests
from apscheduler.schedulers.background import BackgroundScheduler
from sqlalchemy.exc import SQLAlchemyError

from sandwich_pos.errors import CacheInstallError, NetworkUnavailableError, StorageUnavailableError
from sandwich_pos.models import db, CacheEntry, CacheStore, utcnow
from sandwich_pos.utils.context import app_context

logger = logging.getLogger(__name__)

CACHE_FIRST = 'cache-first'
NETWORK_FIRST = 'network-first'

APP_SHELL = '/index.html'


class CachedResponse:
    """A response as kept in a cache store"""

    def __init__(self, url, status_code=200, headers=None, content=b''):
        self.url = url
        self.status_code = status_code
        self.headers = dict(headers or {})
        self.content = content or b''

    @classmethod
    def from_requests(cls, response):
        return cls(response.url, response.status_code, dict(response.headers), response.content)

    @property
    def ok(self):
        return 200 <= self.status_code < 300

    @property
    def text(self):
        return self.content.decode('utf-8', errors='replace')

    def json(self):
        return json.loads(self.content)

    def __repr__(self):
        return f'<CachedResponse {self.status_code} {self.url}>'


class CacheStorage:
    """Named response stores persisted in the local database"""

    def _commit(self, action):
        try:
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error(f"Cache {action} failed: {e}")
            raise StorageUnavailableError(f"Cache {action} failed: {e}") from e

    def _find_store(self, name):
        try:
            return CacheStore.query.filter_by(name=name).first()
        except SQLAlchemyError as e:
            raise StorageUnavailableError(f"Cache storage unavailable: {e}") from e

    def open(self, name):
        """Get a store by name, creating it when missing"""
        store = self._find_store(name)
        if store is None:
            store = CacheStore(name=name)
            db.session.add(store)
            self._commit('open')
        return store

    def match(self, request_key, store_names: Optional[List[str]] = None) -> Optional[CachedResponse]:
        """
        Look up a response by request key

        Args:
            request_key: Absolute request URL
            store_names: Stores to search, in order (default: every store)

        Returns:
            CachedResponse or None
        """
        names = store_names if store_names is not None else self.store_names()
        for name in names:
            store = self._find_store(name)
            if store is None:
                continue
            entry = CacheEntry.query.filter_by(store_id=store.id, request_key=request_key).first()
            if entry is not None:
                return CachedResponse(entry.request_key, entry.status_code, entry.headers, entry.body)
        return None

    def _stage(self, store, request_key, response, stored_at=None):
        entry = CacheEntry.query.filter_by(store_id=store.id, request_key=request_key).first()
        if entry is None:
            entry = CacheEntry(store_id=store.id, request_key=request_key)
            db.session.add(entry)
        entry.status_code = response.status_code
        entry.headers_json = json.dumps(response.headers)
        entry.body = response.content
        entry.stored_at = stored_at or utcnow()

    def put(self, name, request_key, response, stored_at=None):
        """Store a response, replacing any previous one for the same key"""
        store = self.open(name)
        self._stage(store, request_key, response, stored_at)
        self._commit('put')

    def put_all(self, name, responses: Dict[str, CachedResponse]):
        """Store several responses in a single transaction"""
        store = self.open(name)
        try:
            for request_key, response in responses.items():
                self._stage(store, request_key, response)
        except SQLAlchemyError as e:
            db.session.rollback()
            raise StorageUnavailableError(f"Cache put failed: {e}") from e
        self._commit('put')

    def delete(self, name, request_key) -> bool:
        store = self._find_store(name)
        if store is None:
            return False
        deleted = CacheEntry.query.filter_by(store_id=store.id, request_key=request_key).delete()
        self._commit('delete')
        return deleted > 0

    def delete_older_than(self, name, cutoff) -> int:
        """Drop entries of a store written before the cutoff"""
        store = self._find_store(name)
        if store is None:
            return 0
        deleted = CacheEntry.query.filter(
            CacheEntry.store_id == store.id,
            CacheEntry.stored_at < cutoff,
        ).delete(synchronize_session=False)
        self._commit('maintenance')
        return deleted

    def keys(self, name) -> List[str]:
        store = self._find_store(name)
        if store is None:
            return []
        entries = CacheEntry.query.filter_by(store_id=store.id).order_by(CacheEntry.id).all()
        return [entry.request_key for entry in entries]

    def delete_store(self, name) -> bool:
        store = self._find_store(name)
        if store is None:
            return False
        CacheEntry.query.filter_by(store_id=store.id).delete()
        db.session.delete(store)
        self._commit('delete store')
        return True

    def store_names(self) -> List[str]:
        try:
            return [store.name for store in CacheStore.query.order_by(CacheStore.id).all()]
        except SQLAlchemyError as e:
            raise StorageUnavailableError(f"Cache storage unavailable: {e}") from e


class CacheService:
    """Offline request router over a static and a runtime cache"""

    def __init__(self, app, storage: Optional[CacheStorage] = None, session=None):
        self.app = app
        self.storage = storage or CacheStorage()
        self.session = session or requests.Session()
        self.scheduler = None

        version = app.config.get('CACHE_VERSION') or app.config.get('APP_VERSION')
        self.version = version
        self.cache_name = f"sandwich-pos-v{version}"
        self.static_cache = f"static-v{version}"
        self.runtime_cache = f"dynamic-v{version}"

        self.base_url = app.config.get('APP_BASE_URL', '').rstrip('/')
        self.static_files = list(app.config.get('STATIC_FILES') or [])
        self.remote_origin = self._origin(app.config.get('SUPABASE_URL') or '')

        self.state = 'parsed'
        self.skip_waiting_requested = False
        self.controlling = False

    @staticmethod
    def _origin(url):
        parsed = urlparse(url)
        if not parsed.scheme or not parsed.netloc:
            return None
        return f"{parsed.scheme}://{parsed.netloc}"

    def resolve(self, url):
        """Absolute request key for a possibly relative URL"""
        return urljoin(f"{self.base_url}/", url)

    @property
    def manifest_keys(self):
        return [self.resolve(url) for url in self.static_files]

    def _network(self, url, method='GET', **kwargs):
        timeout = self.app.config.get('REMOTE_TIMEOUT_SECONDS', 10)
        try:
            response = self.session.request(method, url, timeout=timeout, **kwargs)
        except requests.RequestException as e:
            raise NetworkUnavailableError(f"Network request failed for {url}: {e}") from e
        return CachedResponse.from_requests(response)

    # ==================== LIFECYCLE ====================

    def install(self):
        """
        Populate the static cache from the manifest

        Every manifest URL is fetched before anything is written; a single
        failure aborts the install and leaves existing stores untouched.
        """
        logger.info(f"Installing offline cache {self.static_cache}")
        fetched = {}
        for key in self.manifest_keys:
            try:
                response = self._network(key)
            except NetworkUnavailableError as e:
                logger.error(f"Cache install failed: {e}")
                raise CacheInstallError(str(e)) from e
            if not response.ok:
                logger.error(f"Cache install failed: {key} returned HTTP {response.status_code}")
                raise CacheInstallError(f"{key} returned HTTP {response.status_code}")
            fetched[key] = response

        with app_context(self.app):
            try:
                self.storage.put_all(self.static_cache, fetched)
            except StorageUnavailableError as e:
                raise CacheInstallError(str(e)) from e

        self.state = 'installed'
        logger.info(f"Offline cache installed: {len(fetched)} files")

        if self.skip_waiting_requested:
            self.activate()
        return len(fetched)

    def activate(self):
        """Remove caches of other versions and take control of all pages"""
        keep = {self.static_cache, self.runtime_cache}
        removed = []
        with app_context(self.app):
            for name in self.storage.store_names():
                if name not in keep:
                    self.storage.delete_store(name)
                    removed.append(name)
                    logger.info(f"Deleted old cache {name}")
            self.storage.open(self.runtime_cache)

        self.state = 'activated'
        self.controlling = True
        logger.info(f"Offline cache {self.cache_name} activated")
        return removed

    def handle_message(self, message: Dict) -> Optional[Dict]:
        """
        Handle a control message from a page

        Returns:
            dict or None: Reply payload for messages that expect one
        """
        message_type = (message or {}).get('type')
        if message_type == 'SKIP_WAITING':
            self.skip_waiting_requested = True
            if self.state == 'installed':
                self.activate()
            return {'state': self.state}
        if message_type == 'GET_VERSION':
            return {'version': self.cache_name}
        logger.debug(f"Ignoring cache message {message_type}")
        return None

    # ==================== ROUTING ====================

    def classify(self, url) -> str:
        key = self.resolve(url)
        parsed = urlparse(key)
        if key in self.manifest_keys or url in self.static_files:
            return CACHE_FIRST
        if self.remote_origin and key.startswith(self.remote_origin):
            return NETWORK_FIRST
        if parsed.path.startswith('/api/'):
            return NETWORK_FIRST
        return CACHE_FIRST

    def fetch(self, url, method='GET', destination=None) -> CachedResponse:
        """
        Answer a request the way the offline router would

        Args:
            url: Absolute or app-relative URL
            method: HTTP method; only GET requests touch the caches
            destination: Request destination, 'document' for page loads

        Returns:
            CachedResponse: From the network or a cache

        Raises:
            NetworkUnavailableError: Network failed and no cached answer exists
        """
        key = self.resolve(url)
        if method.upper() != 'GET':
            return self._network(key, method=method.upper())

        with app_context(self.app):
            if self.classify(url) == NETWORK_FIRST:
                return self._network_first(key)
            return self._cache_first(key, destination)

    def _store_runtime(self, key, response):
        if response.ok:
            self.storage.put(self.runtime_cache, key, response)

    def _cache_first(self, key, destination):
        stores = [self.static_cache, self.runtime_cache]
        cached = self.storage.match(key, stores)
        if cached is not None:
            return cached

        try:
            response = self._network(key)
        except NetworkUnavailableError:
            if destination == 'document':
                shell = self.storage.match(self.resolve(APP_SHELL), stores)
                if shell is not None:
                    logger.info(f"Offline, serving app shell for {key}")
                    return shell
            raise

        self._store_runtime(key, response)
        return response

    def _network_first(self, key):
        try:
            response = self._network(key)
        except NetworkUnavailableError:
            cached = self.storage.match(key, [self.runtime_cache])
            if cached is not None:
                logger.info(f"Network failed, serving cached {key}")
                return cached
            raise

        self._store_runtime(key, response)
        return response

    # ==================== MAINTENANCE ====================

    def perform_maintenance(self, now=None) -> int:
        """Delete runtime entries older than the retention window"""
        now = now or utcnow()
        retention_days = self.app.config.get('CACHE_RETENTION_DAYS', 7)
        cutoff = now - timedelta(days=retention_days)
        with app_context(self.app):
            removed = self.storage.delete_older_than(self.runtime_cache, cutoff)
        logger.info(f"Cache maintenance completed: {removed} old entries removed")
        return removed

    def status(self):
        with app_context(self.app):
            return {
                'version': self.cache_name,
                'state': self.state,
                'controlling': self.controlling,
                'static_entries': len(self.storage.keys(self.static_cache)),
                'runtime_entries': len(self.storage.keys(self.runtime_cache)),
            }

    def start_scheduler(self):
        """Start background scheduler for daily cache maintenance"""
        if self.scheduler:
            logger.warning("Cache maintenance scheduler already running")
            return

        self.scheduler = BackgroundScheduler()

        maintenance_time = self.app.config.get('CACHE_MAINTENANCE_TIME', '03:00')
        hour, minute = map(int, maintenance_time.split(':'))

        self.scheduler.add_job(
            func=self.perform_maintenance,
            trigger='cron',
            hour=hour,
            minute=minute,
            id='cache_maintenance'
        )

        self.scheduler.start()
        logger.info(f"Cache maintenance scheduler started. Daily at {maintenance_time}")

    def stop_scheduler(self):
        if self.scheduler:
            self.scheduler.shutdown()
            self.scheduler = None
            logger.info("Cache maintenance scheduler stopped")
