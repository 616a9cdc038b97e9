"""
Shared pytest fixtures and configuration for all tests.

Provides Flask application fixtures over an in-memory database, the local
and remote data access facades, and an in-memory stand-in for the remote
backend whose reachability and rejections tests can switch.
"""

import pytest
import sys
import os

# Add the project root to the path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sandwich_pos import create_app
from sandwich_pos.errors import BackendRejectedError, NetworkUnavailableError, NotFoundError
from sandwich_pos.models import db
from sandwich_pos.services.data_access import DataAccess
from sandwich_pos.services.local_store import LocalStore
from sandwich_pos.services.offline_queue import OfflineQueue
from sandwich_pos.services.sync_service import SyncService
from sandwich_pos.utils.records import apply_filters


class FakeRemoteBackend:
    """
    In-memory remote backend.

    - offline: every call raises NetworkUnavailableError
    - unreachable_tables: calls on these tables raise NetworkUnavailableError
    - rejections: (operation, table) pairs answered with BackendRejectedError
    """

    kind = 'remote'

    def __init__(self):
        self.tables = {}
        self.offline = False
        self.unreachable_tables = set()
        self.rejections = set()
        self.calls = []
        self.closed = False

    def _check(self, operation, table):
        self.calls.append((operation, table))
        if self.offline or table in self.unreachable_tables:
            raise NetworkUnavailableError("Remote backend unreachable")
        if (operation, table) in self.rejections:
            raise BackendRejectedError(f"{operation} on {table} rejected", status_code=400)

    def rows(self, table):
        return self.tables.setdefault(table, {})

    def ping(self):
        return not self.offline

    def read(self, table, filters=None):
        self._check('read', table)
        return apply_filters([dict(row) for row in self.rows(table).values()], filters)

    def get(self, table, record_id):
        self._check('read', table)
        row = self.rows(table).get(record_id)
        return dict(row) if row else None

    def create(self, table, record, upsert=False):
        self._check('create', table)
        rows = self.rows(table)
        if record['id'] in rows and not upsert:
            raise BackendRejectedError("duplicate key value violates unique constraint", status_code=409)
        rows[record['id']] = {**rows.get(record['id'], {}), **record}
        return dict(rows[record['id']])

    def update(self, table, record_id, patch):
        self._check('update', table)
        rows = self.rows(table)
        if record_id not in rows:
            raise NotFoundError(table, record_id)
        rows[record_id] = {**rows[record_id], **patch}
        return dict(rows[record_id])

    def delete(self, table, record_id):
        self._check('delete', table)
        rows = self.rows(table)
        if record_id not in rows:
            raise NotFoundError(table, record_id)
        return rows.pop(record_id)

    def close(self):
        self.closed = True


@pytest.fixture(scope='session')
def app_factory():
    """Factory fixture for creating test app instances."""
    def _create_app(config='testing', **overrides):
        settings = {
            'TESTING': True,
            'SERVER_NAME': 'localhost',
            'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        }
        settings.update(overrides)
        return create_app(config, config_overrides=settings)
    return _create_app


@pytest.fixture(scope='function')
def fresh_app(app_factory):
    """Create a fresh application for each test with clean database."""
    app = app_factory()

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(fresh_app):
    """Create a test client for each test."""
    return fresh_app.test_client()


@pytest.fixture(scope='function')
def db_session(fresh_app):
    """Provide a database session for testing."""
    yield db.session
    db.session.rollback()


@pytest.fixture(scope='function')
def data_access(fresh_app):
    """Facade over the local backend of the test app."""
    return fresh_app.extensions['data_access']


@pytest.fixture(scope='function')
def remote_backend():
    return FakeRemoteBackend()


@pytest.fixture(scope='function')
def remote_data_access(fresh_app, remote_backend):
    """
    Facade over the fake remote backend, with offline mirror and queue.

    Installed into the app so routes and services use it.
    """
    fresh_app.config['ENABLE_CLOUD_SYNC'] = True
    facade = DataAccess(
        remote_backend,
        local_store=LocalStore(),
        queue=OfflineQueue(),
        low_stock_threshold=fresh_app.config['LOW_STOCK_THRESHOLD'],
        # Contact the backend on every call so tests can flip reachability
        retry_interval=0,
    )
    facade.init()
    fresh_app.extensions['data_access'] = facade
    fresh_app.extensions['sync_service'] = SyncService(fresh_app, facade)
    return facade


@pytest.fixture(scope='function')
def sync_service(fresh_app, remote_data_access):
    return fresh_app.extensions['sync_service']


@pytest.fixture(scope='function')
def sandwich_menu(data_access):
    """
    One sandwich with a two-ingredient recipe.

    Bread: 5 slices, 2 per sandwich. Ham: 20 slices, 1 per sandwich.
    """
    data_access.create('ingredients', {
        'id': 'ing_bread', 'name': 'Bread', 'quantity': 5, 'minimum_stock': 2, 'cost_per_unit': 2.0
    })
    data_access.create('ingredients', {
        'id': 'ing_ham', 'name': 'Ham', 'quantity': 20, 'minimum_stock': 5, 'cost_per_unit': 5.0
    })
    data_access.create('menu_items', {
        'id': 'menu_ham', 'name': 'Ham Sandwich', 'price': 45.0, 'cost': 12.0
    })
    data_access.create('recipes', {
        'id': 'recipe_ham_bread', 'menu_item_id': 'menu_ham', 'ingredient_id': 'ing_bread', 'quantity': 2
    })
    data_access.create('recipes', {
        'id': 'recipe_ham_ham', 'menu_item_id': 'menu_ham', 'ingredient_id': 'ing_ham', 'quantity': 1
    })
    return data_access


def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "api: marks tests as API endpoint tests"
    )
    config.addinivalue_line(
        "markers", "offline: marks tests exercising offline behavior"
    )


def pytest_collection_modifyitems(config, items):
    """Automatically add markers based on test class/function names."""
    for item in items:
        if 'API' in item.nodeid or 'api' in item.nodeid.lower():
            item.add_marker(pytest.mark.api)

        keywords = ['offline', 'queue', 'sync', 'cache']
        if any(kw in item.name.lower() for kw in keywords):
            item.add_marker(pytest.mark.offline)
