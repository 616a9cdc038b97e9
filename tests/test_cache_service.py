"""
Tests for the offline cache: install/activate lifecycle, request routing
strategies, control messages and maintenance.
"""

from datetime import timedelta

import pytest
import requests
from unittest.mock import Mock, patch

from sandwich_pos.errors import CacheInstallError, NetworkUnavailableError
from sandwich_pos.models import utcnow
from sandwich_pos.services.cache_service import (
    CACHE_FIRST, NETWORK_FIRST, CachedResponse, CacheService, CacheStorage
)

BASE = 'http://localhost:5001'
STATIC_FILES = ['/', '/index.html', '/css/styles.css', 'https://cdn.example.com/chart.js']


class FakeSession:
    """requests.Session stand-in answering from a URL table"""

    def __init__(self):
        self.pages = {}
        self.offline = False
        self.failing = set()
        self.requests = []

    def request(self, method, url, timeout=None, **kwargs):
        self.requests.append((method, url))
        if self.offline or url in self.failing:
            raise requests.ConnectionError(f"cannot reach {url}")
        status_code, content = self.pages.get(url, (404, b'not found'))
        response = Mock()
        response.url = url
        response.status_code = status_code
        response.headers = {'Content-Type': 'text/plain'}
        response.content = content
        return response


@pytest.fixture
def session():
    session = FakeSession()
    for path in STATIC_FILES:
        url = path if path.startswith('http') else BASE + path
        session.pages[url] = (200, f"content of {path}".encode())
    return session


@pytest.fixture
def cache_service(fresh_app, session):
    fresh_app.config.update({
        'APP_BASE_URL': BASE,
        'STATIC_FILES': STATIC_FILES,
        'CACHE_VERSION': '2.0.0',
        'CACHE_RETENTION_DAYS': 7,
    })
    return CacheService(fresh_app, session=session)


@pytest.fixture
def active_cache(cache_service):
    cache_service.install()
    cache_service.activate()
    return cache_service


class TestCacheNames:

    def test_names_derive_from_version(self, cache_service):
        assert cache_service.static_cache == 'static-v2.0.0'
        assert cache_service.runtime_cache == 'dynamic-v2.0.0'
        assert cache_service.cache_name == 'sandwich-pos-v2.0.0'

    def test_get_version_message(self, cache_service):
        assert cache_service.handle_message({'type': 'GET_VERSION'}) == {'version': 'sandwich-pos-v2.0.0'}

    def test_unknown_message(self, cache_service):
        assert cache_service.handle_message({'type': 'PING'}) is None


class TestInstall:
    """Static cache installation."""

    def test_install_stores_every_manifest_url(self, cache_service):
        assert cache_service.install() == 4
        keys = cache_service.storage.keys('static-v2.0.0')
        assert sorted(keys) == sorted([
            BASE + '/', BASE + '/index.html', BASE + '/css/styles.css', 'https://cdn.example.com/chart.js'
        ])
        assert cache_service.state == 'installed'
        assert not cache_service.controlling

    def test_failed_fetch_writes_nothing(self, cache_service, session):
        session.failing.add('https://cdn.example.com/chart.js')
        with pytest.raises(CacheInstallError):
            cache_service.install()
        assert cache_service.storage.keys('static-v2.0.0') == []
        assert cache_service.state == 'parsed'

    def test_error_status_fails_install(self, cache_service, session):
        session.pages[BASE + '/css/styles.css'] = (500, b'oops')
        with pytest.raises(CacheInstallError):
            cache_service.install()
        assert cache_service.storage.keys('static-v2.0.0') == []

    def test_failed_install_keeps_previous_version(self, fresh_app, cache_service, session):
        cache_service.install()
        cache_service.activate()

        fresh_app.config['CACHE_VERSION'] = '2.1.0'
        upgraded = CacheService(fresh_app, session=session)
        session.offline = True
        with pytest.raises(CacheInstallError):
            upgraded.install()

        assert len(upgraded.storage.keys('static-v2.0.0')) == 4

    def test_skip_waiting_activates_after_install(self, cache_service):
        cache_service.handle_message({'type': 'SKIP_WAITING'})
        cache_service.install()
        assert cache_service.state == 'activated'
        assert cache_service.controlling

    def test_skip_waiting_while_installed(self, cache_service):
        cache_service.install()
        reply = cache_service.handle_message({'type': 'SKIP_WAITING'})
        assert reply == {'state': 'activated'}


class TestActivate:

    def test_activate_removes_other_versions(self, cache_service):
        storage = cache_service.storage
        storage.put('static-v1.0.0', BASE + '/', CachedResponse(BASE + '/', content=b'old'))
        storage.put('dynamic-v1.0.0', BASE + '/api/x', CachedResponse(BASE + '/api/x', content=b'old'))
        cache_service.install()

        removed = cache_service.activate()

        assert sorted(removed) == ['dynamic-v1.0.0', 'static-v1.0.0']
        assert sorted(storage.store_names()) == ['dynamic-v2.0.0', 'static-v2.0.0']
        assert cache_service.controlling


class TestRouting:
    """Request classification and strategies."""

    def test_classify(self, cache_service):
        assert cache_service.classify('/index.html') == CACHE_FIRST
        assert cache_service.classify('https://cdn.example.com/chart.js') == CACHE_FIRST
        assert cache_service.classify('https://test-project.supabase.co/rest/v1/sales') == NETWORK_FIRST
        assert cache_service.classify('/api/dashboard') == NETWORK_FIRST
        assert cache_service.classify('/images/logo.png') == CACHE_FIRST

    def test_warm_manifest_request_skips_network(self, active_cache, session):
        session.requests.clear()
        response = active_cache.fetch('/css/styles.css')
        assert response.content == b'content of /css/styles.css'
        assert session.requests == []

    def test_cache_first_miss_stores_in_runtime(self, active_cache, session):
        session.pages[BASE + '/images/logo.png'] = (200, b'png')
        active_cache.fetch('/images/logo.png')

        session.offline = True
        assert active_cache.fetch('/images/logo.png').content == b'png'
        assert BASE + '/images/logo.png' in active_cache.storage.keys('dynamic-v2.0.0')

    def test_error_responses_not_cached(self, active_cache):
        response = active_cache.fetch('/missing.png')
        assert response.status_code == 404
        assert active_cache.storage.keys('dynamic-v2.0.0') == []

    def test_offline_document_gets_app_shell(self, active_cache, session):
        session.offline = True
        response = active_cache.fetch('/reports', destination='document')
        assert response.content == b'content of /index.html'

    def test_offline_asset_miss_raises(self, active_cache, session):
        session.offline = True
        with pytest.raises(NetworkUnavailableError):
            active_cache.fetch('/images/logo.png')

    def test_network_first_prefers_network(self, active_cache, session):
        url = BASE + '/api/dashboard'
        session.pages[url] = (200, b'{"today_sales": 1}')
        active_cache.fetch('/api/dashboard')

        session.pages[url] = (200, b'{"today_sales": 2}')
        assert active_cache.fetch('/api/dashboard').json() == {'today_sales': 2}

    def test_network_first_falls_back_to_runtime_cache(self, active_cache, session):
        url = 'https://test-project.supabase.co/rest/v1/sales'
        session.pages[url] = (200, b'[{"id": "s1"}]')
        active_cache.fetch(url)

        session.offline = True
        assert active_cache.fetch(url).json() == [{'id': 's1'}]

    def test_network_first_without_cache_raises(self, active_cache, session):
        session.offline = True
        with pytest.raises(NetworkUnavailableError):
            active_cache.fetch('/api/sales')

    def test_non_get_passes_through(self, active_cache, session):
        session.pages[BASE + '/api/sales'] = (201, b'{}')
        response = active_cache.fetch('/api/sales', method='POST')
        assert response.status_code == 201
        assert session.requests[-1] == ('POST', BASE + '/api/sales')
        assert active_cache.storage.keys('dynamic-v2.0.0') == []


class TestMaintenance:
    """Daily removal of stale runtime entries."""

    def test_removes_entries_older_than_retention(self, active_cache):
        storage = active_cache.storage
        now = utcnow()
        storage.put('dynamic-v2.0.0', BASE + '/fresh', CachedResponse(BASE + '/fresh'),
                    stored_at=now - timedelta(days=6))
        storage.put('dynamic-v2.0.0', BASE + '/stale', CachedResponse(BASE + '/stale'),
                    stored_at=now - timedelta(days=8))

        assert active_cache.perform_maintenance(now) == 1
        assert storage.keys('dynamic-v2.0.0') == [BASE + '/fresh']

    def test_static_cache_untouched(self, active_cache):
        later = utcnow() + timedelta(days=30)
        active_cache.perform_maintenance(later)
        assert len(active_cache.storage.keys('static-v2.0.0')) == 4

    def test_scheduler_uses_daily_cron(self, cache_service):
        with patch('sandwich_pos.services.cache_service.BackgroundScheduler') as scheduler_cls:
            cache_service.start_scheduler()
            kwargs = scheduler_cls.return_value.add_job.call_args.kwargs
            assert kwargs['trigger'] == 'cron'
            assert (kwargs['hour'], kwargs['minute']) == (3, 0)
            cache_service.stop_scheduler()


class TestCacheStorage:

    def test_delete_entry(self, fresh_app):
        storage = CacheStorage()
        storage.put('runtime', 'http://x/a', CachedResponse('http://x/a', content=b'a'))
        assert storage.delete('runtime', 'http://x/a') is True
        assert storage.delete('runtime', 'http://x/a') is False
        assert storage.match('http://x/a') is None

    def test_put_replaces_entry(self, fresh_app):
        storage = CacheStorage()
        storage.put('runtime', 'http://x/a', CachedResponse('http://x/a', content=b'one'))
        storage.put('runtime', 'http://x/a', CachedResponse('http://x/a', content=b'two'))
        assert storage.keys('runtime') == ['http://x/a']
        assert storage.match('http://x/a').content == b'two'

    def test_delete_store(self, fresh_app):
        storage = CacheStorage()
        storage.put('old', 'http://x/a', CachedResponse('http://x/a'))
        assert storage.delete_store('old') is True
        assert storage.store_names() == []
        assert storage.delete_store('old') is False
