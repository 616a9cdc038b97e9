"""
Tests for push notification payloads and click handling.
"""

import pytest

from sandwich_pos.services.notification_service import NotificationService


@pytest.fixture
def notifications(fresh_app):
    fresh_app.config['APP_BASE_URL'] = 'http://localhost:5001'
    return NotificationService(fresh_app)


class TestPushNotification:

    def test_default_body(self, notifications):
        notification = notifications.build_push_notification()
        assert notification['title'] == 'Sandwich POS'
        assert notification['options']['body'] == 'New notification from Sandwich POS'

    def test_payload_shape(self, notifications):
        options = notifications.build_push_notification('Bread is running low')['options']
        assert options['body'] == 'Bread is running low'
        assert options['icon'] == '/images/icons/icon-192x192.png'
        assert options['badge'] == '/images/icons/icon-72x72.png'
        assert options['vibrate'] == [200, 100, 200]
        assert options['data'] == {'url': '/'}
        assert [a['action'] for a in options['actions']] == ['open', 'close']


class TestNotificationClick:
    """Focus-or-open behavior."""

    def test_close_does_nothing(self, notifications):
        assert notifications.handle_notification_click('close', ['http://localhost:5001/']) is None

    def test_focuses_open_view_of_app(self, notifications):
        result = notifications.handle_notification_click('open', [
            'https://example.com/',
            'http://localhost:5001/reports',
        ])
        assert result == {'action': 'focus', 'url': 'http://localhost:5001/reports'}

    def test_opens_root_without_open_view(self, notifications):
        result = notifications.handle_notification_click(None, ['https://example.com/'])
        assert result == {'action': 'open', 'url': '/'}

    def test_body_click_behaves_like_open(self, notifications):
        assert notifications.handle_notification_click('', [])['action'] == 'open'
