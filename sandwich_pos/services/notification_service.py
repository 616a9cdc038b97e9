"""
Notification Service
Push notification payloads and notification click handling for the POS pages
"""

import logging
from typing import Dict, Iterable, Optional
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

ICON = '/images/icons/icon-192x192.png'
BADGE = '/images/icons/icon-72x72.png'


class NotificationService:
    """Builds push notifications and decides what a click does"""

    def __init__(self, app):
        self.app = app

    @property
    def title(self):
        return self.app.config.get('BUSINESS_NAME', 'Sandwich POS')

    @property
    def origin(self):
        parsed = urlparse(self.app.config.get('APP_BASE_URL', ''))
        return f"{parsed.scheme}://{parsed.netloc}"

    def build_push_notification(self, body: Optional[str] = None) -> Dict:
        """
        Build the notification shown for a push message

        Args:
            body: Push message text; a default message when empty

        Returns:
            dict: title plus display options
        """
        return {
            'title': self.title,
            'options': {
                'body': body or f"New notification from {self.title}",
                'icon': ICON,
                'badge': BADGE,
                'vibrate': [200, 100, 200],
                'data': {'url': '/'},
                'actions': [
                    {'action': 'open', 'title': 'Open App', 'icon': BADGE},
                    {'action': 'close', 'title': 'Close', 'icon': BADGE},
                ],
            },
        }

    def handle_notification_click(self, action: Optional[str], open_views: Iterable[str] = ()) -> Optional[Dict]:
        """
        Decide what a notification click does

        Args:
            action: Clicked action ('open', 'close' or empty for the body)
            open_views: URLs of the pages currently open

        Returns:
            dict or None: {'action': 'focus', 'url': ...} for an open page of
            this app, {'action': 'open', 'url': '/'} otherwise, None for close
        """
        logger.info(f"Notification clicked: {action or 'default'}")
        if action not in (None, '', 'open'):
            return None

        for url in open_views:
            if self.origin in url:
                return {'action': 'focus', 'url': url}
        return {'action': 'open', 'url': '/'}
