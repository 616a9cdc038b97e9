"""
Change Feed
Typed observer interface for data changes: callbacks receive
(table, operation, record) after every stored or queued mutation
"""

import logging
from typing import Callable, Dict, Optional

logger = logging.getLogger(__name__)

ChangeCallback = Callable[[str, str, Dict], None]


class ChangeFeed:
    """Subscription registry keyed by table (None = every table)"""

    def __init__(self):
        self._subscribers = []

    def subscribe(self, callback: ChangeCallback, table: Optional[str] = None):
        """
        Register a callback

        Returns:
            callable: Unsubscribe function
        """
        subscription = (table, callback)
        self._subscribers.append(subscription)

        def unsubscribe():
            if subscription in self._subscribers:
                self._subscribers.remove(subscription)

        return unsubscribe

    def on_data_change(self, table: str, operation: str, record: Dict):
        """Notify subscribers of a change"""
        for subscribed_table, callback in list(self._subscribers):
            if subscribed_table not in (None, table):
                continue
            try:
                callback(table, operation, record)
            except Exception:
                # The change is already committed when observers run
                logger.exception(f"Change subscriber failed for {operation} on {table}")

    def clear(self):
        self._subscribers.clear()
