"""
Sync Service
Replays the offline write queue against the remote backend once it is reachable again
"""

import logging
from apscheduler.schedulers.background import BackgroundScheduler

from sandwich_pos.utils.context import app_context

logger = logging.getLogger(__name__)


class SyncService:
    """Service for reconciling queued writes with the remote backend"""

    def __init__(self, app, data_access):
        self.app = app
        self.data_access = data_access
        self.scheduler = None

    @property
    def sync_enabled(self):
        return self.data_access.is_remote and self.app.config.get('ENABLE_CLOUD_SYNC', False)

    def check_internet_connection(self):
        """Check if the remote backend answers"""
        if not self.data_access.is_remote:
            return False
        return self.data_access.backend.ping()

    def check_connectivity(self):
        """
        Check the remote backend and track reachability

        While the backend is reachable, any queued operation is replayed,
        including ones left over from before a restart.

        Returns:
            bool: Whether the backend is reachable
        """
        if not self.data_access.is_remote:
            return False

        if not self.check_internet_connection():
            self.data_access.mark_offline()
            return False

        if self.data_access.mark_online():
            logger.info("Remote backend reachable again")

        if self.has_backlog():
            self.process_sync_queue()
        return True

    def has_backlog(self):
        """Whether operations are waiting in the offline queue"""
        queue = self.data_access.queue
        if queue is None:
            return False
        with app_context(self.app):
            return queue.count() > 0

    def process_sync_queue(self):
        """
        Replay every queued operation in submission order

        A replay that cannot reach the network ends the pass; the failed
        operation and everything after it stay queued in order.

        Returns:
            dict: Counts of synced, failed and remaining operations
        """
        if not self.sync_enabled:
            logger.debug("Cloud sync is disabled")
            return {'synced': 0, 'failed': 0, 'remaining': 0}

        with app_context(self.app):
            summary = self.data_access.replay_queue()

        if summary['synced'] or summary['failed']:
            logger.info(
                f"Sync completed: {summary['synced']} synced, {summary['failed']} failed, "
                f"{summary['remaining']} remaining"
            )
        return summary

    def sync_all(self):
        """Manually trigger a full replay"""
        logger.info("Starting manual sync...")
        if self.data_access.is_remote and self.check_internet_connection():
            self.data_access.mark_online()
        return self.process_sync_queue()

    def start_scheduler(self):
        """Start background scheduler for connectivity checks"""
        if self.scheduler:
            logger.warning("Sync scheduler already running")
            return

        if not self.sync_enabled or not self.app.config.get('AUTO_SYNC'):
            logger.info("Cloud sync is disabled, not starting scheduler")
            return

        self.scheduler = BackgroundScheduler()

        interval = self.app.config.get('CONNECTIVITY_CHECK_SECONDS', 30)

        self.scheduler.add_job(
            func=self.check_connectivity,
            trigger='interval',
            seconds=interval,
            id='connectivity_check'
        )

        self.scheduler.start()
        logger.info(f"Sync scheduler started. Will check connectivity every {interval} seconds")

    def stop_scheduler(self):
        """Stop the scheduler"""
        if self.scheduler:
            self.scheduler.shutdown()
            self.scheduler = None
            logger.info("Sync scheduler stopped")

    def get_sync_status(self):
        """Get current sync status"""
        with app_context(self.app):
            queue_status = self.data_access.queue.status() if self.data_access.queue else {
                'pending': 0, 'retrying': 0, 'oldest': None
            }

        return {
            **queue_status,
            'backend': self.data_access.backend.kind,
            'online': self.data_access.is_online,
            'sync_enabled': bool(self.sync_enabled),
        }
