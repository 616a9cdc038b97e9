"""
Backup Service
Writes JSON exports of every table on a schedule and restores them
"""

import os
import json
import logging
from datetime import datetime, timedelta
from apscheduler.schedulers.background import BackgroundScheduler

from sandwich_pos.errors import BackendRejectedError, DataAccessError
from sandwich_pos.utils.context import app_context

logger = logging.getLogger(__name__)

BACKUP_PREFIX = 'backup_'
BACKUP_SUFFIX = '.json'


class BackupService:
    """Service for data exports kept on disk"""

    def __init__(self, app, data_access):
        self.app = app
        self.data_access = data_access
        self.scheduler = None

    @property
    def backup_folder(self):
        return self.app.config.get('BACKUP_FOLDER')

    @staticmethod
    def _is_backup(filename):
        return filename.startswith(BACKUP_PREFIX) and filename.endswith(BACKUP_SUFFIX)

    def backup_data(self):
        """
        Export all tables to a timestamped JSON file

        Returns:
            str or None: Path of the backup, None when the export failed
        """
        try:
            with app_context(self.app):
                export = self.data_access.export_data()
        except DataAccessError as e:
            logger.error(f"Error creating backup: {e}")
            return None

        os.makedirs(self.backup_folder, exist_ok=True)

        timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')
        backup_filename = f"{BACKUP_PREFIX}{timestamp}{BACKUP_SUFFIX}"
        backup_path = os.path.join(self.backup_folder, backup_filename)

        with open(backup_path, 'w', encoding='utf-8') as f:
            json.dump(export, f, ensure_ascii=False, indent=2)
        logger.info(f"Data backup created: {backup_filename}")

        self.cleanup_old_backups()
        return backup_path

    def cleanup_old_backups(self, now=None):
        """
        Remove backups older than the retention period

        Returns:
            int: Number of files deleted
        """
        if not os.path.isdir(self.backup_folder):
            return 0

        retention_days = self.app.config.get('BACKUP_RETENTION_DAYS', 30)
        cutoff_date = (now or datetime.now()) - timedelta(days=retention_days)

        deleted = 0
        for filename in os.listdir(self.backup_folder):
            if not self._is_backup(filename):
                continue
            filepath = os.path.join(self.backup_folder, filename)
            file_time = datetime.fromtimestamp(os.path.getmtime(filepath))
            if file_time < cutoff_date:
                os.remove(filepath)
                deleted += 1
                logger.info(f"Deleted old backup: {filename}")
        return deleted

    def restore_backup(self, backup_filename):
        """
        Replace the local data with a backup

        Args:
            backup_filename: Name of a file inside the backup folder

        Returns:
            dict: Records imported per table
        """
        if os.path.basename(backup_filename) != backup_filename or not self._is_backup(backup_filename):
            raise BackendRejectedError(f"Not a backup file: {backup_filename}")

        backup_path = os.path.join(self.backup_folder, backup_filename)
        if not os.path.exists(backup_path):
            raise FileNotFoundError(f"Backup file not found: {backup_filename}")

        with open(backup_path, encoding='utf-8') as f:
            data = json.load(f)

        with app_context(self.app):
            counts = self.data_access.import_data(data)
        logger.info(f"Data restored from: {backup_filename}")
        return counts

    def list_backups(self):
        """
        Get list of available backups

        Returns:
            list: Backup files with metadata, newest first
        """
        if not os.path.isdir(self.backup_folder):
            return []

        backups = []
        for filename in os.listdir(self.backup_folder):
            if self._is_backup(filename):
                filepath = os.path.join(self.backup_folder, filename)
                backups.append({
                    'filename': filename,
                    'size': os.path.getsize(filepath),
                    'created': datetime.fromtimestamp(os.path.getmtime(filepath)),
                })

        backups.sort(key=lambda x: x['created'], reverse=True)
        return backups

    def start_scheduler(self):
        """Start background scheduler for automatic backups"""
        if self.scheduler:
            logger.warning("Backup scheduler already running")
            return

        if not self.app.config.get('BACKUP_ENABLED'):
            logger.info("Automatic backups are disabled")
            return

        self.scheduler = BackgroundScheduler()

        # e.g. "23:00"
        backup_time = self.app.config.get('BACKUP_TIME', '23:00')
        hour, minute = map(int, backup_time.split(':'))

        self.scheduler.add_job(
            func=self.backup_data,
            trigger='cron',
            hour=hour,
            minute=minute,
            id='daily_backup'
        )

        self.scheduler.start()
        logger.info(f"Backup scheduler started. Daily backups at {backup_time}")

    def stop_scheduler(self):
        """Stop the scheduler"""
        if self.scheduler:
            self.scheduler.shutdown()
            self.scheduler = None
            logger.info("Backup scheduler stopped")
