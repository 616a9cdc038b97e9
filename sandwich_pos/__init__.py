"""
Flask Application Factory
Initializes the data access facade, offline services and HTTP blueprints
"""

import os
from flask import Flask, jsonify
from config import config
from sandwich_pos.errors import (
    BackendRejectedError, DataAccessError, NetworkUnavailableError,
    NotFoundError, StorageUnavailableError
)
from sandwich_pos.models import db


def error_status(error):
    """HTTP status for a data access failure"""
    if isinstance(error, NotFoundError):
        return 404
    if isinstance(error, BackendRejectedError):
        return 400
    if isinstance(error, (NetworkUnavailableError, StorageUnavailableError)):
        return 503
    return 500


def create_app(config_name='default', config_overrides=None):
    """
    Application factory pattern
    Creates and configures Flask application

    Args:
        config_name: Key of the config mapping
        config_overrides: Settings applied on top of the config class,
            before any service is built
    """
    app = Flask(__name__)

    # Load configuration
    app.config.from_object(config[config_name])
    if config_overrides:
        app.config.update(config_overrides)

    # Validate secret key in production
    if config_name == 'production':
        if not app.config.get('SECRET_KEY') or app.config['SECRET_KEY'] == 'dev-secret-key-change-in-production':
            raise ValueError("Production requires a secure SECRET_KEY. Set it via environment variable.")

    db.init_app(app)

    os.makedirs(app.config['BACKUP_FOLDER'], exist_ok=True)
    os.makedirs(app.config['LOG_FOLDER'], exist_ok=True)

    from sandwich_pos.services.data_access import build_data_access
    from sandwich_pos.services.sync_service import SyncService
    from sandwich_pos.services.cache_service import CacheService
    from sandwich_pos.services.backup_service import BackupService
    from sandwich_pos.services.notification_service import NotificationService

    with app.app_context():
        data_access = build_data_access(app)

    app.extensions['data_access'] = data_access
    app.extensions['sync_service'] = SyncService(app, data_access)
    app.extensions['cache_service'] = CacheService(app)
    app.extensions['backup_service'] = BackupService(app, data_access)
    app.extensions['notification_service'] = NotificationService(app)

    # Register blueprints
    from sandwich_pos.routes.api import bp as api_bp
    app.register_blueprint(api_bp, url_prefix='/api')

    from sandwich_pos.routes.offline import bp as offline_bp
    app.register_blueprint(offline_bp, url_prefix='/offline')

    # Error handlers
    @app.errorhandler(DataAccessError)
    def handle_data_access_error(error):
        app.logger.warning(f"Data access error: {error}")
        return jsonify({'success': False, 'status': 'failed', 'error': str(error)}), error_status(error)

    @app.errorhandler(404)
    def not_found_error(error):
        return jsonify({'success': False, 'status': 'failed', 'error': 'Not found'}), 404

    @app.errorhandler(500)
    def internal_error(error):
        db.session.rollback()
        return jsonify({'success': False, 'status': 'failed', 'error': 'Internal server error'}), 500

    return app
