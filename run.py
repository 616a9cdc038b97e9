"""
Application Entry Point
Initializes and runs the Flask application with background services
"""

import os
import logging
from sandwich_pos import create_app, db
from sandwich_pos.errors import CacheInstallError
from sandwich_pos.utils.seed_data import default_data

# Determine configuration environment
config_name = os.environ.get('FLASK_ENV', 'development')
app = create_app(config_name)

# Setup logging
if not os.path.exists(app.config['LOG_FOLDER']):
    os.makedirs(app.config['LOG_FOLDER'])

logging.basicConfig(
    level=getattr(logging, app.config['LOG_LEVEL']),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.FileHandler(os.path.join(app.config['LOG_FOLDER'], 'app.log')),
        logging.StreamHandler()
    ]
)

logger = logging.getLogger(__name__)


@app.shell_context_processor
def make_shell_context():
    """Make database and services available in Flask shell"""
    return {
        'db': db,
        'data_access': app.extensions['data_access'],
        'sync_service': app.extensions['sync_service'],
        'cache_service': app.extensions['cache_service'],
    }


@app.cli.command()
def init_db():
    """Initialize the local database tables"""
    logger.info("Initializing database...")
    db.create_all()
    logger.info("Database initialized successfully!")


@app.cli.command()
def seed_data():
    """Insert the default menu, ingredients and settings"""
    logger.info("Seeding default data...")
    if app.extensions['data_access'].seed_default_data(default_data(app.config)):
        logger.info("Default data created successfully!")


@app.cli.command()
def run_sync():
    """Manually replay the offline queue"""
    summary = app.extensions['sync_service'].sync_all()
    logger.info(f"Sync completed! {summary}")


@app.cli.command()
def install_cache():
    """Install and activate the offline asset cache"""
    cache_service = app.extensions['cache_service']
    try:
        cache_service.install()
    except CacheInstallError as e:
        logger.error(f"Offline cache not installed: {e}")
        return
    cache_service.activate()


@app.cli.command()
def cache_maintenance():
    """Remove stale runtime cache entries"""
    app.extensions['cache_service'].perform_maintenance()


@app.cli.command()
def backup_data():
    """Manually export all data to the backup folder"""
    logger.info("Starting data backup...")
    path = app.extensions['backup_service'].backup_data()
    logger.info(f"Backup completed: {path}")


def start_background_services():
    """Start background services for sync, cache maintenance and backup"""
    logger.info("Starting background services...")

    app.extensions['sync_service'].start_scheduler()
    app.extensions['cache_service'].start_scheduler()
    app.extensions['backup_service'].start_scheduler()


if __name__ == '__main__':
    # Check if running in development mode
    is_dev = os.environ.get('FLASK_ENV', 'development') == 'development'
    use_reloader = os.environ.get('FLASK_USE_RELOADER', 'true').lower() == 'true'

    # Start background services (only if not using reloader to avoid duplicate services)
    if not use_reloader or os.environ.get('WERKZEUG_RUN_MAIN') == 'true':
        start_background_services()

    # Run the application
    logger.info(f"Starting {app.config['BUSINESS_NAME']} ({app.config['DATA_BACKEND']} backend)...")
    logger.info(f"Debug mode: {is_dev}, Auto-reload: {use_reloader}")

    app.run(
        host='0.0.0.0',
        port=5001,
        debug=is_dev,
        use_reloader=use_reloader
    )
