"""
Application Configuration
Loads environment variables and provides configuration classes for different environments
"""

import os
from dotenv import load_dotenv

# Load environment variables from .env file
basedir = os.path.abspath(os.path.dirname(__file__))
load_dotenv(os.path.join(basedir, '.env'))


class Config:
    """Base configuration class"""

    # Flask
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'dev-secret-key-change-in-production'

    # Local on-device database (local backend, offline mirror, sync queue, caches)
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or \
        'sqlite:///' + os.path.join(basedir, 'sandwich_pos.db')
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ECHO = False

    # Data backend: 'remote' (Supabase) or 'local' (on-device store)
    DATA_BACKEND = os.environ.get('DATA_BACKEND', 'local').lower()

    # Remote backend (Supabase PostgREST)
    SUPABASE_URL = os.environ.get('SUPABASE_URL', '')
    SUPABASE_KEY = os.environ.get('SUPABASE_KEY', '')
    REMOTE_TIMEOUT_SECONDS = float(os.environ.get('REMOTE_TIMEOUT_SECONDS', 10))

    # Offline queue replay
    ENABLE_CLOUD_SYNC = os.environ.get('ENABLE_CLOUD_SYNC', 'True').lower() == 'true'
    AUTO_SYNC = os.environ.get('AUTO_SYNC', 'True').lower() == 'true'
    CONNECTIVITY_CHECK_SECONDS = int(os.environ.get('CONNECTIVITY_CHECK_SECONDS', 30))

    # Offline cache
    APP_VERSION = '2.0.0'
    CACHE_VERSION = os.environ.get('CACHE_VERSION', APP_VERSION)
    APP_BASE_URL = os.environ.get('APP_BASE_URL', 'http://localhost:5001')
    STATIC_FILES = [
        '/',
        '/index.html',
        '/manifest.json',
        '/js/config.js',
        '/js/database.js',
        '/js/pos.js',
        '/js/analytics.js',
        '/css/styles.css',
        'https://cdn.jsdelivr.net/npm/chart.js@4.4.0/dist/chart.umd.js',
        'https://cdn.jsdelivr.net/npm/@supabase/supabase-js@2',
        '/images/icons/icon-192x192.png',
        '/images/icons/icon-512x512.png',
    ]
    CACHE_RETENTION_DAYS = int(os.environ.get('CACHE_RETENTION_DAYS', 7))
    CACHE_MAINTENANCE_TIME = os.environ.get('CACHE_MAINTENANCE_TIME', '03:00')

    # Business Configuration
    BUSINESS_NAME = os.environ.get('BUSINESS_NAME', 'Sandwich POS')
    CURRENCY = os.environ.get('CURRENCY', 'THB')
    LOCALE = os.environ.get('LOCALE', 'th-TH')
    TAX_RATE = float(os.environ.get('TAX_RATE', 0.07))
    PROFIT_MARGIN_WARNING = float(os.environ.get('PROFIT_MARGIN_WARNING', 30))

    # Stock Alerts
    LOW_STOCK_THRESHOLD = int(os.environ.get('LOW_STOCK_THRESHOLD', 5))

    # First-run default data for the local backend
    SEED_DEFAULT_DATA = os.environ.get('SEED_DEFAULT_DATA', 'True').lower() == 'true'

    # Backup
    BACKUP_ENABLED = os.environ.get('BACKUP_ENABLED', 'True').lower() == 'true'
    BACKUP_TIME = os.environ.get('BACKUP_TIME', '23:00')
    BACKUP_RETENTION_DAYS = int(os.environ.get('BACKUP_RETENTION_DAYS', 30))
    BACKUP_FOLDER = os.path.join(basedir, 'backups')

    # Logging
    LOG_FOLDER = os.path.join(basedir, 'logs')
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')


class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True
    SQLALCHEMY_ECHO = False  # Set to True to see SQL queries


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False
    SQLALCHEMY_ECHO = False


class TestingConfig(Config):
    """Testing configuration"""
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    DATA_BACKEND = 'local'
    SEED_DEFAULT_DATA = False
    BACKUP_ENABLED = False
    AUTO_SYNC = False
    SUPABASE_URL = 'https://test-project.supabase.co'
    SUPABASE_KEY = 'test-key'


# Configuration dictionary
config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig
}
