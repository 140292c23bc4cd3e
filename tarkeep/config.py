import os


class Config:
    """Base configuration"""

    DEBUG = False
    TESTING = False

    # Logging
    LOG_LEVEL = os.environ.get('TARKEEP_LOG_LEVEL') or 'INFO'
    LOG_FILE = os.environ.get('TARKEEP_LOG_FILE') or None

    # File layout inside source/destination directories
    IGNORE_FILENAME = os.environ.get('TARKEEP_IGNORE_FILENAME') or '.backupignore'
    LEDGER_FILENAME = os.environ.get('TARKEEP_LEDGER_FILENAME') or 'hash.log'
    LOCK_SUFFIX = '.lock'

    # Compression
    ZSTD_THREADS = int(os.environ.get('TARKEEP_ZSTD_THREADS') or 0)
    XZ_PRESET = int(os.environ.get('TARKEEP_XZ_PRESET') or 6)

    # Scheduler
    SCHEDULER_TIMEZONE = os.environ.get('TARKEEP_SCHEDULER_TIMEZONE') or 'UTC'


class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True
    LOG_LEVEL = os.environ.get('TARKEEP_LOG_LEVEL') or 'DEBUG'


class TestingConfig(Config):
    """Testing configuration"""
    TESTING = True
    LOG_FILE = None
    # Fast presets keep the suite quick
    XZ_PRESET = 0
    ZSTD_THREADS = 1


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False


# Configuration dictionary
config = {
    'development': DevelopmentConfig,
    'testing': TestingConfig,
    'production': ProductionConfig,
    'default': ProductionConfig
}


def get_config(config_name=None):
    """
    Resolve a configuration class by name.

    Falls back to TARKEEP_ENV, then to the production configuration.
    """
    if config_name is None:
        config_name = os.environ.get('TARKEEP_ENV', 'production')
    return config.get(config_name, config['default'])
