import os


class Config:
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-prod')

    # Database (recomputation diagnostics only)
    DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///livescore.db')
    SQLALCHEMY_DATABASE_URI = DATABASE_URL
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Redis
    REDIS_URL = os.getenv('REDIS_URL', 'redis://localhost:6379')

    # Entity store: 'memory' or 'redis'
    ENTITY_STORE = os.getenv('ENTITY_STORE', 'memory')
    STORE_PREFIX = os.getenv('STORE_PREFIX', 'live:')

    # Recomputation
    RECOMPUTE_DEBOUNCE_SECONDS = float(os.getenv('RECOMPUTE_DEBOUNCE_SECONDS', '0.5'))
    RECOMPUTE_RETRY_SECONDS = float(os.getenv('RECOMPUTE_RETRY_SECONDS', '2.0'))
    RECOMPUTE_BACKGROUND = os.getenv('RECOMPUTE_BACKGROUND', 'true').lower() == 'true'
    # Store-wide lock serialising passes across processes
    RECOMPUTE_LOCK_TIMEOUT_SECONDS = float(os.getenv('RECOMPUTE_LOCK_TIMEOUT_SECONDS', '30'))
    RECOMPUTE_LOCK_WAIT_SECONDS = float(os.getenv('RECOMPUTE_LOCK_WAIT_SECONDS', '10'))

    # Push relay of published results over Redis pub/sub
    PUSH_ENABLED = os.getenv('PUSH_ENABLED', 'false').lower() == 'true'
    SSE_KEEPALIVE_SECONDS = float(os.getenv('SSE_KEEPALIVE_SECONDS', '30'))

    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')


class DevelopmentConfig(Config):
    DEBUG = True
    ENTITY_STORE = 'memory'
    PUSH_ENABLED = False


class ProductionConfig(Config):
    DEBUG = False
    ENTITY_STORE = 'redis'
    PUSH_ENABLED = True


class TestingConfig(Config):
    TESTING = True
    DEBUG = False
    ENTITY_STORE = 'memory'
    PUSH_ENABLED = False
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    # Passes run only when a test drives them
    RECOMPUTE_BACKGROUND = False


config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig
}
