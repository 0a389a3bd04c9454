"""
Roadmap Engine
Configuration classes for Flask App Factory.

Usage:
    config_name = os.getenv("APP_ENV", "development")
    config_cls = config[config_name]
    config_cls.validate()
    app.config.from_object(config_cls)

Environment:
    DATABASE_URL                 SQLAlchemy URL (required in production)
    REDIS_URL                    Flask-Limiter storage (memory:// when unset)
    CORS_ORIGINS                 Comma-separated origins, "*" for any
    LOG_LEVEL                    Root log level (DEBUG in dev, INFO in prod)
    ROADMAP_WRITE_LIMIT          Per-IP limit on the roadmap blueprint
    DEFAULT_TASK_DURATION_DAYS   Waterfall duration for tasks without one
    DEFAULT_TASK_PRIORITY        Priority stamped on generated tasks
"""

import os

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))

_SQLITE_DEV = f"sqlite:///{os.path.join(basedir, 'instance', 'roadmap_engine_dev.db')}"
_SQLITE_TEST = "sqlite:///:memory:"


def _database_url():
    # Heroku-style postgres:// is rejected by SQLAlchemy 2.0
    raw = os.getenv("DATABASE_URL", "")
    return raw.replace("postgres://", "postgresql://", 1) if raw else None


class Config:
    """Base configuration shared across all environments."""

    DEBUG = False
    TESTING = False
    LOG_LEVEL = os.getenv("LOG_LEVEL")

    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_recycle": 300,
    }

    RATELIMIT_STORAGE_URI = os.getenv("REDIS_URL", "memory://")
    ROADMAP_WRITE_LIMIT = os.getenv("ROADMAP_WRITE_LIMIT", "60/minute")

    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")

    DEFAULT_TASK_DURATION_DAYS = int(os.getenv("DEFAULT_TASK_DURATION_DAYS", "3"))
    DEFAULT_TASK_PRIORITY = os.getenv("DEFAULT_TASK_PRIORITY", "medium")

    @classmethod
    def validate(cls):
        """Raise RuntimeError when required settings are missing."""


class DevelopmentConfig(Config):
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = _database_url() or _SQLITE_DEV


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", _SQLITE_TEST)
    SQLALCHEMY_ENGINE_OPTIONS = {}
    RATELIMIT_ENABLED = False


class ProductionConfig(Config):
    SQLALCHEMY_DATABASE_URI = _database_url()
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")  # must be set explicitly

    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_size": 5,
        "max_overflow": 10,
        "pool_recycle": 300,
        "pool_timeout": 20,
        "connect_args": {
            # stage starts hold row locks; bound them
            "options": "-c statement_timeout=30000",
        },
    }

    @classmethod
    def validate(cls):
        if not cls.SQLALCHEMY_DATABASE_URI:
            raise RuntimeError("DATABASE_URL environment variable is required in production")


config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}
