"""
FieldOps Workflow Core
Configuration classes for Flask App Factory.

Usage:
    config_name = os.getenv("APP_ENV", "development")
    app.config.from_object(config[config_name])
"""

import os
import secrets

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))

# Default SQLite path for local dev when PostgreSQL is not running
_SQLITE_DEV = f"sqlite:///{os.path.join(basedir, 'instance', 'fieldops_dev.db')}"
_SQLITE_TEST = "sqlite:///:memory:"

# Generate a random key for development; production MUST use a stable env var
_DEV_SECRET = secrets.token_hex(32)


def _prefixes_from_env():
    """Parse DOCUMENT_PREFIXES="job=J,quote=Q,invoice=INV" into a dict."""
    raw = os.getenv("DOCUMENT_PREFIXES", "")
    prefixes = {"job": "J", "quote": "Q", "invoice": "INV"}
    for pair in raw.split(","):
        if "=" in pair:
            doc_type, prefix = pair.split("=", 1)
            if doc_type.strip() and prefix.strip():
                prefixes[doc_type.strip()] = prefix.strip()
    return prefixes


def _db_url(default=None):
    # Railway/Heroku use postgres:// but SQLAlchemy 2.0 requires postgresql://
    raw = os.getenv("DATABASE_URL", "")
    return raw.replace("postgres://", "postgresql://", 1) if raw else default


class Config:
    """Base configuration shared across all environments."""

    SECRET_KEY = os.getenv("SECRET_KEY", _DEV_SECRET)
    DEBUG = False
    TESTING = False

    # SQLAlchemy
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_recycle": 300,   # recycle connections every 5 min
    }

    # CORS
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")

    LOG_LEVEL = os.getenv("LOG_LEVEL")

    # Document numbering: J-00001, Q-00001, INV-00001
    DOCUMENT_PREFIXES = _prefixes_from_env()
    SEQUENCE_PAD_WIDTH = int(os.getenv("SEQUENCE_PAD_WIDTH", "5"))

    # Quotes without an explicit expiry date are valid this many days
    QUOTE_VALIDITY_DAYS = int(os.getenv("QUOTE_VALIDITY_DAYS", "30"))

    # Open a draft invoice when a job is completed
    AUTO_DRAFT_INVOICES = os.getenv("AUTO_DRAFT_INVOICES", "false").lower() == "true"


class DevelopmentConfig(Config):
    """Development environment configuration."""

    DEBUG = True
    SQLALCHEMY_DATABASE_URI = _db_url(_SQLITE_DEV)


class TestingConfig(Config):
    """Testing environment configuration."""

    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", _SQLITE_TEST)
    # In-memory SQLite runs on a single shared connection; pool options do not apply
    SQLALCHEMY_ENGINE_OPTIONS = {}
    AUTO_DRAFT_INVOICES = False


class ProductionConfig(Config):
    """Production environment configuration."""

    DEBUG = False
    SQLALCHEMY_DATABASE_URI = _db_url()
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")  # Must be set explicitly in production

    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_size": 5,
        "max_overflow": 10,
        "pool_recycle": 300,
        "pool_timeout": 20,
        "connect_args": {
            "options": "-c statement_timeout=30000",  # 30s query timeout
        },
    }

    def __init__(self):
        if not self.SQLALCHEMY_DATABASE_URI:
            raise RuntimeError("DATABASE_URL environment variable is required in production")
        if not os.getenv("SECRET_KEY"):
            raise RuntimeError("SECRET_KEY environment variable must be set in production")


# Configuration mapping: environment name -> config class
config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}
