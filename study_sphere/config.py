"""Application configuration helpers."""

from __future__ import annotations

import os
from datetime import timedelta
from pathlib import Path
from typing import Type

import bcrypt


def _hash_passkey(passkey: str) -> str:
    return bcrypt.hashpw(passkey.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


class BaseConfig:
    """Base configuration shared across environments."""

    PROJECT_ROOT = Path(__file__).resolve().parent.parent
    SECRET_KEY = os.getenv("FLASK_SECRET_KEY", "dev-secret-change-me")
    DATABASE_URL = os.getenv("DATABASE_URL") or f"sqlite:///{PROJECT_ROOT / 'study_sphere.db'}"
    ADMIN_PASSKEY_HASH = os.getenv("ADMIN_PASSKEY_HASH") or _hash_passkey(
        os.getenv("ADMIN_PASSKEY", "change-me")
    )
    GEMINI_API_KEY = os.getenv("GEMINI_API_KEY", "")
    GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")
    ACTIVE_WINDOW_MS = int(os.getenv("ACTIVE_WINDOW_MS", "120000"))
    HEARTBEAT_INTERVAL_MS = int(os.getenv("HEARTBEAT_INTERVAL_MS", "60000"))
    ASSISTANT_MAX_CLIENTS = int(os.getenv("ASSISTANT_MAX_CLIENTS", "500"))
    ASSISTANT_IDLE_TTL_MS = int(os.getenv("ASSISTANT_IDLE_TTL_MS", str(2 * 60 * 60 * 1000)))
    MAX_CONTENT_LENGTH = 4 * 1024 * 1024  # 4 MB
    # Browser identity and vote ledger outlive a single visit.
    PERMANENT_SESSION_LIFETIME = timedelta(days=365)
    WTF_CSRF_ENABLED = True
    SESSION_COOKIE_HTTPONLY = True
    REMEMBER_COOKIE_HTTPONLY = True
    PREFERRED_URL_SCHEME = "https"


class DevelopmentConfig(BaseConfig):
    """Configuration tweaks for local development."""

    DEBUG = True
    TESTING = False


class TestingConfig(BaseConfig):
    """Throwaway database configuration for pytest."""

    DEBUG = False
    TESTING = True
    DATABASE_URL = "sqlite:///:memory:"
    ADMIN_PASSKEY_HASH = _hash_passkey("test-passkey")
    GEMINI_API_KEY = ""
    WTF_CSRF_ENABLED = False


class ProductionConfig(BaseConfig):
    """Production hardened configuration."""

    DEBUG = False
    TESTING = False
    SESSION_COOKIE_SECURE = True
    REMEMBER_COOKIE_SECURE = True


def get_config() -> Type[BaseConfig]:
    """Return the configuration class based on FLASK_ENV."""

    env = os.getenv("FLASK_ENV", "development").lower()
    if env == "production":
        return ProductionConfig
    if env == "testing":
        return TestingConfig
    return DevelopmentConfig
