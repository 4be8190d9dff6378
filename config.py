"""
Application configuration: environment-aware settings.

All settings come from environment variables (a local .env file is loaded
first). See .env.example for a template.
"""

from __future__ import annotations

import os
import warnings
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR = Path(__file__).parent

load_dotenv(BASE_DIR / ".env")


def _flag(name: str, default: str = "true") -> bool:
    return os.environ.get(name, default).strip().lower() in ("1", "true", "yes", "on")


class BaseConfig:
    # Core Flask
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-key-change-in-production")
    DATABASE = os.environ.get("DATABASE", str(BASE_DIR / "study_progress.db"))
    DATABASE_TIMEOUT = float(os.environ.get("DATABASE_TIMEOUT", "10"))

    MAX_CONTENT_LENGTH = 1 * 1024 * 1024  # 1 MB of JSON is plenty

    # Content generation
    CONTENT_PROVIDER = os.environ.get("CONTENT_PROVIDER", "openai")  # "openai" or "gemini"
    CONTENT_MODEL = os.environ.get("CONTENT_MODEL", "")
    OPENAI_API_KEY = os.environ.get("OPENAI_API_KEY", "")
    GOOGLE_API_KEY = os.environ.get("GOOGLE_API_KEY", "")
    CHAT_RATE_LIMIT = os.environ.get("CHAT_RATE_LIMIT", "30 per hour")

    # Web push (VAPID)
    VAPID_PRIVATE_KEY = os.environ.get("VAPID_PRIVATE_KEY", "")
    VAPID_PUBLIC_KEY = os.environ.get("VAPID_PUBLIC_KEY", "")
    VAPID_CLAIMS_EMAIL = os.environ.get("VAPID_CLAIMS_EMAIL", "mailto:admin@example.com")

    # Downstream sinks
    NOTIFICATIONS_ENABLED = _flag("NOTIFICATIONS_ENABLED")
    DOCUMENTS_ENABLED = _flag("DOCUMENTS_ENABLED")

    # Logging
    LOG_FORMAT = os.environ.get("LOG_FORMAT", "text")  # "json" or "text"
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Rate limiting (in-memory unless a storage URI is given)
    RATELIMIT_STORAGE_URI = os.environ.get("RATELIMIT_STORAGE_URI", "") or "memory://"


class DevelopmentConfig(BaseConfig):
    DEBUG = True
    LOG_FORMAT = os.environ.get("LOG_FORMAT", "text")


class ProductionConfig(BaseConfig):
    DEBUG = False
    LOG_FORMAT = os.environ.get("LOG_FORMAT", "json")

    @classmethod
    def validate(cls):
        """Fail fast on missing or insecure configuration in production."""
        errors: list[str] = []

        if cls.SECRET_KEY in ("dev-key-change-in-production", ""):
            errors.append("SECRET_KEY must be set to a secure value in production.")
        if cls.CONTENT_PROVIDER not in ("openai", "gemini"):
            errors.append(f"CONTENT_PROVIDER must be 'openai' or 'gemini', got {cls.CONTENT_PROVIDER!r}.")

        key = cls.OPENAI_API_KEY if cls.CONTENT_PROVIDER == "openai" else cls.GOOGLE_API_KEY
        if not key:
            warnings.warn(f"No API key for {cls.CONTENT_PROVIDER}; chat and flashcard generation will fail.")
        if cls.NOTIFICATIONS_ENABLED and not cls.VAPID_PRIVATE_KEY:
            warnings.warn("VAPID_PRIVATE_KEY is not set; notifications are stored but never pushed.")

        if errors:
            raise RuntimeError(
                "Production configuration errors:\n" + "\n".join(f"  - {e}" for e in errors)
            )


class TestingConfig(BaseConfig):
    TESTING = True
    NOTIFICATIONS_ENABLED = True
    DOCUMENTS_ENABLED = True


config_by_name = {
    "development": DevelopmentConfig,
    "production": ProductionConfig,
    "testing": TestingConfig,
}
