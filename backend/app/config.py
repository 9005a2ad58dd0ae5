# backend/app/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() not in ("0", "false", "no", "off", "")


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/gym.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///gym.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Shown on receipts and in outbound messages
    GYM_NAME = os.environ.get("GYM_NAME", "Our Gym")
    CURRENCY_SYMBOL = os.environ.get("CURRENCY_SYMBOL", "$")

    CORS_ORIGINS = {
        origin.strip()
        for origin in os.environ.get(
            "CORS_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173,http://localhost:3000",
        ).split(",")
        if origin.strip()
    }

    # Email (Postmark HTTP API). Test mode logs instead of sending.
    POSTMARK_SERVER_TOKEN = os.environ.get("POSTMARK_SERVER_TOKEN", "")
    POSTMARK_API_URL = os.environ.get("POSTMARK_API_URL", "https://api.postmarkapp.com/email")
    EMAIL_FROM = os.environ.get("EMAIL_FROM", "noreply@gym.local")
    EMAIL_TEST_MODE = _env_bool("EMAIL_TEST_MODE", True)

    # WhatsApp Cloud API. Disabled means simulated sends that are still logged.
    WHATSAPP_ENABLED = _env_bool("WHATSAPP_ENABLED", False)
    WHATSAPP_TOKEN = os.environ.get("WHATSAPP_TOKEN", "")
    WHATSAPP_PHONE_NUMBER_ID = os.environ.get("WHATSAPP_PHONE_NUMBER_ID", "")
    WHATSAPP_API_VERSION = os.environ.get("WHATSAPP_API_VERSION", "v20.0")

    # Background notification dispatcher
    NOTIFICATION_WORKERS = int(os.environ.get("NOTIFICATION_WORKERS", "4"))
    NOTIFICATION_MAX_PENDING = int(os.environ.get("NOTIFICATION_MAX_PENDING", "100"))
    NOTIFICATION_RETRY_ATTEMPTS = int(os.environ.get("NOTIFICATION_RETRY_ATTEMPTS", "3"))
    NOTIFICATION_RETRY_WAIT_SECONDS = float(os.environ.get("NOTIFICATION_RETRY_WAIT_SECONDS", "0.5"))
    NOTIFICATIONS_SYNC = _env_bool("NOTIFICATIONS_SYNC", False)

    # Session tokens
    SESSION_ABSOLUTE_TIMEOUT_HOURS = int(os.environ.get("SESSION_ABSOLUTE_TIMEOUT_HOURS", "24"))
    SESSION_IDLE_TIMEOUT_MINUTES = int(os.environ.get("SESSION_IDLE_TIMEOUT_MINUTES", "120"))

    ACTIVITY_RETENTION_DAYS = int(os.environ.get("ACTIVITY_RETENTION_DAYS", "90"))
