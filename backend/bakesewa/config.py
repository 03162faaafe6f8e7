# backend/bakesewa/config.py
from __future__ import annotations
import os


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite file next to the instance folder unless DATABASE_URL points elsewhere
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///bakesewa.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Unit catalog cache; 0 keeps rows until an explicit refresh()
    UNIT_CACHE_TTL_SECONDS = _env_int("UNIT_CACHE_TTL_SECONDS", 300)

    # Stock mutations retry on lock/version conflicts
    STOCK_RETRY_ATTEMPTS = _env_int("STOCK_RETRY_ATTEMPTS", 3)

    # Audit compliance thresholds
    AUDIT_RETENTION_DAYS = _env_int("AUDIT_RETENTION_DAYS", 7 * 365)
    AUDIT_GAP_THRESHOLD_HOURS = _env_int("AUDIT_GAP_THRESHOLD_HOURS", 4)
    AUDIT_GAP_SCAN_LIMIT = _env_int("AUDIT_GAP_SCAN_LIMIT", 100)
    AUDIT_BUSINESS_HOURS_START = _env_int("AUDIT_BUSINESS_HOURS_START", 9)
    AUDIT_BUSINESS_HOURS_END = _env_int("AUDIT_BUSINESS_HOURS_END", 17)
    AUDIT_QUERY_DEFAULT_LIMIT = _env_int("AUDIT_QUERY_DEFAULT_LIMIT", 1000)

    # Login lockout
    LOGIN_MAX_FAILED_ATTEMPTS = _env_int("LOGIN_MAX_FAILED_ATTEMPTS", 10)
    LOGIN_LOCKOUT_MINUTES = _env_int("LOGIN_LOCKOUT_MINUTES", 15)
