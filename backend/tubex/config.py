# backend/tubex/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///tubex.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Per-company request throttling. "memory" is single-instance only;
    # "database" shares counters through the rate_limit_counters table.
    RATE_LIMIT_BACKEND = os.environ.get("RATE_LIMIT_BACKEND", "memory")
    RATE_LIMIT_MAX_REQUESTS = int(os.environ.get("RATE_LIMIT_MAX_REQUESTS", "100"))
    RATE_LIMIT_WINDOW_SECONDS = int(os.environ.get("RATE_LIMIT_WINDOW_SECONDS", "60"))

    # When False, a failure to write a security audit event is logged and the
    # request continues.
    AUDIT_FAIL_CLOSED = _env_bool("AUDIT_FAIL_CLOSED", False)

    INTEGRITY_BATCH_WARN_THRESHOLD = int(os.environ.get("INTEGRITY_BATCH_WARN_THRESHOLD", "10000"))
    INTEGRITY_PAYMENT_WARN_THRESHOLD = int(os.environ.get("INTEGRITY_PAYMENT_WARN_THRESHOLD", "5000"))

    SESSION_ABSOLUTE_TIMEOUT_HOURS = int(os.environ.get("SESSION_ABSOLUTE_TIMEOUT_HOURS", "24"))
    SESSION_IDLE_TIMEOUT_HOURS = int(os.environ.get("SESSION_IDLE_TIMEOUT_HOURS", "2"))

    # bcrypt cost factor; tests lower it to keep hashing fast
    BCRYPT_ROUNDS = int(os.environ.get("BCRYPT_ROUNDS", "12"))
