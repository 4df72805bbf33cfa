# backend/salonpos/config.py
from __future__ import annotations
import os


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # Relative SQLite paths resolve against app.instance_path (backend/instance/salonpos.sqlite3)
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",  # hosted Postgres in production
        "sqlite:///salonpos.sqlite3",  # default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Calendar days (closures, statistics) are local to the salon
    BUSINESS_TIMEZONE = os.environ.get("BUSINESS_TIMEZONE", "Europe/Zurich")
    CURRENCY = os.environ.get("CURRENCY", "CHF")
    SALON_NAME = os.environ.get("SALON_NAME", "Sabina Coiffure & Ongles")

    # 200.00 CHF float suggested on the closure form
    DEFAULT_OPENING_CASH_CENTS = _env_int("DEFAULT_OPENING_CASH_CENTS", 20000)

    # Children under this age stay attached to their parent's account
    DEPENDENT_AGE_THRESHOLD = _env_int("DEPENDENT_AGE_THRESHOLD", 16)

    # Swiss standard rate, basis points (8.1%)
    VAT_RATE_BPS = _env_int("VAT_RATE_BPS", 810)

    # Attempts for a ledger write that hits a lock or version conflict
    WRITE_RETRY_ATTEMPTS = _env_int("WRITE_RETRY_ATTEMPTS", 3)

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

    ALLOWED_ORIGINS = [
        origin.strip()
        for origin in os.environ.get(
            "ALLOWED_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173",
        ).split(",")
        if origin.strip()
    ]
