# backend/freshpos/config.py
from __future__ import annotations
import os


def _origins(raw: str) -> set[str]:
    return {o.strip() for o in raw.split(",") if o.strip()}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/freshpos.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///freshpos.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Days before expiry at which a product counts as "expiring"
    EXPIRY_WARNING_DAYS = int(os.environ.get("EXPIRY_WARNING_DAYS", "7"))

    # Used when a product is created without an explicit stock_alert
    DEFAULT_STOCK_ALERT_KG = os.environ.get("DEFAULT_STOCK_ALERT_KG", "10.00")

    # Upper bound on waiting for a per-product stock lock
    STOCK_LOCK_TIMEOUT_SECONDS = float(os.environ.get("STOCK_LOCK_TIMEOUT_SECONDS", "5"))

    DB_RETRY_ATTEMPTS = int(os.environ.get("DB_RETRY_ATTEMPTS", "3"))

    TOP_PRODUCTS_LIMIT = int(os.environ.get("TOP_PRODUCTS_LIMIT", "10"))

    CORS_ALLOWED_ORIGINS = _origins(
        os.environ.get(
            "CORS_ALLOWED_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173,http://localhost:4173,http://127.0.0.1:4173",
        )
    )
