# backend/app/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/ledger.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///ledger.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Receivables policy
    CREDIT_TERM_DAYS = int(os.environ.get("CREDIT_TERM_DAYS", "30"))
    DUE_SOON_DAYS = int(os.environ.get("DUE_SOON_DAYS", "7"))
    LOW_STOCK_ALERT_LIMIT = int(os.environ.get("LOW_STOCK_ALERT_LIMIT", "20"))
    CREDIT_WARNING_PERCENT = int(os.environ.get("CREDIT_WARNING_PERCENT", "90"))
