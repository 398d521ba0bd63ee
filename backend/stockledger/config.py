# backend/stockledger/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///stockledger.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    STOCKLEDGER_LOG_LEVEL = os.environ.get("STOCKLEDGER_LOG_LEVEL", "INFO")

    # Optimistic retry policy for ledger writes (see services/concurrency.py)
    STOCKLEDGER_RETRY_ATTEMPTS = int(os.environ.get("STOCKLEDGER_RETRY_ATTEMPTS", "3"))
    STOCKLEDGER_RETRY_BACKOFF = float(os.environ.get("STOCKLEDGER_RETRY_BACKOFF", "0.1"))

    # Lookup cache lifetime, five minutes by default
    STOCKLEDGER_CACHE_TTL_SECONDS = float(os.environ.get("STOCKLEDGER_CACHE_TTL_SECONDS", "300"))


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    STOCKLEDGER_RETRY_BACKOFF = 0.0
    STOCKLEDGER_LOG_LEVEL = "DEBUG"
