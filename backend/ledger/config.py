# backend/ledger/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///ledger.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Bounded retries for conflicting writers before ConcurrencyConflict surfaces
    LEDGER_RETRY_ATTEMPTS = int(os.environ.get("LEDGER_RETRY_ATTEMPTS", "3"))
    LEDGER_RETRY_BACKOFF = float(os.environ.get("LEDGER_RETRY_BACKOFF", "0.05"))

    # Max difference between the payment legs and the total due
    PAYMENT_TOLERANCE = os.environ.get("PAYMENT_TOLERANCE", "0.01")

    # LOCATION: one open register per location. OPERATOR: one per operator.
    CASH_REGISTER_SCOPE = os.environ.get("CASH_REGISTER_SCOPE", "LOCATION").upper()

    # Largest single drawer withdrawal per role; roles not listed have no limit
    REGISTER_WITHDRAWAL_LIMITS = {"CASHIER": os.environ.get("CASHIER_WITHDRAWAL_LIMIT", "500.00")}

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

    # callable(request) -> RequestContext | None; None means header-based resolution
    CONTEXT_RESOLVER = None


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    LEDGER_RETRY_BACKOFF = 0.01
    LOG_LEVEL = "WARNING"
