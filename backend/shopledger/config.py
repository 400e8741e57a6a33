# backend/shopledger/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: str) -> bool:
    return os.environ.get(name, default).strip().lower() in ("1", "true", "yes", "on")


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/shopledger.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///shopledger.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True}

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Sequence identifier prefixes
    BILL_PREFIX = os.environ.get("BILL_PREFIX", "B")
    ORDER_PREFIX = os.environ.get("ORDER_PREFIX", "ORD")
    ADMIN_PREFIX = os.environ.get("ADMIN_PREFIX", "ADM")
    MANAGER_PREFIX = os.environ.get("MANAGER_PREFIX", "MGR")
    INVENTORY_PREFIX = os.environ.get("INVENTORY_PREFIX", "INV")
    BILLER_PREFIX = os.environ.get("BILLER_PREFIX", "BIL")

    # Attempts before a bill/order/employee number collision becomes a 409
    SEQUENCE_RETRY_ATTEMPTS = int(os.environ.get("SEQUENCE_RETRY_ATTEMPTS", "3"))

    # Recompute bill totals from frozen unit prices and reject mismatches
    STRICT_BILL_TOTALS = _env_bool("STRICT_BILL_TOTALS", "true")

    DEFAULT_LOW_STOCK_THRESHOLD = int(os.environ.get("DEFAULT_LOW_STOCK_THRESHOLD", "10"))

    # Bootstrap admin (flask system init)
    ADMIN_EMPLOYEE_ID = os.environ.get("ADMIN_EMPLOYEE_ID", "ADM001")
    ADMIN_PASSWORD = os.environ.get("ADMIN_PASSWORD", "ChangeMe123!")

    SESSION_ABSOLUTE_TIMEOUT_HOURS = int(os.environ.get("SESSION_ABSOLUTE_TIMEOUT_HOURS", "24"))
    SESSION_IDLE_TIMEOUT_HOURS = int(os.environ.get("SESSION_IDLE_TIMEOUT_HOURS", "2"))

    # Public storefront info
    COMPANY_NAME = os.environ.get("COMPANY_NAME", "")
    COMPANY_ADDRESS = os.environ.get("COMPANY_ADDRESS", "")
    COMPANY_PHONE = os.environ.get("COMPANY_PHONE", "")
    COMPANY_LOGO = os.environ.get("COMPANY_LOGO", "")

    # bcrypt cost factor (tests lower this)
    BCRYPT_ROUNDS = int(os.environ.get("BCRYPT_ROUNDS", "12"))
