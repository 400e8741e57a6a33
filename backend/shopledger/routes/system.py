# Overview: Flask API routes for liveness and health checks.

# backend/shopledger/routes/system.py
"""
Liveness and health endpoints.
"""

import time
from flask import Blueprint, current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Product, Role, SequenceCounter, User, ROLE_NAMES
from ..time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        product_count = db.session.query(Product).count()
        employee_count = db.session.query(User).count()
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "products": product_count,
                "employees": employee_count,
            }
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


def check_ledger_health() -> dict:
    """
    Roles seeded and no negative stock.

    Negative stock cannot happen while the CHECK constraint holds; seeing it
    means the schema was altered outside migrations.
    """
    start_time = time.time()
    try:
        present = {name for (name,) in db.session.query(Role.name).all()}
        missing_roles = [name for name in ROLE_NAMES if name not in present]
        negative = db.session.query(func.count(Product.id)).filter(Product.current_stock < 0).scalar()
        counters = db.session.query(SequenceCounter).count()
        elapsed_ms = (time.time() - start_time) * 1000

        result = {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "sequence_counters": counters,
                "negative_stock_products": negative,
            }
        }
        if negative:
            result["status"] = "unhealthy"
            result["error"] = "Products with negative stock"
        elif missing_roles:
            result["status"] = "degraded"
            result["warning"] = f"Missing roles: {', '.join(missing_roles)}"
        return result
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Ledger health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Ledger check error"
        }


@system_bp.get("/ping")
def ping():
    return {"message": "pong"}


@system_bp.get("/api/v1/health")
def health():
    """
    Returns:
    - 200: healthy or degraded
    - 503: one or more checks unhealthy
    """
    start_time = time.time()

    database_health = check_database_health()
    ledger_health = check_ledger_health()

    all_checks = [database_health, ledger_health]
    if any(check["status"] == "unhealthy" for check in all_checks):
        overall_status, http_status = "unhealthy", 503
    elif any(check["status"] == "degraded" for check in all_checks):
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    response = {
        "status": overall_status,
        "timestamp": to_utc_z(utcnow()),
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": {
            "database": database_health,
            "ledger": ledger_health,
        }
    }
    return response, http_status
