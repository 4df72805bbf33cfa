# backend/salonpos/routes/system.py
"""
System health and version endpoints.

Health checks the database and reports the ledger's basic shape so a
deployment can be checked from a browser.
"""

import time
from flask import Blueprint, current_app
from sqlalchemy import func
from ..extensions import db
from ..models import CashClosure, Client, Transaction
from salonpos.time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        transaction_count = db.session.query(Transaction).count()
        client_count = db.session.query(Client).count()
        last_closure = db.session.query(func.max(CashClosure.closure_date)).scalar()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "transactions": transaction_count,
                "clients": client_count,
                "last_closure_date": last_closure.isoformat() if last_closure else None,
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


@system_bp.get("/health")
def health():
    """
    Health check endpoint.

    Returns:
    - 200: Database reachable
    - 503: Database unhealthy
    """
    start_time = time.time()
    database_health = check_database_health()
    http_status = 503 if database_health["status"] == "unhealthy" else 200

    response = {
        "status": database_health["status"],
        "timestamp": to_utc_z(utcnow()),
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "business_timezone": current_app.config["BUSINESS_TIMEZONE"],
        "checks": {
            "database": database_health,
        }
    }

    return response, http_status


@system_bp.get("/version")
def version():
    """Non-sensitive deployment information."""
    import sys

    env = "production" if not current_app.debug else "development"

    return {
        "api_version": "1.0.0",
        "environment": env,
        "python_version": sys.version.split()[0],
        "server_time": to_utc_z(utcnow()),
    }
