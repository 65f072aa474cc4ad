# backend/erpcore/routes/system.py
"""
System health endpoint.

Reports database connectivity and a few row counts for deployment debugging.
"""

import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import Branch, Product, InventoryTransaction, CreditNote
from erpcore.time_utils import utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api/system")


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        details = {
            "branches": db.session.query(Branch).count(),
            "products": db.session.query(Product).count(),
            "inventory_transactions": db.session.query(InventoryTransaction).count(),
            "credit_notes": db.session.query(CreditNote).count(),
        }
        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": details,
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
    Returns:
    - 200: database reachable
    - 503: database unreachable
    """
    database_health = check_database_health()
    http_status = 503 if database_health["status"] == "unhealthy" else 200

    return {
        "status": database_health["status"],
        "timestamp": utcnow().isoformat() + "Z",
        "checks": {"database": database_health},
    }, http_status
