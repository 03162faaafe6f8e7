# backend/bakesewa/routes/system.py
"""
System health endpoint.

Checks database connectivity and the unit catalog snapshot.
"""

import time

from flask import Blueprint, current_app

from ..extensions import db
from ..models import InventoryItem, Product, Unit
from ..time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        details = {
            "units": db.session.query(Unit).count(),
            "inventory_items": db.session.query(InventoryItem).count(),
            "products": db.session.query(Product).count(),
        }
        return {
            "status": "healthy",
            "latency_ms": round((time.time() - start_time) * 1000, 2),
            "details": details,
        }
    except Exception:
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round((time.time() - start_time) * 1000, 2),
            "error": "Database error",
        }


@system_bp.get("/api/health")
def health():
    database = check_database_health()
    catalog = current_app.extensions["unit_catalog"]
    overall = "healthy" if database["status"] == "healthy" else "unhealthy"
    return {
        "status": overall,
        "timestamp": to_utc_z(utcnow()),
        "checks": {
            "database": database,
            "unit_catalog": {"units": len(catalog.get_units()), "conversions": len(catalog.get_conversions())},
        },
    }, 200 if overall == "healthy" else 503
