# backend/stockcheck/routes/system.py
"""
System health endpoint.

Reports database connectivity and the catalog collaborator's cache state for
deployment debugging.
"""

import time

from flask import Blueprint, current_app, jsonify
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..services.catalog_service import get_catalog
from ..time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api")


def check_database_health() -> dict:
    """
    Check database connectivity with a trivial query.

    Returns dict with status and latency.
    """
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        elapsed_ms = (time.time() - start_time) * 1000
        return {"status": "healthy", "latency_ms": round(elapsed_ms, 2)}
    except SQLAlchemyError:
        db.session.rollback()
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


def catalog_info() -> dict:
    catalog = get_catalog()
    info = {
        "backend": current_app.config.get("CATALOG_BACKEND", "sql"),
    }
    cache = getattr(catalog, "cache", None)
    if cache is not None:
        info["cache"] = cache.stats()
    return info


@system_bp.route("/health", methods=["GET"])
def health():
    database = check_database_health()
    healthy = database["status"] == "healthy"
    body = {
        "status": "healthy" if healthy else "unhealthy",
        "timestamp": to_utc_z(utcnow()),
        "checks": {
            "database": database,
            "catalog": catalog_info(),
        },
    }
    return jsonify(body), 200 if healthy else 503
