# backend/orderease/routes/system.py
"""System health endpoint."""

import time

from flask import Blueprint, current_app, jsonify
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        status = "healthy"
        error = None
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.warning("Database health check failed: %s", exc)
        status = "unhealthy"
        error = "database unavailable"
    return {
        "status": status,
        "error": error,
        "response_time_ms": round((time.time() - start_time) * 1000, 2),
    }


@system_bp.get("/health")
def health_route():
    database = check_database_health()
    healthy = database["status"] == "healthy"
    return jsonify({
        "status": "healthy" if healthy else "unhealthy",
        "timestamp": to_utc_z(utcnow()),
        "checks": {"database": database},
    }), 200 if healthy else 503
