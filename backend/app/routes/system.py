# Overview: Flask API routes for system health and notification dispatcher status.

# backend/app/routes/system.py
"""
System health and version endpoints.

Provides health checks for the database and the notification dispatcher,
and version information for deployment debugging.
"""

import sys
import time
from flask import Blueprint, current_app
from sqlalchemy import text
from ..extensions import db
from ..decorators import require_auth, require_permission
from ..services.notification_service import dispatcher
from app.time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__, url_prefix="/api")


def check_database_health() -> dict:
    """
    Check database connectivity.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


def check_notification_health() -> dict:
    """A full queue means notifications are being dropped: degraded, not down."""
    stats = dispatcher.stats()
    max_pending = current_app.config.get("NOTIFICATION_MAX_PENDING", 100)
    status = "degraded" if stats["pending"] >= max_pending else "healthy"
    return {"status": status, "details": stats}


@system_bp.get("/health")
def health():
    """
    Health check endpoint.

    Returns:
    - 200: healthy or degraded
    - 503: database unreachable
    """
    start_time = time.time()

    database_health = check_database_health()
    notification_health = check_notification_health()

    all_checks = [database_health, notification_health]
    if any(check["status"] == "unhealthy" for check in all_checks):
        overall_status, http_status = "unhealthy", 503
    elif any(check["status"] == "degraded" for check in all_checks):
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    total_elapsed_ms = (time.time() - start_time) * 1000

    response = {
        "status": overall_status,
        "timestamp": to_utc_z(utcnow()),
        "total_latency_ms": round(total_elapsed_ms, 2),
        "checks": {
            "database": database_health,
            "notifications": notification_health,
        }
    }

    return response, http_status


@system_bp.get("/version")
def version():
    """Non-sensitive deployment information."""
    env = "production" if not current_app.debug else "development"

    return {
        "api_version": "1.0.0",
        "environment": env,
        "python_version": sys.version.split()[0],
        "server_time": to_utc_z(utcnow()),
    }


@system_bp.get("/system/notifications")
@require_auth
@require_permission("SYSTEM_ADMIN")
def notification_stats():
    """Dispatcher counters: queued, sent, failed, dropped, pending."""
    return dispatcher.stats()
