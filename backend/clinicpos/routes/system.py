# backend/clinicpos/routes/system.py
"""
System health endpoint.

Reports database reachability, the document sequence table and the
laboratory backlog for deployment debugging.
"""

import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import DocumentSequence, LaboratoryOrder, Quote, Sale
from ..services.laboratory_service import TERMINAL_LAB_STATUSES
from ..time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__, url_prefix="/api")


def check_database_health() -> dict:
    """
    Check database connectivity and basic queries.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        quote_count = db.session.query(Quote).count()
        sale_count = db.session.query(Sale).count()
        sequence_count = db.session.query(DocumentSequence).count()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "quotes": quote_count,
                "sales": sale_count,
                "document_sequences": sequence_count,
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


def check_laboratory_backlog() -> dict:
    """Open laboratory orders; degraded when any is past its estimated date."""
    start_time = time.time()
    try:
        open_orders = db.session.query(LaboratoryOrder).filter(
            LaboratoryOrder.status.notin_(TERMINAL_LAB_STATUSES)
        )
        open_count = open_orders.count()
        overdue_count = open_orders.filter(
            LaboratoryOrder.estimated_completion_date.isnot(None),
            LaboratoryOrder.estimated_completion_date < utcnow().date(),
        ).count()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "degraded" if overdue_count else "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "open": open_count,
                "overdue": overdue_count,
            }
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Laboratory backlog check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Laboratory backlog error"
        }


@system_bp.get("/health")
def health():
    """
    Health check endpoint.

    Returns:
    - 200: healthy or degraded (still operational)
    - 503: database unreachable
    """
    start_time = time.time()

    database_health = check_database_health()
    laboratory_health = check_laboratory_backlog()

    all_checks = [database_health, laboratory_health]
    unhealthy_count = sum(1 for check in all_checks if check["status"] == "unhealthy")
    degraded_count = sum(1 for check in all_checks if check["status"] == "degraded")

    if unhealthy_count > 0:
        overall_status = "unhealthy"
        http_status = 503
    elif degraded_count > 0:
        overall_status = "degraded"
        http_status = 200
    else:
        overall_status = "healthy"
        http_status = 200

    total_elapsed_ms = (time.time() - start_time) * 1000

    response = {
        "status": overall_status,
        "timestamp": to_utc_z(utcnow()),
        "total_latency_ms": round(total_elapsed_ms, 2),
        "checks": {
            "database": database_health,
            "laboratory_backlog": laboratory_health,
        }
    }

    return response, http_status
