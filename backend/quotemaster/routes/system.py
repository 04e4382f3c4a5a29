# backend/quotemaster/routes/system.py
"""
System health endpoint.

Checks the database and billing configuration so deployments can tell a
broken database apart from missing Stripe settings.
"""

import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import User, QuoteDraft, SessionToken
from quotemaster.time_utils import utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """Basic queries against the core tables."""
    start_time = time.time()
    try:
        user_count = db.session.query(User).count()
        quote_count = db.session.query(QuoteDraft).count()
        active_sessions = db.session.query(SessionToken).filter_by(is_revoked=False).count()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "users": user_count,
                "quotes": quote_count,
                "active_sessions": active_sessions,
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


def check_billing_config() -> dict:
    """Billing is optional for local use; missing settings only degrade."""
    missing = [
        key for key in ("STRIPE_SECRET_KEY", "STRIPE_WEBHOOK_SECRET", "STRIPE_PRICE_ID")
        if not current_app.config.get(key)
    ]
    if missing:
        return {"status": "degraded", "warning": f"Missing settings: {', '.join(missing)}"}
    return {"status": "healthy"}


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: healthy or degraded
    - 503: database unhealthy
    """
    start_time = time.time()

    database_health = check_database_health()
    billing_health = check_billing_config()

    all_checks = [database_health, billing_health]
    if any(check["status"] == "unhealthy" for check in all_checks):
        overall_status = "unhealthy"
        http_status = 503
    elif any(check["status"] == "degraded" for check in all_checks):
        overall_status = "degraded"
        http_status = 200
    else:
        overall_status = "healthy"
        http_status = 200

    response = {
        "status": overall_status,
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": {
            "database": database_health,
            "billing": billing_health,
        }
    }

    return response, http_status
