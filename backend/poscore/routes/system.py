# backend/poscore/routes/system.py
"""
System health endpoint.

Checks the store and the reference data every transaction depends on
(currencies and business settings) plus the exchange-rate source mode.
"""

import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import Currency, BusinessSettings, User
from poscore.time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__, url_prefix="/api")


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        user_count = db.session.query(User).count()
        currency_count = db.session.query(Currency).count()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "users": user_count,
                "currencies": currency_count,
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


def check_reference_data_health() -> dict:
    """
    Sales need a settings row and at least the base currency.

    Missing reference data is degraded, not down: `flask system init` fixes it.
    """
    start_time = time.time()
    try:
        settings = db.session.get(BusinessSettings, 1)
        base_code = settings.currency if settings else current_app.config.get("DEFAULT_BASE_CURRENCY", "USD")
        base_currency = db.session.get(Currency, base_code)

        elapsed_ms = (time.time() - start_time) * 1000

        details = {
            "base_currency": base_code,
            "settings_initialized": settings is not None,
            "rates_updated_at": to_utc_z(settings.currency_rates_updated_at) if settings else None,
        }
        if settings is None or base_currency is None:
            return {
                "status": "degraded",
                "latency_ms": round(elapsed_ms, 2),
                "warning": "Reference data missing; run `flask system init`",
                "details": details,
            }
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": details,
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Reference data health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Reference data error"
        }


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
    reference_health = check_reference_data_health()

    all_checks = [database_health, reference_health]
    unhealthy_count = sum(1 for check in all_checks if check["status"] == "unhealthy")
    degraded_count = sum(1 for check in all_checks if check["status"] == "degraded")

    if unhealthy_count > 0:
        overall_status = "unhealthy"
        http_status = 503
    elif degraded_count > 0:
        overall_status = "degraded"
        http_status = 200  # Degraded is still operational
    else:
        overall_status = "healthy"
        http_status = 200

    total_elapsed_ms = (time.time() - start_time) * 1000

    response = {
        "status": overall_status,
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": round(total_elapsed_ms, 2),
        "rate_source_enabled": current_app.extensions["rate_source"].enabled,
        "checks": {
            "database": database_health,
            "reference_data": reference_health,
        }
    }

    return response, http_status
