# backend/retailpos/routes/system.py
"""
System health endpoint.

Checks the database, the auth tables (roles/permissions) and the chart of
accounts that sale settlement posts to.
"""

import time

from flask import Blueprint, current_app

from ..extensions import db
from ..models import Account, Permission, Role, User
from ..services.ledger_service import DEFAULT_ACCOUNTS
from ..time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api")


def _elapsed_ms(start_time: float) -> float:
    return round((time.time() - start_time) * 1000, 2)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        user_count = db.session.query(User).count()
        return {
            "status": "healthy",
            "latency_ms": _elapsed_ms(start_time),
            "details": {"users": user_count},
        }
    except Exception:
        current_app.logger.exception("Database health check failed")
        return {"status": "unhealthy", "latency_ms": _elapsed_ms(start_time), "error": "Database error"}


def check_auth_health() -> dict:
    """Roles and permissions must be initialized for any route to be usable."""
    start_time = time.time()
    try:
        missing_roles = [
            name for name in ("admin", "manager", "cashier")
            if not db.session.query(Role).filter_by(name=name).first()
        ]
        permission_count = db.session.query(Permission).count()
        details = {"permission_count": permission_count}
        if missing_roles or permission_count == 0:
            return {
                "status": "degraded",
                "latency_ms": _elapsed_ms(start_time),
                "warning": f"Missing roles: {', '.join(missing_roles)}" if missing_roles else "No permissions",
                "details": details,
            }
        return {"status": "healthy", "latency_ms": _elapsed_ms(start_time), "details": details}
    except Exception:
        current_app.logger.exception("Auth health check failed")
        return {"status": "unhealthy", "latency_ms": _elapsed_ms(start_time), "error": "Auth service error"}


def check_ledger_health() -> dict:
    """Settlement fails with a precondition error if a default account is missing."""
    start_time = time.time()
    try:
        existing = {code for (code,) in db.session.query(Account.code).all()}
        missing = [code for code, _name, _type in DEFAULT_ACCOUNTS if code not in existing]
        if missing:
            return {
                "status": "degraded",
                "latency_ms": _elapsed_ms(start_time),
                "warning": f"Missing accounts: {', '.join(missing)}",
            }
        return {"status": "healthy", "latency_ms": _elapsed_ms(start_time)}
    except Exception:
        current_app.logger.exception("Ledger health check failed")
        return {"status": "unhealthy", "latency_ms": _elapsed_ms(start_time), "error": "Ledger error"}


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: healthy or degraded (still operational)
    - 503: one or more checks unhealthy
    """
    start_time = time.time()

    checks = {
        "database": check_database_health(),
        "auth_service": check_auth_health(),
        "ledger": check_ledger_health(),
    }
    statuses = [check["status"] for check in checks.values()]

    if "unhealthy" in statuses:
        overall_status, http_status = "unhealthy", 503
    elif "degraded" in statuses:
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    return {
        "status": overall_status,
        "timestamp": to_utc_z(utcnow()),
        "total_latency_ms": _elapsed_ms(start_time),
        "checks": checks,
    }, http_status
