"""
Health check blueprint.

Endpoints:
    GET /api/v1/health/ready  -- simple 200 for load balancers
    GET /api/v1/health/live   -- dependency status (database, collaborators)
"""

import logging
import time

from flask import Blueprint, current_app, jsonify
from sqlalchemy.exc import SQLAlchemyError

from contrivance.models import db

logger = logging.getLogger(__name__)

health_bp = Blueprint("health", __name__, url_prefix="/api/v1/health")


@health_bp.route("/ready", methods=["GET"])
def ready():
    """Readiness probe: always 200 if the app is running."""
    return jsonify({"status": "ok"}), 200


@health_bp.route("/live", methods=["GET"])
def live():
    """Liveness check; 503 when the database cannot be reached."""
    checks = {}
    overall = True

    # ── Database ─────────────────────────────────────────────────────
    try:
        t0 = time.perf_counter()
        db.session.execute(db.text("SELECT 1"))
        db_ms = (time.perf_counter() - t0) * 1000
        checks["database"] = {"status": "ok", "latency_ms": round(db_ms, 1)}
    except SQLAlchemyError as exc:
        db.session.rollback()
        checks["database"] = {"status": "error", "detail": str(exc)}
        overall = False
        logger.error("Health check: database failed: %s", exc)

    # ── Collaborators (configuration only; no outbound call) ─────────
    cfg = current_app.config
    checks["crm"] = {
        "status": "configured" if cfg.get("CRM_INSTANCE_URL") and cfg.get("CRM_ACCESS_TOKEN") else "not_configured",
    }
    checks["chat"] = {
        "status": "configured" if cfg.get("CHAT_API_KEY") else "not_configured",
        "model": cfg.get("CHAT_MODEL"),
    }

    checks["app"] = {
        "name": "Sales Engineering CRM",
        "debug": current_app.debug,
        "testing": current_app.testing,
    }

    status_code = 200 if overall else 503
    return jsonify({
        "status": "healthy" if overall else "degraded",
        "checks": checks,
    }), status_code
