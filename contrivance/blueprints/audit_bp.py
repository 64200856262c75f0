"""
Sales Engineering CRM
Audit trail blueprint (read-only).

Endpoints:
    GET  /api/v1/audit               -- list / filter audit entries
    GET  /api/v1/audit/<int:log_id>  -- single audit entry
"""

from flask import Blueprint, jsonify, request

from contrivance.blueprints import pagination_args
from contrivance.core.exceptions import NotFoundError
from contrivance.models import db
from contrivance.models.audit import AuditLog, list_audit_entries
from contrivance.utils.errors import register_error_handlers

audit_bp = Blueprint("audit", __name__, url_prefix="/api/v1")
register_error_handlers(audit_bp)


@audit_bp.route("/audit", methods=["GET"])
def list_audit_logs():
    """
    Return audit entries, newest first.

    Query params:
        entity_type     -- filter by entity type
        entity_id       -- filter by entity PK
        action          -- filter by action string (prefix match)
        actor           -- filter by actor
        spreadsheet_id  -- pipeline scope
        session_id      -- discovery scope
        limit / offset  -- pagination (default 50, max 500)
    """
    limit, offset = pagination_args(default_limit=50, max_limit=500)
    entries, total = list_audit_entries(
        entity_type=request.args.get("entity_type") or None,
        entity_id=request.args.get("entity_id") or None,
        action=request.args.get("action") or None,
        actor=request.args.get("actor") or None,
        spreadsheet_id=request.args.get("spreadsheet_id", type=int),
        session_id=request.args.get("session_id", type=int),
        limit=limit,
        offset=offset,
    )
    return jsonify({
        "audit_logs": entries,
        "total": total,
        "limit": limit,
        "offset": offset,
    })


@audit_bp.route("/audit/<int:log_id>", methods=["GET"])
def get_audit_log(log_id):
    log = db.session.get(AuditLog, log_id)
    if not log:
        raise NotFoundError(resource="AuditLog", resource_id=log_id)
    return jsonify(log.to_dict())
