"""
Sales Engineering CRM
Blueprint registry and request helpers shared by the API blueprints.
"""

from flask import request


def actor() -> str:
    """Acting user for audit purposes, read from the X-User header."""
    return request.headers.get("X-User") or "system"


def pagination_args(default_limit=200, max_limit=1000):
    """Parse limit/offset query parameters.

    Query params:
        limit:  max items (default 200, capped at max_limit)
        offset: starting position (default 0)

    Returns:
        (limit, offset)
    """
    try:
        limit = min(max(int(request.args.get("limit", default_limit)), 1), max_limit)
    except (ValueError, TypeError):
        limit = default_limit
    try:
        offset = max(int(request.args.get("offset", 0)), 0)
    except (ValueError, TypeError):
        offset = 0
    return limit, offset


def json_body():
    """Request body as a dict, or None when it is missing or not an object."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    return data if isinstance(data, dict) else None


def all_blueprints():
    from contrivance.blueprints.ai_bp import ai_bp
    from contrivance.blueprints.audit_bp import audit_bp
    from contrivance.blueprints.discovery_bp import discovery_bp
    from contrivance.blueprints.health_bp import health_bp
    from contrivance.blueprints.import_bp import import_bp
    from contrivance.blueprints.spreadsheet_bp import spreadsheet_bp
    from contrivance.blueprints.todo_bp import todo_bp

    return (
        spreadsheet_bp,
        todo_bp,
        discovery_bp,
        import_bp,
        ai_bp,
        audit_bp,
        health_bp,
    )
