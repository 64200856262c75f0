"""
Sales Engineering CRM
Audit domain model.

Models:
    - AuditLog: immutable, append-only audit trail; one row per mutation.
"""

import json
from datetime import datetime, timezone

from contrivance.models import db

# ── Constants ────────────────────────────────────────────────────────────────

AUDIT_ENTITY_TYPES = {
    "spreadsheet", "column", "row", "todo",
    "discovery_session", "discovery_response", "discovery_note",
}

AUDIT_ACTIONS = {
    "create",
    "update",
    "delete",
    "todo.toggle",
    "row.status_recompute",
    "discovery.response_upsert",
    "discovery.status_change",
    "discovery.export",
}


class AuditLog(db.Model):
    """
    Immutable audit trail for every mutation.

    One row per action. ``diff_json`` carries the created/deleted snapshot
    or the ``{field: {old, new}}`` change set for updates.
    """

    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("idx_audit_entity", "entity_type", "entity_id"),
        db.Index("idx_audit_action", "action"),
        db.Index("idx_audit_ts", "timestamp"),
    )

    id = db.Column(db.Integer, primary_key=True)

    # Scope references are plain ints: entries outlive the rows they describe
    spreadsheet_id = db.Column(db.Integer, nullable=True, index=True)
    session_id = db.Column(db.Integer, nullable=True, index=True)

    entity_type = db.Column(
        db.String(30), nullable=False,
        comment="spreadsheet | column | row | todo | discovery_session | …",
    )
    entity_id = db.Column(db.String(36), nullable=False)

    action = db.Column(
        db.String(60), nullable=False,
        comment="create | update | delete | todo.toggle | discovery.export | …",
    )
    actor = db.Column(db.String(150), nullable=False, default="system")

    diff_json = db.Column(db.Text, default="{}")

    timestamp = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    @property
    def diff(self) -> dict:
        """Deserialise *diff_json* to a Python dict."""
        try:
            return json.loads(self.diff_json or "{}")
        except (json.JSONDecodeError, TypeError):
            return {}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "spreadsheet_id": self.spreadsheet_id,
            "session_id": self.session_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "action": self.action,
            "actor": self.actor,
            "changes": self.diff,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }

    def __repr__(self):
        return f"<AuditLog {self.id}: {self.action} on {self.entity_type}/{self.entity_id}>"


# ── Convenience writer ───────────────────────────────────────────────────────

def write_audit(
    *,
    entity_type: str,
    entity_id,
    action: str,
    actor: str | None = "system",
    spreadsheet_id: int | None = None,
    session_id: int | None = None,
    diff: dict | None = None,
) -> AuditLog:
    """
    Append a single audit row. Uses ``flush`` so callers keep
    transaction control; the entry commits together with the mutation.

    Returns the (flushed) AuditLog instance.
    """
    log = AuditLog(
        spreadsheet_id=spreadsheet_id,
        session_id=session_id,
        entity_type=entity_type,
        entity_id=str(entity_id),
        action=action,
        actor=actor or "system",
        diff_json=json.dumps(diff or {}, default=str),
    )
    db.session.add(log)
    db.session.flush()
    return log


def diff_fields(before: dict, after: dict) -> dict:
    """Return ``{key: {"old": ..., "new": ...}}`` for keys whose value changed."""
    changes = {}
    for key in set(before) | set(after):
        old, new = before.get(key), after.get(key)
        if old != new:
            changes[key] = {"old": old, "new": new}
    return changes


def list_audit_entries(
    *,
    entity_type: str | None = None,
    entity_id=None,
    action: str | None = None,
    actor: str | None = None,
    spreadsheet_id: int | None = None,
    session_id: int | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[dict], int]:
    """Filtered audit entries, newest first. ``action`` is a prefix match."""
    q = AuditLog.query
    if entity_type:
        q = q.filter(AuditLog.entity_type == entity_type)
    if entity_id is not None:
        q = q.filter(AuditLog.entity_id == str(entity_id))
    if action:
        q = q.filter(AuditLog.action.startswith(action))
    if actor:
        q = q.filter(AuditLog.actor == actor)
    if spreadsheet_id is not None:
        q = q.filter(AuditLog.spreadsheet_id == spreadsheet_id)
    if session_id is not None:
        q = q.filter(AuditLog.session_id == session_id)

    total = q.count()
    entries = (
        q.order_by(AuditLog.timestamp.desc(), AuditLog.id.desc())
        .limit(limit)
        .offset(offset)
        .all()
    )
    return [e.to_dict() for e in entries], total
