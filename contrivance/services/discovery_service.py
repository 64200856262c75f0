"""
Discovery Store service layer.

Sessions, per-question responses, notes and the export trail. Responses are
written with a single ``INSERT ... ON CONFLICT (session_id, question_id) DO
UPDATE`` so concurrent saves of the same question cannot produce duplicates;
the last write wins and nothing is merged. Callers send the full
``vendor_selections`` map for a question on every save.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy.dialects import postgresql, sqlite

from contrivance.core.exceptions import NotFoundError, ValidationError
from contrivance.models import db
from contrivance.models.audit import diff_fields, write_audit
from contrivance.models.discovery import (
    VALID_NOTE_TYPES,
    VALID_QUESTION_TYPES,
    VALID_SESSION_STATUSES,
    VALID_VERTICALS,
    DiscoveryExport,
    DiscoveryNote,
    DiscoveryResponse,
    DiscoverySession,
)
from contrivance.services import discovery_reporting, export_service
from contrivance.utils.helpers import commit_or_raise

logger = logging.getLogger(__name__)

REPORT_VIEWS = ("tree", "flow", "summary")

_UPSERT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def _utcnow():
    return datetime.now(timezone.utc)


def _get_session(session_id: int) -> DiscoverySession:
    session = db.session.get(DiscoverySession, session_id)
    if not session:
        raise NotFoundError(resource="DiscoverySession", resource_id=session_id)
    return session


def _get_note(note_id: int) -> DiscoveryNote:
    note = db.session.get(DiscoveryNote, note_id)
    if not note:
        raise NotFoundError(resource="DiscoveryNote", resource_id=note_id)
    return note


def _require_text(data: dict, field: str, max_length: int) -> str:
    value = data.get(field)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        value = str(value)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} is required", details={field: "required"})
    value = value.strip()
    if len(value) > max_length:
        raise ValidationError(f"{field} must be <= {max_length} chars", details={field: "too long"})
    return value


def _check_choice(value, choices, field: str) -> str:
    if value not in choices:
        raise ValidationError(
            f"{field} must be one of {', '.join(choices)}", details={field: "invalid"},
        )
    return value


# ──────────────────────────────────────────────────────────────────────────────
# Sessions
# ──────────────────────────────────────────────────────────────────────────────

def create_session(data: dict, user_id: str | None = None) -> dict:
    """Start a discovery session for an account and vertical.

    Args:
        data: account_id, account_name, vertical (required); status
              (default "in_progress"); metadata.
        user_id: Acting user, stored on the session.
    """
    account_id = _require_text(data, "account_id", 100)
    account_name = _require_text(data, "account_name", 255)
    vertical = _check_choice(data.get("vertical"), VALID_VERTICALS, "vertical")
    status = _check_choice(data.get("status") or "in_progress", VALID_SESSION_STATUSES, "status")
    metadata = data.get("metadata") or {}
    if not isinstance(metadata, dict):
        raise ValidationError("metadata must be an object", details={"metadata": "expected an object"})

    session = DiscoverySession(
        account_id=account_id,
        account_name=account_name,
        user_id=user_id,
        vertical=vertical,
        status=status,
        session_metadata=metadata,
        completed_at=_utcnow() if status == "completed" else None,
    )
    db.session.add(session)
    db.session.flush()
    result = session.to_dict()
    write_audit(
        entity_type="discovery_session",
        entity_id=session.id,
        action="create",
        actor=user_id,
        session_id=session.id,
        diff=result,
    )
    commit_or_raise("create_session")
    logger.info("Discovery session created id=%s account=%s vertical=%s", session.id, account_id, vertical)
    return result


def get_session(session_id: int) -> dict:
    """Session with its responses (answered_at ascending) and notes (newest first)."""
    session = _get_session(session_id)
    d = session.to_dict()
    d["responses"] = [r.to_dict() for r in session.responses]
    d["notes"] = [n.to_dict() for n in session.notes]
    d["total_questions_answered"] = len(d["responses"])
    return d


def list_sessions_by_account(account_id: str) -> list[dict]:
    """Sessions for one account, oldest first; the last one is the current session."""
    sessions = (
        DiscoverySession.query
        .filter_by(account_id=str(account_id))
        .order_by(DiscoverySession.created_at, DiscoverySession.id)
        .all()
    )
    return [s.to_dict() for s in sessions]


def get_active_session(account_id: str) -> dict | None:
    session = (
        DiscoverySession.query
        .filter_by(account_id=str(account_id))
        .order_by(DiscoverySession.created_at.desc(), DiscoverySession.id.desc())
        .first()
    )
    return session.to_dict() if session else None


def update_session_status(session_id: int, status: str, actor: str | None = None) -> dict:
    """Move a session to *status*; ``completed`` stamps ``completed_at``, any other status clears it."""
    session = _get_session(session_id)
    status = _check_choice(status, VALID_SESSION_STATUSES, "status")
    previous = session.status
    session.status = status
    session.completed_at = _utcnow() if status == "completed" else None
    db.session.flush()
    result = session.to_dict()
    write_audit(
        entity_type="discovery_session",
        entity_id=session.id,
        action="discovery.status_change",
        actor=actor,
        session_id=session.id,
        diff={"status": {"old": previous, "new": status}},
    )
    commit_or_raise("update_session_status")
    logger.info("Discovery session status id=%s %s -> %s", session.id, previous, status)
    return result


# ──────────────────────────────────────────────────────────────────────────────
# Responses (upsert)
# ──────────────────────────────────────────────────────────────────────────────

def _clean_vendor_selections(value) -> dict:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValidationError(
            "vendor_selections must map category → list of vendors",
            details={"vendor_selections": "expected an object"},
        )
    cleaned = {}
    for category, vendors in value.items():
        if not isinstance(vendors, list) or not all(isinstance(v, str) for v in vendors):
            raise ValidationError(
                f"vendor_selections[{category!r}] must be a list of strings",
                details={f"vendor_selections.{category}": "expected a list of strings"},
            )
        cleaned[str(category)] = list(vendors)
    return cleaned


def _clean_sizing_selections(value) -> dict:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValidationError(
            "sizing_selections must be an object",
            details={"sizing_selections": "expected an object"},
        )
    return dict(value)


def _upsert_insert():
    dialect = db.session.get_bind().dialect.name
    try:
        return _UPSERT_INSERTS[dialect]
    except KeyError:
        raise RuntimeError(f"Response upsert is not supported on the {dialect!r} dialect")


def save_response(session_id: int, data: dict, actor: str | None = None) -> dict:
    """Insert or replace the response for (session, question_id).

    An existing response has its title, type, value, raw text, vendor and
    sizing maps and ``answered_at`` overwritten in place; its id and
    ``created_at`` are kept.

    Raises:
        NotFoundError: unknown session.
        ValidationError: missing question_id, unknown question_type, bad maps.
    """
    session = _get_session(session_id)
    question_id = _require_text(data, "question_id", 100)
    question_type = _check_choice(data.get("question_type"), VALID_QUESTION_TYPES, "question_type")
    vendor_selections = _clean_vendor_selections(data.get("vendor_selections"))
    sizing_selections = _clean_sizing_selections(data.get("sizing_selections"))
    response_raw = data.get("response_raw")
    if response_raw is not None and not isinstance(response_raw, str):
        response_raw = str(response_raw)

    now = _utcnow()
    insert = _upsert_insert()
    stmt = insert(DiscoveryResponse.__table__).values(
        session_id=session.id,
        question_id=question_id,
        question_title=(data.get("question_title") or "")[:500],
        question_type=question_type,
        response_value=data.get("response_value"),
        response_raw=response_raw,
        vendor_selections=vendor_selections,
        sizing_selections=sizing_selections,
        answered_at=now,
        created_at=now,
        updated_at=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["session_id", "question_id"],
        set_={
            "question_title": stmt.excluded.question_title,
            "question_type": stmt.excluded.question_type,
            "response_value": stmt.excluded.response_value,
            "response_raw": stmt.excluded.response_raw,
            "vendor_selections": stmt.excluded.vendor_selections,
            "sizing_selections": stmt.excluded.sizing_selections,
            "answered_at": stmt.excluded.answered_at,
            "updated_at": stmt.excluded.updated_at,
        },
    )
    db.session.execute(stmt)

    response = (
        DiscoveryResponse.query
        .filter_by(session_id=session.id, question_id=question_id)
        .populate_existing()
        .one()
    )
    result = response.to_dict()
    write_audit(
        entity_type="discovery_response",
        entity_id=response.id,
        action="discovery.response_upsert",
        actor=actor,
        session_id=session.id,
        diff={
            "question_id": question_id,
            "response_value": result["response_value"],
            "vendor_selections": vendor_selections,
            "sizing_selections": sizing_selections,
        },
    )
    commit_or_raise("save_response")
    logger.info("Discovery response saved id=%s session=%s question=%s", response.id, session.id, question_id)
    return result


def list_responses(session_id: int) -> list[dict]:
    _get_session(session_id)
    responses = (
        DiscoveryResponse.query
        .filter_by(session_id=session_id)
        .order_by(DiscoveryResponse.answered_at, DiscoveryResponse.id)
        .all()
    )
    return [r.to_dict() for r in responses]


# ──────────────────────────────────────────────────────────────────────────────
# Notes
# ──────────────────────────────────────────────────────────────────────────────

def _check_related_response(session_id: int, response_id) -> int | None:
    if response_id is None:
        return None
    response = db.session.get(DiscoveryResponse, response_id)
    if not response:
        raise NotFoundError(resource="DiscoveryResponse", resource_id=response_id)
    if response.session_id != session_id:
        raise ValidationError(
            "related response belongs to another session", details={"response_id": "wrong session"},
        )
    return response.id


def add_note(session_id: int, data: dict, actor: str | None = None) -> dict:
    session = _get_session(session_id)
    note_text = _require_text(data, "note_text", 20000)
    note_type = _check_choice(data.get("note_type") or "general", VALID_NOTE_TYPES, "note_type")
    response_id = _check_related_response(session.id, data.get("response_id"))

    note = DiscoveryNote(
        session_id=session.id,
        response_id=response_id,
        note_text=note_text,
        note_type=note_type,
        created_by=actor,
    )
    db.session.add(note)
    db.session.flush()
    result = note.to_dict()
    write_audit(
        entity_type="discovery_note",
        entity_id=note.id,
        action="create",
        actor=actor,
        session_id=session.id,
        diff=result,
    )
    commit_or_raise("add_note")
    logger.info("Discovery note added id=%s session=%s type=%s", note.id, session.id, note_type)
    return result


def update_note(note_id: int, data: dict, actor: str | None = None) -> dict:
    note = _get_note(note_id)
    changes = {}
    if "note_text" in data:
        changes["note_text"] = _require_text(data, "note_text", 20000)
    if "note_type" in data:
        changes["note_type"] = _check_choice(data["note_type"], VALID_NOTE_TYPES, "note_type")
    if "response_id" in data:
        changes["response_id"] = _check_related_response(note.session_id, data["response_id"])
    if not changes:
        raise ValidationError("No fields to update")

    before = note.to_dict()
    for attr, value in changes.items():
        setattr(note, attr, value)
    db.session.flush()
    result = note.to_dict()
    write_audit(
        entity_type="discovery_note",
        entity_id=note.id,
        action="update",
        actor=actor,
        session_id=note.session_id,
        diff=diff_fields(before, result),
    )
    commit_or_raise("update_note")
    logger.info("Discovery note updated id=%s", note.id)
    return result


def delete_note(note_id: int, actor: str | None = None) -> None:
    """Delete a note; the response it referenced is untouched."""
    note = _get_note(note_id)
    session_id = note.session_id
    write_audit(
        entity_type="discovery_note",
        entity_id=note.id,
        action="delete",
        actor=actor,
        session_id=session_id,
        diff=note.to_dict(),
    )
    db.session.delete(note)
    commit_or_raise("delete_note")
    logger.info("Discovery note deleted id=%s session=%s", note_id, session_id)


def list_notes(session_id: int) -> list[dict]:
    _get_session(session_id)
    notes = (
        DiscoveryNote.query
        .filter_by(session_id=session_id)
        .order_by(DiscoveryNote.created_at.desc(), DiscoveryNote.id.desc())
        .all()
    )
    return [n.to_dict() for n in notes]


# ──────────────────────────────────────────────────────────────────────────────
# Summary, reporting, export
# ──────────────────────────────────────────────────────────────────────────────

def get_session_summary(session_id: int) -> dict:
    """Headline numbers for a session: distinct vendors and merged sizing."""
    session = _get_session(session_id)
    vendors: list[str] = []
    sizing: dict = {}
    for response in session.responses:
        for selected in (response.vendor_selections or {}).values():
            for vendor in selected or []:
                if vendor not in vendors:
                    vendors.append(vendor)
        sizing.update(response.sizing_selections or {})
    return {
        "session_id": session.id,
        "account_id": session.account_id,
        "account_name": session.account_name,
        "vertical": session.vertical,
        "status": session.status,
        "total_responses": len(session.responses),
        "vendors_selected": vendors,
        "sizing_info": sizing,
    }


def get_session_report(session_id: int, view: str = "tree") -> dict:
    """Aggregated view over a session's responses (``tree``, ``flow`` or ``summary``)."""
    view = _check_choice(view, REPORT_VIEWS, "view")
    session = _get_session(session_id)
    responses = [r.to_dict() for r in session.responses]
    if view == "tree":
        data = discovery_reporting.build_category_tree(responses, root_name=session.account_name)
    elif view == "flow":
        data = discovery_reporting.build_flow_graph(responses)
    else:
        data = discovery_reporting.summarize_by_category(responses)
    return {"session_id": session.id, "view": view, "data": data}


def _record_export(session_id, fmt, status, actor, *, file_name=None, error=None, session_exists=True):
    if session_exists:
        db.session.add(DiscoveryExport(
            session_id=session_id,
            export_format=fmt,
            status=status,
            file_name=file_name,
            error_message=error,
            exported_by=actor,
        ))
    write_audit(
        entity_type="discovery_session",
        entity_id=session_id,
        action="discovery.export",
        actor=actor,
        session_id=session_id,
        diff={"format": fmt, "status": status, "file_name": file_name, "error": error},
    )
    commit_or_raise("record_export")


def export_session(session_id: int, fmt: str = "json", actor: str | None = None) -> export_service.ExportResult:
    """Render a session as ``json``, ``csv`` or ``xlsx``.

    Every attempt is recorded: one ``discovery.export`` audit entry with the
    outcome, plus a DiscoveryExport row when the session exists.

    Raises:
        NotFoundError: unknown session (the failed attempt is still audited).
        ValidationError: unsupported format (recorded as failed).
    """
    fmt = (fmt or "json").lower()
    session = db.session.get(DiscoverySession, session_id)
    if not session:
        _record_export(session_id, fmt, "failed", actor, error="session not found", session_exists=False)
        logger.warning("Export of missing discovery session id=%s", session_id)
        raise NotFoundError(resource="DiscoverySession", resource_id=session_id)

    if fmt not in export_service.EXPORT_FORMATS:
        _record_export(session.id, fmt[:10], "failed", actor, error=f"unsupported format {fmt!r}")
        raise ValidationError(
            f"format must be one of {', '.join(export_service.EXPORT_FORMATS)}",
            details={"format": "invalid"},
        )

    try:
        result = export_service.render_export(
            fmt,
            session.to_dict(),
            [r.to_dict() for r in session.responses],
            [n.to_dict() for n in session.notes],
        )
    except Exception as exc:
        logger.exception("Export rendering failed session=%s format=%s", session.id, fmt)
        _record_export(session.id, fmt, "failed", actor, error=str(exc)[:500])
        raise

    _record_export(session.id, fmt, "success", actor, file_name=result.filename)
    logger.info("Discovery session exported id=%s format=%s file=%s", session.id, fmt, result.filename)
    return result
