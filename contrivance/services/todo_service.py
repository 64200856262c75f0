"""
Task Ledger service layer.

Todos belong to a spreadsheet and are optionally bound to one row. Any
mutation of a bound todo that can change the row's completion picture
(create, delete, complete/uncomplete/toggle, an update touching
``completed``) commits first and then triggers
``status_derivation.recompute_row_status``; the resulting stats are handed
back to the caller as ``row_stats``.
"""

import logging
from datetime import datetime, timezone

from contrivance.core.exceptions import NotFoundError, ValidationError
from contrivance.models import db
from contrivance.models.audit import diff_fields, write_audit
from contrivance.models.todo import VALID_PRIORITIES, Todo
from contrivance.services import status_derivation
from contrivance.services.column_types import parse_bool
from contrivance.services.row_service import get_row_model
from contrivance.services.spreadsheet_service import get_spreadsheet_model
from contrivance.utils.helpers import commit_or_raise, parse_date_input

logger = logging.getLogger(__name__)

MAX_TITLE_LENGTH = 500
TODO_SCOPES = ("pipeline", "all")

_MUTABLE_FIELDS = (
    "title", "description", "priority", "due_date",
    "supporting_artifact", "assigned_to", "completed",
)


def _get_todo(todo_id: int) -> Todo:
    todo = db.session.get(Todo, todo_id)
    if not todo:
        raise NotFoundError(resource="Todo", resource_id=todo_id)
    return todo


def _clean_title(value) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError("title is required", details={"title": "required"})
    value = value.strip()
    if len(value) > MAX_TITLE_LENGTH:
        raise ValidationError(
            f"title must be <= {MAX_TITLE_LENGTH} chars", details={"title": "too long"},
        )
    return value


def _clean_priority(value) -> str:
    if value not in VALID_PRIORITIES:
        raise ValidationError(
            f"priority must be one of {', '.join(VALID_PRIORITIES)}",
            details={"priority": "invalid"},
        )
    return value


def _as_int(value, field):
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer", details={field: "expected an integer"})
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer", details={field: "expected an integer"})


def _apply_completion(todo: Todo, completed: bool) -> None:
    todo.completed = completed
    todo.completed_at = datetime.now(timezone.utc) if completed else None


def _recompute(row_id: int | None, actor: str | None) -> dict | None:
    if row_id is None:
        return None
    return status_derivation.recompute_row_status(row_id, actor)


# ──────────────────────────────────────────────────────────────────────────────
# CRUD
# ──────────────────────────────────────────────────────────────────────────────

def create_todo(data: dict, user_id: str | None = None) -> dict:
    """Create a pipeline-level or row-bound todo.

    Args:
        data: title (required), spreadsheet_id (required), row_id, description,
              priority (default "medium"), due_date, supporting_artifact,
              assigned_to (defaults to *user_id*).
        user_id: Acting user.

    Returns:
        ``{"todo": {...}, "row_stats": {...} | None}``

    Raises:
        ValidationError: bad title/priority/due_date, or a row from another spreadsheet.
        NotFoundError: unknown spreadsheet or row.
    """
    title = _clean_title(data.get("title"))
    if data.get("spreadsheet_id") is None:
        raise ValidationError("spreadsheet_id is required", details={"spreadsheet_id": "required"})
    sheet = get_spreadsheet_model(_as_int(data["spreadsheet_id"], "spreadsheet_id"))
    priority = _clean_priority(data.get("priority") or "medium")
    due_date = parse_date_input(data.get("due_date"), "due_date")

    row_id = None
    if data.get("row_id") is not None:
        row = get_row_model(_as_int(data["row_id"], "row_id"))
        if row.spreadsheet_id != sheet.id:
            raise ValidationError(
                "row does not belong to this spreadsheet", details={"row_id": "wrong spreadsheet"},
            )
        row_id = row.id

    todo = Todo(
        spreadsheet_id=sheet.id,
        row_id=row_id,
        title=title,
        description=data.get("description") or "",
        priority=priority,
        due_date=due_date,
        supporting_artifact=data.get("supporting_artifact"),
        assigned_to=data.get("assigned_to") or user_id,
        created_by=user_id,
    )
    _apply_completion(todo, parse_bool(data.get("completed", False)))
    db.session.add(todo)
    db.session.flush()
    result = todo.to_dict()
    write_audit(
        entity_type="todo",
        entity_id=todo.id,
        action="create",
        actor=user_id,
        spreadsheet_id=sheet.id,
        diff=result,
    )
    commit_or_raise("create_todo")
    logger.info("Todo created id=%s spreadsheet=%s row=%s", todo.id, sheet.id, row_id)
    return {"todo": result, "row_stats": _recompute(row_id, user_id)}


def get_todo(todo_id: int) -> dict:
    return _get_todo(todo_id).to_dict()


def update_todo(todo_id: int, data: dict, actor: str | None = None) -> dict:
    """Partial update. A change to ``completed`` on a bound todo re-derives the row status.

    Raises:
        ValidationError: nothing to update, or an invalid field value.
    """
    todo = _get_todo(todo_id)
    supplied = {k: data[k] for k in _MUTABLE_FIELDS if k in data}
    if not supplied:
        raise ValidationError("No fields to update")

    changes = {}
    if "title" in supplied:
        changes["title"] = _clean_title(supplied["title"])
    if "description" in supplied:
        changes["description"] = supplied["description"] or ""
    if "priority" in supplied:
        changes["priority"] = _clean_priority(supplied["priority"])
    if "due_date" in supplied:
        changes["due_date"] = parse_date_input(supplied["due_date"], "due_date")
    if "supporting_artifact" in supplied:
        changes["supporting_artifact"] = supplied["supporting_artifact"]
    if "assigned_to" in supplied:
        changes["assigned_to"] = supplied["assigned_to"]

    before = todo.to_dict()
    for attr, value in changes.items():
        setattr(todo, attr, value)
    completed = parse_bool(supplied["completed"]) if "completed" in supplied else bool(todo.completed)
    completion_changed = completed != bool(todo.completed)
    if completion_changed:
        _apply_completion(todo, completed)

    db.session.flush()
    result = todo.to_dict()
    write_audit(
        entity_type="todo",
        entity_id=todo.id,
        action="update",
        actor=actor,
        spreadsheet_id=todo.spreadsheet_id,
        diff=diff_fields(before, result),
    )
    commit_or_raise("update_todo")
    logger.info("Todo updated id=%s", todo.id)
    row_stats = _recompute(todo.row_id, actor) if completion_changed else None
    return {"todo": result, "row_stats": row_stats}


def set_todo_completion(todo_id: int, completed: bool, actor: str | None = None) -> dict:
    """Mark a todo complete or incomplete and re-derive its row's status."""
    todo = _get_todo(todo_id)
    before = bool(todo.completed)
    _apply_completion(todo, bool(completed))
    db.session.flush()
    result = todo.to_dict()
    write_audit(
        entity_type="todo",
        entity_id=todo.id,
        action="todo.toggle",
        actor=actor,
        spreadsheet_id=todo.spreadsheet_id,
        diff={"completed": {"old": before, "new": todo.completed}},
    )
    commit_or_raise("set_todo_completion")
    logger.info("Todo completion set id=%s completed=%s", todo.id, todo.completed)
    return {"todo": result, "row_stats": _recompute(todo.row_id, actor)}


def toggle_todo(todo_id: int, actor: str | None = None) -> dict:
    todo = _get_todo(todo_id)
    return set_todo_completion(todo_id, not todo.completed, actor)


def delete_todo(todo_id: int, actor: str | None = None) -> dict:
    """Delete a todo; a bound row's status is re-derived without it."""
    todo = _get_todo(todo_id)
    row_id = todo.row_id
    write_audit(
        entity_type="todo",
        entity_id=todo.id,
        action="delete",
        actor=actor,
        spreadsheet_id=todo.spreadsheet_id,
        diff=todo.to_dict(),
    )
    db.session.delete(todo)
    commit_or_raise("delete_todo")
    logger.info("Todo deleted id=%s row=%s", todo_id, row_id)
    return {"deleted": todo_id, "row_stats": _recompute(row_id, actor)}


# ──────────────────────────────────────────────────────────────────────────────
# Listings & stats
# ──────────────────────────────────────────────────────────────────────────────

def list_todos_by_spreadsheet(spreadsheet_id: int, scope: str = "pipeline") -> list[dict]:
    """Newest-first todos of a spreadsheet.

    ``scope="pipeline"`` returns only unbound todos; ``"all"`` returns every todo.
    """
    if scope not in TODO_SCOPES:
        raise ValidationError(
            f"scope must be one of {', '.join(TODO_SCOPES)}", details={"scope": "invalid"},
        )
    get_spreadsheet_model(spreadsheet_id)
    q = Todo.query.filter_by(spreadsheet_id=spreadsheet_id)
    if scope == "pipeline":
        q = q.filter(Todo.row_id.is_(None))
    q = q.order_by(Todo.created_at.desc(), Todo.id.desc())
    return [t.to_dict() for t in q.all()]


def list_todos_by_row(spreadsheet_id: int, row_id: int) -> list[dict]:
    """Newest-first todos bound to one row of the spreadsheet."""
    row = get_row_model(row_id)
    if row.spreadsheet_id != spreadsheet_id:
        raise NotFoundError(resource="Row", resource_id=row_id)
    todos = (
        Todo.query
        .filter_by(spreadsheet_id=spreadsheet_id, row_id=row_id)
        .order_by(Todo.created_at.desc(), Todo.id.desc())
        .all()
    )
    return [t.to_dict() for t in todos]


def get_todo_stats(spreadsheet_id: int) -> dict:
    """Counts over every todo of the spreadsheet, bound or not."""
    get_spreadsheet_model(spreadsheet_id)
    todos = Todo.query.filter_by(spreadsheet_id=spreadsheet_id).all()
    completed = sum(1 for t in todos if t.completed)
    return {
        "total": len(todos),
        "completed": completed,
        "pending": len(todos) - completed,
        "high_priority": sum(1 for t in todos if t.priority == "high"),
        "medium_priority": sum(1 for t in todos if t.priority == "medium"),
        "low_priority": sum(1 for t in todos if t.priority == "low"),
    }


def get_row_todo_stats(row_id: int) -> dict:
    return status_derivation.get_row_todo_stats(row_id)
