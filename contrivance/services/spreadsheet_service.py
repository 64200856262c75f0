"""
Spreadsheet and Schema Registry service layer.

Centralises all ORM queries and mutations for Spreadsheet and
SpreadsheetColumn so that blueprints remain HTTP-only. Every commit in this
module goes through ``commit_or_raise`` and is paired with exactly one audit
row written in the same transaction.

Column positions are kept unique and dense per spreadsheet: defining a
column at an occupied position shifts later columns down, moving a column
renumbers its siblings, deleting one compacts the rest.
"""

import logging

from sqlalchemy import func

from contrivance.core.exceptions import ConflictError, NotFoundError, ValidationError
from contrivance.models import db
from contrivance.models.audit import diff_fields, write_audit
from contrivance.models.spreadsheet import Spreadsheet, SpreadsheetColumn, SpreadsheetRow
from contrivance.models.todo import Todo
from contrivance.services.column_types import normalize_column_type
from contrivance.utils.helpers import commit_or_raise

logger = logging.getLogger(__name__)

MAX_NAME_LENGTH = 255


# ──────────────────────────────────────────────────────────────────────────────
# Lookups
# ──────────────────────────────────────────────────────────────────────────────

def get_spreadsheet_model(spreadsheet_id: int) -> Spreadsheet:
    """Return the Spreadsheet ORM instance or raise NotFoundError."""
    sheet = db.session.get(Spreadsheet, spreadsheet_id)
    if not sheet:
        raise NotFoundError(resource="Spreadsheet", resource_id=spreadsheet_id)
    return sheet


def _get_column(column_id: int) -> SpreadsheetColumn:
    column = db.session.get(SpreadsheetColumn, column_id)
    if not column:
        raise NotFoundError(resource="Column", resource_id=column_id)
    return column


def _clean_name(value, field="name") -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} is required", details={field: "required"})
    value = value.strip()
    if len(value) > MAX_NAME_LENGTH:
        raise ValidationError(
            f"{field} must be <= {MAX_NAME_LENGTH} chars",
            details={field: "too long"},
        )
    return value


def _ordered_columns(sheet: Spreadsheet) -> list[SpreadsheetColumn]:
    return sorted(sheet.columns, key=lambda c: (c.position, c.id or 0))


def _renumber(columns: list[SpreadsheetColumn]) -> None:
    """Give *columns* dense positions in list order.

    Shifted columns are parked on negative positions and flushed first;
    ``(spreadsheet_id, position)`` is unique and SQLite checks it per row.
    """
    shifted = [(index, c) for index, c in enumerate(columns) if c.position != index]
    if not shifted:
        return
    for index, column in shifted:
        column.position = -(index + 1)
    db.session.flush()
    for index, column in shifted:
        column.position = index


# ──────────────────────────────────────────────────────────────────────────────
# Spreadsheets
# ──────────────────────────────────────────────────────────────────────────────

def create_spreadsheet(data: dict, owner_id: str | None = None) -> dict:
    """Create a spreadsheet, optionally defining its initial columns in order.

    Args:
        data: name (required), description, is_public, settings, columns.
        owner_id: Acting user; stored as owner and audit actor.

    Returns:
        Serialized spreadsheet including its columns.

    Raises:
        ValidationError: bad name/settings or a malformed column definition.
        ConflictError: two initial columns share a name.
    """
    name = _clean_name(data.get("name"))
    settings = data.get("settings") or {}
    if not isinstance(settings, dict):
        raise ValidationError("settings must be an object", details={"settings": "expected an object"})
    columns = data.get("columns") or []
    if not isinstance(columns, list):
        raise ValidationError("columns must be a list", details={"columns": "expected a list"})

    sheet = Spreadsheet(
        name=name,
        description=data.get("description") or "",
        owner_id=owner_id,
        is_public=bool(data.get("is_public", False)),
        settings=settings,
    )
    db.session.add(sheet)
    db.session.flush()

    try:
        for column_data in columns:
            if not isinstance(column_data, dict):
                raise ValidationError("each column must be an object", details={"columns": "expected objects"})
            _define_column(sheet, column_data)
    except (ValidationError, ConflictError):
        db.session.rollback()
        raise

    result = sheet.to_dict(include_columns=True)
    write_audit(
        entity_type="spreadsheet",
        entity_id=sheet.id,
        action="create",
        actor=owner_id,
        spreadsheet_id=sheet.id,
        diff=result,
    )
    commit_or_raise("create_spreadsheet")
    logger.info("Spreadsheet created id=%s columns=%d", sheet.id, len(columns))
    return result


def list_spreadsheets(
    owner_id: str | None = None,
    include_public: bool = True,
    limit: int = 200,
    offset: int = 0,
) -> tuple[list[dict], int]:
    """Return spreadsheets visible to *owner_id*, newest activity first.

    With an owner, the result is that owner's spreadsheets plus (when
    *include_public*) every public one. Without an owner, every spreadsheet
    is listed.

    Returns:
        Tuple of (list of dicts carrying column_count/row_count, total).
    """
    q = Spreadsheet.query
    if owner_id:
        if include_public:
            q = q.filter(db.or_(Spreadsheet.owner_id == owner_id, Spreadsheet.is_public.is_(True)))
        else:
            q = q.filter(Spreadsheet.owner_id == owner_id)
    q = q.order_by(Spreadsheet.updated_at.desc(), Spreadsheet.id.desc())
    total = q.count()
    sheets = q.limit(limit).offset(offset).all()

    ids = [s.id for s in sheets]
    column_counts = _counts_by_spreadsheet(SpreadsheetColumn, ids)
    row_counts = _counts_by_spreadsheet(SpreadsheetRow, ids)

    items = []
    for sheet in sheets:
        d = sheet.to_dict()
        d["column_count"] = column_counts.get(sheet.id, 0)
        d["row_count"] = row_counts.get(sheet.id, 0)
        items.append(d)
    return items, total


def _counts_by_spreadsheet(model, ids: list[int]) -> dict[int, int]:
    if not ids:
        return {}
    rows = (
        db.session.query(model.spreadsheet_id, func.count(model.id))
        .filter(model.spreadsheet_id.in_(ids))
        .group_by(model.spreadsheet_id)
        .all()
    )
    return {sid: count for sid, count in rows}


def get_spreadsheet(spreadsheet_id: int) -> dict:
    """Return spreadsheet details with ordered columns and row/todo counts."""
    sheet = get_spreadsheet_model(spreadsheet_id)
    d = sheet.to_dict(include_columns=True)
    d["row_count"] = SpreadsheetRow.query.filter_by(spreadsheet_id=sheet.id).count()
    d["todo_count"] = Todo.query.filter_by(spreadsheet_id=sheet.id).count()
    return d


def update_spreadsheet(spreadsheet_id: int, data: dict, actor: str | None = None) -> dict:
    """Apply a partial update; ``settings`` replaces the whole map."""
    sheet = get_spreadsheet_model(spreadsheet_id)
    before = sheet.to_dict()

    changes = {}
    if "name" in data:
        changes["name"] = _clean_name(data["name"])
    if "description" in data:
        changes["description"] = data["description"] or ""
    if "is_public" in data:
        changes["is_public"] = bool(data["is_public"])
    if "settings" in data:
        settings = data["settings"] or {}
        if not isinstance(settings, dict):
            raise ValidationError("settings must be an object", details={"settings": "expected an object"})
        changes["settings"] = settings
    if not changes:
        raise ValidationError("No updatable fields supplied")

    for attr, value in changes.items():
        setattr(sheet, attr, value)
    db.session.flush()
    result = sheet.to_dict()
    write_audit(
        entity_type="spreadsheet",
        entity_id=sheet.id,
        action="update",
        actor=actor,
        spreadsheet_id=sheet.id,
        diff=diff_fields(before, result),
    )
    commit_or_raise("update_spreadsheet")
    logger.info("Spreadsheet updated id=%s", sheet.id)
    return result


def delete_spreadsheet(spreadsheet_id: int, actor: str | None = None) -> None:
    """Delete a spreadsheet; columns, rows and todos go with it."""
    sheet = get_spreadsheet_model(spreadsheet_id)
    write_audit(
        entity_type="spreadsheet",
        entity_id=sheet.id,
        action="delete",
        actor=actor,
        spreadsheet_id=sheet.id,
        diff=sheet.to_dict(),
    )
    db.session.delete(sheet)
    commit_or_raise("delete_spreadsheet")
    logger.info("Spreadsheet deleted id=%s", spreadsheet_id)


# ──────────────────────────────────────────────────────────────────────────────
# Schema Registry (columns)
# ──────────────────────────────────────────────────────────────────────────────

def _check_name_free(sheet: Spreadsheet, name: str, exclude: SpreadsheetColumn | None = None) -> None:
    for column in sheet.columns:
        if column is not exclude and column.name == name:
            raise ConflictError(resource="Column", field="name", value=name)


def _parse_position(value) -> int | None:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValidationError("position must be an integer", details={"position": "expected an integer"})
    try:
        position = int(value)
    except (TypeError, ValueError):
        raise ValidationError("position must be an integer", details={"position": "expected an integer"})
    if position < 0:
        raise ValidationError("position must be >= 0", details={"position": "negative"})
    return position


def _define_column(sheet: Spreadsheet, data: dict) -> SpreadsheetColumn:
    """Add a column to *sheet* without committing or auditing."""
    name = _clean_name(data.get("name"))
    column_type, validation = normalize_column_type(
        data.get("column_type") or data.get("type") or "text",
        data.get("validation"),
    )
    display = data.get("display") or {}
    if not isinstance(display, dict):
        raise ValidationError("display must be an object", details={"display": "expected an object"})
    position = _parse_position(data.get("position"))
    _check_name_free(sheet, name)

    ordered = _ordered_columns(sheet)
    next_position = (max(c.position for c in ordered) + 1) if ordered else 0

    column = SpreadsheetColumn(
        name=name,
        column_type=column_type,
        validation=validation,
        display=display,
        default_value=data.get("default_value"),
        is_required=bool(data.get("is_required", False)),
        position=next_position,
    )
    sheet.columns.append(column)

    if position is not None and position < next_position:
        ordered.insert(position, column)
        _renumber(ordered)

    db.session.flush()
    return column


def define_column(spreadsheet_id: int, data: dict, actor: str | None = None) -> dict:
    """Define a new column on a spreadsheet.

    Without ``position`` the column goes to ``max(existing)+1``. An explicit
    position that is already taken inserts the column there and shifts the
    later ones; a position past the end is clamped to ``max+1``.

    Raises:
        NotFoundError: unknown spreadsheet.
        ValidationError: bad name, type, validation payload or position.
        ConflictError: the name already exists in this spreadsheet.
    """
    sheet = get_spreadsheet_model(spreadsheet_id)
    column = _define_column(sheet, data)
    result = column.to_dict()
    write_audit(
        entity_type="column",
        entity_id=column.id,
        action="create",
        actor=actor,
        spreadsheet_id=sheet.id,
        diff=result,
    )
    commit_or_raise("define_column")
    logger.info(
        "Column defined id=%s spreadsheet=%s name=%r position=%s",
        column.id, sheet.id, column.name, column.position,
    )
    return result


def list_columns(spreadsheet_id: int) -> list[dict]:
    """Return columns ordered by position, ties broken by insertion order."""
    get_spreadsheet_model(spreadsheet_id)
    columns = (
        SpreadsheetColumn.query
        .filter_by(spreadsheet_id=spreadsheet_id)
        .order_by(SpreadsheetColumn.position, SpreadsheetColumn.id)
        .all()
    )
    return [c.to_dict() for c in columns]


def get_column_models(spreadsheet_id: int) -> list[SpreadsheetColumn]:
    """Ordered column ORM instances, used by the Row Store for coercion."""
    return (
        SpreadsheetColumn.query
        .filter_by(spreadsheet_id=spreadsheet_id)
        .order_by(SpreadsheetColumn.position, SpreadsheetColumn.id)
        .all()
    )


def update_column(column_id: int, data: dict, actor: str | None = None) -> dict:
    """Apply a partial update to a column definition.

    Renaming does not migrate existing row data: rows keep their values under
    the old key. A ``position`` change moves the column and renumbers its
    siblings.
    """
    column = _get_column(column_id)
    sheet = column.spreadsheet
    before = column.to_dict()

    changes = {}
    if "name" in data:
        name = _clean_name(data["name"])
        if name != column.name:
            _check_name_free(sheet, name, exclude=column)
            changes["name"] = name

    if "column_type" in data or "type" in data or "validation" in data:
        new_type = data.get("column_type") or data.get("type") or column.column_type
        new_validation = data["validation"] if "validation" in data else (column.validation or {})
        changes["column_type"], changes["validation"] = normalize_column_type(new_type, new_validation)

    if "display" in data:
        display = data["display"] or {}
        if not isinstance(display, dict):
            raise ValidationError("display must be an object", details={"display": "expected an object"})
        changes["display"] = display
    if "default_value" in data:
        changes["default_value"] = data["default_value"]
    if "is_required" in data:
        changes["is_required"] = bool(data["is_required"])
    position = _parse_position(data.get("position"))

    for attr, value in changes.items():
        setattr(column, attr, value)

    if position is not None:
        ordered = [c for c in _ordered_columns(sheet) if c is not column]
        ordered.insert(min(position, len(ordered)), column)
        _renumber(ordered)

    db.session.flush()
    result = column.to_dict()
    write_audit(
        entity_type="column",
        entity_id=column.id,
        action="update",
        actor=actor,
        spreadsheet_id=column.spreadsheet_id,
        diff=diff_fields(before, result),
    )
    commit_or_raise("update_column")
    logger.info("Column updated id=%s spreadsheet=%s", column.id, column.spreadsheet_id)
    return result


def delete_column(column_id: int, actor: str | None = None) -> None:
    """Delete a column and compact the remaining positions.

    Row data keeps the deleted column's key as an orphan.
    """
    column = _get_column(column_id)
    sheet = column.spreadsheet
    spreadsheet_id = column.spreadsheet_id
    write_audit(
        entity_type="column",
        entity_id=column.id,
        action="delete",
        actor=actor,
        spreadsheet_id=spreadsheet_id,
        diff=column.to_dict(),
    )
    remaining = [c for c in _ordered_columns(sheet) if c is not column]
    sheet.columns.remove(column)
    db.session.flush()
    _renumber(remaining)
    commit_or_raise("delete_column")
    logger.info("Column deleted id=%s spreadsheet=%s", column_id, spreadsheet_id)
