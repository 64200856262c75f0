"""
Row Store service layer.

Rows hold a map of column name → coerced value. Every write runs the map
through the spreadsheet's current column variants (see ``column_types``);
keys that match no column are kept verbatim and never validated.
"""

import logging

from sqlalchemy import func

from contrivance.core.exceptions import NotFoundError, ValidationError
from contrivance.models import db
from contrivance.models.audit import diff_fields, write_audit
from contrivance.models.spreadsheet import SpreadsheetRow
from contrivance.models.todo import Todo
from contrivance.services.column_types import ColumnType, TypedValue, column_type_for
from contrivance.services.spreadsheet_service import get_column_models, get_spreadsheet_model
from contrivance.utils.helpers import commit_or_raise

logger = logging.getLogger(__name__)


def get_row_model(row_id: int) -> SpreadsheetRow:
    row = db.session.get(SpreadsheetRow, row_id)
    if not row:
        raise NotFoundError(resource="Row", resource_id=row_id)
    return row


def coerce_row_data(columns, raw: dict, *, partial: bool = False) -> dict:
    """Coerce *raw* against *columns*.

    Full writes (``partial=False``) produce a value for every column: an
    absent key takes the column's ``default_value`` before coercion, and
    required columns must end up non-empty. Partial writes touch only the
    supplied keys and check required-ness for those alone.

    Raises:
        ValidationError: carrying one ``details`` entry per failing column.
    """
    if not isinstance(raw, dict):
        raise ValidationError("row data must be an object", details={"data": "expected an object"})

    typed: dict[str, TypedValue] = {}
    errors: dict[str, str] = {}
    for column in columns:
        if column.name in raw:
            value = raw[column.name]
        elif partial:
            continue
        else:
            value = column.default_value

        variant = column_type_for(column.column_type, column.validation)
        try:
            typed[column.name] = variant.wrap(value, column.name)
        except ValidationError as exc:
            errors.update(exc.details or {column.name: str(exc)})
            continue
        if column.is_required and ColumnType.is_empty(typed[column.name].value):
            errors[column.name] = "required"

    if errors:
        raise ValidationError(
            f"Invalid row data for column(s): {', '.join(sorted(errors))}",
            details=errors,
        )

    # Unknown keys pass through untouched; known keys take their coerced value
    data = {k: v for k, v in raw.items() if k not in typed}
    data.update({name: tv.value for name, tv in typed.items()})
    return data


def create_row(spreadsheet_id: int, raw: dict, actor: str | None = None) -> dict:
    """Coerce and persist a new row at ``max(position)+1``.

    Raises:
        NotFoundError: unknown spreadsheet.
        ValidationError: coercion or required-column failure; nothing is written.
    """
    sheet = get_spreadsheet_model(spreadsheet_id)
    data = coerce_row_data(get_column_models(sheet.id), raw or {})

    max_position = (
        db.session.query(func.max(SpreadsheetRow.position))
        .filter(SpreadsheetRow.spreadsheet_id == sheet.id)
        .scalar()
    )
    row = SpreadsheetRow(
        spreadsheet_id=sheet.id,
        data=data,
        position=0 if max_position is None else max_position + 1,
        created_by=actor,
        updated_by=actor,
    )
    db.session.add(row)
    db.session.flush()
    write_audit(
        entity_type="row",
        entity_id=row.id,
        action="create",
        actor=actor,
        spreadsheet_id=sheet.id,
        diff={"data": data, "position": row.position},
    )
    commit_or_raise("create_row")
    logger.info("Row created id=%s spreadsheet=%s position=%s", row.id, sheet.id, row.position)
    return row.to_dict()


def get_row(row_id: int) -> dict:
    return get_row_model(row_id).to_dict()


def list_rows(spreadsheet_id: int, limit: int | None = None, offset: int = 0) -> tuple[list[dict], int]:
    """Rows ordered by position, then id."""
    get_spreadsheet_model(spreadsheet_id)
    q = (
        SpreadsheetRow.query
        .filter_by(spreadsheet_id=spreadsheet_id)
        .order_by(SpreadsheetRow.position, SpreadsheetRow.id)
    )
    total = q.count()
    if limit is not None:
        q = q.limit(limit)
    if offset:
        q = q.offset(offset)
    return [r.to_dict() for r in q.all()], total


def update_row(row_id: int, partial: dict, actor: str | None = None, *, action: str = "update") -> dict:
    """Coerce *partial* and merge it into the row's existing data map.

    Keys not present in *partial* are left as they are.
    """
    row = get_row_model(row_id)
    coerced = coerce_row_data(get_column_models(row.spreadsheet_id), partial or {}, partial=True)

    before = dict(row.data or {})
    merged = dict(before)
    merged.update(coerced)
    row.data = merged
    row.updated_by = actor
    db.session.flush()

    write_audit(
        entity_type="row",
        entity_id=row.id,
        action=action,
        actor=actor,
        spreadsheet_id=row.spreadsheet_id,
        diff=diff_fields(before, merged),
    )
    commit_or_raise("update_row")
    logger.info("Row updated id=%s keys=%s", row.id, sorted(coerced))
    return row.to_dict()


def delete_row(row_id: int, actor: str | None = None) -> int:
    """Delete a row; its todos are unbound (row_id → NULL), not deleted.

    Returns:
        Number of todos that were unbound.
    """
    row = get_row_model(row_id)
    spreadsheet_id = row.spreadsheet_id
    unbound = (
        Todo.query
        .filter_by(row_id=row.id)
        .update({Todo.row_id: None}, synchronize_session="fetch")
    )
    write_audit(
        entity_type="row",
        entity_id=row.id,
        action="delete",
        actor=actor,
        spreadsheet_id=spreadsheet_id,
        diff={"data": row.data or {}, "unbound_todos": unbound},
    )
    db.session.delete(row)
    commit_or_raise("delete_row")
    logger.info("Row deleted id=%s spreadsheet=%s unbound_todos=%d", row_id, spreadsheet_id, unbound)
    return unbound
