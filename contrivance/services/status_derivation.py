"""
Technical Win status roll-up.

A row's derived status is a coarse summary of its bound todos:

    no todos            → "No Todos"
    all todos completed → "Completed"
    otherwise           → "In Progress"

``recompute_row_status`` reads the todos and writes the label through
``row_service.update_row`` in its own transaction, after the todo mutation
has committed. The read and the write are not atomic with each other: two
near-simultaneous toggles on one row may write out of order, and the next
toggle corrects it. Callers must not treat the label as exact between two
rapid mutations.
"""

import logging

from flask import current_app

from contrivance.core.exceptions import ValidationError
from contrivance.models.todo import Todo
from contrivance.services.row_service import get_row_model, update_row

logger = logging.getLogger(__name__)

STATUS_NO_TODOS = "No Todos"
STATUS_COMPLETED = "Completed"
STATUS_IN_PROGRESS = "In Progress"


def derive_status(total: int, completed: int) -> str:
    if total == 0:
        return STATUS_NO_TODOS
    if completed == total:
        return STATUS_COMPLETED
    return STATUS_IN_PROGRESS


def completion_percentage(total: int, completed: int) -> int:
    """Whole-number percentage, halves rounded up; 0 when there are no todos."""
    if total == 0:
        return 0
    return int(completed * 100 / total + 0.5)


def get_row_todo_stats(row_id: int) -> dict:
    """Completion stats for the todos bound to one row."""
    get_row_model(row_id)
    flags = [todo.completed for todo in Todo.query.filter_by(row_id=row_id).all()]
    total = len(flags)
    completed = sum(1 for done in flags if done)
    return {
        "row_id": row_id,
        "total": total,
        "completed": completed,
        "pending": total - completed,
        "percentage": completion_percentage(total, completed),
        "status": derive_status(total, completed),
    }


def recompute_row_status(row_id: int, actor: str | None = None) -> dict:
    """Re-read the row's todos and write the derived label back to the row.

    The same label goes to ``ROW_STATUS_FIELD`` and ``ROW_STATUS_DISPLAY_FIELD``.
    If the row's schema rejects the label (e.g. a number column carrying one of
    those names), the stats are still returned with ``status_written=False``.

    Returns:
        The stats dict from ``get_row_todo_stats`` plus ``status_written``.
    """
    stats = get_row_todo_stats(row_id)
    status_field = current_app.config.get("ROW_STATUS_FIELD", "Technical Win")
    display_field = current_app.config.get("ROW_STATUS_DISPLAY_FIELD", "Technical Win Status")

    try:
        update_row(
            row_id,
            {status_field: stats["status"], display_field: stats["status"]},
            actor,
            action="row.status_recompute",
        )
        stats["status_written"] = True
    except ValidationError as exc:
        logger.warning("Row status not written row=%s: %s", row_id, exc)
        stats["status_written"] = False

    logger.info(
        "Row status recomputed row=%s status=%r %d/%d",
        row_id, stats["status"], stats["completed"], stats["total"],
    )
    return stats
