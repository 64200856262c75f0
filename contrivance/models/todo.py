"""Pipeline todo (task) model.

A todo always belongs to a spreadsheet. It is either pipeline-level
(``row_id`` is NULL) or bound to one row, in which case its completion
feeds the row's derived status.
"""

from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from contrivance.models import db

VALID_PRIORITIES = ("low", "medium", "high")


def _utcnow():
    return datetime.now(timezone.utc)


class Todo(db.Model):
    __tablename__ = "todos"
    __table_args__ = (
        Index("ix_todo_spreadsheet_row", "spreadsheet_id", "row_id"),
    )

    id = Column(Integer, primary_key=True)
    spreadsheet_id = Column(
        Integer,
        ForeignKey("spreadsheets.id", ondelete="CASCADE"),
        nullable=False,
    )
    row_id = Column(
        Integer,
        ForeignKey("spreadsheet_rows.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    title = Column(String(500), nullable=False)
    description = Column(Text, default="")
    priority = Column(String(10), nullable=False, default="medium")  # low | medium | high
    completed = Column(Boolean, nullable=False, default=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    due_date = Column(Date, nullable=True)
    supporting_artifact = Column(String(1000), nullable=True)
    assigned_to = Column(String(150), nullable=True)
    created_by = Column(String(150), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    spreadsheet = relationship("Spreadsheet", back_populates="todos")

    def to_dict(self):
        return {
            "id": self.id,
            "spreadsheet_id": self.spreadsheet_id,
            "row_id": self.row_id,
            "title": self.title,
            "description": self.description or "",
            "priority": self.priority,
            "completed": bool(self.completed),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "supporting_artifact": self.supporting_artifact,
            "assigned_to": self.assigned_to,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Todo {self.id}: {self.title!r} done={self.completed}>"
