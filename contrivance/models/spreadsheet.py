"""
Sales Engineering CRM
Pipeline spreadsheet models.

Models:
    - Spreadsheet:       a named pipeline owning columns, rows and todos
    - SpreadsheetColumn: runtime-defined, typed, positioned field definition
    - SpreadsheetRow:    one record; ``data`` maps column name → coerced value

Row data is keyed by column *name*. Renaming a column does not rewrite the
keys already stored in rows, and deleting a column leaves orphan keys behind.
"""

from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from contrivance.models import db


def _utcnow():
    return datetime.now(timezone.utc)


def _iso(value):
    return value.isoformat() if value else None


# ── Spreadsheet ──────────────────────────────────────────────────

class Spreadsheet(db.Model):
    """A pipeline: user-defined columns plus rows of semi-structured data."""

    __tablename__ = "spreadsheets"

    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, default="")
    owner_id = Column(String(150), nullable=True, index=True)
    is_public = Column(Boolean, default=False, nullable=False)
    settings = Column(JSON, default=dict)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    columns = relationship(
        "SpreadsheetColumn",
        back_populates="spreadsheet",
        cascade="all, delete-orphan",
        order_by=lambda: (SpreadsheetColumn.position, SpreadsheetColumn.id),
    )
    rows = relationship(
        "SpreadsheetRow",
        back_populates="spreadsheet",
        cascade="all, delete-orphan",
        order_by=lambda: (SpreadsheetRow.position, SpreadsheetRow.id),
    )
    todos = relationship(
        "Todo",
        back_populates="spreadsheet",
        cascade="all, delete-orphan",
    )

    def to_dict(self, include_columns=False):
        d = {
            "id": self.id,
            "name": self.name,
            "description": self.description or "",
            "owner_id": self.owner_id,
            "is_public": bool(self.is_public),
            "settings": self.settings or {},
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
        if include_columns:
            d["columns"] = [c.to_dict() for c in self.columns]
        return d

    def __repr__(self):
        return f"<Spreadsheet {self.id}: {self.name}>"


# ── Column ───────────────────────────────────────────────────────

class SpreadsheetColumn(db.Model):
    """Typed field definition; ``name`` is the key into every row's data map."""

    __tablename__ = "spreadsheet_columns"
    __table_args__ = (
        UniqueConstraint("spreadsheet_id", "name", name="uq_column_spreadsheet_name"),
        # Deferrable on PostgreSQL through the migration
        UniqueConstraint("spreadsheet_id", "position", name="uq_column_spreadsheet_position"),
    )

    id = Column(Integer, primary_key=True)
    spreadsheet_id = Column(
        Integer,
        ForeignKey("spreadsheets.id", ondelete="CASCADE"),
        nullable=False,
    )
    name = Column(String(255), nullable=False)
    column_type = Column(
        String(30), nullable=False, default="text"
    )  # text | number | currency | boolean | date | select
    position = Column(Integer, nullable=False, default=0)
    validation = Column(JSON, default=dict)  # select: {"options": [...], "multiple": bool}
    display = Column(JSON, default=dict)
    default_value = Column(JSON, nullable=True)
    is_required = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    spreadsheet = relationship("Spreadsheet", back_populates="columns")

    def to_dict(self):
        return {
            "id": self.id,
            "spreadsheet_id": self.spreadsheet_id,
            "name": self.name,
            "column_type": self.column_type,
            "position": self.position,
            "validation": self.validation or {},
            "display": self.display or {},
            "default_value": self.default_value,
            "is_required": bool(self.is_required),
            "created_at": _iso(self.created_at),
        }

    def __repr__(self):
        return f"<SpreadsheetColumn {self.id}: {self.name} ({self.column_type})>"


# ── Row ──────────────────────────────────────────────────────────

class SpreadsheetRow(db.Model):
    """One pipeline record."""

    __tablename__ = "spreadsheet_rows"
    __table_args__ = (
        Index("ix_row_spreadsheet_position", "spreadsheet_id", "position"),
    )

    id = Column(Integer, primary_key=True)
    spreadsheet_id = Column(
        Integer,
        ForeignKey("spreadsheets.id", ondelete="CASCADE"),
        nullable=False,
    )
    data = Column(JSON, default=dict)
    position = Column(Integer, nullable=False, default=0)
    created_by = Column(String(150), nullable=True)
    updated_by = Column(String(150), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    spreadsheet = relationship("Spreadsheet", back_populates="rows")

    def to_dict(self):
        return {
            "id": self.id,
            "spreadsheet_id": self.spreadsheet_id,
            "data": self.data or {},
            "position": self.position,
            "created_by": self.created_by,
            "updated_by": self.updated_by,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    def __repr__(self):
        return f"<SpreadsheetRow {self.id} of spreadsheet {self.spreadsheet_id}>"
