"""
Sales Engineering CRM
Discovery questionnaire models.

Models:
    - DiscoverySession:  one questionnaire pass against one account/vertical
    - DiscoveryResponse: one answer per (session, question), upserted in place
    - DiscoveryNote:     free-text note, optionally tied to a response
    - DiscoveryExport:   append-only record of export attempts
"""

from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
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

VALID_VERTICALS = ("security", "infrastructure", "development", "data", "ai")
VALID_SESSION_STATUSES = ("draft", "in_progress", "completed", "archived")
VALID_QUESTION_TYPES = ("text", "radio", "checkbox", "vendor_multi", "multi_select")
VALID_NOTE_TYPES = ("general", "opportunity", "risk", "action_item", "competitor")
VALID_EXPORT_STATUSES = ("pending", "success", "failed")


def _utcnow():
    return datetime.now(timezone.utc)


def _iso(value):
    return value.isoformat() if value else None


class DiscoverySession(db.Model):
    """Questionnaire session; many per account, the newest is the active one."""

    __tablename__ = "discovery_sessions"
    __table_args__ = (
        Index("ix_discovery_session_account_created", "account_id", "created_at"),
    )

    id = Column(Integer, primary_key=True)
    account_id = Column(String(100), nullable=False)
    account_name = Column(String(255), nullable=False)
    user_id = Column(String(150), nullable=True)
    vertical = Column(String(30), nullable=False)
    status = Column(String(20), nullable=False, default="in_progress")
    # "metadata" is reserved on declarative classes
    session_metadata = Column("metadata", JSON, default=dict)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    responses = relationship(
        "DiscoveryResponse",
        back_populates="session",
        cascade="all, delete-orphan",
        order_by=lambda: (DiscoveryResponse.answered_at, DiscoveryResponse.id),
    )
    notes = relationship(
        "DiscoveryNote",
        back_populates="session",
        cascade="all, delete-orphan",
        order_by=lambda: (DiscoveryNote.created_at.desc(), DiscoveryNote.id.desc()),
    )
    exports = relationship(
        "DiscoveryExport",
        back_populates="session",
        cascade="all, delete-orphan",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "account_id": self.account_id,
            "account_name": self.account_name,
            "user_id": self.user_id,
            "vertical": self.vertical,
            "status": self.status,
            "metadata": self.session_metadata or {},
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
            "completed_at": _iso(self.completed_at),
        }

    def __repr__(self):
        return f"<DiscoverySession {self.id}: {self.account_name} [{self.vertical}/{self.status}]>"


class DiscoveryResponse(db.Model):
    """One answer. (session_id, question_id) is unique and written by upsert."""

    __tablename__ = "discovery_responses"
    __table_args__ = (
        UniqueConstraint("session_id", "question_id", name="uq_discovery_response_question"),
    )

    id = Column(Integer, primary_key=True)
    session_id = Column(
        Integer,
        ForeignKey("discovery_sessions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    question_id = Column(String(100), nullable=False)
    question_title = Column(String(500), default="")
    question_type = Column(String(30), nullable=False)
    response_value = Column(JSON, nullable=True)
    response_raw = Column(Text, nullable=True)
    vendor_selections = Column(JSON, default=dict)  # category → [vendor, ...]
    sizing_selections = Column(JSON, default=dict)  # key → scalar
    answered_at = Column(DateTime(timezone=True), default=_utcnow)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    session = relationship("DiscoverySession", back_populates="responses")

    def to_dict(self):
        return {
            "id": self.id,
            "session_id": self.session_id,
            "question_id": self.question_id,
            "question_title": self.question_title or "",
            "question_type": self.question_type,
            "response_value": self.response_value,
            "response_raw": self.response_raw,
            "vendor_selections": self.vendor_selections or {},
            "sizing_selections": self.sizing_selections or {},
            "answered_at": _iso(self.answered_at),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class DiscoveryNote(db.Model):
    __tablename__ = "discovery_notes"

    id = Column(Integer, primary_key=True)
    session_id = Column(
        Integer,
        ForeignKey("discovery_sessions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    response_id = Column(
        Integer,
        ForeignKey("discovery_responses.id", ondelete="SET NULL"),
        nullable=True,
    )
    note_text = Column(Text, nullable=False)
    note_type = Column(String(30), nullable=False, default="general")
    created_by = Column(String(150), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    session = relationship("DiscoverySession", back_populates="notes")

    def to_dict(self):
        return {
            "id": self.id,
            "session_id": self.session_id,
            "response_id": self.response_id,
            "note_text": self.note_text,
            "note_type": self.note_type,
            "created_by": self.created_by,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class DiscoveryExport(db.Model):
    """Export attempt; never updated after the outcome is recorded."""

    __tablename__ = "discovery_exports"

    id = Column(Integer, primary_key=True)
    session_id = Column(
        Integer,
        ForeignKey("discovery_sessions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    export_format = Column(String(10), nullable=False)  # json | csv | xlsx
    status = Column(String(20), nullable=False, default="pending")
    file_name = Column(String(255), nullable=True)
    error_message = Column(Text, nullable=True)
    exported_by = Column(String(150), nullable=True)
    exported_at = Column(DateTime(timezone=True), default=_utcnow)

    session = relationship("DiscoverySession", back_populates="exports")

    def to_dict(self):
        return {
            "id": self.id,
            "session_id": self.session_id,
            "export_format": self.export_format,
            "status": self.status,
            "file_name": self.file_name,
            "error_message": self.error_message,
            "exported_by": self.exported_by,
            "exported_at": _iso(self.exported_at),
        }
