"""initial_pipeline_discovery_schema

Create pipeline (spreadsheets, columns, rows, todos), discovery
(sessions, responses, notes, exports) and audit_logs tables.

Revision ID: 0a1b2c3d4e01
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "0a1b2c3d4e01"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade():
    bind = op.get_bind()
    existing_tables = set(sa_inspect(bind).get_table_names())
    # SQLite rejects DEFERRABLE on UNIQUE
    deferred = {"deferrable": True, "initially": "DEFERRED"} if bind.dialect.name == "postgresql" else {}

    if "spreadsheets" not in existing_tables:
        op.create_table(
            "spreadsheets",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("owner_id", sa.String(length=150), nullable=True),
            sa.Column("is_public", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("settings", sa.JSON(), nullable=True),
            *_timestamps(),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_spreadsheets_owner_id", "spreadsheets", ["owner_id"])

    if "spreadsheet_columns" not in existing_tables:
        op.create_table(
            "spreadsheet_columns",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("spreadsheet_id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("column_type", sa.String(length=30), nullable=False, server_default="text"),
            sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("validation", sa.JSON(), nullable=True),
            sa.Column("display", sa.JSON(), nullable=True),
            sa.Column("default_value", sa.JSON(), nullable=True),
            sa.Column("is_required", sa.Boolean(), nullable=False, server_default=sa.false()),
            *_timestamps(),
            sa.ForeignKeyConstraint(["spreadsheet_id"], ["spreadsheets.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("spreadsheet_id", "name", name="uq_column_spreadsheet_name"),
            sa.UniqueConstraint(
                "spreadsheet_id", "position", name="uq_column_spreadsheet_position", **deferred,
            ),
        )

    if "spreadsheet_rows" not in existing_tables:
        op.create_table(
            "spreadsheet_rows",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("spreadsheet_id", sa.Integer(), nullable=False),
            sa.Column("data", sa.JSON(), nullable=True),
            sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("created_by", sa.String(length=150), nullable=True),
            sa.Column("updated_by", sa.String(length=150), nullable=True),
            *_timestamps(),
            sa.ForeignKeyConstraint(["spreadsheet_id"], ["spreadsheets.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index(
            "ix_row_spreadsheet_position", "spreadsheet_rows", ["spreadsheet_id", "position"],
        )

    if "todos" not in existing_tables:
        op.create_table(
            "todos",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("spreadsheet_id", sa.Integer(), nullable=False),
            sa.Column("row_id", sa.Integer(), nullable=True),
            sa.Column("title", sa.String(length=500), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("priority", sa.String(length=10), nullable=False, server_default="medium"),
            sa.Column("completed", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("due_date", sa.Date(), nullable=True),
            sa.Column("supporting_artifact", sa.String(length=1000), nullable=True),
            sa.Column("assigned_to", sa.String(length=150), nullable=True),
            sa.Column("created_by", sa.String(length=150), nullable=True),
            *_timestamps(),
            sa.ForeignKeyConstraint(["spreadsheet_id"], ["spreadsheets.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["row_id"], ["spreadsheet_rows.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_todos_row_id", "todos", ["row_id"])
        op.create_index("ix_todo_spreadsheet_row", "todos", ["spreadsheet_id", "row_id"])

    if "discovery_sessions" not in existing_tables:
        op.create_table(
            "discovery_sessions",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("account_id", sa.String(length=100), nullable=False),
            sa.Column("account_name", sa.String(length=255), nullable=False),
            sa.Column("user_id", sa.String(length=150), nullable=True),
            sa.Column("vertical", sa.String(length=30), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="in_progress"),
            sa.Column("metadata", sa.JSON(), nullable=True),
            *_timestamps(),
            sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index(
            "ix_discovery_session_account_created", "discovery_sessions", ["account_id", "created_at"],
        )

    if "discovery_responses" not in existing_tables:
        op.create_table(
            "discovery_responses",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("session_id", sa.Integer(), nullable=False),
            sa.Column("question_id", sa.String(length=100), nullable=False),
            sa.Column("question_title", sa.String(length=500), nullable=True),
            sa.Column("question_type", sa.String(length=30), nullable=False),
            sa.Column("response_value", sa.JSON(), nullable=True),
            sa.Column("response_raw", sa.Text(), nullable=True),
            sa.Column("vendor_selections", sa.JSON(), nullable=True),
            sa.Column("sizing_selections", sa.JSON(), nullable=True),
            sa.Column("answered_at", sa.DateTime(timezone=True), nullable=True),
            *_timestamps(),
            sa.ForeignKeyConstraint(["session_id"], ["discovery_sessions.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("session_id", "question_id", name="uq_discovery_response_question"),
        )
        op.create_index("ix_discovery_responses_session_id", "discovery_responses", ["session_id"])

    if "discovery_notes" not in existing_tables:
        op.create_table(
            "discovery_notes",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("session_id", sa.Integer(), nullable=False),
            sa.Column("response_id", sa.Integer(), nullable=True),
            sa.Column("note_text", sa.Text(), nullable=False),
            sa.Column("note_type", sa.String(length=30), nullable=False, server_default="general"),
            sa.Column("created_by", sa.String(length=150), nullable=True),
            *_timestamps(),
            sa.ForeignKeyConstraint(["session_id"], ["discovery_sessions.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["response_id"], ["discovery_responses.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_discovery_notes_session_id", "discovery_notes", ["session_id"])

    if "discovery_exports" not in existing_tables:
        op.create_table(
            "discovery_exports",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("session_id", sa.Integer(), nullable=False),
            sa.Column("export_format", sa.String(length=10), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
            sa.Column("file_name", sa.String(length=255), nullable=True),
            sa.Column("error_message", sa.Text(), nullable=True),
            sa.Column("exported_by", sa.String(length=150), nullable=True),
            sa.Column("exported_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["session_id"], ["discovery_sessions.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_discovery_exports_session_id", "discovery_exports", ["session_id"])

    if "audit_logs" not in existing_tables:
        op.create_table(
            "audit_logs",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("spreadsheet_id", sa.Integer(), nullable=True),
            sa.Column("session_id", sa.Integer(), nullable=True),
            sa.Column("entity_type", sa.String(length=30), nullable=False),
            sa.Column("entity_id", sa.String(length=36), nullable=False),
            sa.Column("action", sa.String(length=60), nullable=False),
            sa.Column("actor", sa.String(length=150), nullable=False, server_default="system"),
            sa.Column("diff_json", sa.Text(), nullable=True),
            sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_audit_logs_spreadsheet_id", "audit_logs", ["spreadsheet_id"])
        op.create_index("ix_audit_logs_session_id", "audit_logs", ["session_id"])
        op.create_index("idx_audit_entity", "audit_logs", ["entity_type", "entity_id"])
        op.create_index("idx_audit_action", "audit_logs", ["action"])
        op.create_index("idx_audit_ts", "audit_logs", ["timestamp"])


def downgrade():
    existing_tables = set(sa_inspect(op.get_bind()).get_table_names())
    for table in (
        "audit_logs",
        "discovery_exports",
        "discovery_notes",
        "discovery_responses",
        "discovery_sessions",
        "todos",
        "spreadsheet_rows",
        "spreadsheet_columns",
        "spreadsheets",
    ):
        if table in existing_tables:
            op.drop_table(table)
