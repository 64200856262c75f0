"""
Shared pytest fixtures for the Sales Engineering CRM test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - spreadsheet / row: a pipeline with typed columns and one row
    - discovery_session: a security discovery session
"""

import pytest

from contrivance import create_app
from contrivance.models import db as _db


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Convenience fixtures ─────────────────────────────────────────────────


PIPELINE_COLUMNS = [
    {"name": "Name", "column_type": "text", "is_required": True},
    {"name": "Amount", "column_type": "currency"},
    {"name": "Probability", "column_type": "number"},
    {"name": "Closed", "column_type": "boolean"},
    {"name": "Close Date", "column_type": "date"},
    {
        "name": "Stage",
        "column_type": "select",
        "validation": {"options": [{"value": "Qualify"}, {"value": "Propose"}]},
    },
    {
        "name": "Products",
        "column_type": "multi_select",
        "validation": {"options": [{"value": "EDR"}, {"value": "SIEM"}]},
    },
    {"name": "Technical Win", "column_type": "text"},
]


@pytest.fixture()
def spreadsheet():
    """A pipeline with one column per type, created through the service layer."""
    from contrivance.services.spreadsheet_service import create_spreadsheet

    return create_spreadsheet(
        {"name": "FY27 Pipeline", "columns": PIPELINE_COLUMNS}, owner_id="se@example.com",
    )


@pytest.fixture()
def row(spreadsheet):
    from contrivance.services.row_service import create_row

    return create_row(
        spreadsheet["id"],
        {"Name": "Acme renewal", "Amount": "125000", "Stage": "Qualify"},
        actor="se@example.com",
    )


@pytest.fixture()
def discovery_session():
    from contrivance.services.discovery_service import create_session

    return create_session(
        {"account_id": "001ACME", "account_name": "Acme Corp", "vertical": "security"},
        user_id="se@example.com",
    )
