"""
Spreadsheets and the schema registry (column definitions) at the service layer.
"""

import pytest
from sqlalchemy.exc import IntegrityError

from contrivance.core.exceptions import ConflictError, NotFoundError, ValidationError
from contrivance.models import db
from contrivance.models.audit import AuditLog
from contrivance.models.spreadsheet import SpreadsheetColumn
from contrivance.services import spreadsheet_service as svc


def _positions(spreadsheet_id):
    return [(c["name"], c["position"]) for c in svc.list_columns(spreadsheet_id)]


class TestSpreadsheets:
    def test_create_with_initial_columns(self, spreadsheet):
        assert spreadsheet["name"] == "FY27 Pipeline"
        assert spreadsheet["owner_id"] == "se@example.com"
        names = [c["name"] for c in svc.list_columns(spreadsheet["id"])]
        assert names[:3] == ["Name", "Amount", "Probability"]

    def test_create_requires_name(self):
        with pytest.raises(ValidationError):
            svc.create_spreadsheet({"name": "   "})

    def test_duplicate_initial_columns_conflict(self):
        with pytest.raises(ConflictError):
            svc.create_spreadsheet({
                "name": "Dupes",
                "columns": [{"name": "A"}, {"name": "A"}],
            })

    def test_list_visibility(self):
        svc.create_spreadsheet({"name": "Mine"}, owner_id="alice")
        svc.create_spreadsheet({"name": "Shared", "is_public": True}, owner_id="bob")
        svc.create_spreadsheet({"name": "Private"}, owner_id="bob")

        items, total = svc.list_spreadsheets(owner_id="alice")
        assert total == 2
        assert {i["name"] for i in items} == {"Mine", "Shared"}

        items, total = svc.list_spreadsheets(owner_id="alice", include_public=False)
        assert [i["name"] for i in items] == ["Mine"]

        _, total = svc.list_spreadsheets()
        assert total == 3

    def test_list_carries_counts(self, spreadsheet, row):
        items, _ = svc.list_spreadsheets()
        entry = next(i for i in items if i["id"] == spreadsheet["id"])
        assert entry["column_count"] == 8
        assert entry["row_count"] == 1

    def test_get_details(self, spreadsheet, row):
        d = svc.get_spreadsheet(spreadsheet["id"])
        assert d["row_count"] == 1
        assert d["todo_count"] == 0
        assert len(d["columns"]) == 8

    def test_update_replaces_settings(self):
        sheet = svc.create_spreadsheet({"name": "S", "settings": {"a": 1, "b": 2}})
        updated = svc.update_spreadsheet(sheet["id"], {"settings": {"c": 3}}, actor="u")
        assert updated["settings"] == {"c": 3}

    def test_update_with_nothing_is_rejected(self):
        sheet = svc.create_spreadsheet({"name": "S"})
        with pytest.raises(ValidationError):
            svc.update_spreadsheet(sheet["id"], {"unknown": 1})

    def test_delete_cascades(self, spreadsheet, row):
        svc.delete_spreadsheet(spreadsheet["id"], actor="u")
        with pytest.raises(NotFoundError):
            svc.get_spreadsheet(spreadsheet["id"])
        assert SpreadsheetColumn.query.filter_by(spreadsheet_id=spreadsheet["id"]).count() == 0

    def test_unknown_spreadsheet(self):
        with pytest.raises(NotFoundError):
            svc.get_spreadsheet(9999)


class TestColumns:
    @pytest.fixture()
    def sheet(self):
        return svc.create_spreadsheet({
            "name": "Cols",
            "columns": [{"name": "A"}, {"name": "B"}, {"name": "C"}],
        })

    def test_positions_are_dense_from_zero(self, sheet):
        assert _positions(sheet["id"]) == [("A", 0), ("B", 1), ("C", 2)]

    def test_define_appends(self, sheet):
        column = svc.define_column(sheet["id"], {"name": "D", "type": "number"})
        assert column["position"] == 3
        assert column["column_type"] == "number"

    def test_define_at_taken_position_shifts_later(self, sheet):
        svc.define_column(sheet["id"], {"name": "X", "position": 1})
        assert _positions(sheet["id"]) == [("A", 0), ("X", 1), ("B", 2), ("C", 3)]

    def test_define_past_end_is_clamped(self, sheet):
        column = svc.define_column(sheet["id"], {"name": "Z", "position": 40})
        assert column["position"] == 3

    def test_duplicate_name_conflicts(self, sheet):
        with pytest.raises(ConflictError):
            svc.define_column(sheet["id"], {"name": "A"})

    def test_multi_select_alias(self, sheet):
        column = svc.define_column(sheet["id"], {
            "name": "Tags", "column_type": "multi_select", "validation": {"options": [{"value": "x"}]},
        })
        assert column["column_type"] == "select"
        assert column["validation"]["multiple"] is True

    def test_bad_validation_rejected_without_write(self, sheet):
        with pytest.raises(ValidationError):
            svc.define_column(sheet["id"], {
                "name": "Bad", "column_type": "select", "validation": {"options": "x"},
            })
        assert len(svc.list_columns(sheet["id"])) == 3

    def test_move_column(self, sheet):
        c = svc.list_columns(sheet["id"])[2]
        svc.update_column(c["id"], {"position": 0})
        assert _positions(sheet["id"]) == [("C", 0), ("A", 1), ("B", 2)]

    def test_rename_rechecks_uniqueness(self, sheet):
        a = svc.list_columns(sheet["id"])[0]
        with pytest.raises(ConflictError):
            svc.update_column(a["id"], {"name": "B"})
        renamed = svc.update_column(a["id"], {"name": "Alpha"})
        assert renamed["name"] == "Alpha"

    def test_delete_compacts_positions(self, sheet):
        b = svc.list_columns(sheet["id"])[1]
        svc.delete_column(b["id"])
        assert _positions(sheet["id"]) == [("A", 0), ("C", 1)]

    def test_delete_first_compacts_positions(self, sheet):
        a = svc.list_columns(sheet["id"])[0]
        svc.delete_column(a["id"])
        assert _positions(sheet["id"]) == [("B", 0), ("C", 1)]

    def test_move_first_to_last(self, sheet):
        a = svc.list_columns(sheet["id"])[0]
        svc.update_column(a["id"], {"position": 2})
        assert _positions(sheet["id"]) == [("B", 0), ("C", 1), ("A", 2)]

    def test_define_at_front_shifts_all(self, sheet):
        svc.define_column(sheet["id"], {"name": "First", "position": 0})
        assert _positions(sheet["id"]) == [("First", 0), ("A", 1), ("B", 2), ("C", 3)]

    def test_duplicate_position_rejected_by_database(self, sheet):
        db.session.add(SpreadsheetColumn(spreadsheet_id=sheet["id"], name="Clash", position=1))
        with pytest.raises(IntegrityError):
            db.session.flush()
        db.session.rollback()

    def test_each_mutation_writes_one_audit_row(self, sheet):
        before = AuditLog.query.filter_by(entity_type="column").count()
        column = svc.define_column(sheet["id"], {"name": "E"}, actor="carol")
        svc.update_column(column["id"], {"is_required": True}, actor="carol")
        svc.delete_column(column["id"], actor="carol")
        logs = (
            AuditLog.query
            .filter_by(entity_type="column", entity_id=str(column["id"]))
            .order_by(AuditLog.id)
            .all()
        )
        assert [log.action for log in logs] == ["create", "update", "delete"]
        assert AuditLog.query.filter_by(entity_type="column").count() == before + 3
        assert all(log.actor == "carol" for log in logs)
