"""
CRM gateway (fake requests session) and the record → row import.
"""

from unittest.mock import MagicMock

import pytest
import requests

from contrivance.core.exceptions import CollaboratorUnavailableError, NotFoundError, ValidationError
from contrivance.integrations.crm_gateway import CRMGateway, GatewayResult
from contrivance.models.spreadsheet import SpreadsheetRow
from contrivance.services import crm_import_service as svc
from contrivance.services import spreadsheet_service


def _response(status=200, body=None):
    resp = MagicMock()
    resp.status_code = status
    resp.ok = 200 <= status < 300
    resp.content = b"{}" if body is not None else b""
    resp.json.return_value = body
    resp.text = str(body)
    return resp


def _gateway(*responses):
    session = MagicMock()
    session.request.side_effect = list(responses)
    sleeps = []
    gateway = CRMGateway(
        "https://crm.example.com/", "token-123", session=session, sleep=sleeps.append,
    )
    return gateway, session, sleeps


OPPORTUNITY = {
    "Id": "006A",
    "Name": "Acme expansion",
    "Amount": 250000,
    "StageName": "Propose",
    "Probability": 40,
    "CloseDate": "2026-12-15",
    "Account": {"Id": "001A", "Name": "Acme Corp", "Type": "Customer"},
    "Owner": {"Name": "Dana"},
}


class TestGateway:
    def test_unconfigured_never_calls_out(self):
        session = MagicMock()
        gateway = CRMGateway("", "", session=session)
        result = gateway.query_opportunities()
        assert not result.ok
        assert "not configured" in result.error
        session.request.assert_not_called()

    def test_query_follows_next_records_url(self):
        gateway, session, _ = _gateway(
            _response(body={"records": [{"Id": "1"}], "done": False,
                            "nextRecordsUrl": "/services/data/v59.0/query/01g-2000",
                            "totalSize": 2}),
            _response(body={"records": [{"Id": "2"}], "done": True, "totalSize": 2}),
        )
        result = gateway.query("SELECT Id FROM Opportunity")
        assert result.ok
        assert [r["Id"] for r in result.data["records"]] == ["1", "2"]

        first, second = session.request.call_args_list
        assert first.args == ("GET", "https://crm.example.com/services/data/v59.0/query")
        assert first.kwargs["params"] == {"q": "SELECT Id FROM Opportunity"}
        assert first.kwargs["headers"]["Authorization"] == "Bearer token-123"
        assert second.args[1] == "https://crm.example.com/services/data/v59.0/query/01g-2000"

    def test_retries_server_errors_with_backoff(self):
        gateway, session, sleeps = _gateway(
            _response(503, body={}),
            requests.ConnectionError("reset"),
            _response(body={"records": [], "done": True}),
        )
        assert gateway.list_accounts().ok
        assert session.request.call_count == 3
        assert sleeps == [1, 4]

    def test_gives_up_after_three_attempts(self):
        gateway, session, sleeps = _gateway(
            _response(500, body={}), _response(500, body={}), _response(500, body={}),
        )
        result = gateway.request("GET", "query")
        assert not result.ok
        assert result.status_code == 500
        assert session.request.call_count == 3
        assert sleeps == [1, 4]

    def test_client_error_not_retried(self):
        gateway, session, sleeps = _gateway(_response(401, body={}))
        result = gateway.request("GET", "query")
        assert result.status_code == 401
        assert session.request.call_count == 1
        assert sleeps == []

    def test_soql_shape(self):
        soql = CRMGateway._soql(("Id", "Name"), "Account", None, "Name", 25)
        assert soql == "SELECT Id, Name FROM Account ORDER BY Name LIMIT 25"


class TestMapping:
    def test_dotted_paths(self):
        mapped = svc.map_record(OPPORTUNITY, {"Account": "Account.Name", "Missing": "Owner.Email.Domain"})
        assert mapped == {"Account": "Acme Corp", "Missing": None}

    def test_unknown_preset(self, spreadsheet):
        with pytest.raises(ValidationError):
            svc.import_records(spreadsheet["id"], [], field_mappings="contacts")


class TestImport:
    def test_each_record_independent(self, spreadsheet):
        records = [
            OPPORTUNITY,
            {"Id": "006B", "Name": None, "Amount": 10},
            {"Id": "006C", "Name": "Beta", "Amount": "lots"},
            "not a record",
            {"Id": "006D", "Name": "Gamma", "StageName": "Qualify"},
        ]
        summary = svc.import_records(spreadsheet["id"], records, actor="sync")

        assert summary["created"] == 2
        assert summary["failed"] == 3
        assert [e["index"] for e in summary["errors"]] == [1, 2, 3]
        assert summary["errors"][0]["record_id"] == "006B"
        assert summary["errors"][2]["record_id"] is None

        rows = SpreadsheetRow.query.filter_by(spreadsheet_id=spreadsheet["id"]).order_by(SpreadsheetRow.position).all()
        assert [r.data["Name"] for r in rows] == ["Acme expansion", "Gamma"]
        assert rows[0].data["Amount"] == 250000
        assert rows[0].data["Stage"] == "Propose"
        assert rows[0].data["Account"] == "Acme Corp"

    def test_unknown_spreadsheet(self):
        with pytest.raises(NotFoundError):
            svc.import_records(4242, [OPPORTUNITY])

    def test_create_pipeline_from_records(self):
        result = svc.create_pipeline_from_records(
            "Imported", [OPPORTUNITY], field_mappings={"Name": "Name", "Deal Amount": "Amount"},
            owner_id="se",
        )
        columns = {c["name"]: c["column_type"] for c in result["spreadsheet"]["columns"]}
        assert columns == {"Name": "text", "Deal Amount": "currency"}
        assert result["import"]["created"] == 1

    def test_sync_uses_gateway(self, spreadsheet):
        gateway = MagicMock()
        gateway.query_opportunities.return_value = GatewayResult(
            True, 200, {"records": [dict(OPPORTUNITY, LastModifiedDate="2026-10-01T08:30:00.000+0000")]}, None, 12,
        )
        summary = svc.sync_opportunities(spreadsheet["id"], gateway, limit=10)
        gateway.query_opportunities.assert_called_once_with(limit=10)
        assert summary["created"] == 1
        assert summary["added_columns"] == [
            "Opportunity Name", "Expected Revenue", "Owner", "Last Modified By", "Last Modified Date",
        ]
        data = SpreadsheetRow.query.filter_by(spreadsheet_id=spreadsheet["id"]).one().data
        assert data["Opportunity Name"] == "Acme expansion"
        assert data["Owner"] == "Dana"
        assert data["Last Modified Date"] == "2026-10-01T08:30:00.000+0000"

    def test_sync_gateway_failure(self, spreadsheet):
        gateway = MagicMock()
        gateway.query_opportunities.return_value = GatewayResult(False, 503, None, "HTTP 503", 0)
        with pytest.raises(CollaboratorUnavailableError):
            svc.sync_opportunities(spreadsheet["id"], gateway)

    def test_list_accounts(self):
        gateway = MagicMock()
        gateway.list_accounts.return_value = GatewayResult(
            True, 200, {"records": [{"Id": "001A", "Name": "Acme", "Type": "Customer", "Industry": "Tech"}]},
            None, 5,
        )
        assert svc.list_accounts(gateway) == [
            {"id": "001A", "name": "Acme", "type": "Customer", "industry": "Tech"},
        ]

    def test_gateway_from_config_requires_credentials(self):
        with pytest.raises(CollaboratorUnavailableError):
            svc.gateway_from_config({"CRM_INSTANCE_URL": "", "CRM_ACCESS_TOKEN": ""})
        gateway = svc.gateway_from_config({"CRM_INSTANCE_URL": "https://crm", "CRM_ACCESS_TOKEN": "t"})
        assert gateway.is_configured


class TestCRMColumns:
    @pytest.fixture()
    def blank_sheet(self):
        return spreadsheet_service.create_spreadsheet({"name": "Blank"})

    def test_adds_every_column_once(self, blank_sheet):
        first = svc.ensure_crm_columns(blank_sheet["id"], actor="se")
        assert [c["name"] for c in first["added_columns"]] == [name for name, _ in svc.CRM_OPPORTUNITY_COLUMNS]
        assert first["total_columns"] == 8
        types = {c["name"]: c["column_type"] for c in spreadsheet_service.list_columns(blank_sheet["id"])}
        assert types["Probability"] == "number"
        assert types["Expected Revenue"] == "currency"
        assert types["Last Modified Date"] == "date"

        second = svc.ensure_crm_columns(blank_sheet["id"])
        assert second == {"added_columns": [], "total_columns": 8}

    def test_existing_name_kept_and_new_columns_appended(self, blank_sheet):
        spreadsheet_service.define_column(blank_sheet["id"], {"name": "Stage", "column_type": "select"})
        result = svc.ensure_crm_columns(blank_sheet["id"])
        assert len(result["added_columns"]) == 7
        assert "Stage" not in [c["name"] for c in result["added_columns"]]
        assert result["total_columns"] == 8
        columns = spreadsheet_service.list_columns(blank_sheet["id"])
        assert columns[0]["name"] == "Stage"
        assert columns[0]["column_type"] == "select"
        assert [c["position"] for c in columns] == list(range(8))

    def test_unknown_spreadsheet(self):
        with pytest.raises(NotFoundError):
            svc.ensure_crm_columns(4242)
