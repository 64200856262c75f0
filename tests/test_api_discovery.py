"""
HTTP surface for discovery, CRM import, the assistant and health probes.
"""

from unittest.mock import patch

from contrivance.integrations.crm_gateway import GatewayResult

BASE = "/api/v1/discovery"


def _start(client, **extra):
    body = {"account_id": "001GLOBEX", "account_name": "Globex", "vertical": "data"}
    body.update(extra)
    res = client.post(f"{BASE}/sessions", json=body, headers={"X-User": "bob"})
    assert res.status_code == 201
    return res.get_json()


class TestSessionEndpoints:
    def test_create_uses_header_user(self, client):
        session = _start(client)
        assert session["user_id"] == "bob"
        assert session["status"] == "in_progress"

    def test_missing_fields_listed(self, client):
        res = client.post(f"{BASE}/sessions", json={"account_id": "1"})
        assert res.status_code == 400
        assert set(res.get_json()["details"]) == {"account_name", "vertical"}

    def test_unknown_vertical_is_422(self, client):
        res = client.post(f"{BASE}/sessions", json={
            "account_id": "1", "account_name": "A", "vertical": "retail",
        })
        assert res.status_code == 422

    def test_active_session(self, client):
        _start(client)
        latest = _start(client)
        body = client.get(f"{BASE}/accounts/001GLOBEX/active-session").get_json()
        assert body["session"]["id"] == latest["id"]
        assert client.get(f"{BASE}/accounts/nobody/active-session").get_json() == {"session": None}

    def test_status_transition(self, client):
        session = _start(client)
        res = client.put(f"{BASE}/sessions/{session['id']}/status", json={"status": "completed"})
        assert res.get_json()["completed_at"] is not None
        res = client.put(f"{BASE}/sessions/{session['id']}/status", json={})
        assert res.status_code == 400


class TestResponseAndNoteEndpoints:
    def test_upsert_and_notes(self, client):
        session = _start(client)
        url = f"{BASE}/sessions/{session['id']}/responses"
        first = client.post(url, json={
            "question_id": "data_warehouse", "question_type": "radio", "response_value": "snowflake",
        }).get_json()
        second = client.post(url, json={
            "question_id": "data_warehouse", "question_type": "radio", "response_value": "bigquery",
        }).get_json()
        assert first["id"] == second["id"]
        listed = client.get(url).get_json()
        assert listed["total"] == 1
        assert listed["responses"][0]["response_value"] == "bigquery"

        res = client.post(f"{BASE}/sessions/{session['id']}/notes", json={
            "note_text": "Migrating next FY", "note_type": "opportunity", "response_id": first["id"],
        })
        assert res.status_code == 201
        note_id = res.get_json()["id"]
        assert client.delete(f"{BASE}/notes/{note_id}").get_json() == {"deleted": True}

    def test_question_id_required(self, client):
        session = _start(client)
        res = client.post(f"{BASE}/sessions/{session['id']}/responses", json={"question_type": "text"})
        assert res.status_code == 400

    def test_unknown_session(self, client):
        res = client.get(f"{BASE}/sessions/777")
        assert res.status_code == 404


class TestExportEndpoint:
    def test_csv_download(self, client):
        session = _start(client)
        client.post(f"{BASE}/sessions/{session['id']}/responses", json={
            "question_id": "data_tools", "question_type": "multi_select", "response_value": ["dbt", "airflow"],
        })
        res = client.post(f"{BASE}/sessions/{session['id']}/export?format=csv")
        assert res.status_code == 200
        assert res.headers["Content-Type"].startswith("text/csv")
        disposition = res.headers["Content-Disposition"]
        assert disposition.startswith('attachment; filename="discovery_globex_')
        assert disposition.endswith('.csv"')
        assert b"dbt; airflow" in res.data

    def test_format_from_body(self, client):
        session = _start(client)
        res = client.post(f"{BASE}/sessions/{session['id']}/export", json={"format": "xlsx"})
        assert res.headers["Content-Type"].startswith("application/vnd.openxmlformats")

    def test_unsupported_format(self, client):
        session = _start(client)
        res = client.post(f"{BASE}/sessions/{session['id']}/export?format=pdf")
        assert res.status_code == 422

    def test_missing_session(self, client):
        res = client.post(f"{BASE}/sessions/4040/export?format=json")
        assert res.status_code == 404

    def test_report_view(self, client):
        session = _start(client)
        client.post(f"{BASE}/sessions/{session['id']}/responses", json={
            "question_id": "data_tools", "question_type": "multi_select", "response_value": ["dbt"],
        })
        body = client.get(f"{BASE}/sessions/{session['id']}/report?view=tree").get_json()
        assert body["data"]["children"] == [
            {"name": "Data", "children": [{"name": "dbt", "value": 1}]},
        ]
        assert client.get(f"{BASE}/sessions/{session['id']}/report?view=pie").status_code == 422


class TestImportEndpoints:
    def test_import_posted_records(self, client, spreadsheet):
        res = client.post(f"/api/v1/spreadsheets/{spreadsheet['id']}/import", json={
            "records": [{"Id": "006X", "Name": "Initech", "Amount": 5000}, {"Id": "006Y"}],
        })
        assert res.status_code == 200
        body = res.get_json()
        assert body["created"] == 1
        assert body["failed"] == 1

    def test_records_required(self, client, spreadsheet):
        res = client.post(f"/api/v1/spreadsheets/{spreadsheet['id']}/import", json={})
        assert res.status_code == 400

    def test_crm_sync_unconfigured_is_503(self, client, spreadsheet):
        res = client.post(f"/api/v1/spreadsheets/{spreadsheet['id']}/crm-sync", json={})
        assert res.status_code == 503
        assert res.get_json()["code"] == "ERR_UNAVAILABLE"

    def test_crm_columns_added_once(self, client, spreadsheet):
        url = f"/api/v1/spreadsheets/{spreadsheet['id']}/crm-columns"
        res = client.post(url, headers={"X-User": "se"})
        assert res.status_code == 200
        body = res.get_json()
        assert [c["name"] for c in body["added_columns"]] == [
            "Opportunity Name", "Expected Revenue", "Owner", "Last Modified By", "Last Modified Date",
        ]
        assert body["total_columns"] == 13
        again = client.post(url).get_json()
        assert again == {"added_columns": [], "total_columns": 13}

    def test_crm_columns_unknown_spreadsheet(self, client):
        res = client.post("/api/v1/spreadsheets/4242/crm-columns")
        assert res.status_code == 404

    def test_crm_accounts(self, client):
        with patch("contrivance.services.crm_import_service.gateway_from_config") as factory:
            factory.return_value.list_accounts.return_value = GatewayResult(
                True, 200, {"records": [{"Id": "001A", "Name": "Acme"}]}, None, 3,
            )
            res = client.get("/api/v1/crm/accounts?limit=5")
        assert res.get_json()["total"] == 1
        factory.return_value.list_accounts.assert_called_once_with(limit=5)

    def test_create_pipeline(self, client):
        res = client.post("/api/v1/crm/pipelines", json={
            "name": "From CRM", "field_mappings": "leads", "records": [{"Name": "Lead A"}],
        })
        assert res.status_code == 201
        assert res.get_json()["import"]["created"] == 1


class TestAssistantEndpoints:
    def test_chat_without_key_is_503(self, client):
        res = client.post("/api/v1/ai/chat", json={"message": "hi"})
        assert res.status_code == 503

    def test_message_required(self, client):
        res = client.post("/api/v1/ai/chat", json={})
        assert res.status_code == 400

    def test_insights_with_gateway(self, client):
        with patch("contrivance.services.insight_service.gateway_from_config") as factory:
            factory.return_value.analyze_for_discovery.return_value = []
            res = client.post("/api/v1/ai/discovery-insights", json={"question": "Which SIEM?"})
        assert res.get_json() == {"question": "Which SIEM?", "insights": []}


class TestHealth:
    def test_ready(self, client):
        assert client.get("/api/v1/health/ready").get_json() == {"status": "ok"}

    def test_live(self, client):
        res = client.get("/api/v1/health/live")
        assert res.status_code == 200
        body = res.get_json()
        assert body["status"] == "healthy"
        assert body["checks"]["crm"]["status"] == "not_configured"
        assert body["checks"]["chat"]["status"] == "not_configured"
