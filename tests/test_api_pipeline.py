"""
HTTP surface for pipelines, rows, todos, audit and the request guards.
"""

BASE = "/api/v1"


def _create_sheet(client, **extra):
    body = {"name": "Q3 Pipeline", "columns": [
        {"name": "Name", "column_type": "text", "is_required": True},
        {"name": "Amount", "column_type": "currency"},
        {"name": "Technical Win", "column_type": "text"},
    ]}
    body.update(extra)
    res = client.post(f"{BASE}/spreadsheets", json=body, headers={"X-User": "alice"})
    assert res.status_code == 201
    return res.get_json()


class TestSpreadsheetEndpoints:
    def test_create_and_get(self, client):
        sheet = _create_sheet(client)
        assert sheet["owner_id"] == "alice"
        assert [c["name"] for c in sheet["columns"]] == ["Name", "Amount", "Technical Win"]

        res = client.get(f"{BASE}/spreadsheets/{sheet['id']}")
        assert res.status_code == 200
        assert res.get_json()["name"] == "Q3 Pipeline"

    def test_list(self, client):
        _create_sheet(client)
        res = client.get(f"{BASE}/spreadsheets?owner_id=alice")
        body = res.get_json()
        assert body["total"] == 1
        assert body["spreadsheets"][0]["owner_id"] == "alice"

    def test_name_required(self, client):
        res = client.post(f"{BASE}/spreadsheets", json={"description": "x"})
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_REQUIRED"

    def test_body_must_be_object(self, client):
        res = client.post(f"{BASE}/spreadsheets", json=["not", "an", "object"])
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_INVALID"

    def test_unknown_spreadsheet(self, client):
        res = client.get(f"{BASE}/spreadsheets/999")
        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_NOT_FOUND"

    def test_delete(self, client):
        sheet = _create_sheet(client)
        res = client.delete(f"{BASE}/spreadsheets/{sheet['id']}")
        assert res.get_json() == {"deleted": True}
        assert client.get(f"{BASE}/spreadsheets/{sheet['id']}").status_code == 404


class TestColumnEndpoints:
    def test_duplicate_name_conflict(self, client):
        sheet = _create_sheet(client)
        res = client.post(f"{BASE}/spreadsheets/{sheet['id']}/columns", json={"name": "Amount"})
        assert res.status_code == 409
        assert res.get_json()["code"] == "ERR_CONFLICT_DUPLICATE"

    def test_define_and_list(self, client):
        sheet = _create_sheet(client)
        res = client.post(
            f"{BASE}/spreadsheets/{sheet['id']}/columns",
            json={"name": "Stage", "column_type": "select", "position": 1},
        )
        assert res.status_code == 201
        listed = client.get(f"{BASE}/spreadsheets/{sheet['id']}/columns").get_json()
        assert [c["name"] for c in listed["columns"]] == ["Name", "Stage", "Amount", "Technical Win"]
        assert [c["position"] for c in listed["columns"]] == [0, 1, 2, 3]


class TestRowEndpoints:
    def test_create_coerces(self, client):
        sheet = _create_sheet(client)
        res = client.post(
            f"{BASE}/spreadsheets/{sheet['id']}/rows",
            json={"data": {"Name": "Globex", "Amount": "12.50"}},
        )
        assert res.status_code == 201
        assert res.get_json()["data"]["Amount"] == 12.5

    def test_invalid_value_is_422_with_details(self, client):
        sheet = _create_sheet(client)
        res = client.post(
            f"{BASE}/spreadsheets/{sheet['id']}/rows",
            json={"data": {"Name": "Globex", "Amount": "a lot"}},
        )
        assert res.status_code == 422
        body = res.get_json()
        assert body["code"] == "ERR_VALIDATION_CONSTRAINT"
        assert "Amount" in body["details"]

    def test_overflowing_number_is_422(self, client):
        sheet = _create_sheet(client)
        res = client.post(
            f"{BASE}/spreadsheets/{sheet['id']}/rows",
            json={"data": {"Name": "Globex", "Amount": "1e5000"}},
        )
        assert res.status_code == 422
        assert "Amount" in res.get_json()["details"]

    def test_wrapped_values_with_sibling_keys_rejected(self, client):
        sheet = _create_sheet(client)
        res = client.post(
            f"{BASE}/spreadsheets/{sheet['id']}/rows",
            json={"data": {"Name": "Globex"}, "Amount": 100},
        )
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_INVALID"
        listed = client.get(f"{BASE}/spreadsheets/{sheet['id']}/rows").get_json()
        assert listed["total"] == 0

    def test_update_with_sibling_keys_rejected(self, client):
        sheet = _create_sheet(client)
        row = client.post(f"{BASE}/spreadsheets/{sheet['id']}/rows", json={"Name": "Globex"}).get_json()
        res = client.put(f"{BASE}/rows/{row['id']}", json={"data": {"Amount": 5}, "Name": "Initech"})
        assert res.status_code == 400
        assert client.get(f"{BASE}/rows/{row['id']}").get_json()["data"]["Name"] == "Globex"

    def test_update_and_list(self, client):
        sheet = _create_sheet(client)
        row = client.post(f"{BASE}/spreadsheets/{sheet['id']}/rows", json={"Name": "Globex"}).get_json()
        res = client.put(f"{BASE}/rows/{row['id']}", json={"data": {"Amount": 900}})
        data = res.get_json()["data"]
        assert data["Amount"] == 900
        assert data["Name"] == "Globex"
        listed = client.get(f"{BASE}/spreadsheets/{sheet['id']}/rows").get_json()
        assert listed["total"] == 1


class TestTodoEndpoints:
    def test_todo_rolls_up_to_row(self, client):
        sheet = _create_sheet(client)
        row = client.post(f"{BASE}/spreadsheets/{sheet['id']}/rows", json={"Name": "Globex"}).get_json()

        res = client.post(f"{BASE}/todos", json={
            "title": "Run POC", "spreadsheet_id": sheet["id"], "row_id": row["id"],
        })
        assert res.status_code == 201
        created = res.get_json()
        assert created["row_stats"]["status"] == "In Progress"
        assert created["row_stats"]["status_written"] is True

        res = client.put(f"{BASE}/todos/{created['todo']['id']}/complete")
        assert res.get_json()["row_stats"]["status"] == "Completed"
        assert client.get(f"{BASE}/rows/{row['id']}").get_json()["data"]["Technical Win"] == "Completed"

        stats = client.get(f"{BASE}/rows/{row['id']}/todo-stats").get_json()
        assert stats["percentage"] == 100

    def test_title_required(self, client):
        res = client.post(f"{BASE}/todos", json={"spreadsheet_id": 1})
        assert res.status_code == 400

    def test_bad_priority_is_422(self, client):
        sheet = _create_sheet(client)
        res = client.post(f"{BASE}/todos", json={
            "title": "x", "spreadsheet_id": sheet["id"], "priority": "urgent",
        })
        assert res.status_code == 422

    def test_scope_listing(self, client):
        sheet = _create_sheet(client)
        client.post(f"{BASE}/todos", json={"title": "Sheet-level", "spreadsheet_id": sheet["id"]})
        body = client.get(f"{BASE}/spreadsheets/{sheet['id']}/todos?scope=pipeline").get_json()
        assert body["scope"] == "pipeline"
        assert [t["title"] for t in body["todos"]] == ["Sheet-level"]


class TestAuditEndpoints:
    def test_filter_by_spreadsheet_and_actor(self, client):
        sheet = _create_sheet(client)
        res = client.get(f"{BASE}/audit?spreadsheet_id={sheet['id']}&actor=alice")
        body = res.get_json()
        assert body["total"] >= 1
        assert all(entry["actor"] == "alice" for entry in body["audit_logs"])
        assert body["limit"] == 50

        entry_id = body["audit_logs"][0]["id"]
        assert client.get(f"{BASE}/audit/{entry_id}").status_code == 200
        assert client.get(f"{BASE}/audit/99999").status_code == 404


class TestRequestGuards:
    def test_non_json_body_rejected(self, client):
        res = client.post(f"{BASE}/spreadsheets", data="name=x", content_type="text/plain")
        assert res.status_code == 415

    def test_unknown_route(self, client):
        res = client.get(f"{BASE}/nowhere")
        assert res.status_code == 404
        assert res.get_json()["details"] == {"path": f"{BASE}/nowhere"}

    def test_method_not_allowed(self, client):
        res = client.delete(f"{BASE}/spreadsheets")
        assert res.status_code == 405
