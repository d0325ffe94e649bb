"""Tests for the HTTP API."""

from __future__ import annotations

from pathlib import Path

import pytest

from gridcalc.config import scaffold_project
from gridcalc.logging.events import set_project_dir


@pytest.fixture
def demo_project(tmp_path: Path) -> Path:
    """Scaffold a project with one empty sheet."""
    project_dir = tmp_path / "test_project"
    scaffold_project(project_dir)
    return project_dir


@pytest.fixture
def client(demo_project: Path):
    from fastapi.testclient import TestClient

    from gridcalc.server import create_app

    app = create_app(demo_project)
    yield TestClient(app)
    set_project_dir(None)


def _set(client, cell: str, value: str, sheet_id: str = "sheet1"):
    return client.post(
        f"/api/sheets/{sheet_id}/commands",
        json={"type": "set_value", "cell": cell, "value": value},
    )


# ────────────────────────────────────────────────────────────────
# Sheets
# ────────────────────────────────────────────────────────────────


class TestSheetRoutes:
    def test_list_sheets(self, client) -> None:
        resp = client.get("/api/sheets")
        assert resp.status_code == 200
        assert resp.json() == [{"id": "sheet1", "name": "Sheet1"}]

    def test_create_rename_delete(self, client) -> None:
        resp = client.post("/api/sheets", json={"name": "Costs"})
        assert resp.status_code == 200
        assert resp.json()["id"] == "costs"

        resp = client.patch("/api/sheets/costs", json={"name": "Expenses"})
        assert resp.json()["new_name"] == "Expenses"

        resp = client.delete("/api/sheets/costs")
        assert resp.json()["remaining"] == ["sheet1"]

    def test_duplicate_name_is_400(self, client) -> None:
        resp = client.post("/api/sheets", json={"name": "Sheet1"})
        assert resp.status_code == 400
        assert "already exists" in resp.json()["detail"]

    def test_delete_last_sheet_is_400(self, client) -> None:
        assert client.delete("/api/sheets/sheet1").status_code == 400

    def test_duplicate(self, client) -> None:
        _set(client, "A1", "3")
        resp = client.post("/api/sheets/sheet1/duplicate", json={})
        dup_id = resp.json()["id"]
        cells = client.get(f"/api/sheets/{dup_id}").json()["cells"]
        assert cells[0]["display"] == "3"

    def test_unknown_sheet_is_404(self, client) -> None:
        resp = client.get("/api/sheets/ghost")
        assert resp.status_code == 404
        assert resp.json()["code"] == "sheet_not_found"


# ────────────────────────────────────────────────────────────────
# Commands
# ────────────────────────────────────────────────────────────────


class TestCommandRoutes:
    def test_set_and_read(self, client) -> None:
        _set(client, "A1", "10")
        _set(client, "A2", "32")
        resp = _set(client, "A3", "=SUM(A1:A2)")
        assert resp.status_code == 200
        assert resp.json()["ok"] is True

        cells = {c["ref"]: c for c in client.get("/api/sheets/sheet1").json()["cells"]}
        assert cells["A3"]["display"] == "42"
        assert cells["A3"]["raw"] == "=SUM(A1:A2)"
        assert cells["A3"]["type"] == "formula"

    def test_calculate_returns_value(self, client) -> None:
        _set(client, "B1", "2")
        _set(client, "B2", "4")
        resp = client.post(
            "/api/sheets/sheet1/commands",
            json={"type": "calculate", "range": "B1:B2", "formula": "SUM"},
        )
        assert resp.json()["value"] == 6

    def test_invalid_reference_is_400(self, client) -> None:
        resp = _set(client, "A0", "1")
        assert resp.status_code == 400
        body = resp.json()
        assert body == {"ok": False, "code": "invalid_reference", "message": body["message"]}

    def test_non_finite_number_keeps_sheet_readable(self, client) -> None:
        resp = client.post(
            "/api/sheets/sheet1/commands",
            content='{"type": "set_value", "cell": "A1", "value": Infinity}',
            headers={"content-type": "application/json"},
        )
        assert resp.status_code == 200
        _set(client, "A2", "=A1+1")

        resp = client.get("/api/sheets/sheet1")
        assert resp.status_code == 200
        cells = {c["ref"]: c for c in resp.json()["cells"]}
        assert cells["A1"]["display"] == "inf"
        assert cells["A1"]["type"] == "text"
        assert cells["A2"]["display"] == "1"
        assert client.get("/api/sheets/sheet1/export.csv").status_code == 200

    def test_unsupported_command_is_400(self, client) -> None:
        resp = client.post("/api/sheets/sheet1/commands", json={"type": "sort", "range": "A1:A3"})
        assert resp.status_code == 400
        assert resp.json()["code"] == "unsupported_command"

    def test_malformed_payload_is_422(self, client) -> None:
        resp = client.post("/api/sheets/sheet1/commands", json={"type": "copy", "range": "A1"})
        assert resp.status_code == 422
        assert resp.json()["code"] == "invalid_payload"

    def test_chat(self, client) -> None:
        resp = client.post("/api/sheets/sheet1/chat", json={"text": "set A1 to 5"})
        assert resp.json()["ok"] is True
        resp = client.post(
            "/api/sheets/sheet1/chat", json={"text": "=A1*2", "selected_cell": "B1"}
        )
        assert resp.json()["changed"] == ["B1"]
        resp = client.post("/api/sheets/sheet1/chat", json={"text": "sum A1:B1"})
        assert resp.json()["value"] == 15

    def test_chat_unrecognised(self, client) -> None:
        resp = client.post("/api/sheets/sheet1/chat", json={"text": "draw a chart"})
        assert resp.status_code == 200
        assert resp.json()["ok"] is False

    def test_evaluate(self, client) -> None:
        _set(client, "A1", "6")
        resp = client.post("/api/sheets/sheet1/evaluate", json={"formula": "=A1*7"})
        assert resp.json()["value"] == "42"

    def test_validate_formula(self, client) -> None:
        resp = client.post("/api/formula/validate", json={"text": "=SUM(A1:B2)+C3"})
        assert resp.json() == {"valid": True, "refs": ["A1", "B2", "C3"]}
        resp = client.post("/api/formula/validate", json={"text": "A1+1"})
        assert resp.json()["valid"] is False


# ────────────────────────────────────────────────────────────────
# Persistence / export / events
# ────────────────────────────────────────────────────────────────


class TestPersistenceRoutes:
    def test_save(self, client, demo_project: Path) -> None:
        _set(client, "A1", "1")
        resp = client.post("/api/sheets/sheet1/save")
        assert resp.json() == {"ok": True, "id": "sheet1", "dirty": False}
        assert "A1" in (demo_project / "sheets" / "sheet1.yaml").read_text()

    def test_export_csv(self, client) -> None:
        _set(client, "A1", "hi")
        resp = client.get("/api/sheets/sheet1/export.csv")
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/csv")
        assert resp.text.splitlines()[1].startswith("hi,")

    def test_import_csv(self, client) -> None:
        resp = client.post("/api/import/csv", json={"name": "Data", "text": "A\n7\n"})
        sheet_id = resp.json()["id"]
        cells = client.get(f"/api/sheets/{sheet_id}").json()["cells"]
        assert cells == [{"ref": "A1", "raw": "7", "display": "7", "type": "number"}]

    def test_workbook_round_trip(self, client) -> None:
        _set(client, "A1", "1")
        text = client.get("/api/workbook").text
        resp = client.post("/api/workbook", json={"text": text})
        assert resp.json()["sheets"][0]["name"] == "Sheet1 (Imported)"

    def test_bad_workbook_is_400(self, client) -> None:
        resp = client.post("/api/workbook", json={"text": "not json"})
        assert resp.status_code == 400
        assert resp.json()["code"] == "storage_error"

    def test_events(self, client) -> None:
        _set(client, "A1", "1")
        _set(client, "A0", "1")
        events = client.get("/api/events", params={"event_type": "command_rejected"}).json()
        assert len(events) == 1
        assert events[0]["error_code"] == "invalid_reference"
        assert client.get("/api/events", params={"level": "info"}).json()
