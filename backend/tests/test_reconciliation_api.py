"""
API Tests for Reconciliation Endpoints

Tests the HTTP surface mounted under /api/reconciliation using FastAPI's
TestClient, with run history held in memory.

Run with: pytest tests/test_reconciliation_api.py -v
"""

import pytest
from fastapi.testclient import TestClient

from reconciliation.endpoints.reconciliation_api import get_history
from reconciliation.services.history import InMemoryHistoryStore, ReconciliationHistory
from server import app


def payload(day="2024-01-01", register="REG001", **amounts):
    data = {
        "date": day,
        "register_number": register,
        "opening_cash": 200,
        "cash_sales": 150,
        "card_sales": 300,
        "returns_refunds": 10,
        "cash_drops": 100,
        "closing_cash": 240,
    }
    data.update(amounts)
    return data


@pytest.fixture
def history():
    return ReconciliationHistory(InMemoryHistoryStore())


@pytest.fixture
def client(history):
    app.dependency_overrides[get_history] = lambda: history
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestHealthAndStatus:
    """Test service health and module status."""

    def test_health(self, client):
        response = client.get("/api/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_request_id_echoed(self, client):
        response = client.get("/api/health", headers={"X-Request-ID": "req-test-1"})
        assert response.headers["X-Request-ID"] == "req-test-1"

    def test_module_status(self, client):
        data = client.get("/api/reconciliation/status").json()

        assert data["module"] == "reconciliation"
        assert data["status"] == "operational"
        assert data["features"]["csv_export"] is True

    def test_rules(self, client):
        data = client.get("/api/reconciliation/rules").json()

        assert data["rules"]["cash_discrepancy_threshold"] == 5.0
        assert data["rules"]["large_discrepancy_threshold"] == 50.0


class TestValidateEntryEndpoint:
    """Test POST /api/reconciliation/entries/validate"""

    def test_valid_entry_returns_derived_fields(self, client):
        response = client.post("/api/reconciliation/entries/validate", json=payload())

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["entry"]["expected_cash"] == 240.0
        assert data["entry"]["status"] == "balanced"

    def test_missing_register_is_reported_not_raised(self, client):
        body = payload()
        del body["register_number"]

        data = client.post("/api/reconciliation/entries/validate", json=body).json()

        assert data["success"] is False
        assert data["entry"] is None
        assert "Date and register number are required" in data["errors"]

    def test_large_discrepancy_blocks_save(self, client):
        data = client.post("/api/reconciliation/entries/validate", json=payload(closing_cash=180)).json()

        assert data["success"] is False
        assert data["errors"] == ["Large cash discrepancy: -$60.00"]


class TestRunEndpoint:
    """Test POST /api/reconciliation/run"""

    def test_balanced_run(self, client):
        entries = [payload(f"2024-01-0{d}") for d in range(1, 6)]

        response = client.post("/api/reconciliation/run", json={"entries": entries})

        assert response.status_code == 200
        data = response.json()
        assert data["overall"]["status"] == "balanced"
        assert data["summary"]["reconciliation_accuracy"] == 100.0
        assert data["totals"]["total_entries"] == 5

    def test_critical_run(self, client):
        data = client.post("/api/reconciliation/run", json={"entries": [payload(closing_cash=180)]}).json()

        assert data["overall"]["status"] == "critical"
        assert data["summary"]["cash_recovery_needed"] == 60.0
        assert data["discrepancies"][0]["issues"][0]["type"] == "cash_discrepancy"

    def test_rule_overrides_apply(self, client):
        body = {
            "entries": [payload(closing_cash=180)],
            "rules": {"cash_discrepancy_threshold": 100, "large_discrepancy_threshold": 200},
        }

        data = client.post("/api/reconciliation/run", json=body).json()

        assert data["overall"]["status"] == "balanced"

    def test_unknown_rule_is_bad_request(self, client):
        body = {"entries": [payload()], "rules": {"max_refunds": 5}}

        response = client.post("/api/reconciliation/run", json=body)

        assert response.status_code == 400
        detail = response.json()["detail"]
        assert detail["error"] == "invalid_parameter"
        assert detail["parameter"] == "rules"

    def test_negative_rule_is_bad_request(self, client):
        body = {"entries": [payload()], "rules": {"min_opening_cash": -1}}

        assert client.post("/api/reconciliation/run", json=body).status_code == 400

    def test_unparseable_date_is_unprocessable(self, client):
        body = {"entries": [payload(), payload(day="01/02/2024")]}

        response = client.post("/api/reconciliation/run", json=body)

        assert response.status_code == 422
        detail = response.json()["detail"]
        assert detail["error"] == "invalid_parameter"
        assert detail["parameter"] == "entries[1]"

    def test_run_is_recorded_in_history(self, client, history):
        client.post("/api/reconciliation/run", json={"entries": [payload()]})
        client.post("/api/reconciliation/run", json={"entries": [payload()], "record_history": False})

        assert len(history.entries()) == 1

    def test_trends_reflect_recorded_runs(self, client):
        client.post("/api/reconciliation/run", json={"entries": [payload(closing_cash=180)]})

        data = client.get("/api/reconciliation/trends", params={"days": 30}).json()

        assert data["period"] == 30
        assert data["accuracy_trend"][0]["value"] == 0.0
        assert data["discrepancy_trend"][0]["value"] == 1

    def test_trends_days_validated(self, client):
        assert client.get("/api/reconciliation/trends", params={"days": 0}).status_code == 422


class TestReportEndpoints:
    """Test report, dashboard, period report and export endpoints."""

    def test_summary_report(self, client):
        data = client.post("/api/reconciliation/report", json={"entries": [payload()]}).json()

        assert data["header"]["title"] == "Sales & Cash Reconciliation Report"
        assert data["detailed_findings"] is None

    def test_detailed_report(self, client):
        body = {"entries": [payload(closing_cash=180)], "format": "detailed"}

        data = client.post("/api/reconciliation/report", json=body).json()

        assert len(data["detailed_findings"]["discrepancies"]) == 1
        assert data["action_items"][0]["priority"] == "high"

    def test_report_respects_record_history(self, client, history):
        body = {"entries": [payload()], "record_history": False}

        response = client.post("/api/reconciliation/report", json=body)

        assert response.status_code == 200
        assert history.entries() == []

        client.post("/api/reconciliation/report", json={"entries": [payload()]})
        assert len(history.entries()) == 1

    def test_unknown_report_format_rejected(self, client):
        body = {"entries": [payload()], "format": "pdf"}
        assert client.post("/api/reconciliation/report", json=body).status_code == 422

    def test_dashboard(self, client):
        body = {"entries": [payload("2024-03-10")], "day": "2024-03-10"}

        data = client.post("/api/reconciliation/dashboard", json=body).json()

        assert data["summary"]["date"] == "2024-03-10"
        assert data["summary"]["total_sales"] == 450.0
        assert data["alerts"] == []

    def test_period_report(self, client):
        body = {
            "entries": [payload("2024-03-09"), payload("2024-03-10"), payload("2024-03-12")],
            "date_from": "2024-03-09",
            "date_to": "2024-03-10",
        }

        data = client.post("/api/reconciliation/period-report", json=body).json()

        assert data["summary"]["total_entries"] == 2

    def test_period_report_reversed_range(self, client):
        body = {"entries": [], "date_from": "2024-03-10", "date_to": "2024-03-01"}

        response = client.post("/api/reconciliation/period-report", json=body)

        assert response.status_code == 422
        assert response.json()["detail"]["error"] == "validation_error"

    def test_csv_export(self, client):
        response = client.post("/api/reconciliation/export/csv", json={"entries": [payload()]})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert "attachment" in response.headers["content-disposition"]
        lines = response.text.strip().splitlines()
        assert lines[0].startswith("Date,Register,Opening Cash")
        assert lines[1].startswith("2024-01-01,REG001,200.00")
