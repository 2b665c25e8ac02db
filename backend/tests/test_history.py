"""
Unit Tests for Reconciliation History

Tests:
- Append, prune and persist on every run
- Trend series over a window
- In-memory and JSON file stores

Run with: pytest tests/test_history.py -v
"""

import json
import pytest
from datetime import date, datetime, timedelta, timezone

from reconciliation.models import SalesEntry
from reconciliation.services.history import (
    InMemoryHistoryStore,
    JsonFileHistoryStore,
    ReconciliationHistory,
)
from reconciliation.services.reconciliation_service import ReconciliationService


NOW = datetime(2024, 6, 30, 12, 0, tzinfo=timezone.utc)


def balanced_entry(day=date(2024, 6, 30), closing_cash=240):
    return SalesEntry.create(
        date=day,
        register_number="REG001",
        opening_cash=200,
        cash_sales=150,
        card_sales=300,
        returns_refunds=10,
        cash_drops=100,
        closing_cash=closing_cash,
    )


def stored_run(timestamp, accuracy=100.0, discrepancies=0, variance=0.0):
    return {
        "timestamp": timestamp.isoformat(),
        "summary": {
            "reconciliation_accuracy": accuracy,
            "total_discrepancies": discrepancies,
            "total_cash_variance": variance,
        },
        "overall": {"status": "balanced"},
        "total_entries": 1,
    }


class TestReconciliationHistory:
    """Test history append and pruning."""

    @pytest.fixture
    def store(self):
        return InMemoryHistoryStore()

    @pytest.fixture
    def history(self, store):
        return ReconciliationHistory(store)

    @pytest.fixture
    def service(self, history):
        return ReconciliationService(history=history)

    def test_run_appends_compact_record(self, service, store):
        service.run_reconciliation([balanced_entry(closing_cash=180)], now=NOW)

        records = store.load()
        assert len(records) == 1
        assert records[0]["timestamp"] == NOW.isoformat()
        assert records[0]["summary"]["total_discrepancies"] == 1
        assert records[0]["summary"]["total_cash_variance"] == 60.0
        assert records[0]["overall"]["status"] == "critical"
        assert records[0]["total_entries"] == 1

    def test_record_history_false_skips_append(self, service, store):
        service.run_reconciliation([balanced_entry()], record_history=False, now=NOW)
        assert store.load() == []

    def test_prunes_records_older_than_retention(self, store, service):
        store.save([
            stored_run(NOW - timedelta(days=100)),
            stored_run(NOW - timedelta(days=89)),
        ])

        service.run_reconciliation([balanced_entry()], now=NOW)

        timestamps = [r["timestamp"] for r in store.load()]
        assert timestamps == [(NOW - timedelta(days=89)).isoformat(), NOW.isoformat()]

    def test_custom_retention(self, store):
        history = ReconciliationHistory(store, retention_days=7)
        store.save([stored_run(NOW - timedelta(days=8))])
        result = ReconciliationService().run_reconciliation([balanced_entry()], record_history=False, now=NOW)

        kept = history.record(result, now=NOW)

        assert len(kept) == 1

    def test_invalid_timestamps_are_dropped(self, store, history):
        store.save([{"timestamp": "yesterday", "summary": {}}])
        result = ReconciliationService().run_reconciliation([balanced_entry()], record_history=False, now=NOW)

        kept = history.record(result, now=NOW)

        assert len(kept) == 1
        assert kept[0]["timestamp"] == NOW.isoformat()

    def test_naive_timestamps_treated_as_utc(self, store, history):
        store.save([{"timestamp": "2024-06-29T12:00:00", "summary": {"reconciliation_accuracy": 90.0}}])

        trends = history.trends(30, now=NOW)

        assert trends["accuracy_trend"] == [{"date": "2024-06-29", "value": 90.0}]


    def test_naive_now_treated_as_utc(self, store, service):
        """A run stamped with a naive datetime is recorded without error."""
        naive_now = datetime(2024, 6, 30, 12, 0)
        store.save([stored_run(NOW - timedelta(days=100))])

        result = service.run_reconciliation([balanced_entry()], now=naive_now)

        records = store.load()
        assert service.latest_result is result
        assert [r["timestamp"] for r in records] == [naive_now.isoformat()]

class TestTrends:
    """Test trend series."""

    @pytest.fixture
    def history(self):
        store = InMemoryHistoryStore([
            stored_run(NOW - timedelta(days=40), accuracy=50.0),
            stored_run(NOW - timedelta(days=2), accuracy=80.0, discrepancies=2, variance=25.5),
            stored_run(NOW - timedelta(days=1), accuracy=100.0),
        ])
        return ReconciliationHistory(store)

    def test_window_filters_old_runs(self, history):
        trends = history.trends(30, now=NOW)

        assert trends["period"] == 30
        assert trends["accuracy_trend"] == [
            {"date": "2024-06-28", "value": 80.0},
            {"date": "2024-06-29", "value": 100.0},
        ]
        assert trends["discrepancy_trend"][0] == {"date": "2024-06-28", "value": 2}
        assert trends["cash_variance_trend"][0] == {"date": "2024-06-28", "value": 25.5}

    def test_wider_window_includes_older_runs(self, history):
        assert len(history.trends(60, now=NOW)["accuracy_trend"]) == 3

    def test_naive_now_window(self, history):
        trends = history.trends(30, now=datetime(2024, 6, 30, 12, 0))
        assert len(trends["accuracy_trend"]) == 2

    def test_empty_history(self):
        trends = ReconciliationHistory(InMemoryHistoryStore()).trends(30, now=NOW)
        assert trends["accuracy_trend"] == []
        assert trends["discrepancy_trend"] == []
        assert trends["cash_variance_trend"] == []

    def test_service_delegates_to_history(self, history):
        service = ReconciliationService(history=history)
        assert len(service.get_trends(7, now=NOW)["accuracy_trend"]) == 2


class TestJsonFileHistoryStore:
    """Test file-based JSON storage."""

    def test_missing_file_loads_empty(self, tmp_path):
        store = JsonFileHistoryStore(tmp_path / "history.json")
        assert store.load() == []

    def test_save_creates_parent_directories(self, tmp_path):
        path = tmp_path / "data" / "history.json"
        store = JsonFileHistoryStore(path)

        store.save([stored_run(NOW)])

        assert path.exists()
        assert json.loads(path.read_text(encoding="utf-8"))[0]["timestamp"] == NOW.isoformat()

    def test_history_survives_new_store_instance(self, tmp_path):
        path = tmp_path / "history.json"
        service = ReconciliationService(history=ReconciliationHistory(JsonFileHistoryStore(path)))

        service.run_reconciliation([balanced_entry()], now=NOW)
        service.run_reconciliation([balanced_entry()], now=NOW + timedelta(hours=1))

        assert len(JsonFileHistoryStore(path).load()) == 2

    def test_corrupt_file_loads_empty(self, tmp_path):
        path = tmp_path / "history.json"
        path.write_text("{not json", encoding="utf-8")

        assert JsonFileHistoryStore(path).load() == []

    def test_non_list_file_loads_empty(self, tmp_path):
        path = tmp_path / "history.json"
        path.write_text('{"timestamp": "2024-06-30"}', encoding="utf-8")

        assert JsonFileHistoryStore(path).load() == []
