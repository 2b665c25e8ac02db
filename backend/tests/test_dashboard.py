"""
Unit Tests for Dashboard Metrics, Period Reports and CSV Export

Run with: pytest tests/test_dashboard.py -v
"""

import csv
import io
import pytest
from datetime import date, timedelta
from decimal import Decimal

from reconciliation.models import DEFAULT_RULES, SalesEntry
from reconciliation.services.dashboard import (
    CSV_HEADERS,
    average_daily_sales,
    build_dashboard_report,
    build_period_report,
    calculate_daily_metrics,
    dashboard_alerts,
    entries_to_csv,
    last_n_days,
    payment_distribution,
    weekly_trend,
)


TODAY = date(2024, 3, 10)


def entry(day=TODAY, register="REG001", **amounts):
    values = {
        "opening_cash": 200,
        "cash_sales": 150,
        "card_sales": 300,
        "returns_refunds": 10,
        "cash_drops": 100,
        "closing_cash": 240,
    }
    values.update(amounts)
    return SalesEntry.create(date=day, register_number=register, **values)


class TestDailyMetrics:
    """Test per-day metrics."""

    def test_no_entries_for_day(self):
        metrics = calculate_daily_metrics([entry(TODAY - timedelta(days=1))], TODAY)

        assert metrics.total_sales == 0
        assert metrics.registers_active == 0
        assert metrics.reconciliation_accuracy == 100.0

    def test_mixed_day(self):
        entries = [
            entry(register="REG001"),
            entry(register="REG002", closing_cash=180),
            entry(register="REG003", closing_cash=260),
            entry(TODAY - timedelta(days=1), register="REG004"),
        ]

        metrics = calculate_daily_metrics(entries, TODAY)

        assert metrics.total_sales == Decimal("1350")
        assert metrics.registers_active == 3
        assert metrics.discrepancies_count == 2
        assert metrics.cash_reconciled == Decimal("240")
        assert metrics.cash_recovery_needed == Decimal("60")
        assert metrics.average_transaction == Decimal("450")
        assert metrics.reconciliation_accuracy == pytest.approx(33.33, abs=0.01)
        assert metrics.to_dict()["date"] == "2024-03-10"


class TestTrendHelpers:
    """Test seven-day trend helpers."""

    def test_last_n_days_oldest_first(self):
        buckets = last_n_days([entry()], TODAY)

        assert len(buckets) == 7
        assert buckets[0]["date"] == TODAY - timedelta(days=6)
        assert buckets[-1]["date"] == TODAY
        assert len(buckets[-1]["entries"]) == 1

    def test_weekly_trend_compares_halves(self):
        entries = [entry(TODAY - timedelta(days=6)), entry(TODAY, card_sales=750)]

        trend = weekly_trend(last_n_days(entries, TODAY))

        # first half 450 / 3 days, second half 900 / 4 days
        assert trend == pytest.approx(Decimal("50"))

    def test_weekly_trend_zero_without_first_half_sales(self):
        assert weekly_trend(last_n_days([entry()], TODAY)) == 0

    def test_average_daily_sales(self):
        assert average_daily_sales(last_n_days([entry(), entry(register="REG002")], TODAY)) == Decimal("900") / 7

    def test_payment_distribution(self):
        assert payment_distribution([entry()]) == {
            "cash": pytest.approx(33.333, abs=0.001),
            "card": pytest.approx(66.667, abs=0.001),
        }

    def test_payment_distribution_without_sales(self):
        assert payment_distribution([]) == {"cash": 0.0, "card": 0.0}


class TestDashboardAlerts:
    """Test dashboard alert thresholds."""

    def test_no_entries_today_is_info(self):
        metrics = calculate_daily_metrics([], TODAY)

        alerts = dashboard_alerts(metrics, [])

        assert [a["type"] for a in alerts] == ["info"]

    def test_many_shortfalls_raise_all_alerts(self):
        day_entries = [entry(register=f"REG00{i}", closing_cash=200) for i in range(1, 4)]
        metrics = calculate_daily_metrics(day_entries, TODAY)

        alerts = dashboard_alerts(metrics, day_entries, DEFAULT_RULES)

        assert [a["type"] for a in alerts] == ["warning", "error", "critical"]
        assert alerts[0]["message"] == "3 discrepancies detected today"
        assert alerts[2]["message"] == "Cash recovery needed: $120.00"

    def test_balanced_day_has_no_alerts(self):
        day_entries = [entry()]
        metrics = calculate_daily_metrics(day_entries, TODAY)
        assert dashboard_alerts(metrics, day_entries) == []

    def test_dashboard_report_shape(self):
        report = build_dashboard_report([entry()], today=TODAY)

        assert report["summary"]["total_sales"] == 450.0
        assert len(report["trends"]["daily_sales"]) == 7
        assert report["trends"]["daily_sales"][-1] == {"date": "2024-03-10", "value": 450.0}
        assert report["alerts"] == []


class TestPeriodReport:
    """Test date-range reports."""

    def test_filters_inclusive_range(self):
        entries = [entry(TODAY - timedelta(days=d)) for d in range(5)]

        report = build_period_report(entries, TODAY - timedelta(days=3), TODAY - timedelta(days=1), report_type="weekly")

        assert report["type"] == "weekly"
        assert report["period"] == {"from": "2024-03-07", "to": "2024-03-09"}
        assert report["summary"]["total_entries"] == 3
        assert report["summary"]["total_sales"] == 1350.0
        assert report["summary"]["total_cash_sales"] == 450.0
        assert len(report["entries"]) == 3

    def test_avg_discrepancy_over_all_entries(self):
        entries = [entry(), entry(register="REG002", closing_cash=220)]

        summary = build_period_report(entries, TODAY, TODAY)["summary"]

        assert summary["total_discrepancies"] == 1
        assert summary["avg_discrepancy"] == 10.0

    def test_empty_range(self):
        summary = build_period_report([], TODAY, TODAY)["summary"]
        assert summary["total_entries"] == 0
        assert summary["avg_discrepancy"] == 0.0

    def test_reversed_range_rejected(self):
        with pytest.raises(ValueError):
            build_period_report([], TODAY, TODAY - timedelta(days=1))


class TestCsvExport:
    """Test CSV export."""

    def test_header_and_rows(self):
        text = entries_to_csv([entry(), entry(register="REG002", closing_cash=180)])

        rows = list(csv.reader(io.StringIO(text)))

        assert rows[0] == CSV_HEADERS
        assert rows[1] == [
            "2024-03-10", "REG001", "200.00", "150.00", "300.00",
            "10.00", "100.00", "240.00", "0.00", "balanced",
        ]
        assert rows[2][8] == "-60.00"
        assert rows[2][9] == "discrepancy"

    def test_empty_export_has_header_only(self):
        assert entries_to_csv([]).strip() == ",".join(CSV_HEADERS)
