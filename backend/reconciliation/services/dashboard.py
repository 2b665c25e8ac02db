"""
Dashboard Metrics & Period Reports

Calculation side of the sales dashboard and report screens:
- Daily metrics (sales, reconciled cash, discrepancies, active registers)
- Seven-day buckets, weekly trend, average daily sales
- Payment method distribution
- Dashboard alerts
- Date-range report data and CSV export

Rendering (charts, cards, tables) belongs to the UI and is not done here.
"""

import csv
import io
import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence

from reconciliation.calculations import ZERO, format_currency, percentage
from reconciliation.models import DEFAULT_RULES, ReconciliationRules, SalesEntry

logger = logging.getLogger(__name__)

DASHBOARD_DAYS = 7
DISCREPANCY_ALERT_COUNT = 2
ACCURACY_ALERT_THRESHOLD = 90.0

CSV_HEADERS = [
    "Date",
    "Register",
    "Opening Cash",
    "Cash Sales",
    "Card Sales",
    "Returns",
    "Cash Drops",
    "Closing Cash",
    "Difference",
    "Status",
]


@dataclass
class DailyMetrics:
    """Headline numbers for one trading day."""
    day: date
    total_sales: Decimal = ZERO
    cash_reconciled: Decimal = ZERO
    discrepancies_count: int = 0
    registers_active: int = 0
    average_transaction: Decimal = ZERO
    cash_recovery_needed: Decimal = ZERO
    reconciliation_accuracy: float = 100.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.day.isoformat(),
            "total_sales": float(self.total_sales),
            "cash_reconciled": float(self.cash_reconciled),
            "discrepancies_count": self.discrepancies_count,
            "registers_active": self.registers_active,
            "average_transaction": float(self.average_transaction),
            "cash_recovery_needed": float(self.cash_recovery_needed),
            "reconciliation_accuracy": self.reconciliation_accuracy,
        }


def _today() -> date:
    return datetime.now(timezone.utc).date()


def entries_for_day(entries: Sequence[SalesEntry], day: date) -> List[SalesEntry]:
    return [entry for entry in entries if entry.date == day]


def calculate_daily_metrics(
    entries: Sequence[SalesEntry],
    day: date,
    rules: ReconciliationRules = DEFAULT_RULES,
) -> DailyMetrics:
    """
    Metrics for entries dated `day`.

    An entry is reconciled when |cash difference| is within the cash
    threshold; recovery only counts shortfalls on the others.
    """
    day_entries = entries_for_day(entries, day)
    metrics = DailyMetrics(day=day)
    if not day_entries:
        return metrics

    registers = set()
    for entry in day_entries:
        metrics.total_sales += entry.total_sales
        registers.add(entry.register_number)

        if abs(entry.cash_difference) <= rules.cash_discrepancy_threshold:
            metrics.cash_reconciled += entry.closing_cash
        else:
            metrics.discrepancies_count += 1
            if entry.cash_difference < 0:
                metrics.cash_recovery_needed += abs(entry.cash_difference)

    metrics.registers_active = len(registers)
    metrics.average_transaction = metrics.total_sales / len(day_entries)
    metrics.reconciliation_accuracy = (
        (len(day_entries) - metrics.discrepancies_count) / len(day_entries) * 100
    )
    return metrics


def last_n_days(
    entries: Sequence[SalesEntry],
    today: Optional[date] = None,
    days: int = DASHBOARD_DAYS,
) -> List[Dict[str, Any]]:
    """Day buckets ending today, oldest first; days without entries are empty."""
    today = today or _today()
    buckets = []
    for offset in range(days - 1, -1, -1):
        day = today - timedelta(days=offset)
        buckets.append({"date": day, "entries": entries_for_day(entries, day)})
    return buckets


def _daily_sales(buckets: Sequence[Dict[str, Any]]) -> List[Decimal]:
    return [sum((entry.total_sales for entry in bucket["entries"]), ZERO) for bucket in buckets]


def weekly_trend(buckets: Sequence[Dict[str, Any]]) -> Decimal:
    """
    Percentage change of the second half's mean daily sales over the first
    half's. Zero with fewer than two days or no first-half sales.
    """
    daily = _daily_sales(buckets)
    if len(daily) < 2:
        return ZERO

    middle = len(daily) // 2
    first_half, second_half = daily[:middle], daily[middle:]
    first_avg = sum(first_half, ZERO) / len(first_half)
    second_avg = sum(second_half, ZERO) / len(second_half)

    if first_avg > 0:
        return (second_avg - first_avg) / first_avg * 100
    return ZERO


def average_daily_sales(buckets: Sequence[Dict[str, Any]]) -> Decimal:
    if not buckets:
        return ZERO
    return sum(_daily_sales(buckets), ZERO) / len(buckets)


def payment_distribution(entries: Sequence[SalesEntry]) -> Dict[str, float]:
    """Cash and card shares of sales, in percent."""
    cash = sum((entry.cash_sales for entry in entries), ZERO)
    card = sum((entry.card_sales for entry in entries), ZERO)
    total = cash + card
    if total == 0:
        return {"cash": 0.0, "card": 0.0}
    return {
        "cash": float(percentage(cash, total)),
        "card": float(percentage(card, total)),
    }


def dashboard_alerts(
    metrics: DailyMetrics,
    day_entries: Sequence[SalesEntry],
    rules: ReconciliationRules = DEFAULT_RULES,
) -> List[Dict[str, str]]:
    alerts = []

    if metrics.discrepancies_count > DISCREPANCY_ALERT_COUNT:
        alerts.append({
            "type": "warning",
            "message": f"{metrics.discrepancies_count} discrepancies detected today",
            "action": "Review reconciliation tab for details",
        })

    if metrics.reconciliation_accuracy < ACCURACY_ALERT_THRESHOLD:
        alerts.append({
            "type": "error",
            "message": f"Low reconciliation accuracy: {metrics.reconciliation_accuracy:.1f}%",
            "action": "Check data entry procedures",
        })

    if metrics.cash_recovery_needed > rules.large_discrepancy_threshold:
        alerts.append({
            "type": "critical",
            "message": f"Cash recovery needed: {format_currency(metrics.cash_recovery_needed)}",
            "action": "Investigate cash shortfalls immediately",
        })

    if not day_entries:
        alerts.append({
            "type": "info",
            "message": "No sales data entered for today",
            "action": "Begin entering daily sales data",
        })

    return alerts


def build_dashboard_report(
    entries: Sequence[SalesEntry],
    today: Optional[date] = None,
    rules: ReconciliationRules = DEFAULT_RULES,
) -> Dict[str, Any]:
    """Summary, seven-day trends and alerts for the dashboard."""
    today = today or _today()
    day_entries = entries_for_day(entries, today)
    metrics = calculate_daily_metrics(entries, today, rules)
    buckets = last_n_days(entries, today)

    return {
        "summary": metrics.to_dict(),
        "trends": {
            "weekly_trend": round(float(weekly_trend(buckets)), 2),
            "average_daily_sales": float(average_daily_sales(buckets)),
            "payment_method_distribution": payment_distribution(day_entries),
            "daily_sales": [
                {"date": bucket["date"].isoformat(), "value": float(total)}
                for bucket, total in zip(buckets, _daily_sales(buckets))
            ],
        },
        "alerts": dashboard_alerts(metrics, day_entries, rules),
    }


def build_period_report(
    entries: Sequence[SalesEntry],
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    rules: ReconciliationRules = DEFAULT_RULES,
    report_type: str = "daily",
) -> Dict[str, Any]:
    """
    Entries within [date_from, date_to] with a sales summary.

    Both bounds default to today. avg_discrepancy is the mean |difference|
    over all entries in range, not just flagged ones.
    """
    today = _today()
    date_from = date_from or today
    date_to = date_to or today
    if date_from > date_to:
        raise ValueError("date_from must not be after date_to")

    in_range = [
        entry for entry in entries
        if entry.date is not None and date_from <= entry.date <= date_to
    ]
    count = len(in_range)

    summary = {
        "total_entries": count,
        "total_sales": float(sum((e.total_sales for e in in_range), ZERO)),
        "total_cash_sales": float(sum((e.cash_sales for e in in_range), ZERO)),
        "total_card_sales": float(sum((e.card_sales for e in in_range), ZERO)),
        "total_discrepancies": sum(
            1 for e in in_range if abs(e.cash_difference) > rules.cash_discrepancy_threshold
        ),
        "avg_discrepancy": float(
            sum((abs(e.cash_difference) for e in in_range), ZERO) / count
        ) if count else 0.0,
    }

    logger.debug(f"Period report {report_type}: {count} entries from {date_from} to {date_to}")

    return {
        "type": report_type,
        "period": {"from": date_from.isoformat(), "to": date_to.isoformat()},
        "summary": summary,
        "entries": [entry.to_dict() for entry in in_range],
        "generated_at": datetime.now(timezone.utc).isoformat(),
    }


def entries_to_csv(entries: Sequence[SalesEntry]) -> str:
    """Export entries as CSV text with a header row."""
    output = io.StringIO()
    writer = csv.writer(output, lineterminator="\n")
    writer.writerow(CSV_HEADERS)

    for entry in entries:
        writer.writerow([
            entry.date.isoformat() if entry.date else "",
            entry.register_number,
            f"{entry.opening_cash:.2f}",
            f"{entry.cash_sales:.2f}",
            f"{entry.card_sales:.2f}",
            f"{entry.returns_refunds:.2f}",
            f"{entry.cash_drops:.2f}",
            f"{entry.closing_cash:.2f}",
            f"{entry.cash_difference:.2f}",
            entry.status.value,
        ])

    return output.getvalue()
