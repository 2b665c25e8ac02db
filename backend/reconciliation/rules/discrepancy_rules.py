"""
Discrepancy Rules

Per-entry checks, evaluated in a fixed order. An entry may collect several
issues; its overall severity is the highest among them.

Checks:
- cash_discrepancy: |cash difference| above the cash threshold
  (high above the large-discrepancy threshold, else medium)
- high_returns: returns above the allowed share of total sales (medium)
- low_opening_cash: opening float below the minimum (low)
- zero_sales: no sales recorded (medium)
- negative_values: negative cash sales, card sales or closing cash (high)
"""

from typing import Callable, Iterable, List, Optional

from reconciliation.calculations import format_currency
from reconciliation.models import (
    Discrepancy,
    Issue,
    IssueType,
    ReconciliationRules,
    SalesEntry,
    Severity,
    max_severity,
)


def check_cash_discrepancy(entry: SalesEntry, rules: ReconciliationRules) -> Optional[Issue]:
    cash_diff = abs(entry.cash_difference)
    if cash_diff <= rules.cash_discrepancy_threshold:
        return None
    if cash_diff > rules.large_discrepancy_threshold:
        severity = Severity.HIGH
    else:
        severity = Severity.MEDIUM
    return Issue(
        type=IssueType.CASH_DISCREPANCY,
        severity=severity,
        amount=entry.cash_difference,
        description=f"Cash difference of {format_currency(entry.cash_difference)}",
    )


def check_high_returns(entry: SalesEntry, rules: ReconciliationRules) -> Optional[Issue]:
    returns_pct = entry.returns_percentage
    if returns_pct <= rules.max_returns_percentage:
        return None
    return Issue(
        type=IssueType.HIGH_RETURNS,
        severity=Severity.MEDIUM,
        percentage=returns_pct,
        description=f"Returns are {returns_pct:.1f}% of sales",
    )


def check_low_opening_cash(entry: SalesEntry, rules: ReconciliationRules) -> Optional[Issue]:
    if entry.opening_cash >= rules.min_opening_cash:
        return None
    return Issue(
        type=IssueType.LOW_OPENING_CASH,
        severity=Severity.LOW,
        amount=entry.opening_cash,
        description=f"Opening cash below minimum ({format_currency(rules.min_opening_cash)})",
    )


def check_zero_sales(entry: SalesEntry, rules: ReconciliationRules) -> Optional[Issue]:
    if entry.total_sales == 0 and entry.cash_sales == 0 and entry.card_sales == 0:
        return Issue(
            type=IssueType.ZERO_SALES,
            severity=Severity.MEDIUM,
            description="No sales recorded for this entry",
        )
    return None


def check_negative_values(entry: SalesEntry, rules: ReconciliationRules) -> Optional[Issue]:
    if entry.cash_sales < 0 or entry.card_sales < 0 or entry.closing_cash < 0:
        return Issue(
            type=IssueType.NEGATIVE_VALUES,
            severity=Severity.HIGH,
            description="Negative values detected in sales data",
        )
    return None


# Evaluation order matters: issues are reported in this order
ENTRY_CHECKS: List[Callable[[SalesEntry, ReconciliationRules], Optional[Issue]]] = [
    check_cash_discrepancy,
    check_high_returns,
    check_low_opening_cash,
    check_zero_sales,
    check_negative_values,
]


def evaluate_entry(entry: SalesEntry, rules: ReconciliationRules) -> List[Issue]:
    """All issues that apply to one entry, in check order."""
    issues = []
    for check in ENTRY_CHECKS:
        issue = check(entry, rules)
        if issue is not None:
            issues.append(issue)
    return issues


def find_discrepancies(
    entries: Iterable[SalesEntry],
    rules: ReconciliationRules,
) -> List[Discrepancy]:
    """
    Flag entries with at least one issue.

    Returns:
        Discrepancies ordered by overall severity, highest first. The sort is
        stable, so equal severities keep their input order.
    """
    discrepancies = []

    for entry in entries:
        issues = evaluate_entry(entry, rules)
        if not issues:
            continue
        discrepancies.append(Discrepancy(
            entry_id=entry.id,
            date=entry.date,
            register_number=entry.register_number,
            cash_difference=entry.cash_difference,
            issues=issues,
            overall_severity=max_severity([issue.severity for issue in issues]),
        ))

    discrepancies.sort(key=lambda d: d.overall_severity.rank, reverse=True)
    return discrepancies
