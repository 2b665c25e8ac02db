"""
Cross-Entry Validation Rules

Checks that run once over the whole collection of entries:
- Duplicate (date, register) pairs
- Gaps between consecutive trading dates
- Abnormal sales in the most recent window (mean +/- 2 standard deviations)
"""

import statistics
from typing import Dict, List, Sequence, Tuple

from reconciliation.calculations import format_currency
from reconciliation.models import (
    SalesEntry,
    Severity,
    ValidationError,
    ValidationErrorType,
)

# Abnormal-sales window: most recent N entries, by input order
ABNORMAL_SALES_WINDOW = 7
ABNORMAL_SALES_STDDEV_FACTOR = 2


def find_duplicate_entries(entries: Sequence[SalesEntry]) -> List[ValidationError]:
    """
    One error per repeat of a (date, register) pair after its first occurrence.

    Entries missing a date or register number have no key and are skipped.
    """
    errors = []
    first_seen: Dict[Tuple, str] = {}

    for entry in entries:
        if entry.date is None or not entry.register_number:
            continue
        key = (entry.date, entry.register_number)
        if key not in first_seen:
            first_seen[key] = entry.id
            continue
        errors.append(ValidationError(
            type=ValidationErrorType.DUPLICATE_ENTRY,
            severity=Severity.HIGH,
            description=f"Duplicate entry found for {entry.register_number} on {entry.date.isoformat()}",
            affected_entries=[first_seen[key], entry.id],
        ))

    return errors


def find_missing_dates(entries: Sequence[SalesEntry]) -> List[ValidationError]:
    """Gaps of more than one calendar day between distinct entry dates."""
    errors = []
    dates = sorted({entry.date for entry in entries if entry.date is not None})

    for previous, current in zip(dates, dates[1:]):
        gap = (current - previous).days
        if gap > 1:
            errors.append(ValidationError(
                type=ValidationErrorType.MISSING_DATES,
                severity=Severity.MEDIUM,
                description=f"Gap in sales data between {previous.isoformat()} and {current.isoformat()}",
                days_missing=gap - 1,
                from_date=previous,
                to_date=current,
            ))

    return errors


def find_abnormal_sales(entries: Sequence[SalesEntry]) -> List[ValidationError]:
    """
    Outliers in total sales over the most recent window.

    Entries are expected in chronological input order. Nothing is flagged
    with fewer entries than the window, or when the window has no variance.
    """
    if len(entries) < ABNORMAL_SALES_WINDOW:
        return []

    recent = list(entries)[-ABNORMAL_SALES_WINDOW:]
    sales = [entry.total_sales for entry in recent]
    mean = statistics.mean(sales)
    stddev = statistics.pstdev(sales, mu=mean)
    if stddev <= 0:
        return []

    errors = []
    for entry in recent:
        if abs(entry.total_sales - mean) > ABNORMAL_SALES_STDDEV_FACTOR * stddev:
            direction = "high" if entry.total_sales > mean else "low"
            errors.append(ValidationError(
                type=ValidationErrorType.ABNORMAL_SALES,
                severity=Severity.MEDIUM,
                description=f"Sales amount {format_currency(entry.total_sales)} is unusually {direction}",
                entry_id=entry.id,
                entry_date=entry.date,
                direction=direction,
            ))

    return errors


def validate_business_rules(entries: Sequence[SalesEntry]) -> List[ValidationError]:
    """All cross-entry findings: duplicates, then date gaps, then outliers."""
    entries = list(entries)
    return (
        find_duplicate_entries(entries)
        + find_missing_dates(entries)
        + find_abnormal_sales(entries)
    )
