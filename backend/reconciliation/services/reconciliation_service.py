"""
Reconciliation Service

Core business logic for daily sales and cash reconciliation:
- Running the full pipeline (totals, discrepancies, cross-entry validation,
  summary metrics, overall status, recommendations)
- Pre-save validation of single entries
- Reconciliation reports with prioritised action items
- Appending run summaries to the rolling history

The service never raises for business-rule violations; those are returned
as findings. Rules are passed in explicitly or taken from the service's
configured defaults.
"""

import uuid
import logging
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from reconciliation.calculations import ZERO, format_currency
from reconciliation.models import (
    DEFAULT_RULES,
    ActionPriority,
    Discrepancy,
    EntryValidation,
    OverallStatus,
    ReconciliationResult,
    ReconciliationRules,
    ReconciliationStatus,
    ReconciliationSummary,
    ReconciliationTotals,
    SalesEntry,
    Severity,
    ValidationError,
    ValidationErrorType,
    normalize_record,
)
from reconciliation.rules import find_discrepancies, validate_business_rules
from reconciliation.services.history import DEFAULT_TREND_DAYS, ReconciliationHistory
from reconciliation.totals import calculate_totals

logger = logging.getLogger(__name__)

EntryInput = Union[SalesEntry, Mapping[str, Any]]

REPORT_TITLE = "Sales & Cash Reconciliation Report"

# Recommendation thresholds
ACCURACY_RECOMMENDATION_THRESHOLD = 90.0
ACCURACY_ACTION_THRESHOLD = 95.0

# Raw amounts that pre-save validation rejects when negative
NON_NEGATIVE_FIELDS = [
    ("opening_cash", "Opening cash"),
    ("cash_sales", "Cash sales"),
    ("card_sales", "Card sales"),
    ("closing_cash", "Closing cash"),
]


class ReconciliationAuditEvent:
    """Audit event types for reconciliation operations."""
    RUN_STARTED = "reconciliation.run_started"
    RUN_COMPLETED = "reconciliation.run_completed"
    HISTORY_RECORDED = "reconciliation.history_recorded"
    ENTRY_VALIDATED = "reconciliation.entry_validated"


def log_reconciliation_event(event_type: str, details: Dict[str, Any], run_id: Optional[str] = None):
    """Log reconciliation event for audit trail."""
    log_entry = {
        "event": event_type,
        "run_id": run_id,
        "details": details,
        "event_timestamp": datetime.now(timezone.utc).isoformat(),
    }
    logger.info(f"Reconciliation event: {event_type}", extra=log_entry)


def coerce_entries(
    entries: Iterable[EntryInput],
    rules: ReconciliationRules = DEFAULT_RULES,
) -> List[SalesEntry]:
    """Accept SalesEntry objects or stored records; order is preserved."""
    return [
        entry if isinstance(entry, SalesEntry) else SalesEntry.from_dict(entry, rules)
        for entry in entries
    ]


def calculate_summary(
    totals: ReconciliationTotals,
    discrepancies: Sequence[Discrepancy],
) -> ReconciliationSummary:
    """Aggregate counts and ratios for a run."""
    summary = ReconciliationSummary(
        total_discrepancies=len(discrepancies),
        high_severity_discrepancies=sum(
            1 for d in discrepancies if d.overall_severity == Severity.HIGH
        ),
        total_cash_variance=abs(totals.overall_cash_difference),
    )

    if totals.total_entries > 0:
        balanced_entries = totals.total_entries - len(discrepancies)
        summary.reconciliation_accuracy = balanced_entries / totals.total_entries * 100
    else:
        summary.reconciliation_accuracy = 100.0

    if discrepancies:
        summary.average_discrepancy = (
            sum((abs(d.cash_difference) for d in discrepancies), ZERO) / len(discrepancies)
        )

    summary.cash_recovery_needed = sum(
        (abs(d.cash_difference) for d in discrepancies if d.cash_difference < 0),
        ZERO,
    )
    return summary


def determine_overall_status(
    summary: ReconciliationSummary,
    discrepancies: Sequence[Discrepancy],
    validation_errors: Sequence[ValidationError],
    rules: ReconciliationRules,
) -> OverallStatus:
    """
    Classify a run. First match wins:
    critical -> warning -> discrepancy -> balanced.

    Recommendations are additive on top of the status message.
    """
    recommendations = []
    total_difference = summary.total_cash_variance

    has_high = (
        any(d.overall_severity == Severity.HIGH for d in discrepancies)
        or any(e.severity == Severity.HIGH for e in validation_errors)
    )

    if has_high:
        status = ReconciliationStatus.CRITICAL
        recommendations.append("Immediate attention required for high-severity issues")
    elif discrepancies or validation_errors:
        status = ReconciliationStatus.WARNING
        recommendations.append("Review and resolve flagged discrepancies")
    elif total_difference > rules.cash_discrepancy_threshold:
        status = ReconciliationStatus.DISCREPANCY
        recommendations.append("Investigate cash position difference")
    else:
        status = ReconciliationStatus.BALANCED

    if summary.reconciliation_accuracy < ACCURACY_RECOMMENDATION_THRESHOLD:
        recommendations.append("Improve data entry procedures to increase accuracy")

    if summary.cash_recovery_needed > 0:
        recommendations.append(f"Cash recovery needed: {format_currency(summary.cash_recovery_needed)}")

    if not recommendations:
        recommendations.append("All reconciliation checks passed successfully")

    return OverallStatus(
        status=status,
        confidence=status.confidence,
        total_difference=total_difference,
        recommendations=recommendations,
    )


def get_report_period(entries: Sequence[SalesEntry]) -> Dict[str, Optional[str]]:
    """Earliest and latest entry dates, or nulls for no dated entries."""
    dates = sorted(entry.date for entry in entries if entry.date is not None)
    if not dates:
        return {"from": None, "to": None}
    return {"from": dates[0].isoformat(), "to": dates[-1].isoformat()}


def generate_action_items(result: ReconciliationResult, today: Optional[date] = None) -> List[Dict[str, Any]]:
    """Prioritised follow-ups for a run, highest priority first."""
    today = today or datetime.now(timezone.utc).date()
    action_items = []

    for discrepancy in result.discrepancies:
        if discrepancy.overall_severity != Severity.HIGH:
            continue
        day = discrepancy.date.isoformat() if discrepancy.date else "unknown date"
        action_items.append({
            "priority": ActionPriority.HIGH,
            "action": f"Investigate {discrepancy.register_number} on {day}",
            "description": f"Cash difference: {format_currency(discrepancy.cash_difference)}",
            "assignee": "Store Manager",
            "due_date": (today + timedelta(days=1)).isoformat(),
        })

    if result.summary.reconciliation_accuracy < ACCURACY_ACTION_THRESHOLD:
        action_items.append({
            "priority": ActionPriority.MEDIUM,
            "action": "Review data entry procedures",
            "description": f"Current accuracy: {result.summary.reconciliation_accuracy:.1f}%",
            "assignee": "POS Admin",
            "due_date": (today + timedelta(days=7)).isoformat(),
        })

    if any(e.type == ValidationErrorType.MISSING_DATES for e in result.validation_errors):
        action_items.append({
            "priority": ActionPriority.LOW,
            "action": "Complete missing sales data",
            "description": "Gaps in daily sales records detected",
            "assignee": "Merchandiser",
            "due_date": (today + timedelta(days=14)).isoformat(),
        })

    action_items.sort(key=lambda item: item["priority"].rank, reverse=True)
    for item in action_items:
        item["priority"] = item["priority"].value
    return action_items


class ReconciliationService:
    """
    Service for reconciling daily register sales against cash on hand.

    Usage:
        service = ReconciliationService(history=ReconciliationHistory(store))
        result = service.run_reconciliation(entries)
    """

    def __init__(
        self,
        history: Optional[ReconciliationHistory] = None,
        rules: ReconciliationRules = DEFAULT_RULES,
        register_numbers: Optional[Sequence[str]] = None,
    ):
        self.history = history
        self.rules = rules
        self.register_numbers = list(register_numbers or [])
        self.latest_result: Optional[ReconciliationResult] = None

    def _rules(self, rules: Optional[ReconciliationRules]) -> ReconciliationRules:
        return rules if rules is not None else self.rules

    # ==================== FULL RUN ====================

    def run_reconciliation(
        self,
        entries: Iterable[EntryInput],
        rules: Optional[ReconciliationRules] = None,
        record_history: bool = True,
        now: Optional[datetime] = None,
    ) -> ReconciliationResult:
        """
        Run the full reconciliation pipeline over entries.

        Args:
            entries: Entries in chronological input order
            rules: Thresholds for this run (service defaults when omitted)
            record_history: Append the run summary to history
            now: Run timestamp (UTC now when omitted)

        Returns:
            ReconciliationResult with findings, summary and overall status
        """
        rules = self._rules(rules)
        run_id = str(uuid.uuid4())
        timestamp = now or datetime.now(timezone.utc)
        entries = coerce_entries(entries, rules)

        log_reconciliation_event(
            ReconciliationAuditEvent.RUN_STARTED,
            {"total_entries": len(entries), "rules": rules.to_dict()},
            run_id=run_id,
        )

        totals = calculate_totals(entries)
        discrepancies = find_discrepancies(entries, rules)
        validation_errors = validate_business_rules(entries)
        summary = calculate_summary(totals, discrepancies)
        overall = determine_overall_status(summary, discrepancies, validation_errors, rules)

        result = ReconciliationResult(
            run_id=run_id,
            timestamp=timestamp,
            totals=totals,
            discrepancies=discrepancies,
            validation_errors=validation_errors,
            summary=summary,
            overall=overall,
        )
        self.latest_result = result

        log_reconciliation_event(
            ReconciliationAuditEvent.RUN_COMPLETED,
            {
                "status": overall.status.value,
                "discrepancies": summary.total_discrepancies,
                "validation_errors": len(validation_errors),
                "accuracy": round(summary.reconciliation_accuracy, 2),
            },
            run_id=run_id,
        )

        if record_history and self.history is not None:
            kept = self.history.record(result, now=timestamp)
            log_reconciliation_event(
                ReconciliationAuditEvent.HISTORY_RECORDED,
                {"history_size": len(kept)},
                run_id=run_id,
            )

        return result

    # ==================== SINGLE ENTRY ====================

    def validate_single_entry(
        self,
        entry: EntryInput,
        rules: Optional[ReconciliationRules] = None,
    ) -> EntryValidation:
        """
        Pre-save validation for one entry.

        Missing identifying fields, unknown registers, unparseable values and
        large cash discrepancies are errors; smaller discrepancies, high
        returns and a low opening float are warnings.
        """
        rules = self._rules(rules)
        validation = EntryValidation()

        if isinstance(entry, SalesEntry):
            date_value, register = entry.date, entry.register_number
        else:
            record = normalize_record(entry)
            date_value, register = record.get("date"), record.get("register_number")

        if not date_value or not register:
            validation.add_error("Date and register number are required")
        elif self.register_numbers and register not in self.register_numbers:
            validation.add_error(f"Unknown register number: {register}")

        if not isinstance(entry, SalesEntry):
            try:
                entry = SalesEntry.from_record(entry, rules)
            except ValueError as e:
                validation.add_error(str(e))
                return validation

        for field_name, label in NON_NEGATIVE_FIELDS:
            if getattr(entry, field_name) < 0:
                validation.add_error(f"{label} cannot be negative")

        cash_diff = abs(entry.cash_difference)
        if cash_diff > rules.large_discrepancy_threshold:
            validation.add_error(f"Large cash discrepancy: {format_currency(entry.cash_difference)}")
        elif cash_diff > rules.cash_discrepancy_threshold:
            validation.warnings.append(f"Cash discrepancy detected: {format_currency(entry.cash_difference)}")

        if entry.total_sales > 0 and entry.returns_percentage > rules.max_returns_percentage:
            validation.warnings.append(f"High returns percentage: {entry.returns_percentage:.1f}%")

        if entry.opening_cash < rules.min_opening_cash:
            validation.warnings.append("Opening cash below recommended minimum")

        return validation

    def add_sales_entry(
        self,
        record: Mapping[str, Any],
        rules: Optional[ReconciliationRules] = None,
    ) -> Dict[str, Any]:
        """
        Validate a submitted entry and build it with derived fields.

        Returns:
            {"success", "errors", "warnings", "entry"}; entry is None on failure
        """
        rules = self._rules(rules)
        validation = self.validate_single_entry(record, rules)

        entry = None
        if not validation.has_errors:
            entry = SalesEntry.from_record(record, rules)

        log_reconciliation_event(
            ReconciliationAuditEvent.ENTRY_VALIDATED,
            {
                "entry_id": entry.id if entry else None,
                "success": not validation.has_errors,
                "errors": len(validation.errors),
                "warnings": len(validation.warnings),
            },
        )

        return {
            "success": not validation.has_errors,
            "errors": validation.errors,
            "warnings": validation.warnings,
            "entry": entry,
        }

    def validate_batch(
        self,
        records: Iterable[Mapping[str, Any]],
        rules: Optional[ReconciliationRules] = None,
    ) -> List[Dict[str, Any]]:
        """add_sales_entry for each record; one failure never stops the rest."""
        return [self.add_sales_entry(record, rules) for record in records]

    # ==================== REPORTING ====================

    def generate_report(
        self,
        entries: Iterable[EntryInput],
        rules: Optional[ReconciliationRules] = None,
        detailed: bool = False,
        today: Optional[date] = None,
        now: Optional[datetime] = None,
        record_history: bool = True,
    ) -> Dict[str, Any]:
        """
        Run reconciliation and build a report.

        Detailed reports include every discrepancy, validation error and the
        totals; summary reports leave detailed_findings empty.
        """
        rules = self._rules(rules)
        entries = coerce_entries(entries, rules)
        result = self.run_reconciliation(entries, rules, record_history=record_history, now=now)
        today = today or result.timestamp.date()

        return {
            "header": {
                "title": REPORT_TITLE,
                "generated_at": result.timestamp.isoformat(),
                "period": get_report_period(entries),
                "total_entries": len(entries),
            },
            "executive_summary": {
                "overall_status": result.overall.status.value,
                "confidence": result.overall.confidence,
                "total_sales": float(result.totals.total_sales),
                "total_discrepancies": result.summary.total_discrepancies,
                "reconciliation_accuracy": result.summary.reconciliation_accuracy,
                "cash_variance": float(result.summary.total_cash_variance),
            },
            "detailed_findings": {
                "discrepancies": [d.to_dict() for d in result.discrepancies],
                "validation_errors": [e.to_dict() for e in result.validation_errors],
                "totals": result.totals.to_dict(),
            } if detailed else None,
            "recommendations": list(result.overall.recommendations),
            "action_items": generate_action_items(result, today),
        }

    # ==================== HISTORY ====================

    def get_trends(self, window_days: int = DEFAULT_TREND_DAYS, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Trend series from history; empty series when no history is attached."""
        if self.history is None:
            return {
                "accuracy_trend": [],
                "discrepancy_trend": [],
                "cash_variance_trend": [],
                "period": window_days,
            }
        return self.history.trends(window_days, now=now)
