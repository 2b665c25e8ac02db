"""
Reconciliation Domain Models

Core records consumed and produced by the reconciliation engine:
- SalesEntry: one register's activity for one trading day
- ReconciliationRules: thresholds passed into every engine call
- Issue / Discrepancy: per-entry rule violations
- ValidationError: findings spanning several entries
- ReconciliationResult: output of a single run

Money is held as Decimal. to_dict() methods render JSON-safe values
(floats for money, ISO strings for dates) for API responses and history.
"""

import uuid
from dataclasses import dataclass, field, fields, replace
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from reconciliation.calculations import (
    ZERO,
    derive_entry_fields,
    parse_entry_date,
    percentage,
    to_money,
)


# ==================== ENUMS ====================

class Severity(str, Enum):
    """Severity of an issue or validation error."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return SEVERITY_RANK[self]


SEVERITY_RANK = {
    Severity.LOW: 1,
    Severity.MEDIUM: 2,
    Severity.HIGH: 3,
}


class EntryStatus(str, Enum):
    """Per-entry cash status."""
    BALANCED = "balanced"
    DISCREPANCY = "discrepancy"


class ReconciliationStatus(str, Enum):
    """Overall status of a reconciliation run."""
    BALANCED = "balanced"
    DISCREPANCY = "discrepancy"
    WARNING = "warning"
    CRITICAL = "critical"

    @property
    def confidence(self) -> int:
        return STATUS_CONFIDENCE[self]


STATUS_CONFIDENCE = {
    ReconciliationStatus.BALANCED: 100,
    ReconciliationStatus.WARNING: 70,
    ReconciliationStatus.DISCREPANCY: 60,
    ReconciliationStatus.CRITICAL: 30,
}


class IssueType(str, Enum):
    """Per-entry rule violations, in evaluation order."""
    CASH_DISCREPANCY = "cash_discrepancy"
    HIGH_RETURNS = "high_returns"
    LOW_OPENING_CASH = "low_opening_cash"
    ZERO_SALES = "zero_sales"
    NEGATIVE_VALUES = "negative_values"


class ValidationErrorType(str, Enum):
    """Cross-entry findings."""
    DUPLICATE_ENTRY = "duplicate_entry"
    MISSING_DATES = "missing_dates"
    ABNORMAL_SALES = "abnormal_sales"


class ActionPriority(str, Enum):
    """Priority of a report action item."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return PRIORITY_RANK[self]


PRIORITY_RANK = {
    ActionPriority.LOW: 1,
    ActionPriority.MEDIUM: 2,
    ActionPriority.HIGH: 3,
}


def max_severity(severities: List[Severity]) -> Severity:
    """Highest severity in the list (LOW for an empty list)."""
    return max(severities, key=lambda s: s.rank, default=Severity.LOW)


# ==================== RULES ====================

@dataclass(frozen=True)
class ReconciliationRules:
    """
    Thresholds consumed by the engine.

    Rules are a value: callers build one (usually from settings) and pass it
    into every engine call. with_overrides() returns a modified copy.
    """
    cash_discrepancy_threshold: Decimal = Decimal("5.00")
    large_discrepancy_threshold: Decimal = Decimal("50.00")
    max_returns_percentage: Decimal = Decimal("10.0")
    min_opening_cash: Decimal = Decimal("100.00")

    def __post_init__(self):
        for f in fields(self):
            value = to_money(getattr(self, f.name))
            if value < 0:
                raise ValueError(f"{f.name} cannot be negative")
            object.__setattr__(self, f.name, value)

    @classmethod
    def from_settings(cls, settings) -> "ReconciliationRules":
        return cls(
            cash_discrepancy_threshold=settings.CASH_DISCREPANCY_THRESHOLD,
            large_discrepancy_threshold=settings.LARGE_DISCREPANCY_THRESHOLD,
            max_returns_percentage=settings.MAX_RETURNS_PERCENTAGE,
            min_opening_cash=settings.MIN_OPENING_CASH,
        )

    def with_overrides(self, overrides: Optional[Mapping[str, Any]]) -> "ReconciliationRules":
        """Copy with any subset of thresholds replaced; None values are ignored."""
        if not overrides:
            return self
        known = {f.name for f in fields(self)}
        unknown = set(overrides) - known
        if unknown:
            raise ValueError(f"Unknown reconciliation rule(s): {', '.join(sorted(unknown))}")
        changes = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, float]:
        return {f.name: float(getattr(self, f.name)) for f in fields(self)}


DEFAULT_RULES = ReconciliationRules()


# ==================== SALES ENTRY ====================

# Spreadsheet and browser-storage records use camelCase keys
_RECORD_ALIASES = {
    "registerNumber": "register_number",
    "openingCash": "opening_cash",
    "cashSales": "cash_sales",
    "cardSales": "card_sales",
    "returnsRefunds": "returns_refunds",
    "cashDrops": "cash_drops",
    "closingCash": "closing_cash",
    "totalSales": "total_sales",
    "expectedCash": "expected_cash",
    "cashDifference": "cash_difference",
}

RAW_AMOUNT_FIELDS = (
    "opening_cash",
    "cash_sales",
    "card_sales",
    "returns_refunds",
    "cash_drops",
    "closing_cash",
)


def normalize_record(record: Mapping[str, Any]) -> Dict[str, Any]:
    """Map camelCase record keys onto snake_case field names."""
    return {_RECORD_ALIASES.get(key, key): value for key, value in record.items()}


def _entry_status(cash_difference: Decimal, rules: ReconciliationRules) -> EntryStatus:
    if abs(cash_difference) <= rules.cash_discrepancy_threshold:
        return EntryStatus.BALANCED
    return EntryStatus.DISCREPANCY


@dataclass(frozen=True)
class SalesEntry:
    """
    One register's activity for one date.

    Derived fields (total_sales, expected_cash, cash_difference, status) are
    only ever computed together by create() / with_changes(), or loaded as
    stored by from_dict().
    """
    id: str
    date: Optional[date]
    register_number: str
    opening_cash: Decimal
    cash_sales: Decimal
    card_sales: Decimal
    returns_refunds: Decimal
    cash_drops: Decimal
    closing_cash: Decimal
    total_sales: Decimal
    expected_cash: Decimal
    cash_difference: Decimal
    status: EntryStatus
    recorded_at: Optional[str] = None

    @classmethod
    def create(
        cls,
        date: Any,
        register_number: str,
        opening_cash: Any = 0,
        cash_sales: Any = 0,
        card_sales: Any = 0,
        returns_refunds: Any = 0,
        cash_drops: Any = 0,
        closing_cash: Any = 0,
        id: Optional[str] = None,
        rules: ReconciliationRules = DEFAULT_RULES,
        recorded_at: Optional[str] = None,
    ) -> "SalesEntry":
        """Build an entry from raw form inputs, computing every derived field."""
        raw = {
            "opening_cash": to_money(opening_cash),
            "cash_sales": to_money(cash_sales),
            "card_sales": to_money(card_sales),
            "returns_refunds": to_money(returns_refunds),
            "cash_drops": to_money(cash_drops),
            "closing_cash": to_money(closing_cash),
        }
        derived = derive_entry_fields(**raw)
        return cls(
            id=id or str(uuid.uuid4()),
            date=parse_entry_date(date),
            register_number=register_number or "",
            status=_entry_status(derived["cash_difference"], rules),
            recorded_at=recorded_at,
            **raw,
            **derived,
        )

    @classmethod
    def from_record(
        cls,
        record: Mapping[str, Any],
        rules: ReconciliationRules = DEFAULT_RULES,
    ) -> "SalesEntry":
        """Build a new entry from a submitted form record (derived fields recomputed)."""
        data = normalize_record(record)
        return cls.create(
            date=data.get("date"),
            register_number=data.get("register_number") or "",
            id=data.get("id"),
            rules=rules,
            recorded_at=data.get("recorded_at") or data.get("timestamp"),
            **{name: data.get(name) for name in RAW_AMOUNT_FIELDS},
        )

    @classmethod
    def from_dict(
        cls,
        record: Mapping[str, Any],
        rules: ReconciliationRules = DEFAULT_RULES,
    ) -> "SalesEntry":
        """
        Load a stored entry.

        Stored derived fields are kept as given. Missing ones are derived
        from the raw amounts: total_sales as cash_sales + card_sales,
        expected_cash by the formula, cash_difference as closing cash minus
        expected cash, status by the threshold test.
        """
        data = normalize_record(record)
        raw = {name: to_money(data.get(name)) for name in RAW_AMOUNT_FIELDS}
        derived = derive_entry_fields(**raw)

        if data.get("total_sales") is None:
            total_sales = derived["total_sales"]
        else:
            total_sales = to_money(data["total_sales"])

        if data.get("expected_cash") is None:
            expected_cash = derived["expected_cash"]
        else:
            expected_cash = to_money(data["expected_cash"])

        if data.get("cash_difference") is None:
            cash_difference = raw["closing_cash"] - expected_cash
        else:
            cash_difference = to_money(data["cash_difference"])

        if data.get("status"):
            status = EntryStatus(data["status"])
        else:
            status = _entry_status(cash_difference, rules)

        return cls(
            id=str(data.get("id") or uuid.uuid4()),
            date=parse_entry_date(data.get("date")),
            register_number=data.get("register_number") or "",
            total_sales=total_sales,
            expected_cash=expected_cash,
            cash_difference=cash_difference,
            status=status,
            recorded_at=data.get("recorded_at") or data.get("timestamp"),
            **raw,
        )

    def with_changes(self, rules: ReconciliationRules = DEFAULT_RULES, **changes) -> "SalesEntry":
        """Edit-replace: same id, new raw inputs, all derived fields recomputed."""
        current = {name: getattr(self, name) for name in RAW_AMOUNT_FIELDS}
        current.update(date=self.date, register_number=self.register_number)
        derived_names = {"total_sales", "expected_cash", "cash_difference", "status", "id"}
        blocked = derived_names & set(changes)
        if blocked:
            raise ValueError(f"Cannot set derived field(s): {', '.join(sorted(blocked))}")
        current.update(changes)
        return SalesEntry.create(id=self.id, rules=rules, recorded_at=self.recorded_at, **current)

    @property
    def returns_percentage(self) -> Decimal:
        """Returns as a percentage of total sales; zero when there are no sales."""
        return percentage(self.returns_refunds, self.total_sales)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "date": self.date.isoformat() if self.date else None,
            "register_number": self.register_number,
            "opening_cash": float(self.opening_cash),
            "cash_sales": float(self.cash_sales),
            "card_sales": float(self.card_sales),
            "returns_refunds": float(self.returns_refunds),
            "cash_drops": float(self.cash_drops),
            "closing_cash": float(self.closing_cash),
            "total_sales": float(self.total_sales),
            "expected_cash": float(self.expected_cash),
            "cash_difference": float(self.cash_difference),
            "status": self.status.value,
            "recorded_at": self.recorded_at,
        }


# ==================== FINDINGS ====================

@dataclass
class Issue:
    """A single rule violation on one entry."""
    type: IssueType
    severity: Severity
    description: str
    amount: Optional[Decimal] = None
    percentage: Optional[Decimal] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "type": self.type.value,
            "severity": self.severity.value,
            "description": self.description,
        }
        if self.amount is not None:
            data["amount"] = float(self.amount)
        if self.percentage is not None:
            data["percentage"] = round(float(self.percentage), 2)
        return data


@dataclass
class Discrepancy:
    """An entry flagged with one or more issues."""
    entry_id: str
    date: Optional[date]
    register_number: str
    cash_difference: Decimal
    issues: List[Issue]
    overall_severity: Severity

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entry_id": self.entry_id,
            "date": self.date.isoformat() if self.date else None,
            "register_number": self.register_number,
            "cash_difference": float(self.cash_difference),
            "issues": [issue.to_dict() for issue in self.issues],
            "overall_severity": self.overall_severity.value,
        }


@dataclass
class ValidationError:
    """A finding spanning the whole collection of entries."""
    type: ValidationErrorType
    severity: Severity
    description: str
    affected_entries: List[str] = field(default_factory=list)
    days_missing: Optional[int] = None
    from_date: Optional[date] = None
    to_date: Optional[date] = None
    entry_id: Optional[str] = None
    entry_date: Optional[date] = None
    direction: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "type": self.type.value,
            "severity": self.severity.value,
            "description": self.description,
        }
        if self.type == ValidationErrorType.DUPLICATE_ENTRY:
            data["affected_entries"] = list(self.affected_entries)
        elif self.type == ValidationErrorType.MISSING_DATES:
            data["days_missing"] = self.days_missing
            data["from_date"] = self.from_date.isoformat() if self.from_date else None
            data["to_date"] = self.to_date.isoformat() if self.to_date else None
        elif self.type == ValidationErrorType.ABNORMAL_SALES:
            data["entry_id"] = self.entry_id
            data["date"] = self.entry_date.isoformat() if self.entry_date else None
            data["direction"] = self.direction
        return data


# ==================== RUN OUTPUT ====================

@dataclass
class ReconciliationTotals:
    """Aggregate totals across a collection of entries."""
    total_entries: int = 0
    total_sales: Decimal = ZERO
    cash_sales: Decimal = ZERO
    card_sales: Decimal = ZERO
    total_returns: Decimal = ZERO
    total_cash_drops: Decimal = ZERO
    opening_cash: Decimal = ZERO
    closing_cash: Decimal = ZERO
    expected_cash: Decimal = ZERO
    actual_cash_position: Decimal = ZERO
    total_cash_difference: Decimal = ZERO
    overall_cash_difference: Decimal = ZERO
    derived_fields_consistent: bool = True

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            data[f.name] = float(value) if isinstance(value, Decimal) else value
        return data


@dataclass
class ReconciliationSummary:
    """Aggregate counts and ratios for a run."""
    total_discrepancies: int = 0
    high_severity_discrepancies: int = 0
    total_cash_variance: Decimal = ZERO
    reconciliation_accuracy: float = 100.0
    average_discrepancy: Decimal = ZERO
    cash_recovery_needed: Decimal = ZERO

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_discrepancies": self.total_discrepancies,
            "high_severity_discrepancies": self.high_severity_discrepancies,
            "total_cash_variance": float(self.total_cash_variance),
            "reconciliation_accuracy": self.reconciliation_accuracy,
            "average_discrepancy": float(self.average_discrepancy),
            "cash_recovery_needed": float(self.cash_recovery_needed),
        }


@dataclass
class OverallStatus:
    """Classified outcome of a run."""
    status: ReconciliationStatus
    confidence: int
    total_difference: Decimal
    recommendations: List[str]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "confidence": self.confidence,
            "total_difference": float(self.total_difference),
            "recommendations": list(self.recommendations),
        }


@dataclass
class ReconciliationResult:
    """Full output of one reconciliation run."""
    run_id: str
    timestamp: datetime
    totals: ReconciliationTotals
    discrepancies: List[Discrepancy]
    validation_errors: List[ValidationError]
    summary: ReconciliationSummary
    overall: OverallStatus

    def history_record(self) -> Dict[str, Any]:
        """Compact projection kept in the rolling history."""
        return {
            "timestamp": self.timestamp.isoformat(),
            "summary": self.summary.to_dict(),
            "overall": self.overall.to_dict(),
            "total_entries": self.totals.total_entries,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "timestamp": self.timestamp.isoformat(),
            "totals": self.totals.to_dict(),
            "discrepancies": [d.to_dict() for d in self.discrepancies],
            "validation_errors": [e.to_dict() for e in self.validation_errors],
            "summary": self.summary.to_dict(),
            "overall": self.overall.to_dict(),
        }


@dataclass
class EntryValidation:
    """Pre-save validation outcome for a single entry."""
    has_errors: bool = False
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def add_error(self, message: str):
        self.has_errors = True
        self.errors.append(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "has_errors": self.has_errors,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
        }
