"""
Sales & Cash Reconciliation Engine

Provides daily register reconciliation:
- Expected cash and cash difference per register-day entry
- Per-entry discrepancy detection with severity ranking
- Cross-entry validation (duplicates, date gaps, abnormal sales)
- Summary metrics, overall status and recommendations
- Rolling run history and trend series
- Dashboard metrics, reports and CSV export
"""

from reconciliation.models import (
    Severity,
    EntryStatus,
    ReconciliationStatus,
    IssueType,
    ValidationErrorType,
    ActionPriority,
    ReconciliationRules,
    DEFAULT_RULES,
    SalesEntry,
    Issue,
    Discrepancy,
    ValidationError,
    ReconciliationTotals,
    ReconciliationSummary,
    OverallStatus,
    ReconciliationResult,
    EntryValidation,
)
from reconciliation.totals import calculate_totals
from reconciliation.rules import find_discrepancies, validate_business_rules
from reconciliation.services.history import (
    HistoryStore,
    InMemoryHistoryStore,
    JsonFileHistoryStore,
    ReconciliationHistory,
)
from reconciliation.services.reconciliation_service import ReconciliationService

__all__ = [
    # Enums
    'Severity',
    'EntryStatus',
    'ReconciliationStatus',
    'IssueType',
    'ValidationErrorType',
    'ActionPriority',
    # Models
    'ReconciliationRules',
    'DEFAULT_RULES',
    'SalesEntry',
    'Issue',
    'Discrepancy',
    'ValidationError',
    'ReconciliationTotals',
    'ReconciliationSummary',
    'OverallStatus',
    'ReconciliationResult',
    'EntryValidation',
    # Engine
    'calculate_totals',
    'find_discrepancies',
    'validate_business_rules',
    # History
    'HistoryStore',
    'InMemoryHistoryStore',
    'JsonFileHistoryStore',
    'ReconciliationHistory',
    # Service
    'ReconciliationService',
]
