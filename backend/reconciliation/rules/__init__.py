"""
Reconciliation Rules Module
"""

from .discrepancy_rules import evaluate_entry, find_discrepancies, ENTRY_CHECKS
from .validation_rules import (
    validate_business_rules,
    find_duplicate_entries,
    find_missing_dates,
    find_abnormal_sales,
)

__all__ = [
    "evaluate_entry",
    "find_discrepancies",
    "ENTRY_CHECKS",
    "validate_business_rules",
    "find_duplicate_entries",
    "find_missing_dates",
    "find_abnormal_sales",
]
