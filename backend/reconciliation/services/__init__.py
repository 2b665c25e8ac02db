"""
Reconciliation Services
"""

from .reconciliation_service import ReconciliationService
from .history import (
    HistoryStore,
    InMemoryHistoryStore,
    JsonFileHistoryStore,
    ReconciliationHistory,
)

__all__ = [
    "ReconciliationService",
    "HistoryStore",
    "InMemoryHistoryStore",
    "JsonFileHistoryStore",
    "ReconciliationHistory",
]
