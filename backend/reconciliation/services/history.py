"""
Reconciliation History

Rolling log of compact run summaries, used for trend queries.

Persistence is injected through a HistoryStore (load/save). The history is
pruned to the retention window after every append; growth is bounded by
time only, not by count.

Concurrency: record() is a load / append / prune / save sequence. Callers
sharing one store across threads or processes must serialise calls.
"""

import json
import logging
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Union

from reconciliation.models import ReconciliationResult

logger = logging.getLogger(__name__)

DEFAULT_RETENTION_DAYS = 90
DEFAULT_TREND_DAYS = 30

# Thread lock for file writes
_write_lock = threading.Lock()


class HistoryStore(Protocol):
    """Persistence for the rolling history list."""

    def load(self) -> List[Dict[str, Any]]:
        ...

    def save(self, records: List[Dict[str, Any]]) -> None:
        ...


class InMemoryHistoryStore:
    """History kept in process memory (tests, single-process use)."""

    def __init__(self, records: Optional[List[Dict[str, Any]]] = None):
        self._records: List[Dict[str, Any]] = list(records or [])

    def load(self) -> List[Dict[str, Any]]:
        return list(self._records)

    def save(self, records: List[Dict[str, Any]]) -> None:
        self._records = list(records)


class JsonFileHistoryStore:
    """File-based JSON storage for the history list."""

    def __init__(self, file_path: Union[str, Path]):
        self.file_path = Path(file_path)

    def load(self) -> List[Dict[str, Any]]:
        if not self.file_path.exists():
            return []
        try:
            with open(self.file_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Error loading {self.file_path}: {e}")
            return []
        if not isinstance(data, list):
            logger.error(f"Ignoring malformed history file {self.file_path}: expected a list")
            return []
        return data

    def save(self, records: List[Dict[str, Any]]) -> None:
        with _write_lock:
            self.file_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.file_path, "w", encoding="utf-8") as f:
                json.dump(records, f, indent=2, default=str)


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _as_utc_now(now: Optional[datetime]) -> datetime:
    """Reference time for pruning and windows; naive values are taken as UTC."""
    if now is None:
        return datetime.now(timezone.utc)
    return _parse_timestamp(now)


class ReconciliationHistory:
    """
    Append-only, time-pruned history of reconciliation runs.

    Usage:
        history = ReconciliationHistory(JsonFileHistoryStore("data/history.json"))
        history.record(result)
        trends = history.trends(30)
    """

    def __init__(self, store: HistoryStore, retention_days: int = DEFAULT_RETENTION_DAYS):
        self.store = store
        self.retention_days = retention_days

    def _within(self, records: List[Dict[str, Any]], days: int, now: datetime) -> List[Dict[str, Any]]:
        cutoff = now - timedelta(days=days)
        kept = []
        for record in records:
            ts = _parse_timestamp(record.get("timestamp"))
            if ts is None:
                logger.warning(f"Dropping history record with invalid timestamp: {record.get('timestamp')!r}")
                continue
            if ts >= cutoff:
                kept.append(record)
        return kept

    def record(self, result: ReconciliationResult, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        """
        Append the compact projection of a run, prune and persist.

        Returns:
            The pruned history list as saved
        """
        now = _as_utc_now(now)
        records = self.store.load()
        records.append(result.history_record())

        pruned = self._within(records, self.retention_days, now)
        dropped = len(records) - len(pruned)
        if dropped:
            logger.debug(f"Pruned {dropped} history record(s) older than {self.retention_days} days")

        self.store.save(pruned)
        return pruned

    def entries(self) -> List[Dict[str, Any]]:
        return self.store.load()

    def trends(self, window_days: int = DEFAULT_TREND_DAYS, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Date-keyed series over the last window_days.

        Only days with a recorded run appear; there is no interpolation.
        """
        now = _as_utc_now(now)
        recent = self._within(self.store.load(), window_days, now)

        trends: Dict[str, Any] = {
            "accuracy_trend": [],
            "discrepancy_trend": [],
            "cash_variance_trend": [],
            "period": window_days,
        }

        for record in recent:
            day = _parse_timestamp(record["timestamp"]).astimezone(timezone.utc).date().isoformat()
            summary = record.get("summary", {})
            trends["accuracy_trend"].append({
                "date": day,
                "value": summary.get("reconciliation_accuracy"),
            })
            trends["discrepancy_trend"].append({
                "date": day,
                "value": summary.get("total_discrepancies"),
            })
            trends["cash_variance_trend"].append({
                "date": day,
                "value": summary.get("total_cash_variance"),
            })

        return trends
