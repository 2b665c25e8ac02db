"""
Reconciliation API Endpoints

REST API for the sales & cash reconciliation engine:
- GET /api/reconciliation/status - Module status
- GET /api/reconciliation/rules - Configured default rules
- POST /api/reconciliation/entries/validate - Pre-save validation of one entry
- POST /api/reconciliation/run - Run reconciliation over a batch of entries
- POST /api/reconciliation/report - Summary or detailed report with action items
- GET /api/reconciliation/trends - Trend series from run history
- POST /api/reconciliation/dashboard - Today's metrics, weekly trends and alerts
- POST /api/reconciliation/period-report - Entries and totals for a date range
- POST /api/reconciliation/export/csv - Entries as CSV
"""

import logging
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import Response
from pydantic import BaseModel, Field

from config import Settings, get_settings
from reconciliation.models import DEFAULT_RULES, ReconciliationRules, SalesEntry
from reconciliation.services.dashboard import (
    build_dashboard_report,
    build_period_report,
    entries_to_csv,
)
from reconciliation.services.history import JsonFileHistoryStore, ReconciliationHistory
from reconciliation.services.reconciliation_service import ReconciliationService
from utils.validation_errors import raise_invalid_parameter, raise_validation_error

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/reconciliation", tags=["Reconciliation"])


# ==================== Request/Response Models ====================

class SalesEntryPayload(BaseModel):
    """One register's activity for one date."""
    id: Optional[str] = Field(default=None, description="Entry ID (generated when omitted)")
    date: Optional[str] = Field(default=None, description="Trading date (YYYY-MM-DD)")
    register_number: Optional[str] = Field(default=None, description="Register identifier, e.g. REG001")
    opening_cash: Optional[float] = Field(default=None, description="Float at start of day")
    cash_sales: Optional[float] = Field(default=None, description="Cash takings")
    card_sales: Optional[float] = Field(default=None, description="Card takings")
    returns_refunds: Optional[float] = Field(default=None, description="Refunds paid out in cash")
    cash_drops: Optional[float] = Field(default=None, description="Cash removed to safe during the day")
    closing_cash: Optional[float] = Field(default=None, description="Counted cash at end of day")
    total_sales: Optional[float] = Field(default=None, description="Stored derived total (recomputed when omitted)")
    expected_cash: Optional[float] = Field(default=None, description="Stored derived expected cash")
    cash_difference: Optional[float] = Field(default=None, description="Stored derived cash difference")
    status: Optional[str] = Field(default=None, description="Stored entry status: balanced or discrepancy")
    recorded_at: Optional[str] = Field(default=None, description="When the entry was recorded")

    class Config:
        json_schema_extra = {
            "example": {
                "date": "2024-01-01",
                "register_number": "REG001",
                "opening_cash": 200.00,
                "cash_sales": 500.00,
                "card_sales": 300.00,
                "returns_refunds": 20.00,
                "cash_drops": 0.00,
                "closing_cash": 680.00,
            }
        }


class RunReconciliationRequest(BaseModel):
    """Request to run reconciliation."""
    entries: List[SalesEntryPayload] = Field(default_factory=list, description="Entries in chronological order")
    rules: Optional[Dict[str, Any]] = Field(default=None, description="Threshold overrides for this run")
    record_history: bool = Field(default=True, description="Append the run summary to history")


class ReportRequest(RunReconciliationRequest):
    """Request to generate a reconciliation report."""
    format: str = Field(default="summary", pattern="^(summary|detailed)$", description="summary or detailed")


class DashboardRequest(BaseModel):
    """Request for dashboard metrics."""
    entries: List[SalesEntryPayload] = Field(default_factory=list)
    day: Optional[date] = Field(default=None, description="Day to report on (today when omitted)")
    rules: Optional[Dict[str, Any]] = Field(default=None, description="Threshold overrides")


class PeriodReportRequest(BaseModel):
    """Request for a date-range report."""
    entries: List[SalesEntryPayload] = Field(default_factory=list)
    date_from: Optional[date] = Field(default=None, description="First day in range (today when omitted)")
    date_to: Optional[date] = Field(default=None, description="Last day in range (today when omitted)")
    report_type: str = Field(default="daily", description="Label echoed in the report")
    rules: Optional[Dict[str, Any]] = Field(default=None, description="Threshold overrides")


class ExportRequest(BaseModel):
    """Request to export entries as CSV."""
    entries: List[SalesEntryPayload] = Field(default_factory=list)


class EntryValidationResponse(BaseModel):
    """Response for single-entry validation."""
    success: bool
    errors: List[str]
    warnings: List[str]
    entry: Optional[dict]


# ==================== Dependencies ====================

def get_history(settings: Settings = Depends(get_settings)) -> ReconciliationHistory:
    """Run history backed by the configured JSON file."""
    return ReconciliationHistory(
        JsonFileHistoryStore(settings.HISTORY_FILE),
        retention_days=settings.HISTORY_RETENTION_DAYS,
    )


def get_reconciliation_service(
    history: ReconciliationHistory = Depends(get_history),
    settings: Settings = Depends(get_settings),
) -> ReconciliationService:
    """Service configured with rules and registers from settings."""
    return ReconciliationService(
        history=history,
        rules=ReconciliationRules.from_settings(settings),
        register_numbers=settings.register_numbers_list,
    )


# ==================== Helpers ====================

def resolve_rules(service: ReconciliationService, overrides: Optional[Dict[str, Any]]) -> ReconciliationRules:
    """Apply per-request overrides to the service defaults; 400 on bad keys or values."""
    try:
        return service.rules.with_overrides(overrides)
    except (TypeError, ValueError) as e:
        logger.warning(f"Rejected rule overrides {overrides}: {e}")
        raise_invalid_parameter("rules", str(e), overrides, status_code=status.HTTP_400_BAD_REQUEST)


def load_entries(payloads: List[SalesEntryPayload], rules: ReconciliationRules) -> List[SalesEntry]:
    """Payloads to entries; stored derived fields are kept, missing ones derived."""
    entries = []
    for index, payload in enumerate(payloads):
        try:
            entries.append(SalesEntry.from_dict(payload.model_dump(exclude_none=True), rules))
        except ValueError as e:
            logger.warning(f"Rejected entry {index} in request: {e}")
            raise_invalid_parameter(f"entries[{index}]", str(e), payload.id)
    return entries


# ==================== Endpoints ====================

@router.get("/status", summary="Module status")
async def get_module_status(settings: Settings = Depends(get_settings)):
    """
    Get reconciliation module status.

    Returns configuration and availability information.
    """
    return {
        "module": "reconciliation",
        "status": "operational",
        "version": settings.API_VERSION,
        "features": {
            "discrepancy_detection": True,
            "business_rule_validation": True,
            "history_trends": True,
            "dashboard": True,
            "csv_export": True,
        },
        "registers": settings.register_numbers_list,
        "timestamp": datetime.now(timezone.utc).isoformat()
    }


@router.get("/rules", summary="Configured default rules")
async def get_rules(service: ReconciliationService = Depends(get_reconciliation_service)):
    """Thresholds applied when a request carries no overrides."""
    return {
        "rules": service.rules.to_dict(),
        "register_numbers": service.register_numbers,
    }


@router.post("/entries/validate", response_model=EntryValidationResponse, summary="Validate entry")
async def validate_entry(
    entry: SalesEntryPayload,
    service: ReconciliationService = Depends(get_reconciliation_service),
):
    """
    Validate a single entry before it is saved.

    Errors block the save; warnings are advisory. On success the entry is
    returned with its derived fields computed.
    """
    result = service.add_sales_entry(entry.model_dump(exclude_none=True))
    built = result["entry"]
    return EntryValidationResponse(
        success=result["success"],
        errors=result["errors"],
        warnings=result["warnings"],
        entry=built.to_dict() if built else None,
    )


@router.post("/run", summary="Run reconciliation")
async def run_reconciliation(
    request: RunReconciliationRequest,
    service: ReconciliationService = Depends(get_reconciliation_service),
):
    """
    Run reconciliation over a batch of entries.

    This will:
    1. Calculate totals across all entries
    2. Flag entries that break per-entry rules, most severe first
    3. Detect duplicates, date gaps and abnormal sales
    4. Classify the run and build recommendations
    5. Append the run summary to history (unless record_history is false)
    """
    rules = resolve_rules(service, request.rules)
    entries = load_entries(request.entries, rules)

    result = service.run_reconciliation(entries, rules, record_history=request.record_history)
    return result.to_dict()


@router.post("/report", summary="Generate reconciliation report")
async def generate_report(
    request: ReportRequest,
    service: ReconciliationService = Depends(get_reconciliation_service),
):
    """
    Run reconciliation and return a report.

    Detailed reports include every finding and the totals.
    """
    rules = resolve_rules(service, request.rules)
    entries = load_entries(request.entries, rules)

    return service.generate_report(
        entries,
        rules,
        detailed=request.format == "detailed",
        record_history=request.record_history,
    )


@router.get("/trends", summary="Reconciliation trends")
async def get_trends(
    days: int = Query(default=30, ge=1, le=365, description="Window in days"),
    service: ReconciliationService = Depends(get_reconciliation_service),
):
    """Accuracy, discrepancy and cash variance series from run history."""
    return service.get_trends(days)


@router.post("/dashboard", summary="Dashboard metrics")
async def get_dashboard(
    request: DashboardRequest,
    service: ReconciliationService = Depends(get_reconciliation_service),
):
    """Metrics for one day with seven-day trends and alerts."""
    rules = resolve_rules(service, request.rules)
    entries = load_entries(request.entries, rules)
    return build_dashboard_report(entries, today=request.day, rules=rules)


@router.post("/period-report", summary="Period report")
async def get_period_report(
    request: PeriodReportRequest,
    service: ReconciliationService = Depends(get_reconciliation_service),
):
    """Entries within a date range with a sales summary."""
    rules = resolve_rules(service, request.rules)
    entries = load_entries(request.entries, rules)

    try:
        return build_period_report(
            entries,
            date_from=request.date_from,
            date_to=request.date_to,
            rules=rules,
            report_type=request.report_type,
        )
    except ValueError as e:
        raise_validation_error(str(e), {"date_from": str(request.date_from), "date_to": str(request.date_to)})


@router.post("/export/csv", summary="Export entries as CSV")
async def export_csv(request: ExportRequest):
    """CSV download of the given entries, one row per entry."""
    entries = load_entries(request.entries, DEFAULT_RULES)
    filename = f"sales-reconciliation-{datetime.now(timezone.utc).date().isoformat()}.csv"

    return Response(
        content=entries_to_csv(entries),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
