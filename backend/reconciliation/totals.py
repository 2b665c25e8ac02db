"""
Totals calculator.

The aggregate expected-cash position is computed from summed raw inputs and
compared against the sum of per-entry cash differences. The two agree only
when every entry's derived fields are consistent with its raw inputs.
"""

import logging
from decimal import Decimal
from typing import Iterable

from reconciliation.models import ReconciliationTotals, SalesEntry

logger = logging.getLogger(__name__)

CONSISTENCY_TOLERANCE = Decimal("0.005")


def calculate_totals(entries: Iterable[SalesEntry]) -> ReconciliationTotals:
    """Aggregate totals across entries; all zeros for an empty collection."""
    totals = ReconciliationTotals()

    for entry in entries:
        totals.total_entries += 1
        totals.total_sales += entry.total_sales
        totals.cash_sales += entry.cash_sales
        totals.card_sales += entry.card_sales
        totals.total_returns += entry.returns_refunds
        totals.total_cash_drops += entry.cash_drops
        totals.opening_cash += entry.opening_cash
        totals.closing_cash += entry.closing_cash
        totals.total_cash_difference += entry.cash_difference

    totals.expected_cash = (
        totals.opening_cash
        + totals.cash_sales
        - totals.total_returns
        - totals.total_cash_drops
    )
    totals.actual_cash_position = totals.closing_cash
    totals.overall_cash_difference = totals.actual_cash_position - totals.expected_cash

    drift = abs(totals.overall_cash_difference - totals.total_cash_difference)
    totals.derived_fields_consistent = drift <= CONSISTENCY_TOLERANCE
    if not totals.derived_fields_consistent:
        logger.warning(
            f"Aggregate cash difference {totals.overall_cash_difference} does not match "
            f"summed entry differences {totals.total_cash_difference} (drift {drift})",
            extra={"total_entries": totals.total_entries},
        )

    return totals
