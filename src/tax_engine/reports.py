"""Tax Report Building.

Combines netted gains and losses with the bracket tables to produce the
tax report, and estimates the tax due on open lots if sold.
"""

from datetime import date
from decimal import Decimal
from typing import Any, Iterable, Optional
import logging

import pandas as pd

from src.tax_engine.brackets import long_term_rate, ordinary_rate
from src.tax_engine.config import (
    FilingStatus,
    HoldingPeriod,
    TaxConfig,
    DEFAULT_TAX_CONFIG,
)
from src.tax_engine.exceptions import BracketLookupError, InvalidEventError
from src.tax_engine.holding import days_held
from src.tax_engine.ledger import TaxLotLedger
from src.tax_engine.models import (
    LineItem,
    NettedTotals,
    TaxCalculation,
    UnrealizedPosition,
    WashSaleViolation,
    to_decimal,
)

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
HUNDRED = Decimal("100")


class TaxReportBuilder:
    """Builds tax reports from netted totals.

    Short-term gains are taxed at the ordinary income marginal rate and
    long-term gains at the capital gains marginal rate, both looked up from
    income and filing status. Losses never produce negative tax.
    """

    def __init__(self, config: Optional[TaxConfig] = None):
        self.config = config or DEFAULT_TAX_CONFIG

    def build(
        self,
        netted: NettedTotals,
        income: Any,
        filing_status: Any,
        violations: Iterable[WashSaleViolation] = (),
    ) -> TaxCalculation:
        """Build the tax report.

        Args:
            netted: Output of the netting engine.
            income: Annual ordinary income used for bracket lookup.
            filing_status: FilingStatus or its string value.
            violations: Wash sale violations to carry into the report.

        Returns:
            TaxCalculation with totals, rates and a line-item breakdown.

        Raises:
            BracketLookupError: Income or filing status outside the tables.
        """
        try:
            status = FilingStatus(filing_status)
        except ValueError:
            raise BracketLookupError(f"Unknown filing status: {filing_status!r}") from None

        st_rate = ordinary_rate(income, status)
        lt_rate = long_term_rate(income, status)

        taxable_st = netted.taxable_short_term
        taxable_lt = netted.taxable_long_term
        st_tax = taxable_st * st_rate
        lt_tax = taxable_lt * lt_rate
        total_tax = st_tax + lt_tax

        total_gains = taxable_st + taxable_lt
        if total_gains > 0:
            effective_rate = total_tax / total_gains * HUNDRED
        else:
            effective_rate = ZERO

        line_items = [
            LineItem(
                category=HoldingPeriod.SHORT_TERM,
                gains=netted.short_term_gains,
                losses=netted.short_term_losses,
                net=netted.net_short_term,
                taxable=taxable_st,
                rate=st_rate,
                tax=st_tax,
            ),
            LineItem(
                category=HoldingPeriod.LONG_TERM,
                gains=netted.long_term_gains,
                losses=netted.long_term_losses,
                net=netted.net_long_term,
                taxable=taxable_lt,
                rate=lt_rate,
                tax=lt_tax,
            ),
        ]

        report = TaxCalculation(
            short_term_gains=netted.short_term_gains,
            long_term_gains=netted.long_term_gains,
            short_term_losses=netted.short_term_losses,
            long_term_losses=netted.long_term_losses,
            total_tax=total_tax,
            effective_rate=effective_rate,
            wash_sale_violations=list(violations),
            loss_carryforward=netted.loss_carryforward,
            deductible_loss=netted.deductible_loss,
            net_short_term=netted.net_short_term,
            net_long_term=netted.net_long_term,
            short_term_rate=st_rate,
            long_term_rate=lt_rate,
            income=to_decimal(income, "income"),
            filing_status=status,
            line_items=line_items,
            warnings=list(netted.warnings),
        )

        logger.info(
            f"Tax report: ${total_tax} owed on ${total_gains} taxable gains "
            f"({status.value}), carryforward ${report.loss_carryforward}"
        )
        return report

    def estimate_unrealized(
        self,
        ledger: TaxLotLedger,
        prices: dict[str, Any],
        as_of: date,
        income: Any,
        filing_status: Any,
    ) -> list[UnrealizedPosition]:
        """Estimate the tax due on each open lot if sold at the given prices.

        Args:
            ledger: Replayed ledger.
            prices: Current price per symbol, supplied by the caller.
            as_of: Reference date for holding periods.
            income: Annual ordinary income.
            filing_status: FilingStatus or its string value.

        Returns:
            One UnrealizedPosition per open lot, in ledger order.
        """
        st_rate = ordinary_rate(income, filing_status)
        lt_rate = long_term_rate(income, filing_status)
        normalized = {symbol.upper(): price for symbol, price in prices.items()}

        positions = []
        for lot in ledger.open_lots():
            if lot.symbol not in normalized:
                raise InvalidEventError(
                    f"No current price supplied for {lot.symbol}", field="prices"
                )
            price = to_decimal(normalized[lot.symbol], "price")
            gain = (price - lot.unit_cost) * lot.shares
            period = lot.holding_period(as_of)
            rate = lt_rate if period == HoldingPeriod.LONG_TERM else st_rate

            positions.append(UnrealizedPosition(
                lot_id=lot.lot_id,
                symbol=lot.symbol,
                shares=lot.shares,
                unit_cost=lot.unit_cost,
                current_price=price,
                unrealized_gain_loss=gain,
                days_held=days_held(lot.acquired_on, as_of),
                holding_period=period,
                expected_tax=gain * rate if gain > 0 else ZERO,
            ))
        return positions

    def line_items_frame(self, report: TaxCalculation) -> pd.DataFrame:
        """Get the report breakdown as DataFrame."""
        return pd.DataFrame([item.to_dict() for item in report.line_items])
