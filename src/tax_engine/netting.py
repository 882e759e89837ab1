"""Gain/Loss Netting.

Aggregates realized gains and losses by holding period, removes
wash-sale-disallowed losses, and exposes the statutory netting order
through NettedTotals.
"""

from decimal import Decimal
from typing import Iterable, Optional
import logging

from src.tax_engine.config import TaxConfig, DEFAULT_TAX_CONFIG
from src.tax_engine.models import Lot, NettedTotals, WashSaleViolation

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


class GainLossNetter:
    """Nets realized gains and losses.

    Order of operations:
    1. Partition closed lots into short-term and long-term gain/loss buckets
    2. Remove each wash sale's disallowed loss from its term's loss bucket
    3. Net within each category, then let a net loss in one category
       offset a net gain in the other
    4. Cap the deductible net loss and report the carryforward
    """

    def __init__(self, config: Optional[TaxConfig] = None):
        self.config = config or DEFAULT_TAX_CONFIG

    def net(
        self,
        closed_lots: Iterable[Lot],
        violations: Iterable[WashSaleViolation] = (),
    ) -> NettedTotals:
        """Net closed-lot gains and losses after wash sale adjustment.

        Args:
            closed_lots: Closed lots from the ledger (open lots are skipped).
            violations: Wash sale violations from the detector.

        Returns:
            NettedTotals with adjusted buckets and any clamp warnings.
        """
        totals = NettedTotals(annual_loss_limit=self.config.netting.annual_loss_limit)

        for lot in closed_lots:
            if lot.is_open:
                continue
            gain = lot.realized_gain_loss
            if lot.is_long_term:
                if gain > 0:
                    totals.long_term_gains += gain
                else:
                    totals.long_term_losses += -gain
            else:
                if gain > 0:
                    totals.short_term_gains += gain
                else:
                    totals.short_term_losses += -gain

        for violation in violations:
            if violation.is_long_term:
                totals.long_term_losses = self._reduce_bucket(
                    totals.long_term_losses, violation, "long-term", totals.warnings
                )
            else:
                totals.short_term_losses = self._reduce_bucket(
                    totals.short_term_losses, violation, "short-term", totals.warnings
                )

        logger.debug(
            f"Netted: ST {totals.net_short_term}, LT {totals.net_long_term}, "
            f"carryforward {totals.loss_carryforward}"
        )
        return totals

    def _reduce_bucket(
        self,
        bucket: Decimal,
        violation: WashSaleViolation,
        label: str,
        warnings: list[str],
    ) -> Decimal:
        """Subtract a disallowed loss from a bucket, clamping at zero."""
        remaining = bucket - violation.loss_amount
        if remaining >= 0:
            return remaining

        message = (
            f"Wash sale on {violation.symbol} {violation.violation_date.isoformat()} "
            f"disallows ${violation.loss_amount} but only ${bucket} of {label} "
            f"losses remain; ${-remaining} not applied"
        )
        logger.warning(
            message,
            extra={"symbol": violation.symbol, "amount": -remaining},
        )
        warnings.append(message)
        return ZERO
