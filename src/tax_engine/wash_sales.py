"""Wash Sale Detection.

Implements IRS wash sale rules over a completed ledger: a loss is
disallowed when shares of the same security are bought within 30 days
before or after the loss sale, and the disallowed loss is added to the
basis of the replacement shares.

Detection runs after the whole event stream is replayed because the
disqualifying purchase may come after the sale.
"""

from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from typing import Optional
import logging

from src.tax_engine.config import TaxConfig, DEFAULT_TAX_CONFIG
from src.tax_engine.ledger import TaxLotLedger
from src.tax_engine.models import BasisAdjustment, Lot, WashSaleViolation

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


@dataclass
class WashSaleAnalysis:
    """Violations and the basis adjustments they imply.

    Adjustments are derived records; the ledger itself is never rewritten.
    """
    violations: list[WashSaleViolation] = field(default_factory=list)
    adjustments: list[BasisAdjustment] = field(default_factory=list)

    @property
    def total_disallowed(self) -> Decimal:
        return sum((v.loss_amount for v in self.violations), ZERO)

    def disallowed_for(self, lot_id: str) -> Decimal:
        """Loss disallowed on the sale of a lot."""
        return sum(
            (v.loss_amount for v in self.violations if v.loss_lot_id == lot_id), ZERO
        )

    def basis_adjustment_for(self, lot_id: str) -> Decimal:
        """Disallowed loss carried onto a replacement lot."""
        return sum((a.amount for a in self.adjustments if a.lot_id == lot_id), ZERO)

    def violations_for(self, symbol: str) -> list[WashSaleViolation]:
        return [v for v in self.violations if v.symbol == symbol]


class WashSaleDetector:
    """Detects wash sales per IRS rules.

    A wash sale occurs when you sell a security at a loss and buy the same
    security within 30 days before or after the sale.

    Consequences:
    - The loss is disallowed for tax purposes
    - The disallowed loss is added to the basis of the replacement shares,
      earliest-acquired replacement first
    """

    def __init__(self, config: Optional[TaxConfig] = None):
        self.config = config or DEFAULT_TAX_CONFIG
        self._wash_sale_config = self.config.wash_sale

    def window(self, sale_date: date) -> tuple[date, date]:
        """Inclusive replacement window around a sale."""
        return (
            sale_date - timedelta(days=self._wash_sale_config.lookback_days),
            sale_date + timedelta(days=self._wash_sale_config.lookforward_days),
        )

    def detect(self, ledger: TaxLotLedger) -> WashSaleAnalysis:
        """Scan every closed loss lot for replacement purchases.

        Args:
            ledger: Fully replayed ledger.

        Returns:
            WashSaleAnalysis with one violation per disallowed loss sale.
        """
        analysis = WashSaleAnalysis()
        lots = ledger.all_lots()
        order = {lot.lot_id: i for i, lot in enumerate(lots)}
        carried: dict[str, Decimal] = {}  # replacement lot_id -> adjustment so far

        loss_lots = sorted(
            (lot for lot in lots if lot.is_loss),
            key=lambda lot: (lot.closed_on, order[lot.lot_id]),
        )

        for loss_lot in loss_lots:
            replacements = self._find_replacements(loss_lot, lots, order)
            if not replacements:
                continue

            loss_amount = abs(loss_lot.realized_gain_loss)
            allocations = self._allocate(loss_lot, loss_amount, replacements)

            for replacement, amount in allocations:
                carried[replacement.lot_id] = carried.get(replacement.lot_id, ZERO) + amount
                analysis.adjustments.append(BasisAdjustment(
                    lot_id=replacement.lot_id,
                    symbol=replacement.symbol,
                    amount=amount,
                    adjusted_basis=(
                        replacement.unit_cost
                        + carried[replacement.lot_id] / replacement.shares
                    ),
                    loss_lot_id=loss_lot.lot_id,
                ))

            first = allocations[0][0]
            violation = WashSaleViolation(
                symbol=loss_lot.symbol,
                loss_amount=loss_amount,
                violation_date=loss_lot.closed_on,
                repurchase_date=first.acquired_on,
                adjusted_basis=first.unit_cost + carried[first.lot_id] / first.shares,
                loss_lot_id=loss_lot.lot_id,
                replacement_lot_id=first.lot_id,
                is_long_term=loss_lot.is_long_term,
            )
            analysis.violations.append(violation)

            logger.info(
                f"Wash sale on {loss_lot.symbol} {loss_lot.closed_on}: "
                f"${loss_amount} disallowed, basis added to lot {first.lot_id}",
                extra={
                    "symbol": loss_lot.symbol,
                    "loss_lot_id": loss_lot.lot_id,
                    "replacement_lot_id": first.lot_id,
                    "amount": loss_amount,
                },
            )

        if analysis.violations:
            logger.info(
                f"Detected {len(analysis.violations)} wash sales, "
                f"${analysis.total_disallowed} disallowed"
            )
        return analysis

    def _find_replacements(
        self,
        loss_lot: Lot,
        lots: list[Lot],
        order: dict[str, int],
    ) -> list[Lot]:
        """Lots of the same symbol acquired inside the window, open or closed.

        Only the sold lot itself is excluded. Unsold shares split off the
        same purchase count when that purchase falls inside the window.
        """
        window_start, window_end = self.window(loss_lot.closed_on)
        replacements = [
            lot for lot in lots
            if lot.symbol == loss_lot.symbol
            and lot.lot_id != loss_lot.lot_id
            and window_start <= lot.acquired_on <= window_end
        ]
        return sorted(replacements, key=lambda lot: (lot.acquired_on, order[lot.lot_id]))

    def _allocate(
        self,
        loss_lot: Lot,
        loss_amount: Decimal,
        replacements: list[Lot],
    ) -> list[tuple[Lot, Decimal]]:
        """Spread a disallowed loss over replacements in acquisition order.

        Each replacement absorbs the loss attributable to as many sold shares
        as it holds. Whatever is left once every replacement is full goes to
        the last one, so the allocations always sum to loss_amount.
        """
        per_share = loss_amount / loss_lot.shares
        unmatched = loss_lot.shares
        allocations: list[tuple[Lot, Decimal]] = []
        allocated = ZERO

        for replacement in replacements:
            if unmatched <= 0:
                break
            take = min(replacement.shares, unmatched)
            amount = per_share * take
            allocations.append((replacement, amount))
            allocated += amount
            unmatched -= take

        last_lot, last_amount = allocations[-1]
        allocations[-1] = (last_lot, last_amount + (loss_amount - allocated))
        return allocations

    def adjusted_lots(
        self,
        ledger: TaxLotLedger,
        analysis: WashSaleAnalysis,
    ) -> list[Lot]:
        """Copies of every ledger lot carrying wash sale adjustments."""
        result = []
        for lot in ledger.all_lots():
            disallowed = analysis.disallowed_for(lot.lot_id)
            carried = analysis.basis_adjustment_for(lot.lot_id)
            if disallowed or carried:
                lot = lot.with_wash_sale(disallowed, carried)
            result.append(lot)
        return result

    def is_in_wash_window(
        self,
        ledger: TaxLotLedger,
        symbol: str,
        purchase_date: date,
    ) -> bool:
        """Whether buying a symbol on a date would trigger a wash sale.

        True when a loss sale of the symbol falls within the window around
        the purchase date.
        """
        window_start, window_end = self.window(purchase_date)
        return any(
            lot.is_loss and window_start <= lot.closed_on <= window_end
            for lot in ledger.closed_lots(symbol)
        )

    def safe_repurchase_date(
        self,
        ledger: TaxLotLedger,
        symbol: str,
        as_of: date,
    ) -> Optional[date]:
        """First date after as_of on which buying the symbol is wash-sale safe.

        None when no loss sale of the symbol is close enough to matter.
        """
        pending = [
            lot.closed_on + timedelta(days=self._wash_sale_config.lookforward_days + 1)
            for lot in ledger.closed_lots(symbol)
            if lot.is_loss
        ]
        pending = [d for d in pending if d > as_of]
        return max(pending) if pending else None
