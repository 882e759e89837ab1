"""Tax Engine.

Runs the full computation: ledger replay, wash sale detection, netting,
and report building.
"""

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Iterable, Optional
import logging

import pandas as pd

from src.logging_config import PerformanceTimer, PortfolioContext, log_performance
from src.tax_engine.config import TaxConfig, DEFAULT_TAX_CONFIG
from src.tax_engine.exceptions import InvalidEventError
from src.tax_engine.ledger import TaxLotLedger
from src.tax_engine.models import Lot, NettedTotals, Position, TaxCalculation, TradeEvent
from src.tax_engine.netting import GainLossNetter
from src.tax_engine.reports import TaxReportBuilder
from src.tax_engine.wash_sales import WashSaleAnalysis, WashSaleDetector

logger = logging.getLogger(__name__)


@dataclass
class TaxComputation:
    """Everything one computation produces."""
    report: TaxCalculation
    ledger: TaxLotLedger
    analysis: WashSaleAnalysis
    netted: NettedTotals
    as_of: date
    lots: list[Lot] = field(default_factory=list)  # adjusted copies

    def lots_frame(self) -> pd.DataFrame:
        """Get the adjusted lot ledger as DataFrame."""
        return self.ledger.to_dataframe(self.lots, as_of=self.as_of)


class TaxEngine:
    """Computes capital gains tax from a trade history.

    The computation is pure: the same events, income, filing status and
    as-of date always give the same report. Nothing reads the system clock.

    Example:
        engine = TaxEngine()
        result = engine.compute(
            events=[
                TradeEvent("AAPL", "buy", 100, 50, date(2024, 1, 1)),
                TradeEvent("AAPL", "sell", 100, 40, date(2024, 2, 1)),
            ],
            income=85_000,
            filing_status=FilingStatus.SINGLE,
            as_of=date(2024, 12, 31),
        )
        result.report.total_tax
    """

    def __init__(self, config: Optional[TaxConfig] = None):
        self.config = config or DEFAULT_TAX_CONFIG
        self.detector = WashSaleDetector(self.config)
        self.netter = GainLossNetter(self.config)
        self.builder = TaxReportBuilder(self.config)

    @log_performance(threshold_ms=500)
    def compute(
        self,
        events: Iterable[Any],
        income: Any,
        filing_status: Any,
        as_of: date,
        positions: Iterable[Position] = (),
        portfolio_id: str = "",
    ) -> TaxComputation:
        """Run the full tax computation.

        Args:
            events: TradeEvents (or dicts accepted by TradeEvent.from_dict)
                in non-decreasing date order.
            income: Annual ordinary income.
            filing_status: FilingStatus or its string value.
            as_of: Reference date for open-lot holding periods. No event may
                be dated after it.
            positions: Existing holdings to seed the ledger with.
            portfolio_id: Bound to log lines emitted during the computation.

        Returns:
            TaxComputation with the report and the adjusted lot ledger.

        Raises:
            TaxEngineError: Any ledger or bracket failure; nothing is
                partially reported.
        """
        with PortfolioContext(portfolio_id=portfolio_id):
            trade_events = [self._coerce_event(e) for e in events]
            seeds = list(positions)
            self._check_as_of(trade_events, seeds, as_of)

            ledger = TaxLotLedger.from_events(trade_events, seeds, self.config)
            with PerformanceTimer("wash_sale_scan", threshold_ms=250):
                analysis = self.detector.detect(ledger)
            netted = self.netter.net(ledger.closed_lots(), analysis.violations)
            report = self.builder.build(netted, income, filing_status, analysis.violations)

            if report.warnings:
                logger.warning(
                    f"Tax report carries {len(report.warnings)} netting warnings"
                )

            return TaxComputation(
                report=report,
                ledger=ledger,
                analysis=analysis,
                netted=netted,
                as_of=as_of,
                lots=self.detector.adjusted_lots(ledger, analysis),
            )

    @staticmethod
    def _coerce_event(event: Any) -> TradeEvent:
        if isinstance(event, TradeEvent):
            return event
        if isinstance(event, dict):
            return TradeEvent.from_dict(event)
        raise InvalidEventError(
            f"Expected TradeEvent or dict, got {type(event).__name__}", field="event"
        )

    @staticmethod
    def _check_as_of(
        events: list[TradeEvent],
        positions: list[Position],
        as_of: date,
    ) -> None:
        if not isinstance(as_of, date):
            raise InvalidEventError("as_of must be a date", field="as_of")
        for event in events:
            if event.date > as_of:
                raise InvalidEventError(
                    f"{event.action.value} {event.symbol} on {event.date} is after "
                    f"as-of date {as_of}",
                    field="date",
                )
        for position in positions:
            if position.acquired_on > as_of:
                raise InvalidEventError(
                    f"Position in {position.symbol} acquired {position.acquired_on} "
                    f"is after as-of date {as_of}",
                    field="acquired_on",
                )
