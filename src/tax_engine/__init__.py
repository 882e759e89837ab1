"""Capital Gains Tax Engine.

Tax computation for paper-trading portfolios including:
- Tax lot ledger with FIFO, LIFO and specific-lot matching
- Holding period classification (short-term vs long-term)
- Wash sale detection with replacement-lot basis adjustments
- Gain/loss netting with the annual loss limit and carryforward
- Bracket-driven tax reports and expected tax on open lots

Example:
    from src.tax_engine import TaxEngine, TradeEvent, FilingStatus

    engine = TaxEngine()
    result = engine.compute(
        events=[
            TradeEvent("AAPL", "buy", 100, 50, date(2024, 1, 1)),
            TradeEvent("AAPL", "sell", 100, 40, date(2024, 2, 1)),
            TradeEvent("AAPL", "buy", 100, 42, date(2024, 2, 15)),
        ],
        income=85_000,
        filing_status=FilingStatus.SINGLE,
        as_of=date(2024, 12, 31),
    )
    result.report.wash_sale_violations[0].adjusted_basis  # Decimal("52")
"""

from src.tax_engine.config import (
    FilingStatus,
    HoldingPeriod,
    TradeAction,
    LotSelectionMethod,
    BracketKind,
    LONG_TERM_THRESHOLD_DAYS,
    WASH_SALE_WINDOW_DAYS,
    ANNUAL_LOSS_LIMIT,
    ORDINARY_BRACKETS,
    LTCG_BRACKETS,
    LedgerConfig,
    WashSaleConfig,
    NettingConfig,
    TaxConfig,
    DEFAULT_TAX_CONFIG,
)

from src.tax_engine.exceptions import (
    ErrorCode,
    TaxEngineError,
    LedgerError,
    InsufficientSharesError,
    InvalidEventError,
    OutOfOrderEventError,
    UnknownLotError,
    BracketLookupError,
)

from src.tax_engine.models import (
    Position,
    TradeEvent,
    Lot,
    WashSaleViolation,
    BasisAdjustment,
    NettedTotals,
    TaxBracket,
    LineItem,
    TaxCalculation,
    UnrealizedPosition,
)

from src.tax_engine.holding import (
    classify,
    classify_lot,
    days_held,
    days_to_long_term,
)

from src.tax_engine.brackets import (
    bracket_for,
    bracket_table,
    ordinary_rate,
    long_term_rate,
)

from src.tax_engine.ledger import TaxLotLedger

from src.tax_engine.wash_sales import (
    WashSaleDetector,
    WashSaleAnalysis,
)

from src.tax_engine.netting import GainLossNetter

from src.tax_engine.reports import TaxReportBuilder

from src.tax_engine.engine import (
    TaxEngine,
    TaxComputation,
)

__all__ = [
    # Config - Enums
    "FilingStatus",
    "HoldingPeriod",
    "TradeAction",
    "LotSelectionMethod",
    "BracketKind",
    # Config - Constants
    "LONG_TERM_THRESHOLD_DAYS",
    "WASH_SALE_WINDOW_DAYS",
    "ANNUAL_LOSS_LIMIT",
    "ORDINARY_BRACKETS",
    "LTCG_BRACKETS",
    # Config - Dataclasses
    "LedgerConfig",
    "WashSaleConfig",
    "NettingConfig",
    "TaxConfig",
    "DEFAULT_TAX_CONFIG",
    # Errors
    "ErrorCode",
    "TaxEngineError",
    "LedgerError",
    "InsufficientSharesError",
    "InvalidEventError",
    "OutOfOrderEventError",
    "UnknownLotError",
    "BracketLookupError",
    # Models
    "Position",
    "TradeEvent",
    "Lot",
    "WashSaleViolation",
    "BasisAdjustment",
    "NettedTotals",
    "TaxBracket",
    "LineItem",
    "TaxCalculation",
    "UnrealizedPosition",
    # Holding Period
    "classify",
    "classify_lot",
    "days_held",
    "days_to_long_term",
    # Brackets
    "bracket_for",
    "bracket_table",
    "ordinary_rate",
    "long_term_rate",
    # Components
    "TaxLotLedger",
    "WashSaleDetector",
    "WashSaleAnalysis",
    "GainLossNetter",
    "TaxReportBuilder",
    "TaxEngine",
    "TaxComputation",
]
