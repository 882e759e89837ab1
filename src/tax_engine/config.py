"""Tax Engine Configuration.

Filing statuses, bracket tables, lot selection policies, and configuration
dataclasses.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Optional


# =============================================================================
# Enums
# =============================================================================

class FilingStatus(str, Enum):
    """IRS filing status."""
    SINGLE = "single"
    MARRIED = "married"
    HEAD_OF_HOUSEHOLD = "head_of_household"


class HoldingPeriod(str, Enum):
    """Tax holding period classification."""
    SHORT_TERM = "short_term"  # <= 365 days
    LONG_TERM = "long_term"    # > 365 days


class TradeAction(str, Enum):
    """Trade event direction."""
    BUY = "buy"
    SELL = "sell"


class LotSelectionMethod(str, Enum):
    """Lot matching policy for sales."""
    FIFO = "fifo"                # First In, First Out
    LIFO = "lifo"                # Last In, First Out
    SPECIFIC_ID = "specific_id"  # Lots named on the sell event


class BracketKind(str, Enum):
    """Which rate schedule a bracket lookup targets."""
    ORDINARY = "ordinary"
    LONG_TERM = "long_term"


# =============================================================================
# Statutory Constants
# =============================================================================

LONG_TERM_THRESHOLD_DAYS = 365
WASH_SALE_WINDOW_DAYS = 30
ANNUAL_LOSS_LIMIT = Decimal("3000")


# =============================================================================
# Rate Tables
# =============================================================================

# Each entry is (inclusive upper bound, marginal rate). The last bracket is
# open-ended and carries None as its bound.

# Ordinary income brackets (short-term gains are taxed at these rates)
ORDINARY_BRACKETS: dict[FilingStatus, list[tuple[Optional[Decimal], Decimal]]] = {
    FilingStatus.SINGLE: [
        (Decimal("11000"), Decimal("0.10")),
        (Decimal("44725"), Decimal("0.12")),
        (Decimal("95375"), Decimal("0.22")),
        (Decimal("182050"), Decimal("0.24")),
        (Decimal("231250"), Decimal("0.32")),
        (Decimal("578125"), Decimal("0.35")),
        (None, Decimal("0.37")),
    ],
    FilingStatus.MARRIED: [
        (Decimal("22000"), Decimal("0.10")),
        (Decimal("89450"), Decimal("0.12")),
        (Decimal("190750"), Decimal("0.22")),
        (Decimal("364200"), Decimal("0.24")),
        (Decimal("462500"), Decimal("0.32")),
        (Decimal("693750"), Decimal("0.35")),
        (None, Decimal("0.37")),
    ],
    FilingStatus.HEAD_OF_HOUSEHOLD: [
        (Decimal("15700"), Decimal("0.10")),
        (Decimal("59850"), Decimal("0.12")),
        (Decimal("95350"), Decimal("0.22")),
        (Decimal("182050"), Decimal("0.24")),
        (Decimal("231250"), Decimal("0.32")),
        (Decimal("578100"), Decimal("0.35")),
        (None, Decimal("0.37")),
    ],
}

# Long-term capital gains brackets
LTCG_BRACKETS: dict[FilingStatus, list[tuple[Optional[Decimal], Decimal]]] = {
    FilingStatus.SINGLE: [
        (Decimal("47025"), Decimal("0.00")),
        (Decimal("518900"), Decimal("0.15")),
        (None, Decimal("0.20")),
    ],
    FilingStatus.MARRIED: [
        (Decimal("94050"), Decimal("0.00")),
        (Decimal("583750"), Decimal("0.15")),
        (None, Decimal("0.20")),
    ],
    FilingStatus.HEAD_OF_HOUSEHOLD: [
        (Decimal("63000"), Decimal("0.00")),
        (Decimal("551350"), Decimal("0.15")),
        (None, Decimal("0.20")),
    ],
}

BRACKET_TABLES: dict[BracketKind, dict[FilingStatus, list[tuple[Optional[Decimal], Decimal]]]] = {
    BracketKind.ORDINARY: ORDINARY_BRACKETS,
    BracketKind.LONG_TERM: LTCG_BRACKETS,
}


# =============================================================================
# Configuration Dataclasses
# =============================================================================

@dataclass
class LedgerConfig:
    """Tax lot ledger configuration."""
    lot_selection: LotSelectionMethod = LotSelectionMethod.FIFO


@dataclass
class WashSaleConfig:
    """Wash sale detection configuration."""
    lookback_days: int = WASH_SALE_WINDOW_DAYS
    lookforward_days: int = WASH_SALE_WINDOW_DAYS


@dataclass
class NettingConfig:
    """Gain/loss netting configuration."""
    annual_loss_limit: Decimal = ANNUAL_LOSS_LIMIT


@dataclass
class TaxConfig:
    """Main tax engine configuration."""
    ledger: LedgerConfig = field(default_factory=LedgerConfig)
    wash_sale: WashSaleConfig = field(default_factory=WashSaleConfig)
    netting: NettingConfig = field(default_factory=NettingConfig)
    tax_year: int = 2024


# Default configuration
DEFAULT_TAX_CONFIG = TaxConfig()
