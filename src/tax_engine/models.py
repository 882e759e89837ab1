"""Tax Engine Data Models.

Dataclasses for positions, trade events, tax lots, wash sale violations,
netted totals, and tax reports.
"""

from dataclasses import dataclass, field, replace
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from src.tax_engine.config import (
    ANNUAL_LOSS_LIMIT,
    FilingStatus,
    HoldingPeriod,
    TradeAction,
)
from src.tax_engine.exceptions import InvalidEventError
from src.tax_engine.holding import classify

ZERO = Decimal("0")


def to_decimal(value: Any, field_name: str = "value") -> Decimal:
    """Coerce a numeric input to Decimal.

    Floats go through str() so that 0.1 becomes Decimal("0.1") rather than
    its binary expansion.
    """
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool):
        raise InvalidEventError(f"{field_name} must be numeric, got bool", field=field_name)
    elif isinstance(value, (int, float, str)):
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation:
            raise InvalidEventError(
                f"{field_name} is not a number: {value!r}", field=field_name
            ) from None
    else:
        raise InvalidEventError(
            f"{field_name} must be numeric, got {type(value).__name__}",
            field=field_name,
        )
    if not result.is_finite():
        raise InvalidEventError(f"{field_name} must be finite, got {value!r}", field=field_name)
    return result


def to_date(value: Any, field_name: str = "date") -> date:
    """Coerce a date or ISO date string to date."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            raise InvalidEventError(
                f"{field_name} is not an ISO date: {value!r}", field=field_name
            ) from None
    raise InvalidEventError(
        f"{field_name} must be a date, got {type(value).__name__}", field=field_name
    )


def _require_symbol(symbol: Any) -> str:
    if not isinstance(symbol, str) or not symbol.strip():
        raise InvalidEventError("symbol is required", field="symbol")
    return symbol.strip().upper()


# =============================================================================
# Input Records
# =============================================================================

@dataclass(frozen=True)
class Position:
    """An existing holding used to seed the ledger."""
    symbol: str
    shares: Decimal
    unit_cost: Decimal
    acquired_on: date

    def __post_init__(self):
        object.__setattr__(self, "symbol", _require_symbol(self.symbol))
        shares = to_decimal(self.shares, "shares")
        unit_cost = to_decimal(self.unit_cost, "unit_cost")
        if shares <= 0:
            raise InvalidEventError(f"shares must be positive, got {shares}", field="shares")
        if unit_cost < 0:
            raise InvalidEventError(f"unit_cost must be >= 0, got {unit_cost}", field="unit_cost")
        object.__setattr__(self, "shares", shares)
        object.__setattr__(self, "unit_cost", unit_cost)
        object.__setattr__(self, "acquired_on", to_date(self.acquired_on, "acquired_on"))


@dataclass(frozen=True)
class TradeEvent:
    """Immutable buy or sell record driving the ledger.

    lot_ids is only consulted by the specific-identification policy.
    """
    symbol: str
    action: TradeAction
    shares: Decimal
    price: Decimal
    date: date
    lot_ids: tuple[str, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "symbol", _require_symbol(self.symbol))
        try:
            action = TradeAction(self.action)
        except ValueError:
            raise InvalidEventError(
                f"action must be 'buy' or 'sell', got {self.action!r}", field="action"
            ) from None
        shares = to_decimal(self.shares, "shares")
        price = to_decimal(self.price, "price")
        if shares <= 0:
            raise InvalidEventError(f"shares must be positive, got {shares}", field="shares")
        if price <= 0:
            raise InvalidEventError(f"price must be positive, got {price}", field="price")
        object.__setattr__(self, "action", action)
        object.__setattr__(self, "shares", shares)
        object.__setattr__(self, "price", price)
        object.__setattr__(self, "date", to_date(self.date, "date"))
        object.__setattr__(self, "lot_ids", tuple(self.lot_ids))

    @property
    def is_buy(self) -> bool:
        return self.action == TradeAction.BUY

    @property
    def is_sell(self) -> bool:
        return self.action == TradeAction.SELL

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TradeEvent":
        """Build an event from a loosely-typed record."""
        missing = [k for k in ("symbol", "action", "shares", "price", "date") if k not in data]
        if missing:
            raise InvalidEventError(
                f"Trade event missing fields: {', '.join(missing)}", field=missing[0]
            )
        return cls(
            symbol=data["symbol"],
            action=data["action"],
            shares=data["shares"],
            price=data["price"],
            date=data["date"],
            lot_ids=tuple(data.get("lot_ids", ())),
        )


# =============================================================================
# Tax Lots
# =============================================================================

@dataclass(frozen=True)
class Lot:
    """Individual tax lot for cost basis tracking.

    Represents a specific acquisition of shares with its own cost basis and
    acquisition date. Closing a lot yields a new instance; the ledger owns
    which instance is current.
    """
    lot_id: str
    symbol: str
    shares: Decimal
    unit_cost: Decimal
    acquired_on: date
    origin_lot_id: str = ""
    closed_on: Optional[date] = None
    disposal_price: Optional[Decimal] = None
    realized_gain_loss: Optional[Decimal] = None
    wash_sale_disallowed: Decimal = ZERO  # Loss disallowed on this lot's sale
    basis_adjustment: Decimal = ZERO      # Disallowed loss carried onto this lot

    def __post_init__(self):
        if not self.origin_lot_id:
            object.__setattr__(self, "origin_lot_id", self.lot_id)

    @property
    def is_open(self) -> bool:
        return self.closed_on is None

    @property
    def is_closed(self) -> bool:
        return self.closed_on is not None

    @property
    def cost_basis(self) -> Decimal:
        """Unadjusted cost basis for all shares in the lot."""
        return self.unit_cost * self.shares

    @property
    def adjusted_basis(self) -> Decimal:
        """Per-share basis after wash sale adjustments."""
        if self.basis_adjustment == 0:
            return self.unit_cost
        return self.unit_cost + self.basis_adjustment / self.shares

    @property
    def proceeds(self) -> Optional[Decimal]:
        if self.disposal_price is None:
            return None
        return self.disposal_price * self.shares

    @property
    def is_loss(self) -> bool:
        return self.realized_gain_loss is not None and self.realized_gain_loss < 0

    @property
    def is_long_term(self) -> bool:
        """Holding period of a closed lot, measured to its closing date."""
        if self.closed_on is None:
            raise InvalidEventError(
                f"Lot {self.lot_id} is open; use holding_period(as_of)",
                field="closed_on",
            )
        return classify(self.acquired_on, self.closed_on) == HoldingPeriod.LONG_TERM

    def holding_period(self, as_of: Optional[date] = None) -> HoldingPeriod:
        """Holding period at closing (closed lots) or at as_of (open lots)."""
        reference = self.closed_on or as_of
        if reference is None:
            raise InvalidEventError(
                f"Lot {self.lot_id} is open and no as-of date was given",
                field="as_of",
            )
        return classify(self.acquired_on, reference)

    def close(self, price: Decimal, on: date) -> "Lot":
        """Return the closed counterpart of this lot."""
        return replace(
            self,
            closed_on=on,
            disposal_price=price,
            realized_gain_loss=(price - self.unit_cost) * self.shares,
        )

    def split(self, shares: Decimal, remainder_id: str) -> tuple["Lot", "Lot"]:
        """Split into (portion of `shares`, open remainder with a new id)."""
        portion = replace(self, shares=shares)
        remainder = replace(self, lot_id=remainder_id, shares=self.shares - shares)
        return portion, remainder

    def with_wash_sale(
        self,
        disallowed: Decimal = ZERO,
        basis_adjustment: Decimal = ZERO,
    ) -> "Lot":
        """Derived copy carrying wash sale adjustments."""
        return replace(
            self,
            wash_sale_disallowed=self.wash_sale_disallowed + disallowed,
            basis_adjustment=self.basis_adjustment + basis_adjustment,
        )

    def to_dict(self, as_of: Optional[date] = None) -> dict[str, Any]:
        reference = self.closed_on or as_of
        return {
            "lot_id": self.lot_id,
            "origin_lot_id": self.origin_lot_id,
            "symbol": self.symbol,
            "shares": str(self.shares),
            "unit_cost": str(self.unit_cost),
            "acquired_on": self.acquired_on.isoformat(),
            "closed_on": self.closed_on.isoformat() if self.closed_on else None,
            "disposal_price": _dec_str(self.disposal_price),
            "realized_gain_loss": _dec_str(self.realized_gain_loss),
            "is_long_term": (
                classify(self.acquired_on, reference) == HoldingPeriod.LONG_TERM
                if reference else None
            ),
            "wash_sale_disallowed": str(self.wash_sale_disallowed),
            "basis_adjustment": str(self.basis_adjustment),
            "adjusted_basis": str(self.adjusted_basis),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Lot":
        closed_on = data.get("closed_on")
        disposal = data.get("disposal_price")
        realized = data.get("realized_gain_loss")
        return cls(
            lot_id=data["lot_id"],
            origin_lot_id=data.get("origin_lot_id", ""),
            symbol=data["symbol"],
            shares=to_decimal(data["shares"], "shares"),
            unit_cost=to_decimal(data["unit_cost"], "unit_cost"),
            acquired_on=to_date(data["acquired_on"], "acquired_on"),
            closed_on=to_date(closed_on, "closed_on") if closed_on else None,
            disposal_price=to_decimal(disposal, "disposal_price") if disposal is not None else None,
            realized_gain_loss=(
                to_decimal(realized, "realized_gain_loss") if realized is not None else None
            ),
            wash_sale_disallowed=to_decimal(
                data.get("wash_sale_disallowed", ZERO), "wash_sale_disallowed"
            ),
            basis_adjustment=to_decimal(data.get("basis_adjustment", ZERO), "basis_adjustment"),
        )


def _dec_str(value: Optional[Decimal]) -> Optional[str]:
    return str(value) if value is not None else None


# =============================================================================
# Wash Sales
# =============================================================================

@dataclass(frozen=True)
class WashSaleViolation:
    """A loss sale disallowed because of a repurchase within the window."""
    symbol: str
    loss_amount: Decimal
    violation_date: date
    repurchase_date: date
    adjusted_basis: Decimal
    loss_lot_id: str = ""
    replacement_lot_id: str = ""
    is_long_term: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "lossAmount": str(self.loss_amount),
            "violationDate": self.violation_date.isoformat(),
            "repurchaseDate": self.repurchase_date.isoformat(),
            "adjustedBasis": str(self.adjusted_basis),
            "lossLotId": self.loss_lot_id,
            "replacementLotId": self.replacement_lot_id,
            "isLongTerm": self.is_long_term,
        }


@dataclass(frozen=True)
class BasisAdjustment:
    """Disallowed loss carried onto one replacement lot."""
    lot_id: str
    symbol: str
    amount: Decimal
    adjusted_basis: Decimal
    loss_lot_id: str = ""


# =============================================================================
# Netting
# =============================================================================

@dataclass
class NettedTotals:
    """Gain/loss buckets after wash sale adjustment.

    All four buckets are non-negative magnitudes. Signed nets and the
    cross-category offset are derived.
    """
    short_term_gains: Decimal = ZERO
    short_term_losses: Decimal = ZERO
    long_term_gains: Decimal = ZERO
    long_term_losses: Decimal = ZERO
    annual_loss_limit: Decimal = ANNUAL_LOSS_LIMIT
    warnings: list[str] = field(default_factory=list)

    @property
    def net_short_term(self) -> Decimal:
        return self.short_term_gains - self.short_term_losses

    @property
    def net_long_term(self) -> Decimal:
        return self.long_term_gains - self.long_term_losses

    @property
    def offset_nets(self) -> tuple[Decimal, Decimal]:
        """(short, long) nets after a loss in one category offsets a gain in the other."""
        st, lt = self.net_short_term, self.net_long_term
        if st < 0 < lt:
            absorbed = min(-st, lt)
            return st + absorbed, lt - absorbed
        if lt < 0 < st:
            absorbed = min(-lt, st)
            return st - absorbed, lt + absorbed
        return st, lt

    @property
    def taxable_short_term(self) -> Decimal:
        return max(ZERO, self.offset_nets[0])

    @property
    def taxable_long_term(self) -> Decimal:
        return max(ZERO, self.offset_nets[1])

    @property
    def net_capital_loss(self) -> Decimal:
        """Magnitude of the combined net loss after offsetting."""
        st, lt = self.offset_nets
        return abs(min(ZERO, st) + min(ZERO, lt))

    @property
    def deductible_loss(self) -> Decimal:
        """Portion of the net loss deductible against ordinary income this year."""
        return min(self.annual_loss_limit, self.net_capital_loss)

    @property
    def loss_carryforward(self) -> Decimal:
        return max(ZERO, self.net_capital_loss - self.annual_loss_limit)


# =============================================================================
# Reports
# =============================================================================

@dataclass(frozen=True)
class TaxBracket:
    """A single marginal bracket with display bounds."""
    rate: Decimal
    lower: Decimal
    upper: Optional[Decimal]
    label: str

    @property
    def rate_percent(self) -> Decimal:
        return self.rate * 100


@dataclass(frozen=True)
class LineItem:
    """One row of the tax breakdown."""
    category: HoldingPeriod
    gains: Decimal
    losses: Decimal
    net: Decimal
    taxable: Decimal
    rate: Decimal
    tax: Decimal

    def to_dict(self) -> dict[str, Any]:
        return {
            "category": self.category.value,
            "gains": str(self.gains),
            "losses": str(self.losses),
            "net": str(self.net),
            "taxable": str(self.taxable),
            "rate": str(self.rate),
            "tax": str(self.tax),
        }


@dataclass
class TaxCalculation:
    """Aggregate tax report for one computation."""
    short_term_gains: Decimal = ZERO
    long_term_gains: Decimal = ZERO
    short_term_losses: Decimal = ZERO
    long_term_losses: Decimal = ZERO
    total_tax: Decimal = ZERO
    effective_rate: Decimal = ZERO
    wash_sale_violations: list[WashSaleViolation] = field(default_factory=list)
    loss_carryforward: Decimal = ZERO

    deductible_loss: Decimal = ZERO
    net_short_term: Decimal = ZERO
    net_long_term: Decimal = ZERO
    short_term_rate: Decimal = ZERO
    long_term_rate: Decimal = ZERO
    income: Decimal = ZERO
    filing_status: FilingStatus = FilingStatus.SINGLE
    line_items: list[LineItem] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def total_disallowed(self) -> Decimal:
        return sum((v.loss_amount for v in self.wash_sale_violations), ZERO)

    @property
    def has_warnings(self) -> bool:
        return bool(self.warnings)

    def to_dict(self) -> dict[str, Any]:
        return {
            "shortTermGains": str(self.short_term_gains),
            "longTermGains": str(self.long_term_gains),
            "shortTermLosses": str(self.short_term_losses),
            "longTermLosses": str(self.long_term_losses),
            "totalTax": str(self.total_tax),
            "effectiveRate": str(self.effective_rate),
            "washSaleViolations": [v.to_dict() for v in self.wash_sale_violations],
            "lossCarryforward": str(self.loss_carryforward),
            "deductibleLoss": str(self.deductible_loss),
            "netShortTerm": str(self.net_short_term),
            "netLongTerm": str(self.net_long_term),
            "shortTermRate": str(self.short_term_rate),
            "longTermRate": str(self.long_term_rate),
            "income": str(self.income),
            "filingStatus": self.filing_status.value,
            "lineItems": [item.to_dict() for item in self.line_items],
            "warnings": list(self.warnings),
        }


@dataclass(frozen=True)
class UnrealizedPosition:
    """Expected tax on an open lot if sold at the supplied price."""
    lot_id: str
    symbol: str
    shares: Decimal
    unit_cost: Decimal
    current_price: Decimal
    unrealized_gain_loss: Decimal
    days_held: int
    holding_period: HoldingPeriod
    expected_tax: Decimal

    @property
    def is_long_term(self) -> bool:
        return self.holding_period == HoldingPeriod.LONG_TERM

    def to_dict(self) -> dict[str, Any]:
        return {
            "lot_id": self.lot_id,
            "symbol": self.symbol,
            "shares": str(self.shares),
            "unit_cost": str(self.unit_cost),
            "current_price": str(self.current_price),
            "unrealized_gain_loss": str(self.unrealized_gain_loss),
            "days_held": self.days_held,
            "holding_period": self.holding_period.value,
            "expected_tax": str(self.expected_tax),
        }
