"""Tax Lot Ledger.

Owns the lifecycle of tax lots: opens lots on purchases, closes them on
sales using the configured lot matching policy, and splits lots that a
sale only partially consumes.
"""

from datetime import date
from decimal import Decimal
from typing import Any, Iterable, Optional
import logging

import pandas as pd

from src.tax_engine.config import (
    LotSelectionMethod,
    TaxConfig,
    DEFAULT_TAX_CONFIG,
)
from src.tax_engine.exceptions import (
    InsufficientSharesError,
    InvalidEventError,
    OutOfOrderEventError,
    UnknownLotError,
)
from src.tax_engine.models import Lot, Position, TradeEvent, to_date

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = 1

LEDGER_COLUMNS = [
    "lot_id", "origin_lot_id", "symbol", "shares", "unit_cost", "acquired_on",
    "closed_on", "disposal_price", "realized_gain_loss", "is_long_term",
    "wash_sale_disallowed", "basis_adjustment", "adjusted_basis",
]


class TaxLotLedger:
    """Tracks open and closed tax lots per symbol.

    Lots are never deleted. Closing a lot stores its closed counterpart
    under the same lot_id; a partial sale leaves the unsold shares in a new
    open lot that keeps the original acquisition date and unit cost.

    Events must be applied in non-decreasing date order.
    """

    def __init__(self, config: Optional[TaxConfig] = None):
        self.config = config or DEFAULT_TAX_CONFIG
        self._lots: dict[str, list[str]] = {}  # symbol -> lot ids in creation order
        self._lot_index: dict[str, Lot] = {}   # lot_id -> current lot
        self._sequence: dict[str, int] = {}    # lot_id -> creation sequence
        self._next_id = 1
        self._last_event_date: Optional[date] = None
        self._events_applied = 0

    # -------------------------------------------------------------------------
    # Construction
    # -------------------------------------------------------------------------

    @classmethod
    def from_events(
        cls,
        events: Iterable[TradeEvent],
        positions: Iterable[Position] = (),
        config: Optional[TaxConfig] = None,
    ) -> "TaxLotLedger":
        """Build a ledger from seed positions and a date-ordered event stream."""
        ledger = cls(config)
        for position in positions:
            ledger.add_position(position)
        ledger.replay(events)
        return ledger

    def _new_lot_id(self) -> str:
        lot_id = f"LOT-{self._next_id:06d}"
        self._next_id += 1
        return lot_id

    def _store(self, lot: Lot) -> Lot:
        if lot.lot_id not in self._lot_index:
            self._lots.setdefault(lot.symbol, []).append(lot.lot_id)
            self._sequence[lot.lot_id] = len(self._sequence)
        self._lot_index[lot.lot_id] = lot
        return lot

    def add_position(self, position: Position) -> Lot:
        """Seed an open lot from an existing holding."""
        lot = Lot(
            lot_id=self._new_lot_id(),
            symbol=position.symbol,
            shares=position.shares,
            unit_cost=position.unit_cost,
            acquired_on=position.acquired_on,
        )
        logger.debug(
            f"Seeded lot {lot.lot_id}: {lot.shares} shares of {lot.symbol}",
            extra={"symbol": lot.symbol, "lot_id": lot.lot_id, "shares": lot.shares},
        )
        return self._store(lot)

    # -------------------------------------------------------------------------
    # Event Replay
    # -------------------------------------------------------------------------

    def apply(self, event: TradeEvent) -> list[Lot]:
        """Apply one trade event.

        Args:
            event: Buy or sell event, dated no earlier than the last one.

        Returns:
            The lot opened by a buy, or the lots closed by a sell.

        Raises:
            OutOfOrderEventError: Event predates an already-applied event.
            InsufficientSharesError: Sell exceeds the open shares held on
                the sale date.
            UnknownLotError: Specific-lot sale names an unusable lot.
        """
        if not isinstance(event, TradeEvent):
            raise InvalidEventError(
                f"Expected TradeEvent, got {type(event).__name__}", field="event"
            )
        if self._last_event_date is not None and event.date < self._last_event_date:
            raise OutOfOrderEventError(
                f"{event.action.value} {event.symbol} on {event.date} predates "
                f"previously applied event on {self._last_event_date}"
            )

        if event.is_buy:
            result = [self._buy(event)]
        else:
            result = self._sell(event)

        self._last_event_date = event.date
        self._events_applied += 1
        return result

    def replay(self, events: Iterable[TradeEvent]) -> None:
        """Apply an event stream in order, stopping at the first failure."""
        count = 0
        for event in events:
            self.apply(event)
            count += 1
        logger.info(
            f"Replayed {count} events: {len(self._lot_index)} lots "
            f"across {len(self._lots)} symbols"
        )

    def _buy(self, event: TradeEvent) -> Lot:
        lot = Lot(
            lot_id=self._new_lot_id(),
            symbol=event.symbol,
            shares=event.shares,
            unit_cost=event.price,
            acquired_on=event.date,
        )
        logger.debug(
            f"Opened lot {lot.lot_id}: {lot.shares} shares of {lot.symbol} "
            f"@ {lot.unit_cost}",
            extra={"symbol": lot.symbol, "lot_id": lot.lot_id, "shares": lot.shares},
        )
        return self._store(lot)

    def _sell(self, event: TradeEvent) -> list[Lot]:
        # Plan the whole sale before touching state so a failed event
        # leaves the ledger unchanged.
        plan = self._plan_sale(event)

        closed: list[Lot] = []
        for lot, shares in plan:
            if shares == lot.shares:
                closed_lot = lot.close(event.price, event.date)
            else:
                portion, remainder = lot.split(shares, self._new_lot_id())
                self._store(remainder)
                closed_lot = portion.close(event.price, event.date)
                logger.debug(
                    f"Split lot {lot.lot_id}: {shares} sold, {remainder.shares} "
                    f"remain in {remainder.lot_id}",
                    extra={
                        "symbol": lot.symbol,
                        "lot_id": remainder.lot_id,
                        "shares": remainder.shares,
                    },
                )
            self._store(closed_lot)
            closed.append(closed_lot)
            logger.debug(
                f"Closed lot {closed_lot.lot_id}: {closed_lot.shares} shares of "
                f"{closed_lot.symbol}, gain/loss = {closed_lot.realized_gain_loss}",
                extra={
                    "symbol": closed_lot.symbol,
                    "lot_id": closed_lot.lot_id,
                    "shares": closed_lot.shares,
                    "amount": closed_lot.realized_gain_loss,
                },
            )
        return closed

    def _plan_sale(self, event: TradeEvent) -> list[tuple[Lot, Decimal]]:
        method = self.config.ledger.lot_selection
        if method == LotSelectionMethod.SPECIFIC_ID:
            candidates = self._named_lots(event)
        else:
            candidates = self._ordered_open_lots(event.symbol, method, event.date)

        available = sum((lot.shares for lot in candidates), Decimal("0"))
        if event.shares > available:
            raise InsufficientSharesError(event.symbol, event.shares, available)

        plan: list[tuple[Lot, Decimal]] = []
        remaining = event.shares
        for lot in candidates:
            if remaining <= 0:
                break
            take = min(lot.shares, remaining)
            plan.append((lot, take))
            remaining -= take
        return plan

    def _held_lots(self, symbol: str, on: date) -> list[Lot]:
        """Open lots of a symbol already acquired on a sale date.

        Seeded positions can carry acquisition dates later than the events
        being replayed; those shares cannot be sold before they are held.
        """
        return [lot for lot in self.open_lots(symbol) if lot.acquired_on <= on]

    def _ordered_open_lots(
        self,
        symbol: str,
        method: LotSelectionMethod,
        on: date,
    ) -> list[Lot]:
        def age_key(lot: Lot) -> tuple[date, int, int]:
            return (
                lot.acquired_on,
                self._sequence[lot.origin_lot_id],
                self._sequence[lot.lot_id],
            )

        lots = sorted(self._held_lots(symbol, on), key=age_key)
        if method == LotSelectionMethod.LIFO:
            lots.reverse()
        return lots

    def _named_lots(self, event: TradeEvent) -> list[Lot]:
        """Resolve lot ids on a specific-lot sale to the open lots they name.

        An id matches an open lot directly or through its origin, so a lot
        stays addressable by its purchase id after a partial sale.
        """
        if not event.lot_ids:
            raise InvalidEventError(
                f"Specific-lot sale of {event.symbol} on {event.date} names no lots",
                field="lot_ids",
            )
        open_lots = self._held_lots(event.symbol, event.date)
        selected: list[Lot] = []
        for lot_id in event.lot_ids:
            matches = [
                lot for lot in open_lots
                if lot_id in (lot.lot_id, lot.origin_lot_id) and lot not in selected
            ]
            if not matches:
                raise UnknownLotError(
                    lot_id, f"Lot {lot_id} is not an open {event.symbol} lot on {event.date}"
                )
            selected.extend(matches)
        return selected

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def _iter_lots(self, symbol: Optional[str] = None) -> list[Lot]:
        if symbol is None:
            ids = [lot_id for ids in self._lots.values() for lot_id in ids]
            ids.sort(key=self._sequence.__getitem__)
        else:
            ids = self._lots.get(symbol.upper(), [])
        return [self._lot_index[lot_id] for lot_id in ids]

    def open_lots(self, symbol: Optional[str] = None) -> list[Lot]:
        """Open lots, for one symbol or all symbols."""
        return [lot for lot in self._iter_lots(symbol) if lot.is_open]

    def closed_lots(self, symbol: Optional[str] = None) -> list[Lot]:
        """Closed lots, for one symbol or all symbols."""
        return [lot for lot in self._iter_lots(symbol) if lot.is_closed]

    def all_lots(self) -> list[Lot]:
        """Every lot ever created, in creation order."""
        return self._iter_lots()

    def get_lot(self, lot_id: str) -> Optional[Lot]:
        return self._lot_index.get(lot_id)

    def symbols(self) -> list[str]:
        return sorted(self._lots)

    def total_open_shares(self, symbol: str) -> Decimal:
        return sum((lot.shares for lot in self.open_lots(symbol)), Decimal("0"))

    @property
    def last_event_date(self) -> Optional[date]:
        return self._last_event_date

    @property
    def events_applied(self) -> int:
        return self._events_applied

    def __len__(self) -> int:
        return len(self._lot_index)

    # -------------------------------------------------------------------------
    # Serialization
    # -------------------------------------------------------------------------

    def snapshot(self) -> dict[str, Any]:
        """Serialize the full ledger state."""
        return {
            "version": SNAPSHOT_VERSION,
            "next_id": self._next_id,
            "last_event_date": (
                self._last_event_date.isoformat() if self._last_event_date else None
            ),
            "events_applied": self._events_applied,
            "lots": [lot.to_dict() for lot in self.all_lots()],
        }

    @classmethod
    def from_snapshot(
        cls,
        data: dict[str, Any],
        config: Optional[TaxConfig] = None,
    ) -> "TaxLotLedger":
        """Restore a ledger serialized with snapshot()."""
        if data.get("version") != SNAPSHOT_VERSION:
            raise InvalidEventError(
                f"Unsupported ledger snapshot version: {data.get('version')!r}",
                field="version",
            )
        ledger = cls(config)
        for raw in data.get("lots", []):
            ledger._store(Lot.from_dict(raw))
        ledger._next_id = int(data["next_id"])
        last = data.get("last_event_date")
        ledger._last_event_date = to_date(last, "last_event_date") if last else None
        ledger._events_applied = int(data.get("events_applied", 0))
        return ledger

    def to_dataframe(
        self,
        lots: Optional[list[Lot]] = None,
        as_of: Optional[date] = None,
    ) -> pd.DataFrame:
        """Get lots as DataFrame for detail views."""
        lots = self.all_lots() if lots is None else lots
        if not lots:
            return pd.DataFrame(columns=LEDGER_COLUMNS)
        return pd.DataFrame([lot.to_dict(as_of) for lot in lots], columns=LEDGER_COLUMNS)
