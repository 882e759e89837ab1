"""Pytest configuration and shared fixtures."""

import sys
from decimal import ROUND_FLOOR, Decimal
from pathlib import Path

import pytest

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))


@pytest.fixture
def sample_sale_events():
    """Factory for demo sales: sell 30% (rounded down) of each holding.

    Mirrors the sample trades the simulator shows when a portfolio has no
    sale history yet.
    """
    from src.tax_engine import TradeEvent

    def _make(positions, prices, on):
        events = []
        for position in positions:
            shares = (position.shares * Decimal("0.3")).to_integral_value(rounding=ROUND_FLOOR)
            if shares <= 0:
                continue
            events.append(TradeEvent(
                symbol=position.symbol,
                action="sell",
                shares=shares,
                price=prices[position.symbol],
                date=on,
            ))
        return events

    return _make
