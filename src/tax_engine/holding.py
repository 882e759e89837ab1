"""Holding Period Classification.

A position is long-term when held more than one year: strictly more than
365 days between acquisition and the reference date.
"""

from datetime import date

from src.tax_engine.config import HoldingPeriod, LONG_TERM_THRESHOLD_DAYS
from src.tax_engine.exceptions import InvalidEventError


def days_held(acquired_on: date, reference_date: date) -> int:
    """Days between acquisition and the reference date."""
    days = (reference_date - acquired_on).days
    if days < 0:
        raise InvalidEventError(
            f"Reference date {reference_date} precedes acquisition {acquired_on}",
            field="reference_date",
        )
    return days


def classify(acquired_on: date, reference_date: date) -> HoldingPeriod:
    """Classify a holding as short-term or long-term.

    Args:
        acquired_on: Acquisition date.
        reference_date: Closing date for sold lots, as-of date for open lots.

    Returns:
        HoldingPeriod.LONG_TERM when held more than 365 days.
    """
    if days_held(acquired_on, reference_date) > LONG_TERM_THRESHOLD_DAYS:
        return HoldingPeriod.LONG_TERM
    return HoldingPeriod.SHORT_TERM


def days_to_long_term(acquired_on: date, reference_date: date) -> int:
    """Days until a holding becomes long-term. Zero once it already is."""
    return max(0, LONG_TERM_THRESHOLD_DAYS + 1 - days_held(acquired_on, reference_date))


def classify_lot(lot, as_of: date) -> HoldingPeriod:
    """Classify a lot: closed lots against closed_on, open lots against as_of."""
    return classify(lot.acquired_on, lot.closed_on or as_of)
