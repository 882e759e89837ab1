"""Tax Bracket Tables.

Pure, table-driven marginal rate lookup for ordinary income and long-term
capital gains. Upper bounds are inclusive: income exactly at a threshold
falls in the bracket that ends there.
"""

from decimal import Decimal
from typing import Any, Optional

from src.tax_engine.config import BRACKET_TABLES, BracketKind, FilingStatus
from src.tax_engine.exceptions import BracketLookupError
from src.tax_engine.models import TaxBracket


def _brackets(
    filing_status: Any,
    kind: BracketKind,
) -> list[tuple[Optional[Decimal], Decimal]]:
    try:
        status = FilingStatus(filing_status)
    except ValueError:
        raise BracketLookupError(f"Unknown filing status: {filing_status!r}") from None
    try:
        schedule = BracketKind(kind)
    except ValueError:
        raise BracketLookupError(f"Unknown bracket schedule: {kind!r}") from None
    return BRACKET_TABLES[schedule][status]


def _check_income(income: Any) -> Decimal:
    if isinstance(income, bool) or not isinstance(income, (int, float, str, Decimal)):
        raise BracketLookupError(f"Income must be numeric, got {type(income).__name__}")
    try:
        value = Decimal(str(income))
    except ArithmeticError:
        raise BracketLookupError(f"Income is not a number: {income!r}") from None
    if not value.is_finite():
        raise BracketLookupError(f"Income must be finite, got {income!r}")
    if value < 0:
        raise BracketLookupError(f"Income must be non-negative, got {value}")
    return value


def _format_amount(amount: Decimal) -> str:
    return f"${amount:,.0f}"


def bracket_for(
    income: Any,
    filing_status: Any,
    kind: BracketKind = BracketKind.ORDINARY,
) -> TaxBracket:
    """Find the bracket containing an income level.

    Args:
        income: Annual income (non-negative).
        filing_status: FilingStatus or its string value.
        kind: Ordinary income or long-term capital gains schedule.

    Returns:
        TaxBracket with rate, bounds and a display label.

    Raises:
        BracketLookupError: Income or filing status outside the table domain.
    """
    value = _check_income(income)
    lower = Decimal("0")
    for upper, rate in _brackets(filing_status, kind):
        if upper is None or value <= upper:
            if upper is None:
                label = f"{_format_amount(lower)}+"
            else:
                label = f"{_format_amount(lower)} - {_format_amount(upper)}"
            return TaxBracket(rate=rate, lower=lower, upper=upper, label=label)
        lower = upper + 1
    # Tables always end with an open bracket
    raise BracketLookupError(f"No {kind} bracket covers income {value}")


def ordinary_rate(income: Any, filing_status: Any) -> Decimal:
    """Marginal ordinary income rate (applies to short-term gains)."""
    return bracket_for(income, filing_status, BracketKind.ORDINARY).rate


def long_term_rate(income: Any, filing_status: Any) -> Decimal:
    """Marginal long-term capital gains rate."""
    return bracket_for(income, filing_status, BracketKind.LONG_TERM).rate


def bracket_table(
    filing_status: Any,
    kind: BracketKind = BracketKind.ORDINARY,
) -> list[TaxBracket]:
    """All brackets for a filing status, lowest first."""
    table = []
    lower = Decimal("0")
    for upper, rate in _brackets(filing_status, kind):
        sample = upper if upper is not None else lower
        table.append(bracket_for(sample, filing_status, kind))
        if upper is not None:
            lower = upper + 1
    return table
