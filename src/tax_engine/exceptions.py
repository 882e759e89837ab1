"""Tax Engine Exception Hierarchy.

Typed exceptions for ledger replay and rate lookups. Every failure is
raised to the caller; the presentation layer decides how to show it.
"""

from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorCode(Enum):
    """Standardized error codes for engine failures."""

    # Ledger replay errors
    INSUFFICIENT_SHARES = "INSUFFICIENT_SHARES"
    INVALID_EVENT = "INVALID_EVENT"
    OUT_OF_ORDER_EVENT = "OUT_OF_ORDER_EVENT"
    UNKNOWN_LOT = "UNKNOWN_LOT"

    # Rate table errors
    BRACKET_LOOKUP_FAILURE = "BRACKET_LOOKUP_FAILURE"

    INTERNAL_ERROR = "INTERNAL_ERROR"


class TaxEngineError(Exception):
    """Base exception for all tax engine errors.

    All engine exceptions inherit from this, allowing a caller to catch
    the entire hierarchy with a single handler.
    """

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        details: Optional[List[Dict[str, Any]]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or []

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.error_code.value,
            "message": self.message,
            "details": self.details,
        }


class LedgerError(TaxEngineError):
    """Raised when a trade event cannot be applied to the ledger."""


class InsufficientSharesError(LedgerError):
    """Raised when a sell exceeds the open quantity for a symbol."""

    def __init__(
        self,
        symbol: str,
        requested: Any,
        available: Any,
        message: Optional[str] = None,
    ):
        super().__init__(
            message or (
                f"Cannot sell {requested} shares of {symbol}: "
                f"only {available} open"
            ),
            ErrorCode.INSUFFICIENT_SHARES,
            [{"symbol": symbol, "requested": str(requested), "available": str(available)}],
        )
        self.symbol = symbol
        self.requested = requested
        self.available = available


class InvalidEventError(LedgerError):
    """Raised when an input record is malformed."""

    def __init__(
        self,
        message: str = "Invalid trade event",
        error_code: ErrorCode = ErrorCode.INVALID_EVENT,
        field: Optional[str] = None,
    ):
        details = [{"field": field, "issue": message}] if field else None
        super().__init__(message, error_code, details)
        self.field = field


class OutOfOrderEventError(InvalidEventError):
    """Raised when an event is dated before an already-applied event."""

    def __init__(self, message: str):
        super().__init__(message, ErrorCode.OUT_OF_ORDER_EVENT, field="date")


class UnknownLotError(LedgerError):
    """Raised when a specific-lot sale names a lot the ledger cannot use."""

    def __init__(self, lot_id: str, message: Optional[str] = None):
        super().__init__(
            message or f"Lot {lot_id} is not an open lot",
            ErrorCode.UNKNOWN_LOT,
            [{"lot_id": lot_id}],
        )
        self.lot_id = lot_id


class BracketLookupError(TaxEngineError):
    """Raised when income or filing status falls outside the rate tables."""

    def __init__(self, message: str):
        super().__init__(message, ErrorCode.BRACKET_LOOKUP_FAILURE)
