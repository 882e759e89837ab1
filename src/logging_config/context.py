"""Computation Context Management.

Context-local binding of computation IDs and portfolio IDs to log
entries, using contextvars so concurrent computations never mix.
"""

import uuid
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any


_computation_id_var: ContextVar[str] = ContextVar("computation_id", default="")
_portfolio_id_var: ContextVar[str] = ContextVar("portfolio_id", default="")
_extra_context_var: ContextVar[dict] = ContextVar("extra_context", default={})


def generate_computation_id() -> str:
    """Generate a unique computation ID using UUID4."""
    return str(uuid.uuid4())


def get_computation_id() -> str:
    return _computation_id_var.get()


def get_portfolio_id() -> str:
    return _portfolio_id_var.get()


def get_context_dict() -> dict[str, Any]:
    """Get all context variables as a dictionary for log binding."""
    ctx = {}
    computation_id = _computation_id_var.get()
    if computation_id:
        ctx["computation_id"] = computation_id
    portfolio_id = _portfolio_id_var.get()
    if portfolio_id:
        ctx["portfolio_id"] = portfolio_id
    extra = _extra_context_var.get()
    if extra:
        ctx.update(extra)
    return ctx


@dataclass
class PortfolioContext:
    """Context manager for computation-scoped logging context.

    Binds computation_id and portfolio_id to all log entries within the
    context and restores the previous values on exit, so contexts nest.

    Example:
        with PortfolioContext(portfolio_id="pf_1"):
            logger.info("replaying ledger")  # includes portfolio_id
    """

    portfolio_id: str = ""
    computation_id: str = ""
    extra: dict[str, Any] = field(default_factory=dict)

    _tokens: list = field(default_factory=list, repr=False)

    def __post_init__(self):
        if not self.computation_id:
            self.computation_id = generate_computation_id()

    def __enter__(self) -> "PortfolioContext":
        self._tokens = [
            (_computation_id_var, _computation_id_var.set(self.computation_id)),
            (_portfolio_id_var, _portfolio_id_var.set(self.portfolio_id)),
            (_extra_context_var, _extra_context_var.set(self.extra.copy())),
        ]
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        for var, token in reversed(self._tokens):
            var.reset(token)
        self._tokens.clear()

    def bind(self, **kwargs: Any) -> None:
        """Add extra key-value pairs to the context."""
        current = _extra_context_var.get()
        _extra_context_var.set({**current, **kwargs})
        self.extra.update(kwargs)
