"""Logging Configuration.

Settings for structured logging, log levels, and output formats.
"""

from dataclasses import dataclass
from enum import Enum


class LogLevel(str, Enum):
    """Log level options."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogFormat(str, Enum):
    """Log output format."""
    JSON = "json"
    CONSOLE = "console"


# Loggers that emit one line per lot opened, split, closed or adjusted
LOT_DETAIL_LOGGERS = ("src.tax_engine.ledger", "src.tax_engine.wash_sales")


@dataclass
class LoggingConfig:
    """Structured logging configuration.

    lot_detail controls the per-lot DEBUG lines from ledger replay and wash
    sale detection. A long trade history produces several lines per event,
    so they stay off even at DEBUG unless asked for.
    """

    level: LogLevel = LogLevel.INFO
    format: LogFormat = LogFormat.JSON
    include_caller: bool = True
    lot_detail: bool = False
    slow_threshold_ms: float = 1000.0
    service_name: str = "tax-engine"


DEFAULT_LOGGING_CONFIG = LoggingConfig()
