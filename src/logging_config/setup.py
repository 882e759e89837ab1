"""Logging Setup.

One-call configuration for structured logging of tax computations. JSON
output for services embedding the engine, colored console output for
local runs. Both formatters understand the lot fields the engine attaches
through ``extra=`` and the payload carried by engine exceptions.
"""

import json
import logging
import os
import sys
from dataclasses import replace
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional, TextIO

from src.logging_config.config import (
    DEFAULT_LOGGING_CONFIG,
    LOT_DETAIL_LOGGERS,
    LogFormat,
    LoggingConfig,
    LogLevel,
)
from src.logging_config.context import get_context_dict

ENV_LOG_LEVEL = "TAX_ENGINE_LOG_LEVEL"
ENV_LOG_FORMAT = "TAX_ENGINE_LOG_FORMAT"
ENV_LOT_DETAIL = "TAX_ENGINE_LOT_DETAIL"

# Lot fields engine modules pass via extra=
LOT_FIELDS = ("symbol", "lot_id", "loss_lot_id", "replacement_lot_id", "shares", "amount")

TIMING_FIELDS = ("duration_ms", "extra_data")


def _json_value(value: Any) -> Any:
    """Render engine values for JSON: Decimals stay exact as strings."""
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return str(value)


def _lot_fields(record: logging.LogRecord) -> dict[str, Any]:
    return {key: getattr(record, key) for key in LOT_FIELDS if hasattr(record, key)}


def _exception_entry(formatter: logging.Formatter, exc_info) -> dict[str, Any]:
    exc_type, exc, _ = exc_info
    entry = {
        "type": exc_type.__name__,
        "message": str(exc),
        "traceback": formatter.formatException(exc_info),
    }
    # Engine errors carry a structured payload (error code plus details)
    to_dict = getattr(exc, "to_dict", None)
    if callable(to_dict):
        payload = to_dict()
        entry["error_code"] = payload.get("error")
        entry["details"] = payload.get("details", [])
    return entry


class StructuredFormatter(logging.Formatter):
    """JSON structured log formatter.

    One JSON object per line: timestamp, level, logger, message, the bound
    portfolio/computation context, and a "lot" object when the record
    carries lot fields.
    """

    def __init__(self, service_name: str = "tax-engine", include_caller: bool = True):
        super().__init__()
        self.service_name = service_name
        self.include_caller = include_caller

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": self.service_name,
        }

        if self.include_caller:
            log_entry["function"] = record.funcName
            log_entry["line"] = record.lineno

        log_entry.update(get_context_dict())

        lot = _lot_fields(record)
        if lot:
            log_entry["lot"] = lot

        for key in TIMING_FIELDS:
            if hasattr(record, key):
                log_entry[key] = getattr(record, key)

        if record.exc_info and record.exc_info[0] is not None:
            log_entry["exception"] = _exception_entry(self, record.exc_info)

        return json.dumps(log_entry, default=_json_value)


class ConsoleFormatter(logging.Formatter):
    """Colored console formatter for local runs."""

    COLORS = {
        "DEBUG": "\033[36m",     # Cyan
        "INFO": "\033[32m",      # Green
        "WARNING": "\033[33m",   # Yellow
        "ERROR": "\033[31m",     # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, self.RESET)
        timestamp = datetime.fromtimestamp(record.created, timezone.utc).strftime("%H:%M:%S.%f")[:-3]

        tags = {**get_context_dict(), **_lot_fields(record)}
        tag_str = ""
        if tags:
            tag_str = " [" + ", ".join(f"{k}={v}" for k, v in tags.items()) + "]"

        line = (
            f"{color}{timestamp} {record.levelname:8s}{self.RESET} "
            f"{record.name}: {record.getMessage()}{tag_str}"
        )

        if record.exc_info and record.exc_info[0] is not None:
            error_code = _exception_entry(self, record.exc_info).get("error_code")
            if error_code:
                line += f" ({error_code})"
            line += "\n" + self.formatException(record.exc_info)

        return line


def _apply_env_overrides(config: LoggingConfig) -> LoggingConfig:
    env_level = os.environ.get(ENV_LOG_LEVEL, "").upper()
    if env_level in LogLevel.__members__:
        config = replace(config, level=LogLevel(env_level))

    env_format = os.environ.get(ENV_LOG_FORMAT, "").lower()
    if env_format in [f.value for f in LogFormat]:
        config = replace(config, format=LogFormat(env_format))

    env_detail = os.environ.get(ENV_LOT_DETAIL, "").lower()
    if env_detail in ("1", "true", "yes"):
        config = replace(config, lot_detail=True)
    elif env_detail in ("0", "false", "no"):
        config = replace(config, lot_detail=False)

    return config


def configure_logging(
    config: Optional[LoggingConfig] = None,
    stream: Optional[TextIO] = None,
) -> logging.Handler:
    """Configure structured logging.

    Call once in whatever process embeds the engine.

    Args:
        config: Logging configuration. Uses defaults if not provided.
                TAX_ENGINE_LOG_LEVEL, TAX_ENGINE_LOG_FORMAT and
                TAX_ENGINE_LOT_DETAIL override the matching fields.
        stream: Output stream. Defaults to stdout.

    Returns:
        The handler installed on the root logger.
    """
    config = _apply_env_overrides(config or DEFAULT_LOGGING_CONFIG)

    if config.format == LogFormat.JSON:
        formatter = StructuredFormatter(
            service_name=config.service_name,
            include_caller=config.include_caller,
        )
    else:
        formatter = ConsoleFormatter()

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, config.level.value))

    # NOTSET defers to the root level; INFO drops the per-lot DEBUG lines
    detail_level = logging.NOTSET if config.lot_detail else logging.INFO
    for name in LOT_DETAIL_LOGGERS:
        logging.getLogger(name).setLevel(detail_level)

    return handler
