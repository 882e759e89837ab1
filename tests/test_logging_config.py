"""Tests for structured logging and computation tracing."""

import io
import json
import logging
import sys
import time
from datetime import date
from decimal import Decimal

import pytest

from src.logging_config.config import LOT_DETAIL_LOGGERS, LogFormat, LoggingConfig, LogLevel
from src.logging_config.context import (
    PortfolioContext,
    generate_computation_id,
    get_computation_id,
    get_context_dict,
    get_portfolio_id,
)
from src.logging_config.performance import PerformanceTimer, log_performance
from src.logging_config.setup import (
    ConsoleFormatter,
    StructuredFormatter,
    configure_logging,
)
from src.tax_engine import InsufficientSharesError, TaxEngine, TradeEvent


def _record(msg="test", level=logging.INFO, name="test", lineno=1, exc_info=None):
    return logging.LogRecord(
        name=name, level=level, pathname="test.py",
        lineno=lineno, msg=msg, args=(), exc_info=exc_info,
    )


@pytest.fixture
def restore_root_logger():
    """Put the root logger back the way the test runner configured it."""
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    detail_levels = {name: logging.getLogger(name).level for name in LOT_DETAIL_LOGGERS}
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)
    for name, detail_level in detail_levels.items():
        logging.getLogger(name).setLevel(detail_level)


class TestLoggingConfig:
    """Tests for logging configuration dataclasses."""

    def test_default_config_values(self):
        config = LoggingConfig()
        assert config.level == LogLevel.INFO
        assert config.format == LogFormat.JSON
        assert config.include_caller is True
        assert config.lot_detail is False
        assert config.slow_threshold_ms == 1000.0
        assert config.service_name == "tax-engine"

    def test_log_format_enum_values(self):
        assert LogFormat.JSON.value == "json"
        assert LogFormat.CONSOLE.value == "console"


class TestPortfolioContext:
    """Tests for computation context management."""

    def test_generate_computation_id_unique(self):
        ids = {generate_computation_id() for _ in range(100)}
        assert len(ids) == 100

    def test_context_sets_portfolio_id(self):
        with PortfolioContext(portfolio_id="pf_42"):
            assert get_portfolio_id() == "pf_42"
        assert get_portfolio_id() == ""

    def test_auto_generates_computation_id(self):
        with PortfolioContext() as ctx:
            assert ctx.computation_id != ""
            assert get_computation_id() == ctx.computation_id
        assert get_computation_id() == ""

    def test_get_context_dict(self):
        with PortfolioContext(portfolio_id="pf_1", computation_id="c1"):
            ctx = get_context_dict()
            assert ctx == {"computation_id": "c1", "portfolio_id": "pf_1"}

    def test_context_dict_empty_outside(self):
        assert get_context_dict() == {}

    def test_bind_extra_context(self):
        with PortfolioContext(portfolio_id="pf_1") as ctx:
            ctx.bind(symbol="AAPL")
            assert get_context_dict()["symbol"] == "AAPL"
        assert "symbol" not in get_context_dict()

    def test_nested_contexts_restore_outer(self):
        with PortfolioContext(portfolio_id="outer"):
            with PortfolioContext(portfolio_id="inner"):
                assert get_portfolio_id() == "inner"
            assert get_portfolio_id() == "outer"


class TestStructuredFormatter:
    """Tests for JSON structured log formatting."""

    def test_formats_as_json(self):
        parsed = json.loads(StructuredFormatter().format(_record("hello world")))
        assert parsed["message"] == "hello world"
        assert parsed["level"] == "INFO"
        assert parsed["logger"] == "test"
        assert "timestamp" in parsed

    def test_includes_service_name(self):
        parsed = json.loads(StructuredFormatter(service_name="svc").format(_record()))
        assert parsed["service"] == "svc"

    def test_excludes_caller_when_disabled(self):
        formatter = StructuredFormatter(include_caller=False)
        parsed = json.loads(formatter.format(_record(lineno=42)))
        assert "line" not in parsed
        assert "function" not in parsed

    def test_includes_portfolio_context(self):
        formatter = StructuredFormatter()
        with PortfolioContext(portfolio_id="pf_ctx"):
            parsed = json.loads(formatter.format(_record()))
        assert parsed["portfolio_id"] == "pf_ctx"
        assert parsed["computation_id"]

    def test_formats_exception(self):
        formatter = StructuredFormatter()
        try:
            raise ValueError("test error")
        except ValueError:
            record = _record("failed", level=logging.ERROR, exc_info=sys.exc_info())
            parsed = json.loads(formatter.format(record))
        assert parsed["exception"]["type"] == "ValueError"
        assert "test error" in parsed["exception"]["message"]

    def test_includes_timing_fields(self):
        record = _record()
        record.duration_ms = 42.5
        parsed = json.loads(StructuredFormatter().format(record))
        assert parsed["duration_ms"] == 42.5
        assert "lot" not in parsed

    def test_nests_lot_fields(self):
        """Test lot extras are grouped and Decimals render as exact strings."""
        record = _record()
        record.symbol = "AAPL"
        record.lot_id = "LOT-000001"
        record.shares = Decimal("0.1")
        record.amount = Decimal("-1000.50")
        parsed = json.loads(StructuredFormatter().format(record))

        assert parsed["lot"] == {
            "symbol": "AAPL",
            "lot_id": "LOT-000001",
            "shares": "0.1",
            "amount": "-1000.50",
        }

    def test_renders_dates(self):
        record = _record()
        record.extra_data = date(2024, 2, 1)
        parsed = json.loads(StructuredFormatter().format(record))
        assert parsed["extra_data"] == "2024-02-01"

    def test_formats_engine_error_payload(self):
        """Test engine exceptions add their error code and details."""
        formatter = StructuredFormatter()
        try:
            raise InsufficientSharesError("AAPL", Decimal("150"), Decimal("100"))
        except InsufficientSharesError:
            record = _record("failed", level=logging.ERROR, exc_info=sys.exc_info())
            parsed = json.loads(formatter.format(record))

        assert parsed["exception"]["type"] == "InsufficientSharesError"
        assert parsed["exception"]["error_code"] == "INSUFFICIENT_SHARES"
        assert parsed["exception"]["details"] == [
            {"symbol": "AAPL", "requested": "150", "available": "100"}
        ]


class TestConsoleFormatter:
    """Tests for colored console log formatting."""

    def test_formats_readable_output(self):
        output = ConsoleFormatter().format(_record("hello", name="tax.module"))
        assert "tax.module" in output
        assert "hello" in output

    def test_includes_context_info(self):
        with PortfolioContext(portfolio_id="abc"):
            output = ConsoleFormatter().format(_record())
        assert "portfolio_id=abc" in output

    def test_has_color_codes(self):
        output = ConsoleFormatter().format(_record(level=logging.ERROR))
        assert "\033[31m" in output  # Red for ERROR

    def test_includes_lot_tags(self):
        record = _record()
        record.symbol = "AAPL"
        record.loss_lot_id = "LOT-000001"
        output = ConsoleFormatter().format(record)
        assert "symbol=AAPL" in output
        assert "loss_lot_id=LOT-000001" in output

    def test_shows_engine_error_code(self):
        try:
            raise InsufficientSharesError("AAPL", 150, 100)
        except InsufficientSharesError:
            record = _record("failed", level=logging.ERROR, exc_info=sys.exc_info())
            output = ConsoleFormatter().format(record)
        assert "(INSUFFICIENT_SHARES)" in output


class TestConfigureLogging:
    """Tests for the configure_logging setup function."""

    def test_json_format(self, restore_root_logger):
        configure_logging(LoggingConfig(format=LogFormat.JSON))
        assert len(restore_root_logger.handlers) == 1
        assert isinstance(restore_root_logger.handlers[0].formatter, StructuredFormatter)

    def test_console_format(self, restore_root_logger):
        configure_logging(LoggingConfig(format=LogFormat.CONSOLE))
        assert isinstance(restore_root_logger.handlers[0].formatter, ConsoleFormatter)

    def test_sets_log_level(self, restore_root_logger):
        configure_logging(LoggingConfig(level=LogLevel.DEBUG))
        assert restore_root_logger.level == logging.DEBUG

    def test_env_var_override_level(self, restore_root_logger, monkeypatch):
        monkeypatch.setenv("TAX_ENGINE_LOG_LEVEL", "debug")
        configure_logging(LoggingConfig(level=LogLevel.ERROR))
        assert restore_root_logger.level == logging.DEBUG

    def test_env_var_override_format(self, restore_root_logger, monkeypatch):
        monkeypatch.setenv("TAX_ENGINE_LOG_FORMAT", "CONSOLE")
        configure_logging(LoggingConfig(format=LogFormat.JSON))
        assert isinstance(restore_root_logger.handlers[0].formatter, ConsoleFormatter)

    def test_returns_installed_handler(self, restore_root_logger):
        stream = io.StringIO()
        handler = configure_logging(stream=stream)
        assert restore_root_logger.handlers == [handler]
        assert handler.stream is stream

    def test_lot_detail_off_by_default(self, restore_root_logger):
        """Test per-lot DEBUG lines stay off until requested."""
        configure_logging(LoggingConfig(level=LogLevel.DEBUG))
        for name in LOT_DETAIL_LOGGERS:
            assert logging.getLogger(name).getEffectiveLevel() == logging.INFO

        configure_logging(LoggingConfig(level=LogLevel.DEBUG, lot_detail=True))
        for name in LOT_DETAIL_LOGGERS:
            assert logging.getLogger(name).getEffectiveLevel() == logging.DEBUG

    def test_env_var_enables_lot_detail(self, restore_root_logger, monkeypatch):
        monkeypatch.setenv("TAX_ENGINE_LOT_DETAIL", "true")
        configure_logging(LoggingConfig(level=LogLevel.DEBUG))
        assert logging.getLogger("src.tax_engine.ledger").getEffectiveLevel() == logging.DEBUG

    def test_computation_logs_wash_sale_as_json(self, restore_root_logger):
        """Test an engine run emits wash sale lines with lot fields and context."""
        stream = io.StringIO()
        configure_logging(LoggingConfig(format=LogFormat.JSON), stream=stream)

        TaxEngine().compute(
            events=[
                TradeEvent("AAPL", "buy", 100, 50, date(2024, 1, 1)),
                TradeEvent("AAPL", "sell", 100, 40, date(2024, 2, 1)),
                TradeEvent("AAPL", "buy", 100, 42, date(2024, 2, 15)),
            ],
            income=85000,
            filing_status="single",
            as_of=date(2024, 12, 31),
            portfolio_id="pf_wash",
        )

        entries = [json.loads(line) for line in stream.getvalue().splitlines()]
        wash = [e for e in entries if e["logger"] == "src.tax_engine.wash_sales" and "lot" in e]
        assert len(wash) == 1
        assert wash[0]["portfolio_id"] == "pf_wash"
        assert wash[0]["lot"] == {
            "symbol": "AAPL",
            "loss_lot_id": "LOT-000001",
            "replacement_lot_id": "LOT-000002",
            "amount": "1000",
        }
        # Per-lot ledger DEBUG lines are filtered at INFO
        assert not any(e["level"] == "DEBUG" for e in entries)


class TestPerformanceLogging:
    """Tests for performance timing decorator and context manager."""

    def test_log_performance_returns_result(self):
        @log_performance(threshold_ms=10000)
        def fast_func():
            return 42

        assert fast_func() == 42

    def test_log_performance_preserves_name(self):
        @log_performance()
        def my_function():
            """My docstring."""

        assert my_function.__name__ == "my_function"
        assert my_function.__doc__ == "My docstring."

    def test_log_performance_logs_and_reraises(self, caplog):
        @log_performance(threshold_ms=10000)
        def failing_func():
            raise ValueError("test error")

        with caplog.at_level(logging.ERROR):
            with pytest.raises(ValueError, match="test error"):
                failing_func()
        assert "failing_func failed" in caplog.text

    def test_slow_call_logs_warning(self, caplog):
        @log_performance(threshold_ms=0)
        def slow_func():
            return None

        with caplog.at_level(logging.WARNING):
            slow_func()
        assert "Slow operation" in caplog.text

    def test_performance_timer_records_duration(self):
        with PerformanceTimer("scan") as timer:
            time.sleep(0.01)
        assert timer.duration_ms >= 10

    def test_performance_timer_with_exception(self):
        with pytest.raises(ValueError):
            with PerformanceTimer("failing_op") as timer:
                raise ValueError("oops")
        assert timer.duration_ms >= 0
