"""Structured Logging & Computation Tracing.

Provides structured JSON logging, computation/portfolio ID binding,
and performance timing for the tax engine.
"""

from src.logging_config.config import LogFormat, LoggingConfig, LogLevel
from src.logging_config.context import PortfolioContext, generate_computation_id
from src.logging_config.performance import PerformanceTimer, log_performance
from src.logging_config.setup import ConsoleFormatter, StructuredFormatter, configure_logging

__all__ = [
    "ConsoleFormatter",
    "LogFormat",
    "LogLevel",
    "LoggingConfig",
    "PerformanceTimer",
    "PortfolioContext",
    "StructuredFormatter",
    "configure_logging",
    "generate_computation_id",
    "log_performance",
]
