"""
Observability module: lifecycle metrics and structured logging.
"""

from browsermesh.observability.metrics import MetricsCollector, Counter, Gauge
from browsermesh.observability.logging import (
    JsonFormatter,
    LogLevel,
    log_context,
    setup_logging,
)

__all__ = [
    "MetricsCollector",
    "Counter",
    "Gauge",
    "JsonFormatter",
    "LogLevel",
    "log_context",
    "setup_logging",
]
