"""
Observability module - Logging, Metrics, and Tracing.
"""

from jovitools.observability.logging import get_logger, log_context, setup_logging
from jovitools.observability.metrics import metrics
from jovitools.observability.tracing import setup_tracing

__all__ = [
    "get_logger",
    "log_context",
    "setup_logging",
    "metrics",
    "setup_tracing",
]
