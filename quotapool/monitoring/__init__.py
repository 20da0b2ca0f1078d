"""Logging and metrics."""

from quotapool.monitoring.logging import configure_logging
from quotapool.monitoring.metrics import ClaimRecorder, MetricsExporter, PoolRecorder

__all__ = [
    "configure_logging",
    "ClaimRecorder",
    "MetricsExporter",
    "PoolRecorder",
]
