"""Rolling metrics and the recent-log sink."""

from .logs import RecentLogHandler, install_log_sink, recent_logs
from .metrics import AggregateMetrics, MessageMetric, MetricsAggregator

__all__ = [
    "AggregateMetrics",
    "MessageMetric",
    "MetricsAggregator",
    "RecentLogHandler",
    "install_log_sink",
    "recent_logs",
]
