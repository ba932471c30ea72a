"""Process-wide rolling metrics for completed and failed assistant replies."""

from __future__ import annotations

from collections import deque
from datetime import datetime, timedelta
from typing import Optional

from pydantic import BaseModel, Field

from agent_console.models.base import CamelModel, utcnow

MAX_SAMPLES = 200
METRICS_WINDOW = timedelta(hours=24)


class MessageMetric(BaseModel):
    """Timing sample for one finalized assistant message."""

    first_token_latency_ms: float
    tokens_per_sec: float
    recorded_at: datetime = Field(default_factory=utcnow)


class ErrorMetric(BaseModel):
    recorded_at: datetime = Field(default_factory=utcnow)


class AggregateMetrics(CamelModel):
    avg_first_token_latency_ms: Optional[int] = None
    avg_tokens_per_sec: Optional[float] = None
    error_rate_24h: float = Field(default=0.0, alias="errorRate24h")


class MetricsAggregator:
    """Two bounded rings of samples, aggregated over the last 24 hours.

    Both bounds apply: only the newest ``MAX_SAMPLES`` of each kind are kept,
    and of those only samples recorded inside the window count.
    """

    def __init__(self, max_samples: int = MAX_SAMPLES) -> None:
        self._messages: deque[MessageMetric] = deque(maxlen=max_samples)
        self._errors: deque[ErrorMetric] = deque(maxlen=max_samples)

    def record_message_metric(self, metric: MessageMetric) -> None:
        self._messages.append(metric)

    def record_error_metric(self, recorded_at: datetime | None = None) -> None:
        self._errors.append(ErrorMetric(recorded_at=recorded_at or utcnow()))

    def get_aggregate_metrics(self, now: datetime | None = None) -> AggregateMetrics:
        cutoff = (now or utcnow()) - METRICS_WINDOW
        recent_messages = [m for m in self._messages if m.recorded_at >= cutoff]
        recent_errors = [e for e in self._errors if e.recorded_at >= cutoff]

        if not recent_messages:
            avg_latency = None
            avg_rate = None
        else:
            count = len(recent_messages)
            avg_latency = round(
                sum(m.first_token_latency_ms for m in recent_messages) / count
            )
            avg_rate = round(sum(m.tokens_per_sec for m in recent_messages) / count, 2)

        # Errors per completed message; the denominator floors at one.
        operations = max(len(recent_messages), 1)
        error_rate = round(min(len(recent_errors) / operations, 1), 2)

        return AggregateMetrics(
            avg_first_token_latency_ms=avg_latency,
            avg_tokens_per_sec=avg_rate,
            error_rate_24h=error_rate,
        )

    def reset(self) -> None:
        self._messages.clear()
        self._errors.clear()
