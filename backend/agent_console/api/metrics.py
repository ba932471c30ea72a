"""Aggregate metrics and recent log lines for the console's metrics pane."""

from fastapi import APIRouter, Depends, Query

from agent_console.dependencies import get_metrics
from agent_console.observability.logs import LogLine, recent_logs
from agent_console.observability.metrics import AggregateMetrics, MetricsAggregator

router = APIRouter()


@router.get("/metrics", response_model=AggregateMetrics)
async def aggregate_metrics(
    metrics: MetricsAggregator = Depends(get_metrics),
) -> AggregateMetrics:
    """Latency, throughput and error rate over the last 24 hours."""
    return metrics.get_aggregate_metrics()


@router.get("/logs", response_model=list[LogLine])
async def logs(limit: int = Query(20, ge=1, le=200)) -> list[LogLine]:
    """Most recent log lines, newest first."""
    return recent_logs.recent(limit)
