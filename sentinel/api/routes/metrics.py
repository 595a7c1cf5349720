"""
Prometheus metrics API routes.
"""

from fastapi import APIRouter
from fastapi.responses import PlainTextResponse

from sentinel.services.metrics_service import metrics_collector

router = APIRouter()


@router.get(
    "/metrics",
    response_class=PlainTextResponse,
    summary="Prometheus metrics endpoint",
    description="Exposes check, payment and scheduler metrics in Prometheus text format.",
)
async def get_metrics() -> PlainTextResponse:
    return PlainTextResponse(metrics_collector.get_prometheus_metrics())
