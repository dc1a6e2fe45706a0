"""Metrics endpoint for Prometheus scraping."""

from fastapi import APIRouter, Response

from ..core.observability import get_prometheus_metrics

router = APIRouter()


@router.get(
    "/metrics",
    summary="Prometheus Metrics",
    description="Sync run, catalog reconciliation and HTTP metrics in Prometheus text format",
    response_class=Response,
    tags=["Observability"]
)
async def metrics():
    """
    Return Prometheus metrics.

    Returns:
        Response: Prometheus metrics in text format
    """
    return Response(
        content=get_prometheus_metrics(),
        media_type="text/plain; version=0.0.4; charset=utf-8"
    )
