"""Prometheus metrics endpoint router.

Exposes /metrics for Prometheus scraping (registered only when
``metrics_enabled`` is set).
"""

from fastapi import APIRouter, Request
from fastapi.responses import PlainTextResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from ftp_s3_gateway.config import METRICS_PATH
from ftp_s3_gateway.metrics import BACKEND_CONNECTED

router = APIRouter(tags=["metrics"])


@router.get(
    METRICS_PATH,
    response_class=PlainTextResponse,
    summary="Prometheus metrics",
    description="Metrics in Prometheus text exposition format.",
)
async def get_metrics(request: Request) -> PlainTextResponse:
    """Return all registered metrics, refreshing the backend connection gauge first."""
    BACKEND_CONNECTED.set(1 if request.app.state.session.connected else 0)

    return PlainTextResponse(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )
