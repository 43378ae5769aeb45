"""Prometheus metrics middleware for HTTP request instrumentation.

Collects HTTP request metrics:
- Request count by method, endpoint, status code
- Request duration histogram
- In-flight requests gauge
"""

import time

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from ftp_s3_gateway.config import HEALTH_PATH, METRICS_PATH
from ftp_s3_gateway.metrics import (
    REQUEST_COUNT,
    REQUEST_DURATION,
    REQUEST_IN_FLIGHT,
)


def normalize_path(path: str) -> str:
    """
    Normalize path for metrics labels to avoid high cardinality.

    Bucket names and object keys are replaced with placeholders; fixed
    service paths are kept as they are.

    Examples:
        / -> /
        /health -> /health
        /default -> /{bucket}
        /default/reports/2024/q1.csv -> /{bucket}/{key}
    """
    if path in ("/", HEALTH_PATH, METRICS_PATH):
        return path

    parts = path.strip("/").split("/", 1)
    if len(parts) == 1:
        return "/{bucket}"
    return "/{bucket}/{key}"


class MetricsMiddleware(BaseHTTPMiddleware):
    """
    Middleware that collects Prometheus metrics for HTTP requests.

    Metrics collected:
    - ftp_s3_gateway_requests_total: Counter by method, endpoint, status_code
    - ftp_s3_gateway_request_duration_seconds: Histogram by method, endpoint
    - ftp_s3_gateway_requests_in_flight: Gauge by method
    """

    # Scrapes of the metrics endpoint itself are not counted
    SKIP_PATHS = {METRICS_PATH}

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        method = request.method

        if request.url.path in self.SKIP_PATHS:
            return await call_next(request)

        endpoint = normalize_path(request.url.path)

        REQUEST_IN_FLIGHT.labels(method=method).inc()
        start_time = time.perf_counter()

        try:
            response = await call_next(request)
            status_code = str(response.status_code)
        except Exception:
            status_code = "500"
            raise
        finally:
            duration = time.perf_counter() - start_time
            REQUEST_DURATION.labels(method=method, endpoint=endpoint).observe(duration)
            REQUEST_COUNT.labels(
                method=method,
                endpoint=endpoint,
                status_code=status_code
            ).inc()
            REQUEST_IN_FLIGHT.labels(method=method).dec()

        return response
