"""Prometheus metrics definitions for the FTP S3 gateway.

This module defines all Prometheus metrics used for observability:
- HTTP request metrics (count, duration, in-flight)
- S3 operation metrics (count, duration, bytes transferred)
- FTP backend metrics (operations, reconnects, connection state)
- Process metrics (CPU, memory, file descriptors)
"""

import platform
import time

from prometheus_client import Counter, Gauge, Histogram, Info, ProcessCollector

# Register ProcessCollector for process_* metrics
# Note: ProcessCollector only works on Linux (uses /proc filesystem)
if platform.system() == "Linux":
    try:
        ProcessCollector()
    except ValueError:
        pass  # Already registered by prometheus_client's default registry

# =============================================================================
# Service Health Metrics
# =============================================================================

SERVICE_UP = Gauge(
    "ftp_s3_gateway_up",
    "Whether the gateway is up (1) or down (0)"
)

SERVICE_START_TIME = Gauge(
    "ftp_s3_gateway_start_time_seconds",
    "Unix timestamp when the service started"
)

SERVICE_INFO = Info(
    "ftp_s3_gateway_service",
    "Gateway build and backend information"
)

_start_time = time.time()
SERVICE_START_TIME.set(_start_time)
SERVICE_UP.set(1)

# =============================================================================
# HTTP Request Metrics
# =============================================================================

REQUEST_COUNT = Counter(
    "ftp_s3_gateway_requests_total",
    "Total number of HTTP requests",
    ["method", "endpoint", "status_code"]
)

REQUEST_DURATION = Histogram(
    "ftp_s3_gateway_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0]
)

REQUEST_IN_FLIGHT = Gauge(
    "ftp_s3_gateway_requests_in_flight",
    "Number of HTTP requests currently being processed",
    ["method"]
)

# =============================================================================
# Error Metrics
# =============================================================================

ERROR_COUNT = Counter(
    "ftp_s3_gateway_errors_total",
    "Total number of errors by type",
    ["type", "endpoint"]
)

AUTH_FAILURES_TOTAL = Counter(
    "ftp_s3_gateway_auth_failures_total",
    "Rejected SigV4 authentications by error code",
    ["code"]
)

# =============================================================================
# S3 Operation Metrics
# =============================================================================

S3_OPERATIONS_TOTAL = Counter(
    "ftp_s3_gateway_s3_operations_total",
    "Total number of S3 API operations",
    ["operation", "status"]
)

S3_OPERATION_DURATION = Histogram(
    "ftp_s3_gateway_s3_operation_duration_seconds",
    "S3 API operation duration in seconds",
    ["operation"],
    buckets=[0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 30.0, 60.0]
)

S3_BYTES_IN_TOTAL = Counter(
    "ftp_s3_gateway_s3_bytes_in_total",
    "Total bytes uploaded through PutObject"
)

S3_BYTES_OUT_TOTAL = Counter(
    "ftp_s3_gateway_s3_bytes_out_total",
    "Total bytes downloaded through GetObject"
)

# =============================================================================
# FTP Backend Metrics
# =============================================================================

BACKEND_OPERATIONS_TOTAL = Counter(
    "ftp_s3_gateway_backend_operations_total",
    "Total number of FTP backend operations",
    ["operation", "status"]
)

BACKEND_OPERATION_DURATION = Histogram(
    "ftp_s3_gateway_backend_operation_duration_seconds",
    "FTP backend operation duration in seconds (including a reconnect-and-retry)",
    ["operation"],
    buckets=[0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 30.0, 60.0]
)

BACKEND_RECONNECTS_TOTAL = Counter(
    "ftp_s3_gateway_backend_reconnects_total",
    "Reconnects triggered by transient FTP connectivity failures",
    ["operation"]
)

BACKEND_CONNECTED = Gauge(
    "ftp_s3_gateway_backend_connected",
    "Whether the FTP control connection is currently open (1) or not (0)"
)


def set_service_info(version: str, ftp_address: str, bucket: str) -> None:
    """Set service info metric."""
    SERVICE_INFO.info({
        "version": version,
        "ftp_address": ftp_address,
        "bucket": bucket,
        "python_version": platform.python_version(),
    })
