"""AWS Signature V4 authentication middleware.

Wraps the whole gateway. Per request:
- credential store empty, or a public path (health check, metrics) -> pass through
- otherwise the Authorization header must carry a valid SigV4 signature,
  else the request is answered with 401 and never reaches a route
"""

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.types import ASGIApp

from ftp_s3_gateway import responses, sigv4
from ftp_s3_gateway.config import Settings
from ftp_s3_gateway.credentials import CredentialStore
from ftp_s3_gateway.errors import AuthError
from ftp_s3_gateway.metrics import AUTH_FAILURES_TOTAL

logger = structlog.get_logger()


def _raw_path(request: Request) -> str:
    """The path exactly as the client sent (and signed) it."""
    raw_path = request.scope.get("raw_path")
    if raw_path:
        return raw_path.decode("latin-1").split("?", 1)[0]
    return request.url.path


def _header_map(request: Request) -> dict[str, str]:
    headers: dict[str, str] = {}
    for name in request.headers.keys():
        if name not in headers:
            headers[name] = ",".join(request.headers.getlist(name))
    return headers


class SigV4AuthMiddleware(BaseHTTPMiddleware):
    """Stateless SigV4 verification in front of the S3 routes."""

    def __init__(self, app: ASGIApp, store: CredentialStore, config: Settings):
        super().__init__(app)
        self.store = store
        self.config = config

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        path = request.url.path

        if self.store.is_empty or path in self.config.public_paths:
            logger.debug(
                "auth_skipped",
                path=path,
                no_credentials=self.store.is_empty,
                public_path=path in self.config.public_paths,
            )
            return await call_next(request)

        try:
            credential = sigv4.verify_request(
                method=request.method,
                path=_raw_path(request),
                query_string=request.scope.get("query_string", b"").decode("latin-1"),
                headers=_header_map(request),
                store=self.store,
                region=self.config.s3_region,
                max_age_seconds=self.config.s3_sig_v4_max_age_seconds,
            )
        except AuthError as e:
            AUTH_FAILURES_TOTAL.labels(code=e.code).inc()
            logger.info(
                "auth_rejected",
                method=request.method,
                path=path,
                code=e.code,
                reason=e.message,
            )
            return responses.error_response(e.code, e.message, path, status_code=e.status_code)

        logger.debug("auth_granted", access_key=credential.access_key_id, method=request.method, path=path)
        return await call_next(request)
