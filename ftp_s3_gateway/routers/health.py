"""Health check endpoint. Never touches the FTP backend."""

import structlog
from fastapi import APIRouter
from fastapi.responses import PlainTextResponse

from ftp_s3_gateway.config import HEALTH_PATH

logger = structlog.get_logger()
router = APIRouter(tags=["health"])


@router.get(
    HEALTH_PATH,
    response_class=PlainTextResponse,
    summary="Health check",
    description="Liveness probe. Bypasses authentication and the FTP backend.",
)
async def health_check() -> PlainTextResponse:
    logger.debug("health_check")
    return PlainTextResponse("ok")
