"""FastAPI dependencies resolving the objects owned by the application.

The backend session and settings are created once by
``create_app`` and kept on ``app.state``; routes receive them through these
dependencies instead of importing module-level globals.

Usage in routers:
    @router.get("/{bucket}")
    async def list_bucket(session: SessionDep, config: SettingsDep):
        ...
"""

from typing import Annotated

from fastapi import Depends, Request

from ftp_s3_gateway.backend.session import BackendSession
from ftp_s3_gateway.config import Settings


def get_session(request: Request) -> BackendSession:
    return request.app.state.session


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


SessionDep = Annotated[BackendSession, Depends(get_session)]
SettingsDep = Annotated[Settings, Depends(get_settings)]
