"""Liveness endpoints."""

import os
import platform
import time
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request

from app.core.config import Settings
from app.core.deps import get_erp_client, get_optional_user
from app.models.user import User
from app.services.business_central import BusinessCentralClient

router = APIRouter(prefix="/health", tags=["health"])

_started = time.monotonic()


def _base(settings: Settings, message: str) -> dict:
    return {
        "success": True,
        "message": message,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "uptime": round(time.monotonic() - _started, 3),
        "environment": settings.ENVIRONMENT,
        "version": settings.VERSION,
    }


@router.get("")
async def health(request: Request):
    settings = request.app.state.settings
    return _base(settings, f"{settings.PROJECT_NAME} is healthy")


@router.get("/detailed")
async def health_detailed(
    request: Request,
    erp: BusinessCentralClient = Depends(get_erp_client),
    user: User | None = Depends(get_optional_user),
):
    """System details plus whether Business Central is configured. No live ERP call is made."""
    settings = request.app.state.settings
    body = _base(settings, f"{settings.PROJECT_NAME} detailed health check")
    body["system"] = {
        "platform": platform.platform(),
        "python": platform.python_version(),
        "pid": os.getpid(),
    }
    body["services"] = {
        "businessCentral": {
            "configured": erp.is_configured,
            "status": "unknown",
        },
    }
    # token state is only shown to signed-in callers
    if user is not None:
        body["services"]["businessCentral"]["tokenCached"] = erp.token_cache.is_valid()
    return body
