"""Health check endpoint router."""

from __future__ import annotations

import logging
import time
from typing import Literal

from fastapi import APIRouter
from pydantic import BaseModel, Field

from imageshelter.web.dependencies import AppSettings

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])

# Track application start time
_start_time = time.time()


class HealthResponse(BaseModel):
    """Health check response model."""

    status: Literal["ok"]
    version: str
    uptime_seconds: float = Field(description="Seconds since the application module was loaded")
    encryption: bool = Field(description="Whether stored objects are encrypted")


@router.get("/health", response_model=HealthResponse)
async def health_check(settings: AppSettings) -> HealthResponse:
    """Report liveness and basic service information."""
    from imageshelter import __version__

    return HealthResponse(
        status="ok",
        version=__version__,
        uptime_seconds=round(time.time() - _start_time, 2),
        encryption=settings.encrypt,
    )
