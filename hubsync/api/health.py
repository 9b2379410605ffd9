"""Liveness endpoints."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from hubsync.api.deps import get_settings
from hubsync.config import Settings
from hubsync.services.datetime_service import format_iso, now_utc

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    status: str
    service: str
    time: str


@router.get("/", response_model=HealthResponse)
async def index(settings: Annotated[Settings, Depends(get_settings)]) -> HealthResponse:
    """Service banner."""
    return HealthResponse(status="ok", service=settings.service_name, time=format_iso(now_utc()))


@router.get("/health", response_model=HealthResponse)
async def health_check(settings: Annotated[Settings, Depends(get_settings)]) -> HealthResponse:
    """Health check endpoint for monitoring and load balancers.

    Does not touch the database, so it answers even when storage is down.
    """
    return HealthResponse(
        status="healthy", service=settings.service_name, time=format_iso(now_utc())
    )
