"""
Health Check Endpoints

Probes for the reservation service: liveness, readiness (database, Redis
and the engine's storage failure streak) and a development-only detail
view.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, HTTPException, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from app.config import settings
from app.core.reservations.engine import get_reservation_engine
from app.infra.database import check_db_health
from app.infra.redis import check_redis_health

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["Health"])

VERSION = "0.1.0"

_start_time: Optional[datetime] = None


def set_start_time() -> None:
    """Record startup time (called from the app lifespan)."""
    global _start_time
    _start_time = datetime.now(timezone.utc)


def get_uptime_seconds() -> Optional[float]:
    if _start_time is None:
        return None
    return (datetime.now(timezone.utc) - _start_time).total_seconds()


class HealthResponse(BaseModel):
    status: str
    timestamp: datetime
    version: str
    environment: str


class ReadyResponse(BaseModel):
    """Readiness with one status label per dependency."""
    status: str
    timestamp: datetime
    checks: dict[str, str]


class LiveResponse(BaseModel):
    status: str
    timestamp: datetime
    uptime_seconds: Optional[float] = None


class DetailedHealthResponse(BaseModel):
    """Readiness checks plus uptime and the reservation settings in effect."""
    status: str
    timestamp: datetime
    version: str
    environment: str
    uptime_seconds: Optional[float]
    checks: dict[str, str]
    config: dict[str, str]


async def _dependency_checks() -> dict[str, str]:
    """Database, Redis and engine status, each "ok" or a failure label."""
    checks = {
        "database": "ok" if await check_db_health() else "failed",
        "redis": "ok" if await check_redis_health() else "failed",
    }

    engine = get_reservation_engine()
    if engine.consecutive_failures >= engine.failure_threshold:
        checks["reservation_engine"] = f"failing ({engine.consecutive_failures} errors)"
    else:
        checks["reservation_engine"] = "ok"

    for name, result in checks.items():
        if result != "ok":
            logger.warning(f"Health check: {name} {result}")
    return checks


def _all_ok(checks: dict[str, str]) -> bool:
    return all(v == "ok" for v in checks.values())


@router.get(
    "",
    response_model=HealthResponse,
    summary="Process health",
    description="200 while the app is up. Dependencies are not checked.",
)
async def health() -> HealthResponse:
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(timezone.utc),
        version=VERSION,
        environment=settings.app_env,
    )


@router.get(
    "/ready",
    response_model=ReadyResponse,
    summary="Readiness probe",
    description="503 while the database or Redis is unreachable, or while "
    "wizard events keep failing on storage.",
    responses={503: {"description": "A dependency is failing"}},
)
async def ready() -> ReadyResponse:
    """
    Readiness of the wizard.

    The engine check fails once ``infra_failure_alert_threshold``
    consecutive events have hit storage errors, and recovers on the next
    event that succeeds.
    """
    checks = await _dependency_checks()
    response = ReadyResponse(
        status="ready" if _all_ok(checks) else "not_ready",
        timestamp=datetime.now(timezone.utc),
        checks=checks,
    )

    if not _all_ok(checks):
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content=response.model_dump(mode="json"),
        )
    return response


@router.get(
    "/live",
    response_model=LiveResponse,
    summary="Liveness probe",
)
async def live() -> LiveResponse:
    return LiveResponse(
        status="alive",
        timestamp=datetime.now(timezone.utc),
        uptime_seconds=get_uptime_seconds(),
    )


@router.get(
    "/detailed",
    response_model=DetailedHealthResponse,
    summary="Detailed health (development only)",
    include_in_schema=settings.is_development,
)
async def detailed() -> DetailedHealthResponse:
    if not settings.is_development:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not found")

    checks = await _dependency_checks()

    # No URLs: they carry credentials
    config = {
        "app_name": settings.app_name,
        "environment": settings.app_env,
        "debug": str(settings.debug),
        "bot_timezone": settings.bot_timezone,
        "default_room_capacity": str(settings.default_room_capacity),
        "wizard_session_ttl": str(settings.wizard_session_ttl),
        "notifications": "webhook" if settings.notification_webhook_url else "log",
    }

    return DetailedHealthResponse(
        status="healthy" if _all_ok(checks) else "degraded",
        timestamp=datetime.now(timezone.utc),
        version=VERSION,
        environment=settings.app_env,
        uptime_seconds=get_uptime_seconds(),
        checks=checks,
        config=config,
    )
