"""Health check endpoints."""

from fastapi import APIRouter
from pydantic import BaseModel

from polywatch import __version__
from polywatch.api.deps import SchedulerDep, ServicesDep

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str


class ReadyResponse(BaseModel):
    """Readiness check response."""

    status: str
    store: str
    scheduler: str
    slack: str


@router.get("/health")
async def health_check() -> HealthResponse:
    """Return basic health status."""
    return HealthResponse(status="ok", version=__version__)


@router.get("/health/ready")
async def readiness_check(services: ServicesDep, scheduler: SchedulerDep) -> ReadyResponse:
    """Readiness check - verifies store and scheduler are ready."""
    try:
        await services.store.keys("health:")
        store_status = "ok"
    except Exception as e:
        store_status = f"error: {e}"

    if scheduler is None:
        scheduler_status = "not configured"
    elif scheduler.is_running:
        scheduler_status = "ok"
    else:
        scheduler_status = "stopped"

    slack_status = "ok" if services.notifier.is_ready() else "not configured"
    overall_status = "ok" if store_status == "ok" and scheduler_status == "ok" else "degraded"

    return ReadyResponse(
        status=overall_status,
        store=store_status,
        scheduler=scheduler_status,
        slack=slack_status,
    )
