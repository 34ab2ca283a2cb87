"""Manual tick and run status endpoints."""

from typing import Any

from fastapi import APIRouter, status
from pydantic import BaseModel

from polywatch.api.deps import ServicesDep, SurveillanceDep

router = APIRouter(prefix="/runs", tags=["runs"])


class NotifierTestResponse(BaseModel):
    """Response model for the notifier self-test."""

    ok: bool
    issue: str | None = None
    detail: str | None = None


@router.post("/scrape")
async def run_scrape(surveillance: SurveillanceDep, force: bool = True) -> dict[str, Any]:
    """Run one scrape tick now."""
    report = await surveillance.run_scrape_tick(force=force)
    return report.to_dict()


@router.post("/digest")
async def run_digest(surveillance: SurveillanceDep) -> dict[str, Any]:
    """Run one digest tick now."""
    report = await surveillance.run_digest_tick()
    return report.to_dict()


@router.post("/abort", status_code=status.HTTP_202_ACCEPTED)
async def abort_run(surveillance: SurveillanceDep) -> dict[str, bool]:
    """Ask the running tick to stop before its next project."""
    await surveillance.request_abort()
    return {"abort_requested": True}


@router.get("/status")
async def run_status(services: ServicesDep) -> dict[str, Any]:
    """Last runs, watched count, backoff count and abort flag."""
    result = await services.surveillance.status()
    result["projects_in_backoff"] = await services.backoff.blocked_count()
    result["global_backoff"] = await services.backoff.is_globally_blocked()
    return result


@router.post("/test-notification")
async def test_notification(surveillance: SurveillanceDep) -> NotifierTestResponse:
    """Send a test message to the default Slack channel."""
    result = await surveillance.test_notifier()
    return NotifierTestResponse(
        ok=result.ok,
        issue=result.issue.value if result.issue else None,
        detail=result.detail,
    )
