"""Watched project API endpoints."""

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, Field

from polywatch.api.deps import RegistryDep
from polywatch.domain.enums import ProjectType
from polywatch.domain.models import ProjectKey, WatchedProject

router = APIRouter(prefix="/watches", tags=["watches"])


class WatchCreate(BaseModel):
    """Request model for watching a project."""

    type: ProjectType = ProjectType.META
    slug: str = Field(..., min_length=1, max_length=200)
    locale: str = Field(..., min_length=2, max_length=20)


class SnapshotResponse(BaseModel):
    """Response model for the last snapshot."""

    translated: int
    untranslated: int
    fuzzy: int
    waiting: int
    total: int
    completion_pct: float
    needs_attention: int
    fetched_at: str


class WatchResponse(BaseModel):
    """Response model for a watched project."""

    type: ProjectType
    slug: str
    locale: str
    project_type_label: str
    added_at: str
    next_check_at: str
    last_checked_at: str | None
    last_snapshot: SnapshotResponse | None


def _to_response(entry: WatchedProject) -> WatchResponse:
    snapshot = entry.last_snapshot
    return WatchResponse(
        type=entry.key.type,
        slug=entry.key.slug,
        locale=entry.key.locale,
        project_type_label=entry.project_type_label,
        added_at=entry.added_at.isoformat(),
        next_check_at=entry.next_check_at.isoformat(),
        last_checked_at=entry.last_checked_at.isoformat() if entry.last_checked_at else None,
        last_snapshot=(
            SnapshotResponse(
                translated=snapshot.translated,
                untranslated=snapshot.untranslated,
                fuzzy=snapshot.fuzzy,
                waiting=snapshot.waiting,
                total=snapshot.total,
                completion_pct=float(snapshot.completion_pct),
                needs_attention=snapshot.needs_attention,
                fetched_at=snapshot.fetched_at.isoformat(),
            )
            if snapshot
            else None
        ),
    )


@router.get("")
async def list_watches(registry: RegistryDep) -> list[WatchResponse]:
    """List watched projects."""
    return [_to_response(entry) for entry in await registry.list_all()]


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_watch(data: WatchCreate, registry: RegistryDep) -> WatchResponse:
    """Watch a project after a trial scrape."""
    key = ProjectKey.create(data.type, data.slug, data.locale)
    if not key.slug:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Invalid project slug",
        )

    result = await registry.watch(key)
    if not result.ok:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"issue": result.issue.value if result.issue else None, "reason": result.detail},
        )

    entry = await registry.get(key)
    if entry is None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Project was removed while being added",
        )
    return _to_response(entry)


@router.delete("/{project_type}/{slug}/{locale}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_watch(project_type: ProjectType, slug: str, locale: str, registry: RegistryDep) -> None:
    """Stop watching a project. Deleting an unknown project is not an error."""
    await registry.unwatch(ProjectKey.create(project_type, slug, locale))
