"""Read-only routes for the book of the day."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from ...errors import NotFound
from ..dependencies import ServiceContainer, get_services
from ..schemas.common import SuccessResponse

router = APIRouter(prefix="/api/daily-pick", tags=["daily-pick"])


@router.get("", response_model=SuccessResponse)
async def current_daily_pick(
    services: ServiceContainer = Depends(get_services),
) -> SuccessResponse:
    record = await services.daily_pick.current()
    if record is None:
        raise NotFound("No daily pick has been made yet")
    return SuccessResponse(data=record.to_dict())


@router.get("/stats", response_model=SuccessResponse)
async def daily_pick_stats(
    services: ServiceContainer = Depends(get_services),
) -> SuccessResponse:
    stats = await services.daily_pick.stats()
    return SuccessResponse(data=stats.to_dict())


__all__ = ["router"]
