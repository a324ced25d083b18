"""Routes for single book lookups."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Response

from ...services.cache import ClientMaxAge, cache_control
from ..dependencies import ServiceContainer, get_services
from ..schemas.common import SuccessResponse

router = APIRouter(prefix="/api/books", tags=["books"])


@router.get("/{source}/{book_id}", response_model=SuccessResponse)
async def get_book(
    source: str,
    book_id: str,
    response: Response,
    services: ServiceContainer = Depends(get_services),
) -> SuccessResponse:
    """Return one catalog record by source namespace and identifier."""

    book = await services.orchestrator.get_book(source, book_id)
    response.headers["Cache-Control"] = cache_control(ClientMaxAge.BOOK_METADATA)
    return SuccessResponse(data=book.to_dict())


__all__ = ["router"]
