"""Routes for home-feed and book-page recommendations."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response

from ...services.cache import ClientMaxAge, cache_control
from ...services.rate_limiter import BOOK_RECOMMENDATIONS_POLICY, HOME_RECOMMENDATIONS_POLICY
from ...services.recommendations.related import RelatedOptions, split_list_param
from ..dependencies import (
    RequestCaller,
    ServiceContainer,
    get_request_caller,
    get_services,
    require_user,
)
from ..schemas.common import SuccessResponse
from .common import apply_rate_limit

router = APIRouter(prefix="/api/recommendations", tags=["recommendations"])


@router.get("/home", response_model=SuccessResponse)
async def home_recommendations(
    http_request: Request,
    response: Response,
    max_recommendations: int = Query(default=10, alias="maxRecommendations"),
    include_favorites: bool = Query(default=True, alias="includeFavorites"),
    refresh: bool = Query(default=False),
    user_id: str = Depends(require_user),
    services: ServiceContainer = Depends(get_services),
) -> SuccessResponse:
    """Return the personalised home sections for the authenticated caller."""

    apply_rate_limit(http_request, response, services, HOME_RECOMMENDATIONS_POLICY, f"home_recs:{user_id}")
    result = await services.aggregator.home(
        user_id,
        max_recommendations=max_recommendations,
        include_favorites=include_favorites,
        refresh=refresh,
    )
    response.headers["Cache-Control"] = cache_control(ClientMaxAge.RECOMMENDATIONS)
    return SuccessResponse(data=result.to_dict())


@router.get("/book/{book_id}", response_model=SuccessResponse)
async def book_recommendations(
    book_id: str,
    http_request: Request,
    response: Response,
    max_recommendations: int = Query(default=10, alias="maxRecommendations"),
    include_author_books: bool = Query(default=True, alias="includeAuthorBooks"),
    include_genre_books: bool = Query(default=True, alias="includeGenreBooks"),
    exclude_current_book: bool = Query(default=False, alias="excludeCurrentBook"),
    title: Optional[str] = Query(default=None),
    authors: Optional[str] = Query(default=None),
    genres: Optional[str] = Query(default=None),
    refresh: bool = Query(default=False),
    caller: RequestCaller = Depends(get_request_caller),
    services: ServiceContainer = Depends(get_services),
) -> SuccessResponse:
    """Return related-book sections; the caller may be anonymous."""

    owner = caller.user_id or "guest"
    apply_rate_limit(
        http_request, response, services, BOOK_RECOMMENDATIONS_POLICY, f"book_recs:{owner}:{book_id}"
    )
    result = await services.related.related(
        book_id,
        RelatedOptions(
            max_recommendations=max_recommendations,
            include_author_books=include_author_books,
            include_genre_books=include_genre_books,
            exclude_current_book=exclude_current_book,
        ),
        title=title,
        authors=split_list_param(authors),
        genres=split_list_param(genres),
        refresh=refresh,
    )
    response.headers["Cache-Control"] = cache_control(ClientMaxAge.RECOMMENDATIONS)
    return SuccessResponse(data=result.to_dict())


__all__ = ["router"]
