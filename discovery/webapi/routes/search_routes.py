"""Routes for catalog search."""

from __future__ import annotations

import time

from fastapi import APIRouter, BackgroundTasks, Depends, Request, Response

from ... import logging_manager as log_mgr
from ...services.cache import ClientMaxAge, cache_control
from ...services.catalog.types import SearchMode
from ...services.rate_limiter import AI_POLICY, SEARCH_POLICY
from ...services.recommendations.activity import UserActivityStore
from ..dependencies import RequestCaller, ServiceContainer, get_request_caller, get_services
from ..schemas.search import SearchPayload, SearchResponse
from .common import apply_rate_limit

logger = log_mgr.get_logger().getChild("webapi.routes.search")

router = APIRouter(prefix="/api", tags=["search"])


async def record_search_activity(
    activity: UserActivityStore, user_id: str, term: str, mode: str, result_count: int
) -> None:
    """Store the search for trending; failures are logged and dropped."""

    try:
        await activity.record_search(user_id, term, mode, result_count)
    except Exception:
        logger.warning(
            "Failed to record search activity for %s",
            user_id,
            exc_info=True,
            extra={"event": "activity.record_failed"},
        )


@router.post("/search", response_model=SearchResponse)
async def search_books(
    payload: SearchPayload,
    http_request: Request,
    response: Response,
    background_tasks: BackgroundTasks,
    caller: RequestCaller = Depends(get_request_caller),
    services: ServiceContainer = Depends(get_services),
) -> SearchResponse:
    """Search the configured catalogs, directly or through the generator."""

    started = time.perf_counter()
    apply_rate_limit(http_request, response, services, SEARCH_POLICY, f"search:{caller.client_ip}")
    request = payload.to_request(caller.user_id)
    if request.mode is SearchMode.PROMPT_DRIVEN and AI_POLICY in services.limiters:
        services.limiters[AI_POLICY].check(f"ai:{request.user_id or caller.client_ip}")

    result = await services.orchestrator.search(request)

    if request.user_id:
        background_tasks.add_task(
            record_search_activity,
            services.activity,
            request.user_id,
            request.query.strip(),
            request.mode.value,
            len(result.books),
        )
    response.headers["Cache-Control"] = cache_control(
        ClientMaxAge.SEARCH_RESULTS if result.cached else None
    )
    return SearchResponse(
        data=result.to_dict(),
        cached=result.cached,
        processing_time_ms=round((time.perf_counter() - started) * 1000, 2),
    )


__all__ = ["record_search_activity", "router"]
