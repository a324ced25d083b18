"""API routers for the discovery web backend."""

from __future__ import annotations

from .book_routes import router as book_router
from .daily_pick_routes import router as daily_pick_router
from .recommendation_routes import router as recommendation_router
from .search_routes import router as search_router

__all__ = ["book_router", "daily_pick_router", "recommendation_router", "search_router"]
