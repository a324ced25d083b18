"""Pydantic schemas for the discovery web API."""

from __future__ import annotations

from .common import ErrorResponse, SuccessResponse
from .search import SearchPayload, SearchResponse

__all__ = ["ErrorResponse", "SearchPayload", "SearchResponse", "SuccessResponse"]
