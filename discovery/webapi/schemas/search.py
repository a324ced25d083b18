"""Schemas for the search endpoint."""

from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from ...errors import ValidationError
from ...services.catalog.types import DEFAULT_MAX_RESULTS, SearchMode, SearchRequest


class SearchPayload(BaseModel):
    """Body of ``POST /api/search``.

    Range checks are left to :meth:`SearchRequest.validate` so every
    violation is reported in one 400 response.
    """

    model_config = ConfigDict(populate_by_name=True)

    query: str = ""
    mode: str = SearchMode.DIRECT.value
    user_id: Optional[str] = Field(default=None, alias="userId")
    max_results: int = Field(default=DEFAULT_MAX_RESULTS, alias="maxResults")
    start_index: int = Field(default=0, alias="startIndex")
    use_cache: bool = Field(default=True, alias="useCache")
    refresh: bool = False

    def to_request(self, user_id: Optional[str] = None) -> SearchRequest:
        try:
            mode = SearchMode.parse(self.mode)
        except ValueError as exc:
            raise ValidationError(
                "Mode must be either 'direct' or 'promptDriven'"
            ) from exc
        request = SearchRequest(
            query=self.query,
            mode=mode,
            user_id=(self.user_id or "").strip() or user_id,
            max_results=self.max_results,
            start_index=self.start_index,
            use_cache=self.use_cache,
            refresh=self.refresh,
        )
        errors = request.validate()
        if errors:
            raise ValidationError(errors)
        return request


class SearchResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    data: Dict[str, Any]
    cached: bool = False
    processing_time_ms: float = Field(default=0.0, alias="processingTimeMs")
