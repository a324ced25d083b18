"""Response envelopes shared by every route."""

from __future__ import annotations

from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class SuccessResponse(BaseModel):
    """``{"success": true, "data": ...}`` envelope."""

    success: bool = True
    data: Any = None


class ErrorResponse(BaseModel):
    """Body returned for every handled error."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool = False
    error: str
    message: str
    details: Optional[List[str]] = Field(default=None)
