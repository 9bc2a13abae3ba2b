"""Request/response models for the cache endpoints."""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field


class CacheWriteRequest(BaseModel):
    key: Optional[str] = Field(default=None, description="Cache key; prefix selects the default TTL.")
    data: Any = Field(default=None, description="JSON value to store.")
    ttl: Optional[int] = Field(default=None, gt=0, description="Explicit TTL in seconds.")


class CacheReadResponse(BaseModel):
    data: Any = None


class CacheWriteResponse(BaseModel):
    success: bool = True
