"""Cache endpoints used by other parts of the application."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ...schemas.cache import CacheReadResponse, CacheWriteRequest, CacheWriteResponse
from ...services.cache import CacheCategory, ExpiringCache, get_cache

router = APIRouter(prefix="/cache", tags=["cache"])


def _require_key(key: Optional[str]) -> str:
    if not key:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No key provided")
    return key


@router.get("", response_model=CacheReadResponse)
def read_entry(
    key: Optional[str] = Query(default=None),
    cache: ExpiringCache = Depends(get_cache),
) -> CacheReadResponse:
    return CacheReadResponse(data=cache.get(_require_key(key)))


@router.post("", response_model=CacheWriteResponse)
def write_entry(payload: CacheWriteRequest, cache: ExpiringCache = Depends(get_cache)) -> CacheWriteResponse:
    if not payload.key or "data" not in payload.model_fields_set:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Key and data are required")
    # Remote callers only signal the category through the key prefix.
    cache.set(payload.key, payload.data, ttl=payload.ttl, category=CacheCategory.from_key(payload.key))
    return CacheWriteResponse()


@router.delete("", response_model=CacheWriteResponse)
def delete_entry(
    key: Optional[str] = Query(default=None),
    cache: ExpiringCache = Depends(get_cache),
) -> CacheWriteResponse:
    cache.delete(_require_key(key))
    return CacheWriteResponse()
