"""Health endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from ...services.cache import ExpiringCache, get_cache

router = APIRouter(tags=["health"])


@router.get("/health", status_code=status.HTTP_200_OK)
def health_root() -> dict:
    """Simple health check endpoint that doesn't require any dependencies."""
    return {"status": "ok"}


def _get_osrm_health_check():
    """Lazy import to avoid startup failures."""
    from ...services.routing.osrm_client import check_health as osrm_health_check
    return osrm_health_check


@router.get("/health/osrm", status_code=status.HTTP_200_OK)
def health_osrm() -> dict:
    """Check OSRM service health."""
    osrm_health_check = _get_osrm_health_check()
    return {"service": "osrm", "healthy": osrm_health_check()}


@router.get("/health/cache", status_code=status.HTTP_200_OK)
def health_cache(cache: ExpiringCache = Depends(get_cache)) -> dict:
    """Report live cache entries after sweeping expired ones."""
    purged = cache.purge_expired()
    return {
        "service": "cache",
        "healthy": True,
        "entries": len(cache),
        "purged": purged,
        "ttls": {category.value: seconds for category, seconds in cache.ttls.items()},
    }
