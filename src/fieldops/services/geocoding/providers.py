"""Geocoding providers reached by the geo lookup adapter."""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Mapping, Optional, Protocol

import httpx

from ...config import settings
from ...data.locations_repository import load_location_index
from ...models.domain import Coordinate

logger = logging.getLogger(__name__)


class GeocodingProvider(Protocol):
    def geocode(self, location_ref: str) -> Optional[Coordinate]:
        """Return the coordinate for a reference, or None when it cannot be resolved."""
        ...


class LocationIndexGeocoder:
    """Resolve location ids against the stored location index."""

    def __init__(self, index: Mapping[str, Coordinate] | None = None, source: Path | None = None) -> None:
        self._index = index if index is not None else load_location_index(source)

    def geocode(self, location_ref: str) -> Optional[Coordinate]:
        return self._index.get(location_ref.strip())


class NominatimGeocoder:
    """HTTP client for a Nominatim-compatible ``/search`` endpoint."""

    def __init__(
        self,
        base_url: str | None = None,
        user_agent: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        backoff_seconds: float | None = None,
    ) -> None:
        self.base_url = (base_url or settings.geocoder_base_url or "").rstrip("/")
        if not self.base_url:
            raise ValueError("Geocoder base URL is not configured.")
        self.user_agent = user_agent or settings.geocoder_user_agent
        self.timeout = timeout if timeout is not None else settings.provider_timeout_seconds
        self.max_retries = max_retries if max_retries is not None else settings.provider_max_retries
        self.backoff_seconds = backoff_seconds if backoff_seconds is not None else settings.provider_backoff_seconds

    def _get_client(self) -> httpx.Client:
        return httpx.Client(
            timeout=httpx.Timeout(self.timeout, connect=min(self.timeout, 5.0)),
            headers={"User-Agent": self.user_agent},
        )

    def geocode(self, location_ref: str) -> Optional[Coordinate]:
        params = {"q": location_ref, "format": "jsonv2", "limit": 1}
        url = f"{self.base_url}/search"
        client = self._get_client()
        try:
            attempt = 0
            while True:
                try:
                    response = client.get(url, params=params)
                    response.raise_for_status()
                    results = response.json()
                    break
                except httpx.HTTPStatusError as exc:
                    status_code = exc.response.status_code
                    if status_code < 500 and status_code != 429:
                        raise
                    attempt += 1
                    if attempt > self.max_retries:
                        raise
                    time.sleep(self.backoff_seconds * attempt)
                except (httpx.TimeoutException, httpx.NetworkError) as exc:
                    attempt += 1
                    if attempt > self.max_retries:
                        logger.warning("Geocoder request for '%s' failed after %d attempts: %s", location_ref, attempt, exc)
                        raise
                    wait_time = self.backoff_seconds * (2 ** (attempt - 1))
                    logger.debug("Geocoder retry in %.1fs (attempt %d/%d)", wait_time, attempt, self.max_retries)
                    time.sleep(wait_time)
        finally:
            client.close()

        if not isinstance(results, list) or not results:
            return None
        first = results[0]
        try:
            return Coordinate(float(first["lat"]), float(first["lon"]))
        except (KeyError, TypeError, ValueError):
            logger.warning("Geocoder returned an unreadable result for '%s': %s", location_ref, first)
            return None


def build_geocoding_provider() -> GeocodingProvider:
    """HTTP geocoder when a base URL is configured, else the stored location index."""
    if settings.geocoder_base_url:
        return NominatimGeocoder()
    return LocationIndexGeocoder()
