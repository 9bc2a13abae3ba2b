"""Geocoding providers and the cache-first lookup adapter."""

from .providers import GeocodingProvider, LocationIndexGeocoder, NominatimGeocoder, build_geocoding_provider
from .service import GeoLookupAdapter

__all__ = [
    "GeoLookupAdapter",
    "GeocodingProvider",
    "LocationIndexGeocoder",
    "NominatimGeocoder",
    "build_geocoding_provider",
]
