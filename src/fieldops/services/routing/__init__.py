"""Travel distance lookups."""

from .distance import DistanceProvider, DistanceProviderAdapter, pair_key
from .osrm_client import OSRMClient, check_health

__all__ = [
    "DistanceProvider",
    "DistanceProviderAdapter",
    "OSRMClient",
    "check_health",
    "pair_key",
]
