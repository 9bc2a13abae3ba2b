"""Geospatial helper functions."""

from __future__ import annotations

import math
from typing import Sequence

import numpy as np
from sklearn.metrics.pairwise import haversine_distances

from ..models.domain import Coordinate

EARTH_RADIUS_KM = 6371.0


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Compute distance between two coordinates using the Haversine formula."""

    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def coordinate_distance_km(a: Coordinate, b: Coordinate) -> float:
    return haversine_km(a.latitude, a.longitude, b.latitude, b.longitude)


def haversine_matrix_km(coordinates: Sequence[Coordinate]) -> np.ndarray:
    """Pairwise great-circle distances (km) for a list of coordinates."""
    if not coordinates:
        return np.zeros((0, 0))
    radians = np.radians([[c.latitude, c.longitude] for c in coordinates])
    return haversine_distances(radians) * EARTH_RADIUS_KM
