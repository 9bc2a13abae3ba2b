"""Domain models for jobs, technicians and dispatch results."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Mapping, Optional


@dataclass(frozen=True, slots=True)
class Coordinate:
    latitude: float
    longitude: float

    @classmethod
    def from_cached(cls, value: Any) -> Optional["Coordinate"]:
        """Rebuild a coordinate from a cache entry, or None if the shape is unknown."""
        if isinstance(value, Coordinate):
            return value
        if isinstance(value, Mapping):
            try:
                return cls(float(value["latitude"]), float(value["longitude"]))
            except (KeyError, TypeError, ValueError):
                return None
        return None


@dataclass(slots=True)
class ServiceJob:
    """A unit of field work scheduled inside a time window."""

    job_id: str
    location_ref: str
    start: datetime
    end: Optional[datetime] = None
    coordinate: Optional[Coordinate] = None
    raw: dict = field(default_factory=dict)

    def located(self, coordinate: Coordinate) -> "ServiceJob":
        return replace(self, coordinate=coordinate)


@dataclass(slots=True)
class Technician:
    """Represents a dispatchable worker; read-only to the scheduler."""

    tech_id: str
    base: Optional[Coordinate] = None
    capacity: Optional[int] = None
    current_load: int = 0


@dataclass(slots=True)
class Cluster:
    """Geographically coherent group of jobs with a running-mean centroid."""

    cluster_id: str
    job_ids: list[str] = field(default_factory=list)
    centroid: Optional[Coordinate] = None
    radius_km: float = 0.0

    def __len__(self) -> int:
        return len(self.job_ids)

    def add(self, job_id: str, coordinate: Coordinate) -> None:
        count = len(self.job_ids)
        if self.centroid is None or count == 0:
            self.centroid = coordinate
        else:
            self.centroid = Coordinate(
                self.centroid.latitude + (coordinate.latitude - self.centroid.latitude) / (count + 1),
                self.centroid.longitude + (coordinate.longitude - self.centroid.longitude) / (count + 1),
            )
        self.job_ids.append(job_id)

    def remove(self, job_id: str, coordinate: Coordinate) -> None:
        if self.centroid is None and len(self.job_ids) > 1:
            raise ValueError(f"Cluster {self.cluster_id} has members but no centroid.")
        self.job_ids.remove(job_id)
        count = len(self.job_ids)
        if count == 0 or self.centroid is None:
            self.centroid = None
            return
        self.centroid = Coordinate(
            (self.centroid.latitude * (count + 1) - coordinate.latitude) / count,
            (self.centroid.longitude * (count + 1) - coordinate.longitude) / count,
        )


@dataclass(slots=True)
class Assignment:
    tech_id: str
    cluster_id: str
    job_ids: list[str]


@dataclass(slots=True)
class DroppedJob:
    job_id: str
    location_ref: str
    reason: str
