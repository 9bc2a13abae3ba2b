"""Scheduling error taxonomy.

Per-item failures (``GeocodeFailure``, ``DistanceUnavailable``) are recovered
where they happen; run-level failures (``InvalidWindow``,
``InsufficientTechnicians``, ``JobFetchFailure``) propagate to the caller.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional


class SchedulingError(Exception):
    """Base class for every error raised by the dispatch core."""


class InvalidWindow(SchedulingError, ValueError):
    def __init__(self, start: datetime, end: datetime) -> None:
        self.start = start
        self.end = end
        super().__init__(
            f"Invalid scheduling window: end ({end.isoformat()}) must be after start ({start.isoformat()})."
        )


class GeocodeFailure(SchedulingError):
    def __init__(self, location_ref: str, reason: str) -> None:
        self.location_ref = location_ref
        self.reason = reason
        super().__init__(f"Could not geocode location '{location_ref}': {reason}")


class DistanceUnavailable(SchedulingError):
    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Distance unavailable: {reason}")


class InsufficientTechnicians(SchedulingError):
    def __init__(
        self,
        clusters: int,
        technicians: int,
        window: Optional[tuple[datetime, datetime]] = None,
        reason: Optional[str] = None,
    ) -> None:
        self.clusters = clusters
        self.technicians = technicians
        self.window = window
        self.reason = reason or f"{clusters} clusters requested but only {technicians} technicians available"
        message = self.reason
        if window is not None:
            message += f" for window [{window[0].isoformat()}, {window[1].isoformat()})"
        super().__init__(message)

    def to_dict(self) -> dict:
        detail = {
            "error": "InsufficientTechnicians",
            "message": str(self),
            "clusters": self.clusters,
            "technicians": self.technicians,
        }
        if self.window is not None:
            detail["window"] = {"start": self.window[0].isoformat(), "end": self.window[1].isoformat()}
        return detail


class JobFetchFailure(SchedulingError):
    def __init__(self, window: tuple[datetime, datetime], cause: str) -> None:
        self.window = window
        self.cause = cause
        super().__init__(
            f"Failed to fetch jobs for window [{window[0].isoformat()}, {window[1].isoformat()}): {cause}"
        )
