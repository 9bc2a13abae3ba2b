"""Data access for service jobs and the technician roster."""

from __future__ import annotations

import csv
import functools
import logging
from datetime import datetime
from pathlib import Path
from typing import Optional, Protocol, Sequence

from ..config import settings
from ..models.domain import Coordinate, ServiceJob, Technician
from ..models.timestamps import in_window, parse_timestamp

logger = logging.getLogger(__name__)


class JobSource(Protocol):
    def fetch_jobs(self, start: datetime, end: datetime) -> Sequence[ServiceJob]:
        ...


class TechnicianRoster(Protocol):
    def list_technicians(self, start: datetime, end: datetime) -> Sequence[Technician]:
        ...


def _coerce_int(value: Optional[str]) -> Optional[int]:
    if value is None or value.strip() == "":
        return None
    try:
        return int(value)
    except ValueError as exc:
        raise ValueError(f"Unable to parse integer from value '{value}'") from exc


def _coerce_float(value: Optional[str]) -> Optional[float]:
    if value is None or value.strip() == "":
        return None
    try:
        return float(value)
    except ValueError as exc:
        raise ValueError(f"Unable to parse float from value '{value}'") from exc


def _open_rows(csv_path: Path, label: str) -> list[dict]:
    if not csv_path.exists():
        raise FileNotFoundError(f"{label} file not found: {csv_path}")
    with csv_path.open(mode="r", encoding="utf-8-sig", newline="") as handle:
        reader = csv.DictReader(handle)
        if not reader.fieldnames:
            raise ValueError(f"{label} file '{csv_path}' is missing a header row.")
        return list(reader)


@functools.lru_cache(maxsize=4)
def load_jobs(source: Optional[Path] = None) -> tuple[ServiceJob, ...]:
    """Load jobs from the configured CSV export."""

    jobs: list[ServiceJob] = []
    for row in _open_rows(source or settings.jobs_file, "Jobs"):
        job_id = (row.get("job_id") or row.get("id") or "").strip()
        start_raw = row.get("start") or row.get("time") or ""
        if not job_id or not start_raw.strip():
            logger.warning("Skipping job row without id or start time: %s", row)
            continue
        end_raw = (row.get("end") or "").strip()
        jobs.append(
            ServiceJob(
                job_id=job_id,
                location_ref=(row.get("location_ref") or row.get("location_id") or row.get("address") or "").strip(),
                start=parse_timestamp(start_raw),
                end=parse_timestamp(end_raw) if end_raw else None,
                raw=row,
            )
        )
    return tuple(jobs)


@functools.lru_cache(maxsize=4)
def load_technicians(source: Optional[Path] = None) -> tuple[Technician, ...]:
    """Load the technician roster (tech_id, base_latitude, base_longitude, capacity, current_load)."""

    technicians: list[Technician] = []
    for row in _open_rows(source or settings.technicians_file, "Technicians"):
        tech_id = (row.get("tech_id") or row.get("id") or "").strip()
        if not tech_id:
            continue
        lat = _coerce_float(row.get("base_latitude"))
        lon = _coerce_float(row.get("base_longitude"))
        technicians.append(
            Technician(
                tech_id=tech_id,
                base=Coordinate(lat, lon) if lat is not None and lon is not None else None,
                capacity=_coerce_int(row.get("capacity")),
                current_load=_coerce_int(row.get("current_load")) or 0,
            )
        )
    return tuple(technicians)


class CsvJobSource:
    def __init__(self, source: Path | None = None) -> None:
        self.source = source

    def fetch_jobs(self, start: datetime, end: datetime) -> list[ServiceJob]:
        return [job for job in load_jobs(self.source) if in_window(job.start, start, end)]


class CsvTechnicianRoster:
    def __init__(self, source: Path | None = None) -> None:
        self.source = source

    def list_technicians(self, start: datetime, end: datetime) -> list[Technician]:
        return list(load_technicians(self.source))
