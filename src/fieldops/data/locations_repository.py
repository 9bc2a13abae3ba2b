"""Location index loader: maps location ids to stored coordinates."""

from __future__ import annotations

import csv
import functools
from pathlib import Path
from typing import Optional

from ..config import settings
from ..models.domain import Coordinate


def _coerce_float(value: Optional[str]) -> Optional[float]:
    if value is None or value.strip() == "":
        return None
    try:
        return float(value.replace(",", ""))
    except ValueError as exc:
        raise ValueError(f"Unable to parse float from value '{value}'") from exc


@functools.lru_cache(maxsize=1)
def load_location_index(source: Optional[Path] = None) -> dict[str, Coordinate]:
    """Load the location index CSV (location_id, latitude, longitude)."""

    csv_path = source or settings.locations_file
    if not csv_path.exists():
        raise FileNotFoundError(f"Location index not found: {csv_path}")

    index: dict[str, Coordinate] = {}
    with csv_path.open(mode="r", encoding="utf-8-sig", newline="") as handle:
        reader = csv.DictReader(handle)
        if not reader.fieldnames:
            raise ValueError(f"Location file '{csv_path}' is missing a header row.")
        for row in reader:
            location_id = (row.get("location_id") or row.get("id") or "").strip()
            lat = _coerce_float(row.get("latitude"))
            lon = _coerce_float(row.get("longitude"))
            if not location_id or lat is None or lon is None:
                continue  # rows without coordinates cannot resolve anything
            index[location_id] = Coordinate(lat, lon)
    return index
