from __future__ import annotations

import logging
import math
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .errors import ClientInputError
from .utils import haversine_km

logger = logging.getLogger(__name__)

MISSING_COORDINATES = "Latitude and longitude are required"

LAT_RANGE = (-90.0, 90.0)
LON_RANGE = (-180.0, 180.0)


def _to_float(x: Any) -> Optional[float]:
    try:
        v = float(x)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(v):
        return None
    return v


def parse_coordinates(raw_lat: Optional[str], raw_lon: Optional[str]) -> Tuple[float, float]:
    """Parse the lat/lon query pair. Both are required."""
    if not (raw_lat or "").strip() or not (raw_lon or "").strip():
        raise ClientInputError(code=MISSING_COORDINATES)
    lat = parse_coordinate(raw_lat, "lat", LAT_RANGE)
    lon = parse_coordinate(raw_lon, "lon", LON_RANGE)
    return lat, lon


def parse_coordinate(raw: Any, name: str, bounds: Tuple[float, float]) -> float:
    v = _to_float(raw.strip() if isinstance(raw, str) else raw)
    if v is None:
        raise ClientInputError(f"{name} must be a number, got {raw!r}")
    lo, hi = bounds
    if not lo <= v <= hi:
        raise ClientInputError(f"{name} must be between {lo:g} and {hi:g}, got {v:g}")
    return v


def parse_radius(*candidates: Optional[str], default: float = 100.0) -> float:
    """First non-blank candidate wins (maxDistance before radius)."""
    for raw in candidates:
        if raw is None or (isinstance(raw, str) and not raw.strip()):
            continue
        v = _to_float(raw.strip() if isinstance(raw, str) else raw)
        if v is None or v <= 0:
            raise ClientInputError(f"maxDistance must be a positive number, got {raw!r}")
        return v
    return default


def webcam_location(record: Dict[str, Any]) -> Optional[Tuple[float, float]]:
    if not isinstance(record, dict):
        return None
    loc = record.get("location")
    if not isinstance(loc, dict):
        return None
    lat = _to_float(loc.get("latitude"))
    lon = _to_float(loc.get("longitude"))
    if lat is None or lon is None:
        return None
    return lat, lon


def filter_by_distance(
    webcams: Iterable[Dict[str, Any]],
    lat: float,
    lon: float,
    max_km: float,
) -> List[Dict[str, Any]]:
    """Keep webcams within max_km of (lat, lon), in upstream order.

    Records without a usable location are dropped.
    """
    kept: List[Dict[str, Any]] = []
    skipped = 0
    for w in webcams:
        loc = webcam_location(w)
        if loc is None:
            skipped += 1
            continue
        if haversine_km(lat, lon, loc[0], loc[1]) <= max_km:
            kept.append(w)

    if skipped:
        logger.debug("dropped %d webcams without location", skipped)
    return kept
