"""Geospatial helpers."""
from __future__ import annotations

import math
from typing import Dict, Optional

from . import config
from .models import Coordinate

EARTH_RADIUS_KM = 6371.0


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lon2 - lon1)

    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    # Rounding can push a marginally outside [0, 1] for antipodal points.
    a = min(1.0, max(0.0, a))
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def distance_km(a: Coordinate, b: Coordinate) -> float:
    """Great-circle distance between two coordinates, in kilometres."""
    return haversine_km(a.latitude, a.longitude, b.latitude, b.longitude)


def format_distance(km: float) -> str:
    if km < 1:
        return f"{round(km * 1000)} m"
    return f"{km:.1f} km"


def estimate_travel_minutes(
    km: float,
    mode: str = "walking",
    speeds_kmh: Optional[Dict[str, float]] = None,
) -> int:
    speeds = speeds_kmh if speeds_kmh is not None else config.TRAVEL_SPEEDS_KMH
    speed = speeds.get(mode)
    if speed is None:
        raise ValueError(f"Unknown travel mode: {mode}")
    if speed <= 0:
        raise ValueError(f"Travel speed must be positive for mode: {mode}")
    return int(round(km / speed * 60))


def format_duration(minutes: int) -> str:
    hours, rest = divmod(int(minutes), 60)
    if hours > 0:
        return f"{hours}h {rest} min"
    return f"{rest} min"
