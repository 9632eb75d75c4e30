"""Project configuration.

Loads user-defined settings from market_config.json when available, falling
back to sensible defaults. Keep provider request shapes centralized here.
"""
from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Dict, Optional

_REPO_ROOT = Path(__file__).resolve().parent.parent

# --- Execution mode ---

ENV_VAR_MODE = "MARKET_FINDER_ENV"
DEVELOPMENT_MODE = "development"

# --- Endpoints ---

OVERPASS_URL = "https://overpass-api.de/api/interpreter"
OVERPASS_RADIUS_M = 20000
OVERPASS_TIMEOUT_SECONDS = 25

# --- Reference position (development fallback, Yaoundé) ---

_DEFAULT_REFERENCE_POSITION: Dict[str, float] = {"lat": 3.848, "lon": 11.502}
REFERENCE_POSITION: Dict[str, float] = dict(_DEFAULT_REFERENCE_POSITION)

# --- Position tracking ---

POSITION_TIMEOUT_SECONDS = 15.0
POSITION_MAX_AGE_SECONDS = 10.0
WATCH_MIN_DISPLACEMENT_M = 100.0
WATCH_FASTEST_INTERVAL_SECONDS = 10.0
WATCH_MAX_INTERVAL_SECONDS = 30.0
WATCH_START_DELAY_SECONDS = 2.0

# --- Scoring ---

SCORE_WEIGHT_DISTANCE = 0.3
SCORE_WEIGHT_PRICE = 0.7
SCORE_MAX = 100.0
SCORE_DISTANCE_PENALTY_PER_KM = 2.0
SCORE_PRICE_DIVISOR = 10.0
SCORE_UNKNOWN_PRICE = 50.0

PRODUCT_MATCH_POLICIES = ("first", "cheapest")
PRODUCT_MATCH_POLICY = "first"

# --- Nearby filter ---

NEARBY_RADIUS_KM = 30.0

# --- Travel estimates (average speeds, km/h) ---

TRAVEL_SPEEDS_KMH: Dict[str, float] = {
    "walking": 5.0,
    "bicycling": 15.0,
    "driving": 50.0,
    "transit": 25.0,
}

# --- HTTP ---

HTTP_TIMEOUT_SECONDS = 30
HTTP_RETRY_MAX = 3
HTTP_BACKOFF_BASE = 0.5
HTTP_BACKOFF_MAX = 8.0
HTTP_USER_AGENT = "market-finder/0.1"

# --- Cache and outputs ---

CACHE_DB_PATH = "cache.db"
OUTPUT_DIR = "out"


def is_development_mode(environ: Optional[Dict[str, str]] = None) -> bool:
    env = os.environ if environ is None else environ
    return (env.get(ENV_VAR_MODE) or "").strip().lower() == DEVELOPMENT_MODE


def load_market_config(path: Optional[str] = None) -> bool:
    """Load settings from a JSON file.

    Updates module-level globals with values from the config file.
    Returns True if config was loaded, False if file not found.
    """
    if path is None:
        path = str(_REPO_ROOT / "market_config.json")

    config_path = Path(path)
    if not config_path.exists():
        return False

    with open(config_path, "r", encoding="utf-8") as f:
        data = json.load(f)

    globals_ref = globals()

    reference = data.get("reference_position", {})
    ref_lat = reference.get("lat")
    ref_lon = reference.get("lon")
    if ref_lat is not None and ref_lon is not None:
        globals_ref["REFERENCE_POSITION"] = {"lat": float(ref_lat), "lon": float(ref_lon)}

    radius = data.get("nearby_radius_km")
    if radius is not None:
        globals_ref["NEARBY_RADIUS_KM"] = float(radius)

    scoring = data.get("scoring", {})
    _apply_floats(
        scoring,
        {
            "distance_weight": "SCORE_WEIGHT_DISTANCE",
            "price_weight": "SCORE_WEIGHT_PRICE",
            "max_score": "SCORE_MAX",
            "distance_penalty_per_km": "SCORE_DISTANCE_PENALTY_PER_KM",
            "price_divisor": "SCORE_PRICE_DIVISOR",
            "unknown_price_score": "SCORE_UNKNOWN_PRICE",
        },
    )

    policy = data.get("product_match")
    if policy is not None:
        if policy not in PRODUCT_MATCH_POLICIES:
            raise ValueError(
                f"product_match must be one of: {', '.join(PRODUCT_MATCH_POLICIES)}"
            )
        globals_ref["PRODUCT_MATCH_POLICY"] = policy

    tracking = data.get("tracking", {})
    _apply_floats(
        tracking,
        {
            "timeout_seconds": "POSITION_TIMEOUT_SECONDS",
            "max_age_seconds": "POSITION_MAX_AGE_SECONDS",
            "min_displacement_m": "WATCH_MIN_DISPLACEMENT_M",
            "fastest_interval_seconds": "WATCH_FASTEST_INTERVAL_SECONDS",
            "max_interval_seconds": "WATCH_MAX_INTERVAL_SECONDS",
            "watch_start_delay_seconds": "WATCH_START_DELAY_SECONDS",
        },
    )

    overpass = data.get("overpass", {})
    if overpass.get("url"):
        globals_ref["OVERPASS_URL"] = str(overpass["url"])
    if overpass.get("radius_m") is not None:
        globals_ref["OVERPASS_RADIUS_M"] = int(overpass["radius_m"])

    speeds = data.get("travel_speeds_kmh", {})
    if speeds:
        merged = dict(TRAVEL_SPEEDS_KMH)
        merged.update({str(k): float(v) for k, v in speeds.items()})
        globals_ref["TRAVEL_SPEEDS_KMH"] = merged

    return True


def _apply_floats(section: Dict[str, Any], mapping: Dict[str, str]) -> None:
    globals_ref = globals()
    for key, name in mapping.items():
        if section.get(key) is not None:
            globals_ref[name] = float(section[key])
