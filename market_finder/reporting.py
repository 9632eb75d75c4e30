"""Output reporting helpers."""
from __future__ import annotations

import csv
import json
import os
import tempfile
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, TextIO

from .geo import distance_km, estimate_travel_minutes, format_distance, format_duration
from .models import Coordinate, Market, MarketComparison

RESULT_FIELDS = [
    "rank",
    "market_id",
    "name",
    "category",
    "address",
    "lat",
    "lon",
    "distance_km",
    "distance_label",
    "walking",
    "driving",
    "total_price",
    "price_known",
    "score",
]

NEARBY_FIELDS = [
    "market_id",
    "name",
    "category",
    "address",
    "lat",
    "lon",
    "distance_km",
    "distance_label",
]


def ensure_dir(path: str) -> None:
    os.makedirs(path, exist_ok=True)


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


def _fsync_dir(path: str) -> None:
    try:
        dir_fd = os.open(path, os.O_DIRECTORY)
    except OSError:
        return
    try:
        os.fsync(dir_fd)
    except OSError:
        pass
    finally:
        os.close(dir_fd)


@contextmanager
def atomic_writer(
    path: str,
    mode: str = "w",
    encoding: str = "utf-8",
    newline: Optional[str] = None,
) -> Iterator[TextIO]:
    dir_path = os.path.dirname(path) or "."
    base = os.path.basename(path)
    fd, tmp_path = tempfile.mkstemp(prefix=f".{base}.", suffix=".tmp", dir=dir_path)
    try:
        with os.fdopen(fd, mode, encoding=encoding, newline=newline) as f:
            yield f
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
        _fsync_dir(dir_path)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


def atomic_write_text(path: str, text: str) -> None:
    with atomic_writer(path, mode="w", encoding="utf-8") as f:
        f.write(text)


def build_comparison_row(rank: int, comparison: MarketComparison) -> Dict[str, Any]:
    market = comparison.market
    return {
        "rank": rank,
        "market_id": market.id,
        "name": market.name,
        "category": market.category.value,
        "address": market.address,
        "lat": market.coordinate.latitude,
        "lon": market.coordinate.longitude,
        "distance_km": round(comparison.distance_km, 3),
        "distance_label": format_distance(comparison.distance_km),
        "walking": format_duration(estimate_travel_minutes(comparison.distance_km, "walking")),
        "driving": format_duration(estimate_travel_minutes(comparison.distance_km, "driving")),
        "total_price": comparison.total_price,
        "price_known": comparison.total_price > 0,
        "score": round(comparison.score, 2),
    }


def build_nearby_row(origin: Coordinate, market: Market) -> Dict[str, Any]:
    distance = distance_km(origin, market.coordinate)
    return {
        "market_id": market.id,
        "name": market.name,
        "category": market.category.value,
        "address": market.address,
        "lat": market.coordinate.latitude,
        "lon": market.coordinate.longitude,
        "distance_km": round(distance, 3),
        "distance_label": format_distance(distance),
    }


def comparison_rows(comparisons: Sequence[MarketComparison]) -> List[Dict[str, Any]]:
    return [build_comparison_row(idx, c) for idx, c in enumerate(comparisons, start=1)]


def write_rows_csv(path: str, rows: Iterable[Dict[str, Any]], fieldnames: List[str]) -> None:
    rows = list(rows)
    with atomic_writer(path, mode="w", encoding="utf-8", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=fieldnames, extrasaction="ignore")
        writer.writeheader()
        for row in rows:
            writer.writerow(row)


def write_results_json(path: str, rows: Iterable[Dict[str, Any]]) -> None:
    with atomic_writer(path, mode="w", encoding="utf-8") as f:
        json.dump(list(rows), f, ensure_ascii=False, indent=2)


def write_json_object(path: str, payload: Dict[str, Any]) -> None:
    with atomic_writer(path, mode="w", encoding="utf-8") as f:
        json.dump(payload, f, ensure_ascii=False, indent=2)


def render_summary(
    origin: Coordinate,
    shopping_list: Sequence[str],
    comparisons: Sequence[MarketComparison],
    nearby: Sequence[Market],
    radius_km: float,
    top_n: int = 5,
) -> List[str]:
    lines = [
        f"Generated: {utc_now_iso()}",
        f"Position: {origin.latitude:.5f}, {origin.longitude:.5f}",
        f"Shopping list: {', '.join(shopping_list) if shopping_list else '(empty)'}",
        f"Markets ranked: {len(comparisons)}",
        f"Markets within {radius_km:g} km: {len(nearby)}",
        "",
        "Top markets:",
    ]
    for idx, c in enumerate(comparisons[:top_n], start=1):
        price = f"{c.total_price:.0f}" if c.total_price > 0 else "unknown"
        lines.append(
            f"{idx}. {c.market.name} ({c.market.category.value}) "
            f"score={c.score:.1f} distance={format_distance(c.distance_km)} price={price}"
        )
    return lines
