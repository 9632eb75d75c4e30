"""Command-line interface: rank markets for a shopping list and write reports."""
from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from . import config
from .cache import Cache
from .catalog import CachedCatalog, CatalogProvider, JsonFileCatalog, OverpassCatalog, default_catalog
from .http import HttpClient
from .models import Coordinate
from .recommender import Recommender
from .reporting import (
    NEARBY_FIELDS,
    RESULT_FIELDS,
    atomic_write_text,
    build_nearby_row,
    comparison_rows,
    ensure_dir,
    render_summary,
    utc_now_iso,
    write_json_object,
    write_results_json,
    write_rows_csv,
)
from .sources import FixedPositionSource, PositionSource, select_position_source
from .state import LocationState
from .tracker import PositionTracker


def _repo_root() -> Path:
    return Path(__file__).resolve().parent.parent


def load_env(path: str = ".env", root_dir: Optional[Path] = None) -> None:
    """Optionally load a repo-root .env file without overriding real env vars."""
    root = Path(root_dir) if root_dir else _repo_root()
    env_path = (root / path).resolve()
    if not env_path.exists():
        return
    load_dotenv(dotenv_path=env_path, override=False)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Find the best market for a shopping list")
    parser.add_argument("--lat", type=float, default=None, help="User latitude")
    parser.add_argument("--lon", type=float, default=None, help="User longitude")
    parser.add_argument(
        "--dev",
        action="store_true",
        help="Use the fixed reference position (same as MARKET_FINDER_ENV=development)",
    )
    parser.add_argument(
        "--items",
        type=str,
        default="",
        help="Comma-separated shopping list, e.g. 'riz,huile,tomate'",
    )
    parser.add_argument(
        "--catalog",
        type=str,
        default="static",
        help="Market catalog: 'static', 'overpass', or a path to a JSON file",
    )
    parser.add_argument("--radius-km", type=float, default=None, help="Nearby radius in km")
    parser.add_argument(
        "--match-policy",
        choices=list(config.PRODUCT_MATCH_POLICIES),
        default=None,
        help="Which product to pick when several match an item (default: first)",
    )
    parser.add_argument("--top", type=int, default=5, help="Markets shown in the summary")
    parser.add_argument("--no-cache", action="store_true", help="Do not read or write the catalog cache")
    parser.add_argument("--cache-path", type=str, default=config.CACHE_DB_PATH)
    parser.add_argument("--out", type=str, default=config.OUTPUT_DIR)
    return parser.parse_args(argv)


def parse_items(raw: str) -> List[str]:
    return [item.strip() for item in (raw or "").split(",") if item.strip()]


def build_position_source(args: argparse.Namespace) -> PositionSource:
    if (args.lat is None) != (args.lon is None):
        raise ValueError("--lat and --lon must be given together")
    if args.lat is not None:
        return FixedPositionSource(Coordinate(args.lat, args.lon))
    if args.dev or config.is_development_mode():
        return select_position_source(development=True)
    raise ValueError(
        f"No position: pass --lat/--lon, --dev, or set {config.ENV_VAR_MODE}={config.DEVELOPMENT_MODE}"
    )


def build_catalog(args: argparse.Namespace, center: Coordinate) -> CatalogProvider:
    if args.catalog == "static":
        return default_catalog()
    if args.catalog == "overpass":
        http_client = HttpClient(
            timeout=config.HTTP_TIMEOUT_SECONDS,
            retry_max=config.HTTP_RETRY_MAX,
            backoff_base=config.HTTP_BACKOFF_BASE,
            backoff_max=config.HTTP_BACKOFF_MAX,
            user_agent=config.HTTP_USER_AGENT,
        )
        return OverpassCatalog(http_client, center)
    return JsonFileCatalog(args.catalog)


def main(argv: Optional[List[str]] = None) -> int:
    load_env()
    config.load_market_config()
    args = parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    shopping_list = parse_items(args.items)
    radius_km = config.NEARBY_RADIUS_KM if args.radius_km is None else args.radius_km
    if radius_km < 0:
        print("--radius-km must be non-negative", file=sys.stderr)
        return 1

    try:
        source = build_position_source(args)
    except ValueError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    tracker = PositionTracker(source)
    with LocationState(tracker, watch_delay_seconds=0) as state:
        snapshot = state.snapshot()
    if snapshot.position is None:
        print(f"Position error: {snapshot.error or 'no position'}", file=sys.stderr)
        return 1
    origin = snapshot.position.coordinate

    cache = None if args.no_cache else Cache(args.cache_path)
    try:
        catalog = CachedCatalog(build_catalog(args, origin), cache=cache)
        recommender = Recommender(catalog, policy=args.match_policy)
        comparisons = recommender.rank(origin, shopping_list)
        nearby = recommender.nearby(origin, radius_km)
    except Exception as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    finally:
        if cache is not None:
            cache.close()

    ensure_dir(args.out)
    rows = comparison_rows(comparisons)
    write_rows_csv(os.path.join(args.out, "results.csv"), rows, RESULT_FIELDS)
    write_results_json(os.path.join(args.out, "results.json"), rows)
    write_rows_csv(
        os.path.join(args.out, "nearby.csv"),
        [build_nearby_row(origin, m) for m in nearby],
        NEARBY_FIELDS,
    )
    best = comparisons[0] if comparisons else None
    write_json_object(
        os.path.join(args.out, "run.json"),
        {
            "generated_at": utc_now_iso(),
            "origin": {"lat": origin.latitude, "lon": origin.longitude},
            "position_source": source.name,
            "catalog": catalog.source,
            "shopping_list": shopping_list,
            "match_policy": args.match_policy or config.PRODUCT_MATCH_POLICY,
            "nearby_radius_km": radius_km,
            "markets_ranked": len(comparisons),
            "markets_nearby": len(nearby),
            "best_market": best.market.id if best else None,
        },
    )
    summary = render_summary(origin, shopping_list, comparisons, nearby, radius_km, top_n=args.top)
    atomic_write_text(os.path.join(args.out, "summary.txt"), "\n".join(summary))

    print("\n".join(summary))
    print(f"Done. Results written to {args.out}/results.csv and {args.out}/results.json")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
