import csv
import json

from market_finder.catalog import default_markets
from market_finder.models import Coordinate
from market_finder.ranking import rank_markets
from market_finder.reporting import (
    RESULT_FIELDS,
    atomic_write_text,
    build_nearby_row,
    comparison_rows,
    render_summary,
    write_results_json,
    write_rows_csv,
)

ORIGIN = Coordinate(3.8480, 11.5021)


def test_atomic_write_text(tmp_path):
    path = tmp_path / "atomic.txt"

    atomic_write_text(str(path), "first")
    assert path.read_text(encoding="utf-8") == "first"

    atomic_write_text(str(path), "second")
    assert path.read_text(encoding="utf-8") == "second"

    leftovers = [p for p in tmp_path.iterdir() if p.name != "atomic.txt"]
    assert not leftovers


def test_comparison_rows_and_writers(tmp_path):
    comparisons = rank_markets(ORIGIN, default_markets(), ["riz"])
    rows = comparison_rows(comparisons)
    assert [r["rank"] for r in rows] == list(range(1, 9))
    central = next(r for r in rows if r["market_id"] == "1")
    assert central["distance_label"] == "0 m"
    assert central["price_known"] is True
    assert central["walking"] == "0 min"

    csv_path = tmp_path / "results.csv"
    write_rows_csv(str(csv_path), rows, RESULT_FIELDS)
    with open(csv_path, newline="", encoding="utf-8") as f:
        read_back = list(csv.DictReader(f))
    assert [r["market_id"] for r in read_back] == [r["market_id"] for r in rows]

    json_path = tmp_path / "results.json"
    write_results_json(str(json_path), rows)
    assert json.loads(json_path.read_text(encoding="utf-8"))[0]["rank"] == 1


def test_nearby_row_and_summary():
    market = default_markets()[7]
    row = build_nearby_row(ORIGIN, market)
    assert row["category"] == "regional"
    assert row["distance_label"].endswith("km")

    comparisons = rank_markets(ORIGIN, default_markets(), [])
    lines = render_summary(ORIGIN, [], comparisons, [], 5.0, top_n=3)
    assert "Shopping list: (empty)" in lines
    assert sum(1 for line in lines if line[:2] in ("1.", "2.", "3.")) == 3
    assert "price=unknown" in lines[-1]
