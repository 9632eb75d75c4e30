import json
from pathlib import Path

from market_finder import cli


def test_parse_items_trims_and_drops_blanks():
    assert cli.parse_items(" riz, huile ,,tomate ") == ["riz", "huile", "tomate"]
    assert cli.parse_items("") == []


def test_main_writes_outputs_for_explicit_position(tmp_path, capsys):
    out_dir = tmp_path / "out"
    code = cli.main(
        [
            "--lat", "3.848",
            "--lon", "11.5021",
            "--items", "riz,huile",
            "--no-cache",
            "--radius-km", "10",
            "--out", str(out_dir),
        ]
    )
    assert code == 0
    for name in ("results.csv", "results.json", "nearby.csv", "summary.txt", "run.json"):
        assert (out_dir / name).exists()
    rows = json.loads((out_dir / "results.json").read_text(encoding="utf-8"))
    assert len(rows) == 8
    assert rows[0]["rank"] == 1
    assert "Top markets:" in capsys.readouterr().out


def test_main_dev_mode_uses_reference_position(tmp_path, monkeypatch):
    monkeypatch.setenv("MARKET_FINDER_ENV", "development")
    code = cli.main(["--no-cache", "--out", str(tmp_path)])
    assert code == 0
    summary = (tmp_path / "summary.txt").read_text(encoding="utf-8")
    assert "Position: 3.84800, 11.50200" in summary


def test_main_without_position_fails(tmp_path, monkeypatch):
    monkeypatch.delenv("MARKET_FINDER_ENV", raising=False)
    assert cli.main(["--no-cache", "--out", str(tmp_path)]) == 1


def test_main_uses_json_catalog_with_cache(tmp_path):
    catalog_path = tmp_path / "markets.json"
    catalog_path.write_text(
        json.dumps([{"id": "m", "name": "Mini", "lat": 3.85, "lon": 11.5}]), encoding="utf-8"
    )
    out_dir = tmp_path / "out"
    code = cli.main(
        [
            "--lat", "3.848",
            "--lon", "11.5021",
            "--catalog", str(catalog_path),
            "--cache-path", str(tmp_path / "cache.db"),
            "--out", str(out_dir),
        ]
    )
    assert code == 0
    rows = json.loads((out_dir / "results.json").read_text(encoding="utf-8"))
    assert [r["market_id"] for r in rows] == ["m"]


def test_root_script_delegates_to_package_cli():
    import run

    assert run.main is cli.main
    assert cli._repo_root() == Path(run.__file__).resolve().parent
