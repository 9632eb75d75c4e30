import json

from market_finder.reporting import write_json_object


def test_write_json_object_nested_atomic(tmp_path):
    path = tmp_path / "run.json"
    payload = {
        "origin": {"lat": 3.848, "lon": 11.502},
        "shopping_list": ["riz", "huile"],
        "best_market": {"name": "Marché Central", "score": 63.8},
    }

    write_json_object(str(path), payload)

    text = path.read_text(encoding="utf-8")
    data = json.loads(text)
    assert data == payload
    assert "é" in text

    leftovers = [p for p in tmp_path.iterdir() if p.name != "run.json"]
    assert not leftovers
