import json

import pytest
import requests

from market_finder.cache import Cache
from market_finder.catalog import (
    CachedCatalog,
    JsonFileCatalog,
    OverpassCatalog,
    StaticCatalog,
    build_overpass_query,
    default_markets,
    parse_overpass_response,
)
from market_finder.errors import CatalogUnavailable
from market_finder.models import Coordinate, Market, MarketCategory

CENTER = Coordinate(3.848, 11.502)


class FakeHttp:
    def __init__(self, payload=None, error=None):
        self.payload = payload
        self.error = error
        self.calls = []

    def post_form(self, url, data):
        self.calls.append((url, data))
        if self.error is not None:
            raise self.error
        return self.payload


class FlakyProvider:
    source = "flaky"
    cache_key = "flaky-key"

    def __init__(self, markets):
        self.markets = markets
        self.fail = False

    def list_markets(self):
        if self.fail:
            raise CatalogUnavailable("offline")
        return list(self.markets)


OVERPASS_PAYLOAD = {
    "elements": [
        {
            "type": "node",
            "id": 101,
            "lat": 3.85,
            "lon": 11.5,
            "tags": {"shop": "supermarket", "name": "Santa Lucia", "addr:street": "Rue 1.750", "addr:city": "Yaoundé"},
        },
        {
            "type": "way",
            "id": 202,
            "center": {"lat": 3.86, "lon": 11.51},
            "tags": {"shop": "greengrocer", "name": "Étal Mvog-Mbi"},
        },
        {"type": "node", "id": 303, "lat": 3.87, "lon": 11.52, "tags": {"shop": "kiosk"}},
        {"type": "way", "id": 404, "tags": {"shop": "bakery", "name": "No geometry"}},
    ]
}


def test_default_markets_are_yaounde_test_set():
    markets = default_markets()
    assert [m.id for m in markets] == [str(i) for i in range(1, 9)]
    central = markets[0]
    assert central.category is MarketCategory.CENTRAL
    assert central.coordinate == Coordinate(3.8480, 11.5021)
    assert markets[4].products == ()
    assert markets[6].products is None
    assert markets[7].category is MarketCategory.REGIONAL


def test_static_catalog_returns_copies():
    catalog = StaticCatalog(default_markets())
    first = catalog.list_markets()
    first.clear()
    assert len(catalog.list_markets()) == 8


def test_json_catalog_skips_malformed_records(tmp_path):
    path = tmp_path / "markets.json"
    records = [
        {"id": "a", "name": "Marché A", "lat": 3.85, "lon": 11.5, "products": [{"id": "p", "name": "Riz", "price": 600}]},
        {"id": "b", "name": "Broken", "lat": 200, "lon": 11.5},
        {"name": "No id", "lat": 3.8, "lon": 11.5},
        {"id": "c", "name": "Loose products", "lat": 3.86, "lon": 11.5, "products": ["riz"]},
    ]
    path.write_text(json.dumps({"markets": records}), encoding="utf-8")
    markets = JsonFileCatalog(str(path)).list_markets()
    assert [m.id for m in markets] == ["a"]
    assert markets[0].products[0].unit_price == 600.0


def test_cached_json_catalog_survives_non_object_products(tmp_path):
    path = tmp_path / "markets.json"
    records = [
        {"id": "a", "name": "Marché A", "lat": 3.85, "lon": 11.5, "products": ["riz"]},
        {"id": "b", "name": "Marché B", "lat": 3.86, "lon": 11.51},
    ]
    path.write_text(json.dumps(records), encoding="utf-8")
    markets = CachedCatalog(JsonFileCatalog(str(path))).list_markets()
    assert [m.id for m in markets] == ["b"]


def test_json_catalog_missing_file_is_unavailable(tmp_path):
    with pytest.raises(CatalogUnavailable):
        JsonFileCatalog(str(tmp_path / "missing.json")).list_markets()


def test_json_catalog_rejects_non_list(tmp_path):
    path = tmp_path / "markets.json"
    path.write_text(json.dumps({"count": 3}), encoding="utf-8")
    with pytest.raises(CatalogUnavailable):
        JsonFileCatalog(str(path)).list_markets()


def test_build_overpass_query_targets_shops_around_center():
    query = build_overpass_query(CENTER, 1500)
    assert "[out:json]" in query
    assert 'node["shop"](around:1500,3.848,11.502);' in query
    assert 'way["shop"]' in query
    assert query.strip().endswith("out center;")


def test_parse_overpass_response_keeps_named_located_shops():
    markets = parse_overpass_response(OVERPASS_PAYLOAD)
    assert [m.id for m in markets] == ["osm_node_101", "osm_way_202"]
    assert markets[0].address == "Rue 1.750, Yaoundé"
    assert markets[1].coordinate == Coordinate(3.86, 11.51)
    assert all(m.products is None for m in markets)
    assert all(m.category is MarketCategory.LOCAL for m in markets)


def test_overpass_catalog_posts_query():
    http = FakeHttp(payload=OVERPASS_PAYLOAD)
    catalog = OverpassCatalog(http, CENTER, radius_m=1500, url="https://overpass.test/api")
    markets = catalog.list_markets()
    assert len(markets) == 2
    url, data = http.calls[0]
    assert url == "https://overpass.test/api"
    assert "around:1500" in data["data"]


def test_overpass_catalog_failure_is_unavailable():
    http = FakeHttp(error=requests.ConnectionError("dns"))
    with pytest.raises(CatalogUnavailable):
        OverpassCatalog(http, CENTER).list_markets()


def test_overpass_cache_key_ignores_tiny_moves():
    a = OverpassCatalog(FakeHttp(), Coordinate(3.84801, 11.50201), radius_m=1000)
    b = OverpassCatalog(FakeHttp(), Coordinate(3.84804, 11.50204), radius_m=1000)
    c = OverpassCatalog(FakeHttp(), Coordinate(3.9, 11.50201), radius_m=1000)
    assert a.cache_key == b.cache_key
    assert a.cache_key != c.cache_key


def test_cached_catalog_serves_last_good_result():
    markets = default_markets()[:2]
    provider = FlakyProvider(markets)
    catalog = CachedCatalog(provider)
    assert catalog.list_markets() == markets
    provider.fail = True
    assert catalog.list_markets() == markets


def test_cached_catalog_without_history_returns_empty():
    provider = FlakyProvider([])
    provider.fail = True
    assert CachedCatalog(provider).list_markets() == []


def test_cached_catalog_falls_back_to_sqlite(tmp_path):
    cache = Cache(str(tmp_path / "cache.db"))
    markets = default_markets()[:3]
    CachedCatalog(FlakyProvider(markets), cache=cache).list_markets()

    offline = FlakyProvider([])
    offline.fail = True
    restored = CachedCatalog(offline, cache=cache).list_markets()
    assert [m.id for m in restored] == ["1", "2", "3"]
    assert restored[0].products == markets[0].products
    cache.close()


def test_cached_catalog_does_not_swallow_other_errors():
    class Broken:
        source = "broken"
        cache_key = "k"

        def list_markets(self):
            raise KeyError("bug")

    with pytest.raises(KeyError):
        CachedCatalog(Broken()).list_markets()


def test_market_equality_survives_cache_round_trip(tmp_path):
    cache = Cache(str(tmp_path / "cache.db"))
    market = Market(id="x", name="X", coordinate=CENTER, address="here", products=())
    cache.set_catalog("k", "static", [market])
    assert cache.get_catalog("k") == [market]
    cache.close()
