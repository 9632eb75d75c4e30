"""Market catalog providers.

Every provider exposes ``list_markets()``. ``CachedCatalog`` wraps another
provider so that a failed fetch degrades to the last successful result (or an
empty list) instead of failing the ranking.
"""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Protocol

import requests

from . import config
from .cache import Cache, make_catalog_cache_key
from .errors import CatalogUnavailable
from .http import HttpClient
from .models import Coordinate, Market, MarketCategory, Product, markets_from_records

logger = logging.getLogger(__name__)


class CatalogProvider(Protocol):
    source: str

    @property
    def cache_key(self) -> str:
        ...

    def list_markets(self) -> List[Market]:
        ...


class StaticCatalog:
    source = "static"

    def __init__(self, markets: Iterable[Market]) -> None:
        self._markets = list(markets)

    @property
    def cache_key(self) -> str:
        return make_catalog_cache_key(self.source, {"ids": [m.id for m in self._markets]})

    def list_markets(self) -> List[Market]:
        return list(self._markets)


class JsonFileCatalog:
    """Markets from a JSON file: a list of records or ``{"markets": [...]}``."""

    source = "json"

    def __init__(self, path: str) -> None:
        self.path = Path(path)

    @property
    def cache_key(self) -> str:
        return make_catalog_cache_key(self.source, {"path": str(self.path.resolve())})

    def list_markets(self) -> List[Market]:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as exc:
            raise CatalogUnavailable(f"Cannot read market catalog {self.path}: {exc}") from exc

        records = data.get("markets") if isinstance(data, dict) else data
        if not isinstance(records, list):
            raise CatalogUnavailable(f"Market catalog {self.path} has no market list")

        markets, rejected = markets_from_records(records)
        for reason in rejected:
            logger.warning("Skipping malformed market in %s: %s", self.path, reason)
        return markets


class OverpassCatalog:
    """Shops around a point from the OpenStreetMap Overpass API."""

    source = "overpass"

    def __init__(
        self,
        http_client: HttpClient,
        center: Coordinate,
        radius_m: Optional[int] = None,
        url: Optional[str] = None,
    ) -> None:
        self.http = http_client
        self.center = center
        self.radius_m = int(radius_m if radius_m is not None else config.OVERPASS_RADIUS_M)
        self.url = url or config.OVERPASS_URL

    @property
    def cache_key(self) -> str:
        # ~100 m rounding so small moves reuse the cached catalog.
        params = {
            "lat": round(self.center.latitude, 3),
            "lon": round(self.center.longitude, 3),
            "radius_m": self.radius_m,
        }
        return make_catalog_cache_key(self.source, params)

    def list_markets(self) -> List[Market]:
        query = build_overpass_query(self.center, self.radius_m)
        try:
            response = self.http.post_form(self.url, {"data": query})
        except (requests.RequestException, ValueError) as exc:
            raise CatalogUnavailable(f"Overpass request failed: {exc}") from exc
        if not isinstance(response, dict):
            raise CatalogUnavailable("Overpass response is not a JSON object")
        markets = parse_overpass_response(response)
        logger.info("Overpass returned %d named shops within %d m", len(markets), self.radius_m)
        return markets


def build_overpass_query(center: Coordinate, radius_m: int) -> str:
    around = f"around:{int(radius_m)},{center.latitude},{center.longitude}"
    return (
        f"[out:json][timeout:{config.OVERPASS_TIMEOUT_SECONDS}];\n"
        "(\n"
        f'  node["shop"]({around});\n'
        f'  way["shop"]({around});\n'
        f'  relation["shop"]({around});\n'
        ");\n"
        "out center;\n"
    )


# Adapter/mapper for Overpass elements

def parse_overpass_response(response: Dict[str, Any]) -> List[Market]:
    markets: List[Market] = []
    for element in response.get("elements") or []:
        tags = element.get("tags") or {}
        name = tags.get("name")
        if not name or element.get("id") is None:
            continue
        point = element if element.get("lat") is not None else element.get("center") or {}
        try:
            coordinate = Coordinate(float(point["lat"]), float(point["lon"]))
        except (KeyError, TypeError, ValueError):
            continue
        address = ", ".join(
            part
            for part in (tags.get("addr:street"), tags.get("addr:suburb"), tags.get("addr:city"))
            if part
        )
        markets.append(
            Market(
                id=f"osm_{element.get('type', 'node')}_{element['id']}",
                name=str(name),
                coordinate=coordinate,
                address=address,
                category=MarketCategory.LOCAL,
                products=None,
            )
        )
    return markets


class CachedCatalog:
    """Remembers the last good result of ``provider`` and serves it on failure."""

    def __init__(
        self,
        provider: CatalogProvider,
        cache: Optional[Cache] = None,
        key: Optional[str] = None,
    ) -> None:
        self.provider = provider
        self.cache = cache
        self.key = key or provider.cache_key
        self._last: Optional[List[Market]] = None

    @property
    def source(self) -> str:
        return self.provider.source

    def list_markets(self) -> List[Market]:
        try:
            markets = self.provider.list_markets()
        except CatalogUnavailable as exc:
            fallback = self._fallback()
            logger.warning(
                "Catalog %s unavailable (%s); serving %d previously fetched markets",
                self.provider.source,
                exc,
                len(fallback),
            )
            return fallback

        self._last = list(markets)
        if self.cache is not None:
            self.cache.set_catalog(self.key, self.provider.source, self._last)
        return list(self._last)

    def _fallback(self) -> List[Market]:
        if self._last is not None:
            return list(self._last)
        if self.cache is not None:
            cached = self.cache.get_catalog(self.key)
            if cached is not None:
                logger.info(
                    "Using cached catalog from %s", self.cache.get_catalog_created_at(self.key)
                )
                return cached
        return []


def _product(pid: str, name: str, price: float, unit: str, category: str) -> Product:
    return Product(id=pid, name=name, unit_price=price, unit=unit, category=category)


def default_markets() -> List[Market]:
    """Yaoundé test markets, prices in FCFA."""
    return [
        Market(
            id="1",
            name="Marché Central",
            coordinate=Coordinate(3.8480, 11.5021),
            address="Centre-ville, Yaoundé",
            category=MarketCategory.CENTRAL,
            products=(
                _product("1-riz", "Riz parfumé", 700, "kg", "céréales"),
                _product("1-huile", "Huile de palme", 1200, "L", "huiles"),
                _product("1-tomate", "Tomate fraîche", 600, "kg", "légumes"),
                _product("1-oignon", "Oignon rouge", 500, "kg", "légumes"),
                _product("1-poisson", "Poisson fumé", 2500, "kg", "poissons"),
                _product("1-plantain", "Plantain mûr", 1500, "régime", "fruits"),
            ),
        ),
        Market(
            id="2",
            name="Marché Mokolo",
            coordinate=Coordinate(3.8690, 11.5194),
            address="Mokolo, Yaoundé",
            category=MarketCategory.LOCAL,
            products=(
                _product("2-riz", "Riz long grain", 650, "kg", "céréales"),
                _product("2-huile", "Huile végétale", 1100, "L", "huiles"),
                _product("2-tomate", "Tomate", 550, "kg", "légumes"),
                _product("2-plantain", "Plantain", 1300, "régime", "fruits"),
            ),
        ),
        Market(
            id="3",
            name="Marché Mfoundi",
            coordinate=Coordinate(3.8420, 11.4980),
            address="Mfoundi, Yaoundé",
            category=MarketCategory.LOCAL,
            products=(
                _product("3-riz", "Riz", 720, "kg", "céréales"),
                _product("3-oignon", "Oignon", 450, "kg", "légumes"),
                _product("3-poisson", "Poisson frais", 2200, "kg", "poissons"),
            ),
        ),
        Market(
            id="4",
            name="Marché de la Briqueterie",
            coordinate=Coordinate(3.8560, 11.5240),
            address="Briqueterie, Yaoundé",
            category=MarketCategory.LOCAL,
            products=(
                _product("4-huile", "Huile d'arachide", 1400, "L", "huiles"),
                _product("4-arachide", "Arachide décortiquée", 900, "kg", "graines"),
            ),
        ),
        Market(
            id="5",
            name="Marché de Tsinga",
            coordinate=Coordinate(3.8320, 11.5120),
            address="Tsinga, Yaoundé",
            category=MarketCategory.LOCAL,
            products=(),
        ),
        Market(
            id="6",
            name="Marché de Mendong",
            coordinate=Coordinate(3.8180, 11.4850),
            address="Mendong, Yaoundé",
            category=MarketCategory.LOCAL,
            products=(
                _product("6-tomate", "Tomate", 500, "kg", "légumes"),
                _product("6-plantain", "Plantain vert", 1200, "régime", "fruits"),
            ),
        ),
        Market(
            id="7",
            name="Marché de Nlongkak",
            coordinate=Coordinate(3.8780, 11.5350),
            address="Nlongkak, Yaoundé",
            category=MarketCategory.LOCAL,
        ),
        Market(
            id="8",
            name="Marché d'Mbalmayo",
            coordinate=Coordinate(3.5167, 11.5000),
            address="Mbalmayo, Région du Centre",
            category=MarketCategory.REGIONAL,
        ),
    ]


def default_catalog() -> StaticCatalog:
    return StaticCatalog(default_markets())
