"""Domain records shared by the tracker, scorer, ranker and catalogs."""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Coordinate:
    latitude: float
    longitude: float

    def __post_init__(self) -> None:
        lat = float(self.latitude)
        lon = float(self.longitude)
        if not (math.isfinite(lat) and math.isfinite(lon)):
            raise ValueError(f"Coordinate must be finite: ({self.latitude}, {self.longitude})")
        if not -90.0 <= lat <= 90.0:
            raise ValueError(f"Latitude out of range [-90, 90]: {lat}")
        if not -180.0 <= lon <= 180.0:
            raise ValueError(f"Longitude out of range [-180, 180]: {lon}")
        object.__setattr__(self, "latitude", lat)
        object.__setattr__(self, "longitude", lon)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Coordinate":
        lat = _first_present(data, ("latitude", "lat"))
        lon = _first_present(data, ("longitude", "lon", "lng"))
        if lat is None or lon is None:
            raise ValueError("Coordinate requires latitude and longitude")
        return cls(float(lat), float(lon))

    def as_tuple(self) -> Tuple[float, float]:
        return (self.latitude, self.longitude)


@dataclass(frozen=True)
class Position:
    """A captured device position. Replaced on every update, never mutated."""

    coordinate: Coordinate
    timestamp: datetime = field(default_factory=utc_now)
    accuracy: Optional[float] = None

    @property
    def latitude(self) -> float:
        return self.coordinate.latitude

    @property
    def longitude(self) -> float:
        return self.coordinate.longitude


class MarketCategory(str, Enum):
    CENTRAL = "central"
    LOCAL = "local"
    REGIONAL = "regional"


@dataclass(frozen=True)
class Product:
    id: str
    name: str
    unit_price: float
    unit: str = ""
    category: str = ""

    def __post_init__(self) -> None:
        price = float(self.unit_price)
        if not math.isfinite(price) or price < 0:
            raise ValueError(f"Product {self.id!r} has invalid unit price: {self.unit_price}")
        object.__setattr__(self, "unit_price", price)


@dataclass(frozen=True)
class Market:
    id: str
    name: str
    coordinate: Coordinate
    address: str = ""
    category: MarketCategory = MarketCategory.LOCAL
    products: Optional[Tuple[Product, ...]] = None


@dataclass(frozen=True)
class MarketComparison:
    market: Market
    distance_km: float
    total_price: float
    score: float


def _first_present(data: Mapping[str, Any], keys: Tuple[str, ...]) -> Any:
    for key in keys:
        value = data.get(key)
        if value is not None:
            return value
    return None


def product_from_dict(data: Mapping[str, Any]) -> Product:
    if not isinstance(data, Mapping):
        raise ValueError(f"Product must be an object, got {type(data).__name__}")
    product_id = data.get("id")
    name = data.get("name")
    if not product_id or not name:
        raise ValueError("Product requires id and name")
    price = _first_present(data, ("unit_price", "unitPrice", "price"))
    if price is None:
        raise ValueError(f"Product {product_id!r} has no price")
    return Product(
        id=str(product_id),
        name=str(name),
        unit_price=float(price),
        unit=str(data.get("unit") or ""),
        category=str(data.get("category") or ""),
    )


def market_from_dict(data: Mapping[str, Any]) -> Market:
    """Build a Market from a catalog record, rejecting malformed input."""
    market_id = data.get("id")
    name = data.get("name")
    if not market_id or not name:
        raise ValueError("Market requires id and name")

    location = data.get("coordinate") or data.get("location")
    if isinstance(location, Mapping):
        coordinate = Coordinate.from_dict(location)
    else:
        coordinate = Coordinate.from_dict(data)

    category_raw = (data.get("category") or MarketCategory.LOCAL.value)
    try:
        category = MarketCategory(str(category_raw).lower())
    except ValueError as exc:
        raise ValueError(f"Market {market_id!r} has unknown category: {category_raw}") from exc

    products_raw = data.get("products")
    products: Optional[Tuple[Product, ...]] = None
    if products_raw is not None:
        if not isinstance(products_raw, list):
            raise ValueError(f"Market {market_id!r} products must be a list")
        products = tuple(product_from_dict(p) for p in products_raw)

    return Market(
        id=str(market_id),
        name=str(name),
        coordinate=coordinate,
        address=str(data.get("address") or ""),
        category=category,
        products=products,
    )


def product_to_dict(product: Product) -> Dict[str, Any]:
    return {
        "id": product.id,
        "name": product.name,
        "unit_price": product.unit_price,
        "unit": product.unit,
        "category": product.category,
    }


def market_to_dict(market: Market) -> Dict[str, Any]:
    out: Dict[str, Any] = {
        "id": market.id,
        "name": market.name,
        "address": market.address,
        "latitude": market.coordinate.latitude,
        "longitude": market.coordinate.longitude,
        "category": market.category.value,
    }
    if market.products is not None:
        out["products"] = [product_to_dict(p) for p in market.products]
    return out


def markets_from_records(records: List[Mapping[str, Any]]) -> Tuple[List[Market], List[str]]:
    """Parse records, returning the valid markets and one message per rejected record."""
    markets: List[Market] = []
    rejected: List[str] = []
    for idx, record in enumerate(records):
        if not isinstance(record, Mapping):
            rejected.append(f"record {idx}: not an object")
            continue
        try:
            markets.append(market_from_dict(record))
        except (TypeError, ValueError) as exc:
            rejected.append(f"record {idx}: {exc}")
    return markets, rejected
