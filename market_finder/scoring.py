"""Market scoring: basket price estimate and distance/price desirability."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

from . import config
from .models import Market, Product


@dataclass(frozen=True)
class ScoringWeights:
    distance_weight: float = 0.3
    price_weight: float = 0.7
    max_score: float = 100.0
    distance_penalty_per_km: float = 2.0
    price_divisor: float = 10.0
    unknown_price_score: float = 50.0

    def __post_init__(self) -> None:
        if self.price_divisor <= 0:
            raise ValueError("price_divisor must be positive")

    @classmethod
    def from_config(cls) -> "ScoringWeights":
        return cls(
            distance_weight=config.SCORE_WEIGHT_DISTANCE,
            price_weight=config.SCORE_WEIGHT_PRICE,
            max_score=config.SCORE_MAX,
            distance_penalty_per_km=config.SCORE_DISTANCE_PENALTY_PER_KM,
            price_divisor=config.SCORE_PRICE_DIVISOR,
            unknown_price_score=config.SCORE_UNKNOWN_PRICE,
        )


DEFAULT_WEIGHTS = ScoringWeights()


def match_product(market: Market, item: str, policy: str = "first") -> Optional[Product]:
    """Find the product whose name contains ``item``, ignoring case.

    ``first`` keeps catalog order; ``cheapest`` picks the lowest unit price
    among all matches.
    """
    if policy not in config.PRODUCT_MATCH_POLICIES:
        raise ValueError(f"Unknown product match policy: {policy}")
    needle = item.lower()
    matches = (p for p in market.products or () if needle in p.name.lower())
    if policy == "first":
        return next(matches, None)
    return min(matches, key=lambda p: p.unit_price, default=None)


def compute_total_price(
    market: Market,
    shopping_list: Iterable[str],
    policy: Optional[str] = None,
) -> float:
    """Sum matched unit prices. 0 means unknown: no products or no matches."""
    if not market.products:
        return 0.0
    policy = policy or config.PRODUCT_MATCH_POLICY
    total = 0.0
    for item in shopping_list:
        product = match_product(market, item, policy)
        if product is not None:
            total += product.unit_price
    return total


def compute_score(
    distance_km: float,
    total_price: float,
    weights: ScoringWeights = DEFAULT_WEIGHTS,
) -> float:
    distance_score = max(0.0, weights.max_score - distance_km * weights.distance_penalty_per_km)
    if total_price > 0:
        price_score = max(0.0, weights.max_score - total_price / weights.price_divisor)
    else:
        price_score = weights.unknown_price_score
    return distance_score * weights.distance_weight + price_score * weights.price_weight
