"""Market ranking and radius queries around the user's position."""
from __future__ import annotations

from typing import Iterable, List, Optional, Sequence, Union

from .geo import distance_km
from .models import Coordinate, Market, MarketComparison, Position
from .scoring import ScoringWeights, compute_score, compute_total_price

Origin = Union[Position, Coordinate]


def _coordinate(origin: Origin) -> Coordinate:
    if isinstance(origin, Position):
        return origin.coordinate
    return origin


def compare_market(
    origin: Origin,
    market: Market,
    shopping_list: Sequence[str],
    weights: Optional[ScoringWeights] = None,
    policy: Optional[str] = None,
) -> MarketComparison:
    weights = weights or ScoringWeights.from_config()
    distance = distance_km(_coordinate(origin), market.coordinate)
    total_price = compute_total_price(market, shopping_list, policy)
    return MarketComparison(
        market=market,
        distance_km=distance,
        total_price=total_price,
        score=compute_score(distance, total_price, weights),
    )


def rank_markets(
    user_position: Origin,
    markets: Iterable[Market],
    shopping_list: Sequence[str],
    weights: Optional[ScoringWeights] = None,
    policy: Optional[str] = None,
) -> List[MarketComparison]:
    """Score every market, best first. Ties keep catalog order."""
    weights = weights or ScoringWeights.from_config()
    items = list(shopping_list)
    comparisons = [
        compare_market(user_position, market, items, weights, policy) for market in markets
    ]
    # sorted() is stable, so equal scores retain input order.
    return sorted(comparisons, key=lambda c: c.score, reverse=True)


def nearby_markets(
    user_position: Origin,
    markets: Iterable[Market],
    radius_km: float,
) -> List[Market]:
    """Markets within ``radius_km`` (inclusive), closest first."""
    origin = _coordinate(user_position)
    within = []
    for market in markets:
        distance = distance_km(origin, market.coordinate)
        if distance <= radius_km:
            within.append((distance, market))
    within.sort(key=lambda pair: pair[0])
    return [market for _, market in within]
