"""Catalog-backed recommendations that follow the user's position."""
from __future__ import annotations

import logging
from typing import Callable, List, Optional, Sequence

from . import config
from .catalog import CatalogProvider
from .models import Market, MarketComparison, Position
from .ranking import Origin, nearby_markets, rank_markets
from .scoring import ScoringWeights
from .state import LocationState

logger = logging.getLogger(__name__)

RankingCallback = Callable[[List[MarketComparison]], None]


class Recommender:
    def __init__(
        self,
        catalog: CatalogProvider,
        weights: Optional[ScoringWeights] = None,
        policy: Optional[str] = None,
    ) -> None:
        self.catalog = catalog
        self.weights = weights or ScoringWeights.from_config()
        self.policy = policy

    def rank(self, position: Origin, shopping_list: Sequence[str]) -> List[MarketComparison]:
        markets = self.catalog.list_markets()
        comparisons = rank_markets(position, markets, shopping_list, self.weights, self.policy)
        if comparisons:
            best = comparisons[0]
            logger.info(
                "Ranked %d markets; best: %s (score=%.1f, %.2f km, total=%.0f)",
                len(comparisons),
                best.market.name,
                best.score,
                best.distance_km,
                best.total_price,
            )
        return comparisons

    def nearby(self, position: Origin, radius_km: Optional[float] = None) -> List[Market]:
        radius = config.NEARBY_RADIUS_KM if radius_km is None else radius_km
        return nearby_markets(position, self.catalog.list_markets(), radius)

    def follow(
        self,
        state: LocationState,
        shopping_list: Sequence[str],
        on_ranking: RankingCallback,
    ) -> Callable[[], None]:
        """Re-rank on every position update. Returns the unsubscribe function."""
        items = list(shopping_list)

        def on_position(position: Position) -> None:
            on_ranking(self.rank(position, items))

        return state.subscribe(on_position)
