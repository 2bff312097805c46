"""
Interchangeable ranking strategies behind one request/response interface.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Sequence

from .config import DEFAULT_TOP_K
from .latent_factor import LatentFactorModel
from .model_service import ModelService
from .recommender import HeuristicRecommender, RankingResult, clamp_top_k
from .snapshot import (
    InteractionSnapshot,
    Like,
    MovieRecord,
    RecommendationMovieScore,
    Review,
    active_reviews,
    interactions_for_user,
)

logger = logging.getLogger(__name__)


@dataclass
class RecommendationRequest:
    user_id: int
    movies: Sequence[MovieRecord]
    reviews: Sequence[Review] = ()
    likes: Sequence[Like] = ()
    selected_genres: Sequence[str] = ()
    preferred_genres: Sequence[str] = ()
    top_k: int = DEFAULT_TOP_K

    def interactions(self) -> InteractionSnapshot:
        return interactions_for_user(
            self.user_id,
            self.reviews,
            self.likes,
            selected_genres=self.selected_genres,
            preferred_genres=self.preferred_genres,
        )

    def active_reviews(self) -> list[Review]:
        return active_reviews(self.reviews)


class HeuristicStrategy:
    """Director/quality/content scoring pipeline."""

    name = "heuristic"

    def __init__(self, recommender: HeuristicRecommender | None = None):
        self.recommender = recommender or HeuristicRecommender()

    def rank(self, request: RecommendationRequest) -> RankingResult:
        """Full result including director diagnostics."""
        return self.recommender.rank(request.movies, request.interactions(), request.top_k)

    def recommend(self, request: RecommendationRequest) -> list[RecommendationMovieScore]:
        return self.rank(request).ranked_movies


class LatentFactorStrategy:
    """
    Latent-factor predictions over the user's unseen movies.

    Without a ModelService a fresh model is trained for every request; with
    one, the service's current snapshot is read and nothing is trained.
    """

    name = "latent"

    def __init__(
        self,
        model_factory: Callable[[], LatentFactorModel] = LatentFactorModel,
        service: ModelService | None = None,
    ):
        self.model_factory = model_factory
        self.service = service

    def _candidate_ids(self, request: RecommendationRequest) -> list[int]:
        seen = request.interactions().seen_movie_ids()
        unseen = [m.id for m in request.movies if m.id not in seen]
        return unseen or [m.id for m in request.movies]

    def recommend(self, request: RecommendationRequest) -> list[RecommendationMovieScore]:
        if not request.movies:
            return []
        k = clamp_top_k(request.top_k)
        candidates = self._candidate_ids(request)

        if self.service is not None:
            return self.service.recommend(request.user_id, candidates, k)

        reviews = request.active_reviews()
        model = self.model_factory()
        model.initialize(request.movies, reviews, request.likes)
        model.train(reviews)
        return model.recommend(request.user_id, candidates, k)


STRATEGIES: dict[str, type] = {
    HeuristicStrategy.name: HeuristicStrategy,
    LatentFactorStrategy.name: LatentFactorStrategy,
}


def get_strategy(name: str, **kwargs) -> HeuristicStrategy | LatentFactorStrategy:
    """Instantiate a strategy by name ("heuristic" or "latent")."""
    try:
        strategy_cls = STRATEGIES[name]
    except KeyError:
        raise ValueError(
            f"Unknown strategy '{name}'. Choose from: {', '.join(sorted(STRATEGIES))}"
        ) from None
    return strategy_cls(**kwargs)
