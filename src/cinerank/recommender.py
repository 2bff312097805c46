from dataclasses import dataclass, field
import logging
import math
from typing import Callable, Iterable, Mapping, Sequence

from .config import DEFAULT_TOP_K, MAX_TOP_K, RECOMMENDATION_WEIGHTS
from .content_affinity import ContentProfile, build_content_profile, content_affinity
from .director_affinity import compute_director_scores
from .rating import QualityTable, build_quality_table, normalize_quality
from .snapshot import (
    DirectorScore,
    InteractionSnapshot,
    MovieRecord,
    RecommendationMovieScore,
)

logger = logging.getLogger(__name__)


def clamp_top_k(top_k: int | None) -> int:
    """Requested list size clamped to [1, MAX_TOP_K]."""
    if top_k is None:
        top_k = DEFAULT_TOP_K
    return max(1, min(int(top_k), MAX_TOP_K))


@dataclass
class RankingContext:
    """Per-request lookups shared by every scoring component."""
    quality: QualityTable
    director_lookup: dict[str, float]
    content: ContentProfile
    selected_genres: frozenset[str]
    max_like_count: int
    total_genre_signals: int = 0
    total_director_signals: int = 0

    def __post_init__(self) -> None:
        self.total_genre_signals = self.content.total_genre_signals
        self.total_director_signals = self.content.total_director_signals


ComponentFunc = Callable[[RankingContext, MovieRecord], float]


def _director_component(ctx: RankingContext, movie: MovieRecord) -> float:
    """Affinity score of the movie's director (0 when the user never saw them)."""
    return ctx.director_lookup.get(movie.director, 0.0)


def _quality_component(ctx: RankingContext, movie: MovieRecord) -> float:
    baseline = ctx.quality.global_quality_mean
    return normalize_quality(ctx.quality.quality(movie.id), baseline)


def _genre_component(ctx: RankingContext, movie: MovieRecord) -> float:
    """Share of the selected genres this movie covers."""
    if not ctx.selected_genres:
        return 0.0
    overlap = sum(1 for genre in movie.genres if genre in ctx.selected_genres)
    return overlap / len(ctx.selected_genres)


def _content_component(ctx: RankingContext, movie: MovieRecord) -> float:
    return content_affinity(
        movie,
        ctx.content.genre_frequency,
        ctx.content.director_frequency,
        ctx.total_genre_signals,
        ctx.total_director_signals,
    )


def _popularity_component(ctx: RankingContext, movie: MovieRecord) -> float:
    """Log-scaled like count relative to the most-liked movie in the catalog."""
    if ctx.max_like_count <= 0:
        return 0.0
    return math.log1p(movie.like_count or 0) / math.log1p(ctx.max_like_count)


SCORING_COMPONENTS: dict[str, ComponentFunc] = {
    'director': _director_component,
    'quality': _quality_component,
    'genre': _genre_component,
    'content': _content_component,
    'popularity': _popularity_component,
}


@dataclass
class RankingResult:
    ranked_movies: list[RecommendationMovieScore] = field(default_factory=list)
    director_scores: list[DirectorScore] = field(default_factory=list)
    has_preference_signals: bool = False
    # movie_id -> weighted contribution per component, for returned movies only
    components: dict[int, dict[str, float]] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "rankedMovies": [m.to_dict() for m in self.ranked_movies],
            "directorScores": [d.to_dict() for d in self.director_scores],
            "hasPreferenceSignals": self.has_preference_signals,
        }


class HeuristicRecommender:
    """
    Deterministic, explainable ranking of unseen movies.

    Each candidate's score is a weighted sum of independent components
    (director affinity, quality, selected-genre overlap, content affinity,
    popularity). Users without likes or ratings get a quality-only chart.
    """

    def __init__(self, weights: Mapping[str, float] | None = None):
        weights = dict(RECOMMENDATION_WEIGHTS if weights is None else weights)
        unknown = set(weights) - set(SCORING_COMPONENTS)
        if unknown:
            raise ValueError(f"Unknown scoring components: {', '.join(sorted(unknown))}")
        self.weights = weights

    def build_context(
        self,
        movies: Sequence[MovieRecord],
        interactions: InteractionSnapshot,
        quality: QualityTable,
        director_scores: list[DirectorScore],
    ) -> RankingContext:
        return RankingContext(
            quality=quality,
            director_lookup={d.director: d.score for d in director_scores},
            content=build_content_profile(movies, interactions.seen_movie_ids()),
            selected_genres=frozenset(interactions.effective_genres()),
            max_like_count=max((m.like_count or 0 for m in movies), default=0),
        )

    def score_components(self, ctx: RankingContext, movie: MovieRecord) -> dict[str, float]:
        """Weighted contribution of every configured component."""
        return {
            name: weight * SCORING_COMPONENTS[name](ctx, movie)
            for name, weight in self.weights.items()
        }

    def rank(
        self,
        movies: Sequence[MovieRecord],
        interactions: InteractionSnapshot,
        top_k: int = DEFAULT_TOP_K,
    ) -> RankingResult:
        has_signals = interactions.has_preference_signals
        if not movies:
            return RankingResult(has_preference_signals=has_signals)

        k = clamp_top_k(top_k)
        quality = build_quality_table(movies)

        if not has_signals:
            logger.debug("No likes or ratings; falling back to quality ranking")
            return RankingResult(
                ranked_movies=quality_ranking(movies, quality, k),
                has_preference_signals=False,
            )

        director_scores = compute_director_scores(
            movies,
            interactions.liked_movie_ids,
            interactions.user_ratings_by_movie,
            quality=quality,
        )
        ctx = self.build_context(movies, interactions, quality, director_scores)

        seen = interactions.seen_movie_ids()
        pool = [m for m in movies if m.id not in seen]
        if not pool:
            logger.info("User has seen every catalog movie; ranking the full catalog")
            pool = list(movies)

        scored = []
        for movie in pool:
            parts = self.score_components(ctx, movie)
            scored.append((movie.id, sum(parts.values()), parts))

        scored.sort(key=lambda x: -x[1])
        top = scored[:k]

        logger.debug(f"Ranked {len(pool)} candidates, returning {len(top)}")
        return RankingResult(
            ranked_movies=[RecommendationMovieScore(movie_id, score) for movie_id, score, _ in top],
            director_scores=director_scores,
            has_preference_signals=True,
            components={movie_id: parts for movie_id, _, parts in top},
        )


def quality_ranking(
    movies: Iterable[MovieRecord],
    quality: QualityTable,
    k: int,
) -> list[RecommendationMovieScore]:
    """Cold-start chart: movies by quality, catalog order kept on ties."""
    ordered = sorted(movies, key=lambda m: -quality.quality(m.id))
    return [RecommendationMovieScore(m.id, quality.quality(m.id)) for m in ordered[:k]]


def rank(
    movies: Sequence[MovieRecord],
    liked_movie_ids: Iterable[int],
    user_ratings_by_movie: Mapping[int, float],
    selected_genres: Iterable[str] = (),
    top_k: int = DEFAULT_TOP_K,
) -> RankingResult:
    """Functional entry point with the engine's default weights."""
    interactions = InteractionSnapshot(
        liked_movie_ids=frozenset(liked_movie_ids),
        user_ratings_by_movie=user_ratings_by_movie,
        selected_genres=tuple(selected_genres),
    )
    return HeuristicRecommender().rank(movies, interactions, top_k)
