import logging
import math
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Iterable, Sequence

from .confidence import wilson_lower_bound
from .config import (
    DIRECTOR_WEIGHTS,
    RATING_DELTA_SCALE,
    RATING_SHRINK_C,
    UNKNOWN_DIRECTOR,
    WILSON_Z,
)
from .rating import QualityTable, build_quality_table, normalize_quality
from .snapshot import DirectorScore, MovieRecord

logger = logging.getLogger(__name__)


@dataclass
class DirectorStats:
    """Running totals for one director over the user's seen movies."""
    liked_count: int = 0
    seen_count: int = 0
    rating_count: int = 0
    rating_sum: float = 0.0
    liked_quality_sum: float = 0.0
    seen_quality_sum: float = 0.0
    liked_display_sum: float = 0.0
    seen_display_sum: float = 0.0

    @property
    def rating_mean(self) -> float | None:
        return self.rating_sum / self.rating_count if self.rating_count > 0 else None

    def quality_mean(self, fallback: float) -> float:
        """Mean quality over liked movies, or over every seen movie when none are liked."""
        if self.liked_count > 0:
            return self.liked_quality_sum / self.liked_count
        if self.seen_count > 0:
            return self.seen_quality_sum / self.seen_count
        return fallback

    def display_mean(self, fallback: float) -> float:
        if self.liked_count > 0:
            return self.liked_display_sum / self.liked_count
        if self.seen_count > 0:
            return self.seen_display_sum / self.seen_count
        return fallback


def _rating_component(stats: DirectorStats, user_rating_mean: float | None) -> float:
    """
    tanh-bounded deviation of the director's mean rating from the user's mean.

    shrink = n / (n + C) damps directors rated only once or twice.
    """
    if stats.rating_count <= 0:
        return 0.0
    director_mean = stats.rating_mean
    delta = director_mean - user_rating_mean if user_rating_mean is not None else 0.0
    shrink = stats.rating_count / (stats.rating_count + RATING_SHRINK_C)
    return math.tanh((delta * shrink) / RATING_DELTA_SCALE)


def accumulate_director_stats(
    movies: Iterable[MovieRecord],
    liked_movie_ids: set[int] | frozenset[int],
    user_ratings_by_movie: Mapping[int, float],
    quality: QualityTable,
) -> dict[str, DirectorStats]:
    """Group the user's liked-or-rated movies by director."""
    stats: dict[str, DirectorStats] = {}
    for movie in movies:
        liked = movie.id in liked_movie_ids
        user_rating = user_ratings_by_movie.get(movie.id)
        if not liked and user_rating is None:
            continue

        director = movie.director or UNKNOWN_DIRECTOR
        acc = stats.setdefault(director, DirectorStats())
        quality_value = quality.quality(movie.id)
        display_value = quality.display(movie.id)

        acc.seen_count += 1
        acc.seen_quality_sum += quality_value
        acc.seen_display_sum += display_value
        if liked:
            acc.liked_count += 1
            acc.liked_quality_sum += quality_value
            acc.liked_display_sum += display_value
        if user_rating is not None:
            acc.rating_count += 1
            acc.rating_sum += user_rating
    return stats


def compute_director_scores(
    movies: Sequence[MovieRecord],
    liked_movie_ids: Iterable[int],
    user_ratings_by_movie: Mapping[int, float],
    quality: QualityTable | None = None,
    z: float = WILSON_Z,
) -> list[DirectorScore]:
    """
    Rank directors by the user's affinity for them.

    Each director blends three normalized components:
    - rating:  tanh of the shrunk rating delta vs the user's own mean
    - like:    Wilson lower bound of liked / seen
    - quality: mean catalog quality of the director's movies, scaled to [0, 1]

    Returns an empty list when the user has neither likes nor ratings.
    """
    liked = frozenset(liked_movie_ids)
    if not liked and not user_ratings_by_movie:
        return []

    if quality is None:
        quality = build_quality_table(movies)

    ratings = list(user_ratings_by_movie.values())
    user_rating_mean = sum(ratings) / len(ratings) if ratings else None

    stats = accumulate_director_stats(movies, liked, user_ratings_by_movie, quality)

    scores = []
    for director, acc in stats.items():
        rating_component = _rating_component(acc, user_rating_mean)
        like_component = wilson_lower_bound(acc.liked_count, acc.seen_count, z)
        quality_component = normalize_quality(
            acc.quality_mean(quality.global_quality_mean),
            quality.global_quality_mean,
        )
        score = (
            DIRECTOR_WEIGHTS['rating'] * rating_component
            + DIRECTOR_WEIGHTS['like'] * like_component
            + DIRECTOR_WEIGHTS['quality'] * quality_component
        )
        scores.append(DirectorScore(
            director=director,
            score=score,
            liked_count=acc.liked_count,
            seen_count=acc.seen_count,
            avg_quality=acc.display_mean(quality.global_quality_mean),
        ))

    scores.sort(key=lambda s: -s.score)
    logger.debug(f"Scored {len(scores)} directors")
    return scores
