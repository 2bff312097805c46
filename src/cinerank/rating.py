"""
Rating normalization: Bayesian (IMDB-style) shrinkage of movie ratings.

Low-vote movies regress toward the catalog mean so that a single 10/10 vote
cannot dominate rankings.
"""
import logging
import math
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Iterable, Sequence

from .config import (
    ACTIVE_REVIEW_STATUS,
    DEFAULT_GLOBAL_AVG,
    DEFAULT_MIN_VOTES,
    RATING_SCALE_MAX,
)

logger = logging.getLogger(__name__)


def imdb_weighted_rating(
    rating: float | None,
    vote_count: int | None,
    global_average: float = DEFAULT_GLOBAL_AVG,
    min_votes: float = DEFAULT_MIN_VOTES,
) -> float:
    """
    Blend a movie's own average with the global prior.

    WR = v/(v+m) * R + m/(v+m) * C

    where R is the movie's rating (the prior C when missing), v its vote
    count and m the number of votes needed before R outweighs C.
    """
    R = rating if rating is not None else global_average
    v = vote_count if vote_count is not None else 0
    if v <= 0:
        return global_average
    return (v / (v + min_votes)) * R + (min_votes / (v + min_votes)) * global_average


def display_rating(movie) -> float | None:
    """The rating shown to users: raw average, else the stored weighted rating."""
    if movie.avg_rating is not None:
        return movie.avg_rating
    if movie.weighted_rating is not None:
        return movie.weighted_rating
    return None


def catalog_global_average(movies: Iterable) -> float:
    """Mean of every known display rating in the catalog, or the fixed prior."""
    samples = [r for r in (display_rating(m) for m in movies) if r is not None]
    if not samples:
        return DEFAULT_GLOBAL_AVG
    return sum(samples) / len(samples)


def movie_quality(movie, global_average: float, min_votes: float = DEFAULT_MIN_VOTES) -> float:
    """Quality score for ranking; a precomputed weighted rating wins."""
    if movie.weighted_rating is not None:
        return movie.weighted_rating
    return imdb_weighted_rating(display_rating(movie), movie.vote_count, global_average, min_votes)


def normalize_quality(value: float | None, baseline: float) -> float:
    """Map a 0-10 quality onto [0, 1]; non-finite values fall back to baseline."""
    if value is None or not math.isfinite(value):
        value = baseline
    return max(0.0, min(1.0, value / RATING_SCALE_MAX))


def aggregate_rating_stats(
    reviews: Iterable,
    global_average: float = DEFAULT_GLOBAL_AVG,
    min_votes: float = DEFAULT_MIN_VOTES,
) -> dict[int, tuple[float, int, float]]:
    """
    Per-movie (avg_rating, vote_count, weighted_rating) over active reviews.

    Averages and weighted ratings are rounded to two decimals, the precision
    the catalog service stores them at.
    """
    sums: dict[int, float] = defaultdict(float)
    counts: dict[int, int] = defaultdict(int)
    for review in reviews:
        if review.status != ACTIVE_REVIEW_STATUS:
            continue
        sums[review.movie_id] += review.rating
        counts[review.movie_id] += 1

    stats = {}
    for movie_id, count in counts.items():
        avg = sums[movie_id] / count
        weighted = imdb_weighted_rating(avg, count, global_average, min_votes)
        stats[movie_id] = (round(avg, 2), count, round(weighted, 2))

    logger.debug(f"Aggregated rating stats for {len(stats)} movies")
    return stats


@dataclass
class QualityTable:
    """Per-request quality lookups shared by the director and ranking models."""
    global_average: float
    global_quality_mean: float
    quality_by_movie: dict[int, float] = field(default_factory=dict)
    display_by_movie: dict[int, float] = field(default_factory=dict)

    def quality(self, movie_id: int) -> float:
        return self.quality_by_movie.get(movie_id, self.global_quality_mean)

    def display(self, movie_id: int) -> float:
        return self.display_by_movie.get(movie_id, self.global_quality_mean)


def build_quality_table(movies: Sequence, min_votes: float = DEFAULT_MIN_VOTES) -> QualityTable:
    """
    Compute the catalog prior, per-movie quality and the mean quality.

    Display values fall back to the catalog prior for unrated movies.
    """
    global_average = catalog_global_average(movies)
    quality_by_movie: dict[int, float] = {}
    display_by_movie: dict[int, float] = {}
    for movie in movies:
        shown = display_rating(movie)
        quality_by_movie[movie.id] = movie_quality(movie, global_average, min_votes)
        display_by_movie[movie.id] = shown if shown is not None else global_average

    if quality_by_movie:
        global_quality_mean = sum(quality_by_movie.values()) / len(quality_by_movie)
    else:
        global_quality_mean = global_average

    return QualityTable(
        global_average=global_average,
        global_quality_mean=global_quality_mean,
        quality_by_movie=quality_by_movie,
        display_by_movie=display_by_movie,
    )
