"""
Lightweight content-based signal: overlap between a candidate movie and the
genre/director frequency profile of the user's liked-or-rated movies.
"""
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Iterable

from .config import CONTENT_WEIGHTS, UNKNOWN_DIRECTOR
from .snapshot import MovieRecord

logger = logging.getLogger(__name__)


@dataclass
class ContentProfile:
    """Occurrence counts of genres and directors across the user's history."""
    genre_frequency: dict[str, int] = field(default_factory=dict)
    director_frequency: dict[str, int] = field(default_factory=dict)

    @property
    def total_genre_signals(self) -> int:
        return sum(self.genre_frequency.values())

    @property
    def total_director_signals(self) -> int:
        return sum(self.director_frequency.values())


def build_content_profile(movies: Iterable[MovieRecord], seen_movie_ids: Iterable[int]) -> ContentProfile:
    """Count one signal per genre occurrence and one per movie-director occurrence."""
    seen = set(seen_movie_ids)
    genre_frequency: dict[str, int] = defaultdict(int)
    director_frequency: dict[str, int] = defaultdict(int)
    for movie in movies:
        if movie.id not in seen:
            continue
        for genre in movie.genres:
            genre_frequency[genre] += 1
        director_frequency[movie.director or UNKNOWN_DIRECTOR] += 1
    return ContentProfile(
        genre_frequency=dict(genre_frequency),
        director_frequency=dict(director_frequency),
    )


def content_affinity(
    movie: MovieRecord,
    genre_frequency: dict[str, int],
    director_frequency: dict[str, int],
    total_genre_signals: int,
    total_director_signals: int,
) -> float:
    """
    0.6 * mean genre share + 0.4 * director share.

    Both shares are 0 when the user has no signals of that kind.
    """
    if total_genre_signals > 0:
        genre_sum = sum(genre_frequency.get(g, 0) / total_genre_signals for g in movie.genres)
        genre_score = genre_sum / max(1, len(movie.genres))
    else:
        genre_score = 0.0

    if total_director_signals > 0:
        director_score = director_frequency.get(movie.director, 0) / total_director_signals
    else:
        director_score = 0.0

    return CONTENT_WEIGHTS['genre'] * genre_score + CONTENT_WEIGHTS['director'] * director_score

