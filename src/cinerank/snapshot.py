"""
In-memory snapshots of catalog and interaction data.

The ranking core never talks to a database: callers hand it immutable
per-request snapshots built from already-fetched rows.
"""

from __future__ import annotations

import json
import logging
import re
from collections import defaultdict
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Iterable, Mapping

from .config import ACTIVE_REVIEW_STATUS, UNKNOWN_DIRECTOR
from .rating import aggregate_rating_stats

logger = logging.getLogger(__name__)

_SLUG_STRIP = re.compile(r"[^a-z0-9가-힣\s-]")
_SLUG_SPACES = re.compile(r"\s+")


def normalize_genre_slug(value: str) -> str:
    """Lowercase slug with whitespace collapsed to hyphens ("Science Fiction" -> "science-fiction")."""
    cleaned = _SLUG_STRIP.sub("", value.strip().lower())
    return _SLUG_SPACES.sub("-", cleaned)


def sanitize_genre_slugs(values: Any) -> tuple[str, ...]:
    """Normalize a loosely-typed list of genre names, dropping junk and duplicates."""
    if not isinstance(values, (list, tuple, set, frozenset)):
        return ()
    result: dict[str, None] = {}
    for value in values:
        if not isinstance(value, str):
            continue
        slug = normalize_genre_slug(value)
        if slug:
            result[slug] = None
    return tuple(result)


def _pick(payload: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    """First present key wins; accepts both snake_case and camelCase payloads."""
    for key in keys:
        if key in payload and payload[key] is not None:
            return payload[key]
    return default


def _optional_float(value: Any) -> float | None:
    return float(value) if value is not None else None


def _optional_int(value: Any) -> int | None:
    return int(value) if value is not None else None


@dataclass(frozen=True)
class MovieRecord:
    """One catalog row joined with its aggregate rating statistics."""
    id: int
    director: str = UNKNOWN_DIRECTOR
    genres: tuple[str, ...] = ()
    avg_rating: float | None = None
    vote_count: int | None = None
    weighted_rating: float | None = None
    like_count: int | None = None
    title: str = ""
    cast: tuple[int, ...] = ()

    def __post_init__(self) -> None:
        if not self.director:
            object.__setattr__(self, "director", UNKNOWN_DIRECTOR)
        object.__setattr__(self, "genres", tuple(dict.fromkeys(self.genres)))
        object.__setattr__(self, "cast", tuple(self.cast))
        if self.vote_count is not None and self.vote_count < 0:
            raise ValueError(f"Movie {self.id}: vote_count must be non-negative, got {self.vote_count}")
        if self.like_count is not None and self.like_count < 0:
            raise ValueError(f"Movie {self.id}: like_count must be non-negative, got {self.like_count}")

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "MovieRecord":
        cast = []
        for member in payload.get("cast") or []:
            member_id = member.get("id") if isinstance(member, Mapping) else member
            if member_id is not None:
                cast.append(int(member_id))
        genres = payload.get("genres") or []
        return cls(
            id=int(payload["id"]),
            director=_pick(payload, "director", "director_name", default=UNKNOWN_DIRECTOR),
            genres=sanitize_genre_slugs(list(genres)),
            avg_rating=_optional_float(_pick(payload, "avg_rating", "avgRating")),
            vote_count=_optional_int(_pick(payload, "vote_count", "voteCount")),
            weighted_rating=_optional_float(_pick(payload, "weighted_rating", "weightedRating")),
            like_count=_optional_int(_pick(payload, "like_count", "likeCount")),
            title=str(payload.get("title") or ""),
            cast=tuple(cast),
        )


@dataclass(frozen=True)
class Review:
    user_id: int
    movie_id: int
    rating: float
    status: str = ACTIVE_REVIEW_STATUS

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Review":
        return cls(
            user_id=int(_pick(payload, "user_id", "userId")),
            movie_id=int(_pick(payload, "movie_id", "movieId")),
            rating=float(payload["rating"]),
            status=str(payload.get("status") or ACTIVE_REVIEW_STATUS),
        )


@dataclass(frozen=True)
class Like:
    user_id: int
    movie_id: int

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Like":
        return cls(
            user_id=int(_pick(payload, "user_id", "userId")),
            movie_id=int(_pick(payload, "movie_id", "movieId")),
        )


@dataclass(frozen=True)
class InteractionSnapshot:
    """A single user's likes, ratings and genre selection for one request."""
    liked_movie_ids: frozenset[int] = frozenset()
    user_ratings_by_movie: Mapping[int, float] = field(default_factory=dict)
    selected_genres: tuple[str, ...] = ()
    preferred_genres: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "liked_movie_ids", frozenset(self.liked_movie_ids))
        object.__setattr__(self, "user_ratings_by_movie", dict(self.user_ratings_by_movie))
        object.__setattr__(self, "selected_genres", tuple(dict.fromkeys(self.selected_genres)))
        object.__setattr__(self, "preferred_genres", tuple(dict.fromkeys(self.preferred_genres)))

    @property
    def has_preference_signals(self) -> bool:
        return bool(self.liked_movie_ids) or bool(self.user_ratings_by_movie)

    def seen_movie_ids(self) -> set[int]:
        """Movies the user liked or rated."""
        return set(self.liked_movie_ids) | set(self.user_ratings_by_movie)

    def effective_genres(self) -> tuple[str, ...]:
        """Explicit selection when given, otherwise the user's stored preferences."""
        return self.selected_genres or self.preferred_genres


@dataclass(frozen=True)
class DirectorScore:
    director: str
    score: float
    liked_count: int
    seen_count: int
    avg_quality: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "director": self.director,
            "score": self.score,
            "likedCount": self.liked_count,
            "seenCount": self.seen_count,
            "avgQuality": self.avg_quality,
        }


@dataclass(frozen=True)
class RecommendationMovieScore:
    movie_id: int
    score: float

    def to_dict(self) -> dict[str, Any]:
        return {"movieId": self.movie_id, "score": self.score}


def active_reviews(reviews: Iterable[Review]) -> list[Review]:
    return [r for r in reviews if r.status == ACTIVE_REVIEW_STATUS]


def count_likes(likes: Iterable[Like]) -> dict[int, int]:
    counts: dict[int, int] = defaultdict(int)
    for like in likes:
        counts[like.movie_id] += 1
    return dict(counts)


def build_catalog(
    movie_rows: Iterable[MovieRecord],
    reviews: Iterable[Review],
    likes: Iterable[Like],
) -> list[MovieRecord]:
    """
    Fill missing rating statistics and like counts from raw interactions.

    Values already present on a row are kept as-is.
    """
    stats = aggregate_rating_stats(reviews)
    like_counts = count_likes(likes)

    catalog = []
    for movie in movie_rows:
        updates: dict[str, Any] = {}
        if movie.id in stats:
            avg, votes, weighted = stats[movie.id]
            if movie.avg_rating is None:
                updates["avg_rating"] = avg
            if movie.vote_count is None:
                updates["vote_count"] = votes
            if movie.weighted_rating is None:
                updates["weighted_rating"] = weighted
        if movie.like_count is None:
            updates["like_count"] = like_counts.get(movie.id, 0)
        catalog.append(replace(movie, **updates) if updates else movie)
    return catalog


def interactions_for_user(
    user_id: int,
    reviews: Iterable[Review],
    likes: Iterable[Like],
    selected_genres: Iterable[str] = (),
    preferred_genres: Iterable[str] = (),
) -> InteractionSnapshot:
    """Collect one user's likes and active ratings (the latest review per movie wins)."""
    liked = {like.movie_id for like in likes if like.user_id == user_id}
    ratings = {
        review.movie_id: review.rating
        for review in reviews
        if review.user_id == user_id and review.status == ACTIVE_REVIEW_STATUS
    }
    return InteractionSnapshot(
        liked_movie_ids=frozenset(liked),
        user_ratings_by_movie=ratings,
        selected_genres=sanitize_genre_slugs(list(selected_genres)),
        preferred_genres=sanitize_genre_slugs(list(preferred_genres)),
    )


@dataclass
class CatalogSnapshot:
    """Everything a ranking request needs, as loaded from a JSON export."""
    movies: list[MovieRecord] = field(default_factory=list)
    reviews: list[Review] = field(default_factory=list)
    likes: list[Like] = field(default_factory=list)
    preferred_genres: dict[int, tuple[str, ...]] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "CatalogSnapshot":
        if not isinstance(payload, Mapping):
            raise ValueError("Snapshot must be a JSON object")
        reviews = [Review.from_dict(r) for r in payload.get("reviews") or []]
        likes = [Like.from_dict(l) for l in payload.get("likes") or []]
        rows = [MovieRecord.from_dict(m) for m in payload.get("movies") or []]
        preferred = {
            int(user_id): sanitize_genre_slugs(list(genres or []))
            for user_id, genres in (payload.get("preferred_genres") or payload.get("preferredGenres") or {}).items()
        }
        return cls(
            movies=build_catalog(rows, reviews, likes),
            reviews=reviews,
            likes=likes,
            preferred_genres=preferred,
        )

    def interactions_for(self, user_id: int, selected_genres: Iterable[str] = ()) -> InteractionSnapshot:
        return interactions_for_user(
            user_id,
            self.reviews,
            self.likes,
            selected_genres=selected_genres,
            preferred_genres=self.preferred_genres.get(user_id, ()),
        )


def load_snapshot(path: str | Path) -> CatalogSnapshot:
    """Load a catalog snapshot from a JSON file."""
    snapshot_path = Path(path)
    try:
        payload = json.loads(snapshot_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid snapshot JSON in {snapshot_path}: {exc}") from exc
    try:
        snapshot = CatalogSnapshot.from_dict(payload)
    except (KeyError, TypeError) as exc:
        raise ValueError(f"Malformed snapshot {snapshot_path}: {exc}") from exc
    logger.info(
        f"Loaded snapshot with {len(snapshot.movies)} movies, "
        f"{len(snapshot.reviews)} reviews, {len(snapshot.likes)} likes"
    )
    return snapshot
