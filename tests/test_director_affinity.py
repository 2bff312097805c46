import math

import pytest

from cinerank.confidence import wilson_lower_bound
from cinerank.director_affinity import compute_director_scores
from cinerank.rating import build_quality_table
from cinerank.snapshot import MovieRecord


def test_no_signals_returns_empty(small_catalog):
    assert compute_director_scores(small_catalog, [], {}) == []


def test_liked_director_outranks_unseen_director():
    movies = [
        MovieRecord(id=1, director="A", genres=("drama",), avg_rating=9, vote_count=500),
        MovieRecord(id=2, director="B", genres=("action",), avg_rating=3, vote_count=500),
    ]
    scores = compute_director_scores(movies, [1], {})
    by_director = {s.director: s for s in scores}

    b_score = by_director["B"].score if "B" in by_director else 0.0
    assert by_director["A"].score > b_score
    a = by_director["A"]
    assert a.liked_count == 1
    assert a.seen_count == 1
    # No ratings: like (Wilson 1/1) and quality components only
    quality = 500 / 650 * 9 + 150 / 650 * 6
    assert a.score == pytest.approx(0.3 * wilson_lower_bound(1, 1) + 0.2 * quality / 10)
    assert a.avg_quality == pytest.approx(9.0)


def test_rating_component_uses_shrunk_delta():
    movies = [
        MovieRecord(id=1, director="Loved", avg_rating=7.0, vote_count=100),
        MovieRecord(id=2, director="Loved", avg_rating=7.0, vote_count=100),
        MovieRecord(id=3, director="Meh", avg_rating=7.0, vote_count=100),
        MovieRecord(id=4, director="Meh", avg_rating=7.0, vote_count=100),
    ]
    ratings = {1: 10, 2: 10, 3: 4, 4: 4}
    scores = compute_director_scores(movies, [], ratings)
    by_director = {s.director: s.score for s in scores}

    user_mean = 7.0
    shrink = 2 / (2 + 3)
    quality_part = 0.2 * 0.7
    assert by_director["Loved"] == pytest.approx(0.5 * math.tanh((10 - user_mean) * shrink / 0.7) + quality_part)
    assert by_director["Meh"] == pytest.approx(0.5 * math.tanh((4 - user_mean) * shrink / 0.7) + quality_part)
    assert [s.director for s in scores] == ["Loved", "Meh"]


def test_rated_only_director_keeps_quality_from_seen_movies():
    movies = [
        MovieRecord(id=1, director="Rated", avg_rating=8.0, weighted_rating=8.0),
        MovieRecord(id=2, director="Liked", avg_rating=5.0, weighted_rating=5.0),
        MovieRecord(id=3, director="Liked", avg_rating=9.0, weighted_rating=9.0),
    ]
    scores = {s.director: s for s in compute_director_scores(movies, [2], {1: 6, 3: 6})}

    # "Rated" has no likes, so its quality comes from every seen movie
    assert scores["Rated"].avg_quality == pytest.approx(8.0)
    assert scores["Rated"].liked_count == 0
    # "Liked" only averages the liked movie even though both were seen
    assert scores["Liked"].avg_quality == pytest.approx(5.0)
    assert scores["Liked"].seen_count == 2


def test_missing_director_uses_unknown_sentinel():
    movies = [MovieRecord(id=1, director="", avg_rating=7.0, vote_count=10)]
    scores = compute_director_scores(movies, [1], {})
    assert scores[0].director == "미상"


def test_wider_confidence_lowers_like_component():
    movies = [MovieRecord(id=i, director="A", weighted_rating=7.0) for i in range(1, 4)]
    narrow = compute_director_scores(movies, [1, 2, 3], {}, z=1.0)
    wide = compute_director_scores(movies, [1, 2, 3], {}, z=2.5)
    assert wide[0].score < narrow[0].score


def test_accepts_precomputed_quality_table(small_catalog):
    table = build_quality_table(small_catalog)
    with_table = compute_director_scores(small_catalog, [1, 3], {4: 2}, quality=table)
    without = compute_director_scores(small_catalog, [1, 3], {4: 2})
    assert with_table == without
