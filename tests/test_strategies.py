import numpy as np
import pytest

from cinerank.latent_factor import LatentFactorModel
from cinerank.model_service import ModelService
from cinerank.snapshot import Like, Review
from cinerank.strategies import (
    HeuristicStrategy,
    LatentFactorStrategy,
    RecommendationRequest,
    get_strategy,
)


def _seeded_factory():
    return LatentFactorModel(n_factors=4, epochs=3, rng=np.random.default_rng(3))


@pytest.fixture
def request_for_user_one(small_catalog):
    reviews = [
        Review(1, 1, 9.0),
        Review(1, 3, 7.0),
        Review(2, 2, 8.0),
        Review(2, 4, 5.0),
        Review(2, 5, 2.0, status="deleted"),
    ]
    return RecommendationRequest(
        user_id=1,
        movies=small_catalog,
        reviews=reviews,
        likes=[Like(1, 2)],
        top_k=3,
    )


def test_get_strategy_by_name():
    assert isinstance(get_strategy("heuristic"), HeuristicStrategy)
    assert isinstance(get_strategy("latent"), LatentFactorStrategy)
    with pytest.raises(ValueError, match="Unknown strategy"):
        get_strategy("random")


def test_request_ignores_inactive_reviews(request_for_user_one):
    assert len(request_for_user_one.active_reviews()) == 4
    interactions = request_for_user_one.interactions()
    assert interactions.liked_movie_ids == {2}
    assert interactions.user_ratings_by_movie == {1: 9.0, 3: 7.0}


def test_heuristic_strategy_excludes_seen(request_for_user_one):
    recs = HeuristicStrategy().recommend(request_for_user_one)
    assert len(recs) == 3
    assert {r.movie_id for r in recs}.isdisjoint({1, 2, 3})


def test_latent_strategy_excludes_seen(request_for_user_one):
    recs = LatentFactorStrategy(model_factory=_seeded_factory).recommend(request_for_user_one)
    assert len(recs) == 3
    assert {r.movie_id for r in recs} == {4, 5, 6}


def test_latent_strategy_is_reproducible_with_seed(request_for_user_one):
    first = LatentFactorStrategy(model_factory=_seeded_factory).recommend(request_for_user_one)
    second = LatentFactorStrategy(model_factory=_seeded_factory).recommend(request_for_user_one)
    assert first == second


def test_latent_strategy_reads_service_snapshot(request_for_user_one):
    service = ModelService(_seeded_factory)
    strategy = LatentFactorStrategy(service=service)

    untrained = strategy.recommend(request_for_user_one)
    assert all(r.score == 0.0 for r in untrained)

    service.refresh(request_for_user_one.movies, request_for_user_one.active_reviews(), request_for_user_one.likes)
    trained = strategy.recommend(request_for_user_one)
    assert all(1.0 <= r.score <= 10.0 for r in trained)


def test_latent_strategy_on_empty_catalog():
    request = RecommendationRequest(user_id=1, movies=[])
    assert LatentFactorStrategy(model_factory=_seeded_factory).recommend(request) == []
