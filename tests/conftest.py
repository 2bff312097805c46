import importlib
import sys
from pathlib import Path

import numpy as np
import pytest

# Ensure the package under test is importable without installation
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = PROJECT_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))


@pytest.fixture
def fresh_config(monkeypatch):
    """
    Yield a reload hook for the config module; restores the defaults afterwards.
    """
    import cinerank.config as config

    def _reload():
        return importlib.reload(config)

    yield _reload
    monkeypatch.undo()
    importlib.reload(config)


@pytest.fixture
def rng():
    return np.random.default_rng(1234)


@pytest.fixture
def small_catalog():
    """Six movies across three directors, with mixed rating coverage."""
    from cinerank.snapshot import MovieRecord

    return [
        MovieRecord(id=1, director="Bong", genres=("drama", "thriller"), avg_rating=8.6, vote_count=900, like_count=40),
        MovieRecord(id=2, director="Bong", genres=("thriller",), avg_rating=7.9, vote_count=300, like_count=12),
        MovieRecord(id=3, director="Park", genres=("thriller", "crime"), avg_rating=8.1, vote_count=600, like_count=25),
        MovieRecord(id=4, director="Park", genres=("romance",), avg_rating=6.2, vote_count=80, like_count=3),
        MovieRecord(id=5, director="Hong", genres=("drama", "romance"), avg_rating=7.0, vote_count=40, like_count=0),
        MovieRecord(id=6, director="Hong", genres=("comedy",), avg_rating=None, vote_count=None, like_count=None),
    ]
