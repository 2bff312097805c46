"""
Versioned latent-factor model snapshots.

Training runs on a fresh model instance and the finished model is published
as an immutable snapshot under a single-writer lock. Prediction reads
whichever snapshot is current and never trains inline.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Iterable, Sequence

from .latent_factor import LatentFactorModel
from .snapshot import Like, MovieRecord, RecommendationMovieScore, Review

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModelSnapshot:
    version: int
    model: LatentFactorModel
    fingerprint: dict | None = None
    trained_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class ModelService:
    """Holds the current model snapshot and refreshes it on demand."""

    def __init__(self, model_factory: Callable[[], LatentFactorModel] = LatentFactorModel):
        self._model_factory = model_factory
        self._lock = threading.Lock()
        self._snapshot = ModelSnapshot(version=0, model=model_factory())
        self._refresh_thread: threading.Thread | None = None

    @property
    def snapshot(self) -> ModelSnapshot:
        return self._snapshot

    def refresh(
        self,
        movies: Sequence[MovieRecord],
        reviews: Sequence[Review],
        likes: Sequence[Like],
        force: bool = False,
    ) -> ModelSnapshot:
        """
        Train a new model and publish it.

        Skipped when the data fingerprint matches the current snapshot,
        unless force=True.
        """
        with self._lock:
            candidate = self._model_factory()
            fingerprint = LatentFactorModel.compute_fingerprint(
                movies, reviews, likes, hyperparams=candidate.hyperparams()
            )
            current = self._snapshot
            if not force and current.fingerprint == fingerprint:
                logger.debug(f"Model snapshot v{current.version} is up to date; skipping retrain")
                return current

            candidate.initialize(movies, reviews, likes)
            candidate.train(reviews)
            published = ModelSnapshot(
                version=current.version + 1,
                model=candidate,
                fingerprint=fingerprint,
            )
            self._snapshot = published
            logger.info(
                f"Published latent model snapshot v{published.version} "
                f"({fingerprint['n_reviews']} reviews, {fingerprint['n_likes']} likes)"
            )
            return published

    def refresh_in_background(
        self,
        movies: Sequence[MovieRecord],
        reviews: Sequence[Review],
        likes: Sequence[Like],
        force: bool = False,
    ) -> threading.Thread:
        """Start a daemon thread running refresh(); returns the thread."""
        def _run() -> None:
            try:
                self.refresh(movies, reviews, likes, force=force)
            except Exception:
                logger.exception("Background model refresh failed")
                raise

        thread = threading.Thread(target=_run, name="cinerank-model-refresh", daemon=True)
        self._refresh_thread = thread
        thread.start()
        return thread

    def wait_for_refresh(self, timeout: float | None = None) -> None:
        thread = self._refresh_thread
        if thread is not None:
            thread.join(timeout)

    def predict(self, user_id: int, movie_id: int) -> float:
        return self._snapshot.model.predict(user_id, movie_id)

    def recommend(
        self,
        user_id: int,
        candidate_ids: Iterable[int],
        top_k: int,
    ) -> list[RecommendationMovieScore]:
        return self._snapshot.model.recommend(user_id, candidate_ids, top_k)
