import hashlib
import json
import logging
import math
from enum import Enum
from typing import Iterable, NamedTuple, Sequence

import numpy as np
from tqdm import tqdm

from .config import (
    LATENT_EPOCHS,
    LATENT_FACTORS,
    LATENT_INIT_SCALE,
    LATENT_LEARNING_RATES,
    LATENT_MAX_CAST,
    LATENT_REGULARIZATION,
    PREDICTION_MAX,
    PREDICTION_MIN,
    RANDOM_SEED,
    UNKNOWN_DIRECTOR,
)
from .snapshot import Like, MovieRecord, RecommendationMovieScore, Review, active_reviews

logger = logging.getLogger(__name__)


class FeatureKind(Enum):
    GENRE = "genre"
    DIRECTOR = "director"
    ACTOR = "actor"


class FeatureKey(NamedTuple):
    """Content feature identifier; the kind keeps namespaces from colliding."""
    kind: FeatureKind
    value: str | int


def content_features(movie: MovieRecord, max_cast: int = LATENT_MAX_CAST) -> list[FeatureKey]:
    """Genres, the director (unless unknown) and the top-billed cast of a movie."""
    features = [FeatureKey(FeatureKind.GENRE, genre) for genre in movie.genres]
    if movie.director and movie.director != UNKNOWN_DIRECTOR:
        features.append(FeatureKey(FeatureKind.DIRECTOR, movie.director))
    features.extend(FeatureKey(FeatureKind.ACTOR, actor_id) for actor_id in movie.cast[:max_cast])
    return features


class LatentFactorModel:
    """
    Factorized-bias recommender with implicit feedback and content features.

    r̂(u, i) = μ + b_u + b_i + Y_u · h(i) + M_i · (S_u + w(u))

    where:
    - w(u) = |N(u)|^-½ Σ_{k ∈ N(u)} W_k   (movies the user liked or reviewed)
    - h(i) = |R(i)|^-½ Σ_{c ∈ R(i)} H_c   (genre, director and cast features)

    Lifecycle: initialize() → train() → predict(). Calling initialize()
    again discards all learned parameters.
    """

    def __init__(
        self,
        n_factors: int = LATENT_FACTORS,
        epochs: int = LATENT_EPOCHS,
        rng: np.random.Generator | None = None,
        learning_rates: dict[str, float] | None = None,
        regularization: float = LATENT_REGULARIZATION,
    ):
        self.n_factors = n_factors
        self.epochs = epochs
        self.rng = rng if rng is not None else np.random.default_rng(RANDOM_SEED)
        self.learning_rates = {**LATENT_LEARNING_RATES, **(learning_rates or {})}
        self.regularization = regularization
        self._reset()

    def _reset(self) -> None:
        self.global_bias = 0.0
        self.user_bias: dict[int, float] = {}
        self.item_bias: dict[int, float] = {}
        self.M: dict[int, np.ndarray] = {}           # item latent vectors
        self.S: dict[int, np.ndarray] = {}           # user explicit vectors
        self.W: dict[int, np.ndarray] = {}           # item implicit weights
        self.Y: dict[int, np.ndarray] = {}           # user content preferences
        self.H: dict[FeatureKey, np.ndarray] = {}    # content feature vectors
        self.user_implicit: dict[int, list[int]] = {}
        self.movie_content: dict[int, list[FeatureKey]] = {}
        self.epoch_rmse: list[float] = []
        self.is_initialized = False
        self.is_trained = False

    @staticmethod
    def compute_fingerprint(
        movies: Sequence[MovieRecord],
        reviews: Sequence[Review],
        likes: Sequence[Like],
        hyperparams: dict | None = None,
    ) -> dict:
        """
        Fingerprint for deciding whether a retrain is needed.

        The counts are for logging; the digest covers the movies' content
        features, every active review and every like, so equal fingerprints
        mean identical training input.
        """
        reviews = active_reviews(reviews)
        users = {r.user_id for r in reviews} | {l.user_id for l in likes}
        payload = {
            "movies": sorted(
                ([m.id, [[f.kind.value, f.value] for f in content_features(m)]] for m in movies),
                key=lambda entry: entry[0],
            ),
            "reviews": sorted([r.user_id, r.movie_id, float(r.rating)] for r in reviews),
            "likes": sorted([l.user_id, l.movie_id] for l in likes),
        }
        blob = json.dumps(payload, sort_keys=True, ensure_ascii=False)
        fp = {
            "n_users": len(users),
            "n_movies": len(movies),
            "n_reviews": len(reviews),
            "n_likes": len(likes),
            "digest": hashlib.sha1(blob.encode("utf-8")).hexdigest(),
        }
        if hyperparams:
            fp["hyperparams"] = hyperparams
        return fp

    def hyperparams(self) -> dict:
        return {
            "n_factors": self.n_factors,
            "epochs": self.epochs,
            "learning_rates": dict(self.learning_rates),
            "regularization": self.regularization,
        }

    def _init_vector(self) -> np.ndarray:
        return self.rng.uniform(-LATENT_INIT_SCALE, LATENT_INIT_SCALE, self.n_factors).astype(np.float32)

    def _zeros(self) -> np.ndarray:
        return np.zeros(self.n_factors, dtype=np.float32)

    def initialize(
        self,
        movies: Iterable[MovieRecord],
        reviews: Sequence[Review],
        likes: Iterable[Like],
    ) -> 'LatentFactorModel':
        """Build N(u), R(i) and allocate parameters for every user, movie and feature."""
        self._reset()
        reviews = active_reviews(reviews)

        self.global_bias = sum(r.rating for r in reviews) / (len(reviews) or 1)

        for interaction in [*reviews, *likes]:
            seen = self.user_implicit.setdefault(interaction.user_id, [])
            if interaction.movie_id not in seen:
                seen.append(interaction.movie_id)

        for movie in movies:
            features = content_features(movie)
            self.movie_content[movie.id] = features
            self.item_bias.setdefault(movie.id, 0.0)
            if movie.id not in self.M:
                self.M[movie.id] = self._init_vector()
            if movie.id not in self.W:
                self.W[movie.id] = self._init_vector()
            for feature in features:
                if feature not in self.H:
                    self.H[feature] = self._init_vector()

        for user_id in self.user_implicit:
            self.user_bias.setdefault(user_id, 0.0)
            self.S[user_id] = self._init_vector()
            self.Y[user_id] = self._init_vector()

        self.is_initialized = True
        logger.info(
            f"Initialized latent model: {len(self.user_implicit)} users, "
            f"{len(self.M)} movies, {len(self.H)} content features"
        )
        return self

    def _implicit_vector(self, user_id: int) -> tuple[np.ndarray, list[int], float]:
        """w(u) plus the N(u) members and the normalizer actually used."""
        members = self.user_implicit.get(user_id, [])
        norm = math.sqrt(len(members)) or 1.0
        total = self._zeros()
        for movie_id in members:
            vector = self.W.get(movie_id)
            if vector is not None:
                total += vector
        return total / norm, members, norm

    def _content_vector(self, movie_id: int) -> tuple[np.ndarray, list[FeatureKey], float]:
        features = self.movie_content.get(movie_id, [])
        norm = math.sqrt(len(features)) or 1.0
        total = self._zeros()
        for feature in features:
            vector = self.H.get(feature)
            if vector is not None:
                total += vector
        return total / norm, features, norm

    def train(self, reviews: Sequence[Review], show_progress: bool = False) -> 'LatentFactorModel':
        """
        Fit all parameters by SGD, visiting reviews in input order each epoch.

        The implicit (W) and content (H) updates use M_i and Y_u as they were
        before this observation's own update. Inactive reviews and reviews of
        users or movies unknown to initialize() are ignored; with none left the
        model stays untrained.
        """
        reviews = [
            r for r in active_reviews(reviews)
            if r.movie_id in self.M and r.user_id in self.S
        ]
        if not reviews:
            logger.warning("No usable reviews to train the latent model on")
            return self

        g_bias = self.learning_rates['bias']
        g_factor = self.learning_rates['factor']
        g_implicit = self.learning_rates['implicit']
        g_content = self.learning_rates['content']
        lam = self.regularization

        logger.info(f"Training latent model on {len(reviews)} reviews for {self.epochs} epochs")
        self.epoch_rmse = []
        epochs = range(self.epochs)
        if show_progress:
            epochs = tqdm(epochs, desc="SGD epochs")

        for epoch in epochs:
            squared_error = 0.0
            for review in reviews:
                u, i = review.user_id, review.movie_id
                implicit, members, sqrt_nu = self._implicit_vector(u)
                content, features, sqrt_ri = self._content_vector(i)

                S_u, Y_u, M_i = self.S[u], self.Y[u], self.M[i]
                p_u = S_u + implicit
                b_u = self.user_bias[u]
                b_i = self.item_bias[i]

                pred = self.global_bias + b_u + b_i + float(Y_u @ content) + float(M_i @ p_u)
                error = review.rating - pred
                squared_error += error * error

                M_old = M_i.copy()
                Y_old = Y_u.copy()

                self.user_bias[u] = b_u + g_bias * (error - lam * b_u)
                self.item_bias[i] = b_i + g_bias * (error - lam * b_i)

                Y_u += g_factor * (error * content - lam * Y_old)
                S_u += g_factor * (error * M_old - lam * S_u)
                M_i += g_factor * (error * p_u - lam * M_old)

                implicit_step = error / sqrt_nu
                for movie_id in members:
                    W_j = self.W.get(movie_id)
                    if W_j is not None:
                        W_j += g_implicit * (implicit_step * M_old - lam * W_j)

                content_step = error / sqrt_ri
                for feature in features:
                    H_c = self.H.get(feature)
                    if H_c is not None:
                        H_c += g_content * (content_step * Y_old - lam * H_c)

            rmse = math.sqrt(squared_error / len(reviews))
            self.epoch_rmse.append(rmse)
            logger.debug(f"Epoch {epoch + 1}/{self.epochs}: RMSE {rmse:.4f}")

        self.is_trained = True
        logger.info("Latent model training completed")
        return self

    def predict(self, user_id: int, movie_id: int) -> float:
        """Predicted rating in [1, 10]; the global bias while untrained."""
        if not self.is_trained:
            return self.global_bias

        b_u = self.user_bias.get(user_id, 0.0)
        b_i = self.item_bias.get(movie_id, 0.0)
        Y_u = self.Y.get(user_id, self._zeros())
        S_u = self.S.get(user_id, self._zeros())
        M_i = self.M.get(movie_id, self._zeros())

        implicit, _, _ = self._implicit_vector(user_id)
        content, _, _ = self._content_vector(movie_id)
        p_u = S_u + implicit

        score = self.global_bias + b_u + b_i + float(Y_u @ content) + float(M_i @ p_u)
        return max(PREDICTION_MIN, min(PREDICTION_MAX, score))

    def recommend(
        self,
        user_id: int,
        candidate_ids: Iterable[int],
        top_k: int,
    ) -> list[RecommendationMovieScore]:
        """Rank candidates by predicted rating, candidate order kept on ties."""
        scored = [RecommendationMovieScore(movie_id, self.predict(user_id, movie_id)) for movie_id in candidate_ids]
        scored.sort(key=lambda s: -s.score)
        return scored[:top_k]
