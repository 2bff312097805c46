"""
Configuration constants for the cinerank ranking engine.

This module centralizes all magic numbers and tunable parameters.
Values marked as tunable can be overridden via environment variables.
"""
import os
import logging

logger = logging.getLogger(__name__)


def _get_float_env(key: str, default: float, min_val: float = 0) -> float:
    """
    Safely parse float from environment variable with validation.

    Args:
        key: Environment variable name
        default: Default value if not set or invalid
        min_val: Minimum allowed value

    Returns:
        Validated float value
    """
    try:
        val = float(os.environ.get(key, default))
        if val < min_val:
            logger.warning(f"{key}={val} is below minimum {min_val}, using {min_val}")
            return min_val
        return val
    except ValueError:
        logger.warning(f"Invalid {key}='{os.environ.get(key)}', using default {default}")
        return default


def _get_int_env(key: str, default: int, min_val: int = 1) -> int:
    """
    Safely parse integer from environment variable with validation.

    Args:
        key: Environment variable name
        default: Default value if not set or invalid
        min_val: Minimum allowed value

    Returns:
        Validated integer value
    """
    try:
        val = int(os.environ.get(key, default))
        if val < min_val:
            logger.warning(f"{key}={val} is below minimum {min_val}, using {min_val}")
            return min_val
        return val
    except ValueError:
        logger.warning(f"Invalid {key}='{os.environ.get(key)}', using default {default}")
        return default


def _get_optional_int_env(key: str) -> int | None:
    """Parse an optional integer; unset or invalid values yield None."""
    raw = os.environ.get(key)
    if raw is None or raw == "":
        return None
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Invalid {key}='{raw}', ignoring")
        return None


# Catalog defaults
UNKNOWN_DIRECTOR = "미상"
ACTIVE_REVIEW_STATUS = "active"

# Rating normalizer (Bayesian / IMDB weighted rating)
DEFAULT_GLOBAL_AVG = 6.5
DEFAULT_MIN_VOTES = _get_float_env("CINERANK_MIN_VOTES", 150.0, min_val=0.0)
RATING_SCALE_MAX = 10.0

# Wilson lower bound, ~90% one-sided confidence
WILSON_Z = 1.281551565545

# Result size
MAX_TOP_K = _get_int_env("CINERANK_MAX_TOP_K", 20, min_val=1)
DEFAULT_TOP_K = _get_int_env("CINERANK_DEFAULT_TOP_K", 6, min_val=1)

# Director affinity component weights
DIRECTOR_WEIGHTS = {
    'rating': 0.5,
    'like': 0.3,
    'quality': 0.2,
}
RATING_SHRINK_C = 3          # Pseudo-count damping directors rated only once or twice
RATING_DELTA_SCALE = 0.7     # tanh temperature for the rating delta

# Content affinity weights
CONTENT_WEIGHTS = {
    'genre': 0.6,
    'director': 0.4,
}

# Heuristic ranking weights (extended variant, see DESIGN.md)
RECOMMENDATION_WEIGHTS = {
    'director': 0.5,
    'quality': 0.35,
    'genre': 0.15,
    'content': 0.35,
    'popularity': 0.15,
}

# Latent-factor model hyper-parameters
LATENT_FACTORS = _get_int_env("CINERANK_LATENT_FACTORS", 40, min_val=1)
LATENT_EPOCHS = _get_int_env("CINERANK_LATENT_EPOCHS", 20, min_val=0)
LATENT_INIT_SCALE = 0.05     # Vectors drawn from [-scale, scale)
LATENT_MAX_CAST = 3          # Top-billed cast members used as content features
LATENT_LEARNING_RATES = {
    'bias': 0.002,       # gamma1
    'factor': 0.001,     # gamma2
    'implicit': 0.001,   # gamma3
    'content': 0.003,    # gamma4
}
LATENT_REGULARIZATION = 0.002
PREDICTION_MIN = 1.0
PREDICTION_MAX = 10.0

# Seed for reproducible latent-factor initialization (unset = fresh entropy)
RANDOM_SEED = _get_optional_int_env("CINERANK_SEED")
