"""Small-sample confidence estimators for like ratios."""
import math

from scipy.stats import norm

from .config import WILSON_Z


def wilson_lower_bound(successes: int, total: int, z: float = WILSON_Z) -> float:
    """
    Lower bound of the Wilson score interval for a proportion.

    A director liked 1/1 times scores well below one liked 18/20 times,
    because the bound widens as the sample shrinks.

    Examples (z = 1.28):
    - 1/1   → 0.38
    - 18/20 → 0.78
    - 0/n   → 0.0
    """
    if total <= 0:
        return 0.0
    if successes <= 0:
        return 0.0
    p = successes / total
    z2 = z * z
    denom = 1 + z2 / total
    centre = p + z2 / (2 * total)
    margin = z * math.sqrt((p * (1 - p)) / total + z2 / (4 * total * total))
    return max(0.0, (centre - margin) / denom)


def z_for_confidence(level: float) -> float:
    """One-sided z quantile for a confidence level, e.g. 0.9 → 1.2816."""
    if not 0 < level < 1:
        raise ValueError(f"Confidence level must be in (0, 1), got {level}")
    return float(norm.ppf(level))
