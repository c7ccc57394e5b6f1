"""
Score reporting for Computerized Adaptive Testing.

Turns a final ability estimate and its standard error into the values
reported alongside it:

Confidence Interval:
    CI = theta +/- z * SEM,   z = Phi^-1((1 + level) / 2)

    For the default 95% level z = 1.96. Bounds are clamped to the ability
    scale [-6, 6].

Percentile Rank:
    percentile = Phi(theta) * 100

    Where Phi is the standard normal CDF, matching the N(0, 1) population
    prior used by the Bayesian estimators.
"""

import logging
import math
from typing import Tuple

from scipy.stats import norm

from cat_engine.core.cat.irt import clamp_ability

logger = logging.getLogger(__name__)

DEFAULT_CONFIDENCE_LEVEL = 0.95


def z_score(level: float = DEFAULT_CONFIDENCE_LEVEL) -> float:
    """
    Two-sided critical value for a confidence level.

    Raises:
        ValueError: If level is not strictly between 0 and 1.
    """
    if not 0.0 < level < 1.0:
        raise ValueError(f"Confidence level must be in (0, 1), got {level}")
    return float(norm.ppf((1.0 + level) / 2.0))


def ability_confidence_interval(
    theta: float, sem: float, level: float = DEFAULT_CONFIDENCE_LEVEL
) -> Tuple[float, float]:
    """
    Confidence interval for an ability estimate, clamped to [-6, 6].

    Args:
        theta: Ability estimate.
        sem: Standard error of measurement. Must be non-negative.
        level: Confidence level (default 0.95).

    Returns:
        (lower, upper) bounds on the ability scale.

    Raises:
        ValueError: If theta/sem is not finite or sem is negative.

    Examples:
        >>> ability_confidence_interval(0.0, 0.5)
        (-0.98, 0.98)  # approximately
    """
    if math.isnan(theta) or math.isinf(theta):
        raise ValueError(f"theta must be finite, got {theta}")
    if math.isnan(sem) or math.isinf(sem):
        raise ValueError(f"sem must be finite, got {sem}")
    if sem < 0:
        raise ValueError(f"sem must be non-negative, got {sem}")

    margin = z_score(level) * sem
    return clamp_ability(theta - margin), clamp_ability(theta + margin)


def ability_percentile(theta: float) -> float:
    """
    Percentile rank (0-100) of an ability value in a N(0, 1) population,
    rounded to one decimal.
    """
    if math.isnan(theta):
        raise ValueError("theta must not be NaN")
    return round(float(norm.cdf(theta)) * 100.0, 1)
