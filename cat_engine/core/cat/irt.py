"""
Item Response Theory math core for Computerized Adaptive Testing.

Pure, side-effect-free functions for response probability, Fisher information
and the first derivative of the probability with respect to ability, for the
model families the engine supports:

    1PL (Rasch):  P(theta) = sigmoid(theta - b)
    2PL:          P(theta) = sigmoid(a * (theta - b))
    3PL:          P(theta) = c + (1 - c) * sigmoid(a * (theta - b))

The polytomous families (GPCM, GRM) are approximated by the 2PL curve; true
category probabilities are not modeled.

Fisher information:
    1PL:  I = P(1 - P)
    2PL:  I = a^2 * P(1 - P)
    3PL:  I = a^2 * (P - c)^2 * (1 - P) / (P * (1 - c)^2)

References:
    - Lord, F.M. (1980). Applications of Item Response Theory to Practical
      Testing Problems.
    - Baker, F.B., & Kim, S.-H. (2004). Item Response Theory: Parameter
      Estimation Techniques.
"""

import math
from dataclasses import dataclass
from typing import Optional

from libs.domain_types import IRTModel

# Ability scale bounds used for clamping and quadrature
ABILITY_MIN = -6.0
ABILITY_MAX = 6.0

_SQRT_TWO_PI = math.sqrt(2.0 * math.pi)


@dataclass(frozen=True)
class ItemParameters:
    """
    Calibrated IRT parameters for a single item.

    Attributes:
        a: Discrimination (curve steepness). Must be > 0.
        b: Difficulty (curve location on the ability scale).
        c: Guessing floor (lower asymptote) in [0, 1). Only used by 3PL.
        d: Optional upper asymptote. Carried for calibration data; not used
            by any supported model.
    """

    a: float
    b: float
    c: float = 0.0
    d: Optional[float] = None

    def __post_init__(self) -> None:
        if not self.a > 0:
            raise ValueError(f"Discrimination parameter must be positive, got {self.a}")
        if not 0.0 <= self.c < 1.0:
            raise ValueError(f"Guessing parameter must be in [0, 1), got {self.c}")
        if self.d is not None and not self.c < self.d <= 1.0:
            raise ValueError(
                f"Upper asymptote must be in (c, 1], got d={self.d} with c={self.c}"
            )


def logistic(x: float) -> float:
    """Numerically stable logistic sigmoid."""
    if x >= 0:
        return 1.0 / (1.0 + math.exp(-x))
    exp_x = math.exp(x)
    return exp_x / (1.0 + exp_x)


def clamp_ability(theta: float) -> float:
    """Clamp an ability value to [ABILITY_MIN, ABILITY_MAX]."""
    return max(ABILITY_MIN, min(ABILITY_MAX, theta))


def probability(params: ItemParameters, ability: float, model: IRTModel) -> float:
    """
    Probability of a correct response at a given ability.

    Args:
        params: Item parameters.
        ability: Ability value (theta).
        model: IRT model family.

    Returns:
        Probability in [0, 1].
    """
    if model == IRTModel.IRT_1PL:
        return logistic(ability - params.b)

    if model == IRTModel.IRT_3PL:
        c = params.c
        return c + (1.0 - c) * logistic(params.a * (ability - params.b))

    # 2PL, and the 2PL approximation for GPCM/GRM
    return logistic(params.a * (ability - params.b))


def information(params: ItemParameters, ability: float, model: IRTModel) -> float:
    """
    Fisher information of an item at a given ability.

    Returns 0 for 3PL when the denominator P * (1 - c)^2 is 0.

    Args:
        params: Item parameters.
        ability: Ability value (theta).
        model: IRT model family.

    Returns:
        Fisher information value (non-negative).
    """
    prob = probability(params, ability, model)

    if model == IRTModel.IRT_1PL:
        return prob * (1.0 - prob)

    if model == IRTModel.IRT_3PL:
        a, c = params.a, params.c
        denominator = prob * (1.0 - c) ** 2
        if denominator <= 0:
            return 0.0
        return (a**2) * (prob - c) ** 2 * (1.0 - prob) / denominator

    return (params.a**2) * prob * (1.0 - prob)


def probability_derivative(
    params: ItemParameters, ability: float, model: IRTModel
) -> float:
    """
    First derivative of the response probability with respect to ability.

    Used as P'(theta) by Newton-Raphson maximum likelihood estimation.

    Args:
        params: Item parameters.
        ability: Ability value (theta).
        model: IRT model family.

    Returns:
        dP/dtheta.
    """
    prob = probability(params, ability, model)

    if model == IRTModel.IRT_1PL:
        return prob * (1.0 - prob)

    if model == IRTModel.IRT_3PL:
        a, c = params.a, params.c
        return a * (1.0 - c) * prob * (1.0 - prob) / (1.0 - c * (1.0 - prob))

    return params.a * prob * (1.0 - prob)


def fisher_information_2pl(theta: float, params: ItemParameters) -> float:
    """
    2PL Fisher information, the criterion used for item selection.

    I(theta) = a^2 * P(theta) * (1 - P(theta))
    """
    return information(params, theta, IRTModel.IRT_2PL)


def normal_pdf(x: float, mean: float = 0.0, sd: float = 1.0) -> float:
    """Normal density, the prior used by EAP and MAP estimation."""
    z = (x - mean) / sd
    return math.exp(-0.5 * z * z) / (sd * _SQRT_TWO_PI)


def ability_grid(n_points: int) -> list[float]:
    """Evenly spaced ability nodes over [ABILITY_MIN, ABILITY_MAX], inclusive."""
    step = (ABILITY_MAX - ABILITY_MIN) / (n_points - 1)
    return [ABILITY_MIN + step * i for i in range(n_points)]
