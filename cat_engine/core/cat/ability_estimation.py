"""
Ability estimation for Computerized Adaptive Testing.

Four estimators re-estimate ability (theta) after each response. Each takes
the responses already administered in the session plus the pending
(item, correctness) observation, and uses the session's IRT model:

    MLE  Newton-Raphson on the log-likelihood (Lord, 1980)
    WLE  MLE scaled by sqrt(I) / (sqrt(I) + 1)
    EAP  Posterior mean over a 41-node grid with a N(0, 1) prior
         (Bock & Mislevy, 1982)
    MAP  Posterior mode over a 61-node grid with a N(0, 1) prior

Likelihood of an ability value:
    L(theta) = prod_i P_i(theta)^u_i * (1 - P_i(theta))^(1 - u_i)

The WLE here is not Warm's (1989) weighted likelihood; it is the simplified
weighting the engine has always used and is kept for score compatibility.
"""

import logging
import math
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from cat_engine.core.cat.irt import (
    ItemParameters,
    ability_grid,
    clamp_ability,
    fisher_information_2pl,
    information,
    probability,
    probability_derivative,
)
from libs.domain_types import AbilityEstimationMethod, IRTModel

logger = logging.getLogger(__name__)

# (item parameters, is_correct)
Response = Tuple[ItemParameters, bool]

# Newton-Raphson configuration
MLE_MAX_ITERATIONS = 10
MLE_TOLERANCE = 0.001

# Grid configuration
EAP_QUADRATURE_POINTS = 41
MAP_GRID_POINTS = 61

# Standard normal prior
PRIOR_MEAN = 0.0
PRIOR_SD = 1.0


@dataclass
class LikelihoodDerivatives:
    """Log-likelihood and its derivatives at one ability value."""

    log_likelihood: float
    first_derivative: float
    second_derivative: float


def likelihood(responses: Sequence[Response], ability: float, model: IRTModel) -> float:
    """Product of P (correct) or 1 - P (incorrect) over all responses."""
    value = 1.0
    for params, is_correct in responses:
        prob = probability(params, ability, model)
        value *= prob if is_correct else 1.0 - prob
    return value


def log_likelihood(
    responses: Sequence[Response], ability: float, model: IRTModel
) -> float:
    """Log of :func:`likelihood`. Returns -inf when any factor is 0."""
    total = 0.0
    for params, is_correct in responses:
        prob = probability(params, ability, model)
        factor = prob if is_correct else 1.0 - prob
        if factor <= 0.0:
            return -math.inf
        total += math.log(factor)
    return total


def likelihood_derivatives(
    responses: Sequence[Response], ability: float, model: IRTModel
) -> LikelihoodDerivatives:
    """
    Log-likelihood, first derivative and approximate second derivative.

    First derivative:
        sum(P'/P) over correct responses - sum(P'/(1 - P)) over incorrect ones
    Second derivative (Fisher scoring approximation):
        -sum(I(theta))

    Terms whose probability has saturated to exactly 0 or 1 contribute no
    gradient.
    """
    log_lik = 0.0
    first = 0.0
    second = 0.0

    for params, is_correct in responses:
        prob = probability(params, ability, model)
        derivative = probability_derivative(params, ability, model)

        if is_correct:
            if prob > 0.0:
                log_lik += math.log(prob)
                first += derivative / prob
            else:
                log_lik = -math.inf
        else:
            if prob < 1.0:
                log_lik += math.log(1.0 - prob)
                first -= derivative / (1.0 - prob)
            else:
                log_lik = -math.inf

        second -= information(params, ability, model)

    return LikelihoodDerivatives(
        log_likelihood=log_lik,
        first_derivative=first,
        second_derivative=second,
    )


def estimate_ability_mle(
    responses: Sequence[Response],
    pending: Response,
    current_ability: float,
    model: IRTModel,
) -> float:
    """
    Maximum likelihood estimate via Newton-Raphson.

    Starts at the current ability and runs at most MLE_MAX_ITERATIONS steps of
    theta <- theta - L'/L'', clamping to [-6, 6] after each step. Stops early
    once |L'| < MLE_TOLERANCE. A zero second derivative (no information left
    at theta) ends the iteration at the current value.

    Args:
        responses: Previously administered (params, is_correct) pairs.
        pending: The observation being scored now.
        current_ability: Starting point for the iteration.
        model: Session IRT model.

    Returns:
        Ability estimate in [-6, 6].
    """
    all_responses = [*responses, pending]
    ability = current_ability

    for iteration in range(MLE_MAX_ITERATIONS):
        derivs = likelihood_derivatives(all_responses, ability, model)

        if abs(derivs.first_derivative) < MLE_TOLERANCE:
            break

        if derivs.second_derivative == 0.0:
            logger.debug(
                f"MLE: zero second derivative at theta={ability:.3f}, "
                f"stopping after {iteration} iterations"
            )
            break

        ability = clamp_ability(
            ability - derivs.first_derivative / derivs.second_derivative
        )

    return ability


def wle_weight(responses: Sequence[Response], ability: float) -> float:
    """
    Weight sqrt(I) / (sqrt(I) + 1), with I the total 2PL information of the
    previously administered items at the given ability.

    This is not the total accumulated information at the MLE estimate: the
    item being scored is left out of I, and I is always computed under 2PL
    whatever the session model. Callers pass the prior responses and the MLE.
    """
    total_info = sum(fisher_information_2pl(ability, params) for params, _ in responses)
    root = math.sqrt(total_info)
    return root / (root + 1.0)


def estimate_ability_wle(
    responses: Sequence[Response],
    pending: Response,
    current_ability: float,
    model: IRTModel,
) -> float:
    """
    Weighted likelihood estimate: the MLE shrunk toward 0 by :func:`wle_weight`.

    The weight only counts items administered before the pending one, so the
    first response of a session always yields 0.
    """
    mle = estimate_ability_mle(responses, pending, current_ability, model)
    return mle * wle_weight(responses, mle)


def _log_posteriors(
    responses: Sequence[Response],
    nodes: Sequence[float],
    model: IRTModel,
    prior_mean: float,
    prior_sd: float,
) -> List[float]:
    """Unnormalized log-posterior (log-likelihood + log-prior) at each node."""
    log_norm_const = -0.5 * math.log(2.0 * math.pi) - math.log(prior_sd)
    log_posts = []
    for theta in nodes:
        log_prior = log_norm_const - (theta - prior_mean) ** 2 / (2.0 * prior_sd**2)
        log_posts.append(log_likelihood(responses, theta, model) + log_prior)
    return log_posts


def estimate_ability_eap(
    responses: Sequence[Response],
    pending: Response,
    current_ability: float,
    model: IRTModel,
    prior_mean: float = PRIOR_MEAN,
    prior_sd: float = PRIOR_SD,
) -> float:
    """
    Expected A Posteriori estimate over a 41-node uniform grid on [-6, 6].

    theta_hat = sum(theta_k * L(theta_k) * prior(theta_k)) / sum(L * prior)

    Normalized with log-sum-exp. Falls back to the current ability when the
    posterior mass is zero at every node.
    """
    all_responses = [*responses, pending]
    nodes = ability_grid(EAP_QUADRATURE_POINTS)
    log_posts = _log_posteriors(all_responses, nodes, model, prior_mean, prior_sd)

    max_log_post = max(log_posts)
    if max_log_post == -math.inf:
        logger.warning(
            "EAP: posterior collapsed to zero at all quadrature points. "
            "Keeping current ability estimate."
        )
        return current_ability

    weights = [math.exp(lp - max_log_post) for lp in log_posts]
    total = sum(weights)
    return sum(theta * w for theta, w in zip(nodes, weights)) / total


def estimate_ability_map(
    responses: Sequence[Response],
    pending: Response,
    current_ability: float,
    model: IRTModel,
    prior_mean: float = PRIOR_MEAN,
    prior_sd: float = PRIOR_SD,
) -> float:
    """
    Maximum A Posteriori estimate by grid search over 61 nodes on [-6, 6].

    Ties go to the first (lowest) node. Falls back to the current ability
    when the posterior is zero everywhere.
    """
    all_responses = [*responses, pending]
    nodes = ability_grid(MAP_GRID_POINTS)
    log_posts = _log_posteriors(all_responses, nodes, model, prior_mean, prior_sd)

    best_theta = current_ability
    best_log_post = -math.inf
    for theta, log_post in zip(nodes, log_posts):
        if log_post > best_log_post:
            best_log_post = log_post
            best_theta = theta

    return best_theta


def estimate_ability(
    method: Optional[AbilityEstimationMethod],
    responses: Sequence[Response],
    pending: Response,
    current_ability: float,
    model: IRTModel,
) -> float:
    """
    Dispatch to the configured estimator. Unknown methods use MLE.

    Returns:
        New ability estimate, within [-6, 6].
    """
    if method == AbilityEstimationMethod.WLE:
        estimate = estimate_ability_wle(responses, pending, current_ability, model)
    elif method == AbilityEstimationMethod.EAP:
        estimate = estimate_ability_eap(responses, pending, current_ability, model)
    elif method == AbilityEstimationMethod.MAP:
        estimate = estimate_ability_map(responses, pending, current_ability, model)
    else:
        estimate = estimate_ability_mle(responses, pending, current_ability, model)

    logger.debug(
        f"Ability estimate ({getattr(method, 'value', method)}, {model.value}): "
        f"{current_ability:.3f} -> {estimate:.3f} "
        f"after {len(responses) + 1} responses"
    )
    return estimate
