"""
Item selection for Computerized Adaptive Testing.

Selects the next item from a session's remaining pool. Information is always
computed with the 2PL formula at the current ability, whatever IRT model the
session scores with:

    I_i(theta) = a_i^2 * P_i(theta) * (1 - P_i(theta))

The selection pipeline:
1. Apply exposure control to the remaining pool (see exposure_control)
2. Apply content constraints (see content_balancing); constraint-based
   selection does this itself so it can relax them
3. Pick an item with the configured method:

    maximum-information   argmax information; first item wins ties
    weighted-information  random draw proportional to
                          information * exposure adjustment * content adjustment
    bayesian              same as maximum-information
    constraint-based      maximum-information over the constrained set, or over
                          the unconstrained set when nothing satisfies them

References:
    - Lord, F.M. (1980). Applications of Item Response Theory to Practical
      Testing Problems.
    - van der Linden, W.J. (1998). Bayesian item selection criteria for
      adaptive testing.
"""

import logging
import random
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence

from cat_engine.core.cat.content_balancing import (
    apply_content_constraints,
    content_adjustment,
    count_categories,
)
from cat_engine.core.cat.exposure_control import (
    ExposureMonitor,
    ParameterLookup,
    apply_exposure_control,
    exposure_adjustment,
)
from cat_engine.core.cat.irt import fisher_information_2pl
from cat_engine.schemas.cat import ContentConstraint
from libs.domain_types import ExposureControlMethod, ItemSelectionMethod

logger = logging.getLogger(__name__)


@dataclass
class ItemCandidate:
    """An item id with its selection information at the current ability."""

    item_id: str
    information: float


def rank_candidates(
    candidates: Sequence[str], ability: float, get_params: ParameterLookup
) -> List[ItemCandidate]:
    """Compute 2PL information at the given ability for each candidate, in order."""
    return [
        ItemCandidate(
            item_id=item_id,
            information=fisher_information_2pl(ability, get_params(item_id)),
        )
        for item_id in candidates
    ]


def select_maximum_information(
    candidates: Sequence[str], ability: float, get_params: ParameterLookup
) -> Optional[str]:
    """
    The candidate with the highest information. Ties go to the earliest.

    Returns:
        Item id, or None for an empty candidate list.
    """
    best: Optional[ItemCandidate] = None
    for candidate in rank_candidates(candidates, ability, get_params):
        if best is None or candidate.information > best.information:
            best = candidate
    return best.item_id if best is not None else None


def select_weighted_information(
    candidates: Sequence[str],
    ability: float,
    get_params: ParameterLookup,
    monitor: ExposureMonitor,
    coverage: Mapping[str, int],
    item_categories: Mapping[str, str],
    constraints: Mapping[str, ContentConstraint],
    rng: Optional[random.Random] = None,
) -> Optional[str]:
    """
    Draw a candidate with probability proportional to its weight.

    weight = information * exposure adjustment * content adjustment

    The exposure adjustment compares each item's count with the highest
    count across the engine. Falls back to the last candidate if floating
    point rounding leaves the draw past the cumulative total.

    Args:
        candidates: Eligible item ids, in order.
        ability: Current ability estimate.
        get_params: Item id -> ItemParameters lookup.
        monitor: Engine-wide exposure counters.
        coverage: Administered item count per category for the session.
        item_categories: Item id -> category map for the session.
        constraints: Content constraints by category.
        rng: Optional Random instance for deterministic testing.

    Returns:
        Item id, or None for an empty candidate list.
    """
    if not candidates:
        return None

    counts = monitor.get_counts()
    max_count = max(counts.values(), default=0)

    weights = []
    for candidate in rank_candidates(candidates, ability, get_params):
        weight = (
            candidate.information
            * exposure_adjustment(counts.get(candidate.item_id, 0), max_count)
            * content_adjustment(candidate.item_id, coverage, item_categories, constraints)
        )
        weights.append(weight)

    draw = (rng.random() if rng is not None else random.random()) * sum(weights)
    cumulative = 0.0
    for item_id, weight in zip(candidates, weights):
        cumulative += weight
        if draw <= cumulative:
            return item_id

    return candidates[-1]


def select_next_item(
    remaining_pool: Sequence[str],
    ability: float,
    method: Optional[ItemSelectionMethod],
    get_params: ParameterLookup,
    monitor: ExposureMonitor,
    administered_ids: Sequence[str],
    item_categories: Mapping[str, str],
    constraints: Mapping[str, ContentConstraint],
    exposure_control: Optional[ExposureControlMethod] = None,
    rng: Optional[random.Random] = None,
) -> Optional[str]:
    """
    Select the next item for a session.

    Args:
        remaining_pool: Item ids not yet administered, in original pool order.
        ability: Current ability estimate.
        method: Selection method; None or unknown uses maximum-information.
        get_params: Item id -> ItemParameters lookup.
        monitor: Engine-wide exposure counters.
        administered_ids: Ids already administered in the session.
        item_categories: Item id -> category map for the session.
        constraints: Content constraints by category.
        exposure_control: Exposure control method for the session.
        rng: Optional Random instance for weighted selection.

    Returns:
        The selected item id, or None if no candidate is left.
    """
    candidates = apply_exposure_control(remaining_pool, exposure_control, monitor, get_params)

    if method == ItemSelectionMethod.CONSTRAINT_BASED:
        constrained = apply_content_constraints(
            candidates, administered_ids, item_categories, constraints
        )
        if not constrained and candidates:
            logger.debug(
                f"Constraint-based selection: no item satisfies the content "
                f"constraints, relaxing over {len(candidates)} items"
            )
            constrained = candidates
        selected = select_maximum_information(constrained, ability, get_params)
    else:
        candidates = apply_content_constraints(
            candidates, administered_ids, item_categories, constraints
        )
        if method == ItemSelectionMethod.WEIGHTED_INFORMATION:
            coverage: Dict[str, int] = count_categories(administered_ids, item_categories)
            selected = select_weighted_information(
                candidates,
                ability,
                get_params,
                monitor,
                coverage,
                item_categories,
                constraints,
                rng=rng,
            )
        else:
            # maximum-information and bayesian
            selected = select_maximum_information(candidates, ability, get_params)

    if selected is None:
        logger.debug(
            f"Item selection: no eligible items "
            f"(remaining={len(remaining_pool)}, after exposure control={len(candidates)})"
        )
    else:
        logger.debug(
            f"Item selection ({getattr(method, 'value', method)}): theta={ability:.3f}, "
            f"selected {selected}"
        )
    return selected
