"""
Content balancing for Computerized Adaptive Testing.

Enforces per-category quotas during adaptive item selection to keep content
coverage valid. Each session carries its own constraints, keyed by category:

    Hard cap:  an item is not eligible once its category already has
               ``max_items`` administered items.
    Boost:     while a category is below ``min_items``, weighted selection
               multiplies its items' weight by ``1 + weight``.

Items whose category is unknown or unconstrained are always eligible.

References:
    - van der Linden, W.J. (2005). Linear Models for Optimal Test Design.
    - Cheng, Y., & Chang, H.-H. (2009). The maximum priority index method
      for severely constrained item selection in CAT.
"""

import logging
from typing import Dict, Iterable, List, Mapping, Sequence

from cat_engine.schemas.cat import ContentConstraint

logger = logging.getLogger(__name__)


def count_categories(
    administered_ids: Iterable[str],
    item_categories: Mapping[str, str],
) -> Dict[str, int]:
    """
    Count administered items per category.

    Args:
        administered_ids: Ids of the items administered so far.
        item_categories: Item id -> category map for the session.

    Returns:
        Dict mapping category to the number of administered items in it.
        Items without a known category are not counted.
    """
    coverage: Dict[str, int] = {}
    for item_id in administered_ids:
        category = item_categories.get(item_id)
        if category is not None:
            coverage[category] = coverage.get(category, 0) + 1
    return coverage


def satisfies_content_constraints(
    item_id: str,
    coverage: Mapping[str, int],
    item_categories: Mapping[str, str],
    constraints: Mapping[str, ContentConstraint],
) -> bool:
    """Whether administering the item would stay within its category's cap."""
    category = item_categories.get(item_id)
    if category is None:
        return True
    constraint = constraints.get(category)
    if constraint is None:
        return True
    return coverage.get(category, 0) < constraint.max_items


def apply_content_constraints(
    candidates: Sequence[str],
    administered_ids: Iterable[str],
    item_categories: Mapping[str, str],
    constraints: Mapping[str, ContentConstraint],
) -> List[str]:
    """
    Filter candidates down to those allowed by the content constraints.

    Returns all candidates, in order, when no constraints are configured.
    """
    if not constraints:
        return list(candidates)

    coverage = count_categories(administered_ids, item_categories)
    eligible = [
        item_id
        for item_id in candidates
        if satisfies_content_constraints(item_id, coverage, item_categories, constraints)
    ]

    if len(eligible) < len(candidates):
        capped = sorted(
            category
            for category, constraint in constraints.items()
            if coverage.get(category, 0) >= constraint.max_items
        )
        logger.debug(
            f"Content balancing: categories at cap {capped}, "
            f"{len(eligible)}/{len(candidates)} items eligible"
        )
    return eligible


def content_adjustment(
    item_id: str,
    coverage: Mapping[str, int],
    item_categories: Mapping[str, str],
    constraints: Mapping[str, ContentConstraint],
) -> float:
    """
    Weighted-selection multiplier for an item: ``1 + weight`` while its
    category is below ``min_items``, otherwise 1.
    """
    category = item_categories.get(item_id)
    if category is None:
        return 1.0
    constraint = constraints.get(category)
    if constraint is None:
        return 1.0
    if coverage.get(category, 0) < constraint.min_items:
        return 1.0 + constraint.weight
    return 1.0
