"""
CAT (Computerized Adaptive Testing) engine.

This module provides IRT math, ability estimation, item selection with
exposure and content control, stopping rules and the session engine.
"""

from .ability_estimation import (
    estimate_ability,
    estimate_ability_eap,
    estimate_ability_map,
    estimate_ability_mle,
    estimate_ability_wle,
)
from .content_balancing import (
    apply_content_constraints,
    content_adjustment,
    count_categories,
    satisfies_content_constraints,
)
from .engine import CATEngine, compute_reliability, compute_sem
from .events import CATEvent, EventBus
from .exceptions import (
    CATError,
    DuplicateSessionError,
    InvalidResponseError,
    InvalidSessionError,
    UnknownItemError,
)
from .exposure_control import ExposureMonitor, apply_exposure_control
from .irt import (
    ABILITY_MAX,
    ABILITY_MIN,
    ItemParameters,
    fisher_information_2pl,
    information,
    probability,
    probability_derivative,
)
from .item_bank import ItemParameterStore, default_item_parameters
from .item_selection import select_next_item
from .score_conversion import ability_confidence_interval, ability_percentile
from .session import AbilityEstimate, AdministeredItem, CATResult, CATSession
from .stopping_rules import StoppingDecision, check_stopping_criteria

__all__ = [
    "CATEngine",
    "CATSession",
    "CATResult",
    "AbilityEstimate",
    "AdministeredItem",
    "CATEvent",
    "EventBus",
    "CATError",
    "InvalidSessionError",
    "DuplicateSessionError",
    "InvalidResponseError",
    "UnknownItemError",
    "ItemParameters",
    "ItemParameterStore",
    "default_item_parameters",
    "ABILITY_MIN",
    "ABILITY_MAX",
    "probability",
    "information",
    "probability_derivative",
    "fisher_information_2pl",
    "estimate_ability",
    "estimate_ability_mle",
    "estimate_ability_wle",
    "estimate_ability_eap",
    "estimate_ability_map",
    "select_next_item",
    "ExposureMonitor",
    "apply_exposure_control",
    "count_categories",
    "satisfies_content_constraints",
    "apply_content_constraints",
    "content_adjustment",
    "StoppingDecision",
    "check_stopping_criteria",
    "compute_sem",
    "compute_reliability",
    "ability_confidence_interval",
    "ability_percentile",
]
