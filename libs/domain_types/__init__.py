"""Shared domain types for the CAT engine.

This package is the single source of truth for enums used across the engine,
its configuration schemas, and the collaborators that consume its events.

Usage:
    from libs.domain_types import IRTModel, AbilityEstimationMethod
"""

import enum


class IRTModel(str, enum.Enum):
    """IRT model family used for probability and information."""

    IRT_1PL = "irt-1pl"  # Rasch
    IRT_2PL = "irt-2pl"
    IRT_3PL = "irt-3pl"
    GPCM = "gpcm"  # Generalized Partial Credit (approximated by 2PL)
    GRM = "grm"  # Graded Response (approximated by 2PL)


class AbilityEstimationMethod(str, enum.Enum):
    """Ability estimation methods."""

    MLE = "mle"
    WLE = "wle"
    EAP = "eap"
    MAP = "map"


class ItemSelectionMethod(str, enum.Enum):
    """Next-item selection strategies."""

    MAXIMUM_INFORMATION = "maximum-information"
    WEIGHTED_INFORMATION = "weighted-information"
    BAYESIAN = "bayesian"
    CONSTRAINT_BASED = "constraint-based"


class ExposureControlMethod(str, enum.Enum):
    """Item exposure control methods."""

    NONE = "none"
    SYMPSON_HETTER = "sympson-hetter"
    RANDOMESQUE = "randomesque"
    PROGRESSIVE = "progressive"


class CATSessionStatus(str, enum.Enum):
    """Adaptive session status. Transitions out of ACTIVE are final."""

    ACTIVE = "active"
    COMPLETED = "completed"
    TERMINATED = "terminated"


class TerminationReason(str, enum.Enum):
    """Reasons an adaptive session stops."""

    MAX_QUESTIONS = "max_questions"
    TARGET_SEM = "target_sem"
    TARGET_RELIABILITY = "target_reliability"
    TIME_LIMIT = "time_limit"
    NO_ITEMS = "no_items"


class DifficultyLevel(int, enum.Enum):
    """Declared difficulty tier of a question bank item."""

    VERY_EASY = 1
    EASY = 2
    MEDIUM = 3
    HARD = 4
    VERY_HARD = 5


class QuestionType(str, enum.Enum):
    """Question content types known to the question bank."""

    MULTIPLE_CHOICE = "multiple-choice"
    SINGLE_CHOICE = "single-choice"
    TRUE_FALSE = "true-false"
    ESSAY = "essay"
    SHORT_ANSWER = "short-answer"
    FILL_IN_BLANK = "fill-in-blank"
    DRAG_DROP = "drag-drop"
    HOTSPOT = "hotspot"
    CODE_EVALUATION = "code-evaluation"
    MATCHING = "matching"
    ORDERING = "ordering"
    CALCULATION = "calculation"


class CATEventType(str, enum.Enum):
    """Lifecycle events published by the CAT engine."""

    SESSION_STARTED = "session_started"
    ITEM_SELECTED = "item_selected"
    RESPONSE_PROCESSED = "response_processed"
    SESSION_COMPLETED = "session_completed"
    SESSION_TERMINATED = "session_terminated"
    PARAMETERS_UPDATED = "parameters_updated"
    EXPOSURE_RATES_RESET = "exposure_rates_reset"


__all__ = [
    "IRTModel",
    "AbilityEstimationMethod",
    "ItemSelectionMethod",
    "ExposureControlMethod",
    "CATSessionStatus",
    "TerminationReason",
    "DifficultyLevel",
    "QuestionType",
    "CATEventType",
]
