"""
Stopping rules for Computerized Adaptive Testing (CAT).

Evaluated before every item selection, in priority order:
    1. Maximum items: stop once max_questions items are administered
    2. Minimum items: continue while fewer than min_questions are administered
    3. SEM threshold: stop when SEM <= max_sem
    4. Reliability: stop when reliability >= min_reliability
    5. Time limit: stop when the elapsed time reaches time_limit_minutes

Pool exhaustion is not a stopping rule; the engine terminates a session with
``no_items`` when selection finds no candidate.

Reliability is derived from the SEM (reliability = 1 - SEM^2), so with
default thresholds (SEM 0.3, reliability 0.9) rule 4 fires slightly before
rule 3 would.

References:
    - Weiss, D. J., & Kingsbury, G. G. (1984). Application of computerized
      adaptive testing to educational problems. Journal of Educational
      Measurement, 21(4), 361-375.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from cat_engine.schemas.cat import CATStoppingCriteria
from libs.domain_types import TerminationReason

logger = logging.getLogger(__name__)


@dataclass
class StoppingDecision:
    """
    Result of evaluating stopping criteria for a CAT session.

    Attributes:
        should_stop: Whether the test should end.
        reason: Why it should end (a TerminationReason value), or None.
        details: Diagnostic values the decision was based on.
    """

    should_stop: bool
    reason: Optional[str]
    details: Dict[str, Any]


def check_stopping_criteria(
    num_items: int,
    sem: float,
    reliability: float,
    elapsed_minutes: float,
    criteria: CATStoppingCriteria,
) -> StoppingDecision:
    """
    Evaluate the stopping criteria for a session.

    Args:
        num_items: Number of items administered so far.
        sem: Current standard error of measurement.
        reliability: Current reliability (1 - SEM^2).
        elapsed_minutes: Minutes since the session started.
        criteria: Configured thresholds.

    Returns:
        StoppingDecision with should_stop flag, reason, and diagnostic details.

    Raises:
        ValueError: If num_items or sem is negative.
    """
    if num_items < 0:
        raise ValueError(f"Number of items must be non-negative, got {num_items}")
    if sem < 0:
        raise ValueError(f"Standard error must be non-negative, got {sem}")

    details: Dict[str, Any] = {
        "num_items": num_items,
        "sem": sem,
        "reliability": reliability,
        "elapsed_minutes": round(elapsed_minutes, 4),
        "min_items_met": num_items >= criteria.min_questions,
        "at_max_items": num_items >= criteria.max_questions,
    }

    # Rule 1: Maximum items
    if num_items >= criteria.max_questions:
        logger.info(
            f"Stopping: reached maximum items ({num_items}/{criteria.max_questions})"
        )
        return StoppingDecision(
            should_stop=True, reason=TerminationReason.MAX_QUESTIONS.value, details=details
        )

    # Rule 2: Minimum items
    if num_items < criteria.min_questions:
        logger.debug(
            f"Continuing: {num_items}/{criteria.min_questions} items administered "
            f"(below minimum)"
        )
        return StoppingDecision(should_stop=False, reason=None, details=details)

    # Rule 3: SEM threshold
    if sem <= criteria.max_sem:
        logger.info(
            f"Stopping: SEM threshold met (SEM={sem:.4f} <= {criteria.max_sem:.4f}) "
            f"after {num_items} items"
        )
        return StoppingDecision(
            should_stop=True, reason=TerminationReason.TARGET_SEM.value, details=details
        )

    # Rule 4: Reliability
    if reliability >= criteria.min_reliability:
        logger.info(
            f"Stopping: reliability met ({reliability:.4f} >= "
            f"{criteria.min_reliability:.4f}) after {num_items} items"
        )
        return StoppingDecision(
            should_stop=True,
            reason=TerminationReason.TARGET_RELIABILITY.value,
            details=details,
        )

    # Rule 5: Time limit
    if (
        criteria.time_limit_minutes is not None
        and elapsed_minutes >= criteria.time_limit_minutes
    ):
        logger.info(
            f"Stopping: time limit reached ({elapsed_minutes:.2f} >= "
            f"{criteria.time_limit_minutes} minutes)"
        )
        return StoppingDecision(
            should_stop=True, reason=TerminationReason.TIME_LIMIT.value, details=details
        )

    logger.debug(
        f"Continuing: SEM={sem:.4f} (threshold={criteria.max_sem:.4f}), "
        f"reliability={reliability:.4f}, items={num_items}"
    )
    return StoppingDecision(should_stop=False, reason=None, details=details)
