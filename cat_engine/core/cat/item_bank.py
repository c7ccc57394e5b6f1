"""
Item parameter store for the CAT engine.

Holds calibrated IRT parameters and content categories for every item the
engine has seen. Items arriving without calibration get default parameters
derived from their question bank metadata:

    b  from the declared difficulty tier: very easy -2 ... very hard +2
    c  0.2 for choice items (multiple/single choice), 0.1 otherwise
    a  uniform draw from CAT_DEFAULT_DISCRIMINATION_RANGE ([1.0, 1.5])

Defaults are generated once, at first sight; later sessions reuse them until
an external calibration process calls ``update``.
"""

import logging
import random
import threading
from typing import Dict, Iterable, List, Optional, Tuple

from cat_engine.core.cat.exceptions import UnknownItemError
from cat_engine.core.cat.irt import ItemParameters
from cat_engine.core.config import settings
from cat_engine.schemas.cat import Question
from libs.domain_types import DifficultyLevel, QuestionType

logger = logging.getLogger(__name__)

# Category used when a question declares none
DEFAULT_CATEGORY = "general"

DIFFICULTY_TO_B: Dict[DifficultyLevel, float] = {
    DifficultyLevel.VERY_EASY: -2.0,
    DifficultyLevel.EASY: -1.0,
    DifficultyLevel.MEDIUM: 0.0,
    DifficultyLevel.HARD: 1.0,
    DifficultyLevel.VERY_HARD: 2.0,
}

CHOICE_QUESTION_TYPES = {
    QuestionType.MULTIPLE_CHOICE.value,
    QuestionType.SINGLE_CHOICE.value,
}
CHOICE_GUESSING = 0.2
DEFAULT_GUESSING = 0.1


def default_item_parameters(
    question: Question,
    rng: Optional[random.Random] = None,
    discrimination_range: Optional[Tuple[float, float]] = None,
) -> ItemParameters:
    """
    Derive uncalibrated IRT parameters from question bank metadata.

    Args:
        question: Question with difficulty tier and content type.
        rng: Optional Random instance for deterministic testing.
        discrimination_range: (low, high) bounds for the discrimination
            draw. Defaults to settings.CAT_DEFAULT_DISCRIMINATION_RANGE.

    Returns:
        ItemParameters for the question.
    """
    low, high = discrimination_range or tuple(settings.CAT_DEFAULT_DISCRIMINATION_RANGE)
    draw = rng.uniform(low, high) if rng is not None else random.uniform(low, high)

    b = DIFFICULTY_TO_B.get(question.difficulty, 0.0)
    content_type = question.content.type
    c = CHOICE_GUESSING if content_type in CHOICE_QUESTION_TYPES else DEFAULT_GUESSING

    return ItemParameters(a=draw, b=b, c=c)


def question_category(question: Question) -> str:
    """The question's primary content category, or DEFAULT_CATEGORY."""
    if question.categories:
        return question.categories[0]
    return DEFAULT_CATEGORY


class ItemParameterStore:
    """
    Thread-safe map of item id -> IRT parameters.

    Shared by all sessions of an engine. Parameter updates are visible to the
    next probability/information computation; they never rewrite the records
    of items already administered.
    """

    def __init__(self, rng: Optional[random.Random] = None):
        self._lock = threading.Lock()
        self._parameters: Dict[str, ItemParameters] = {}
        self._rng = rng

    def register_questions(self, questions: Iterable[Question]) -> List[str]:
        """
        Register default parameters for any question not seen before.

        Returns:
            Ids of the items that received new default parameters.
        """
        registered = []
        with self._lock:
            for question in questions:
                if question.id in self._parameters:
                    continue
                self._parameters[question.id] = default_item_parameters(
                    question, rng=self._rng
                )
                registered.append(question.id)

        if registered:
            logger.debug(f"Registered default IRT parameters for {len(registered)} items")
        return registered

    def update(self, item_id: str, params: ItemParameters) -> None:
        """Replace (or set) the calibrated parameters of an item."""
        with self._lock:
            self._parameters[item_id] = params
        logger.info(
            f"Updated IRT parameters for item {item_id}: "
            f"a={params.a:.3f}, b={params.b:.3f}, c={params.c:.3f}"
        )

    def get(self, item_id: str) -> Optional[ItemParameters]:
        """Parameters of an item, or None if unknown."""
        with self._lock:
            return self._parameters.get(item_id)

    def require(self, item_id: str) -> ItemParameters:
        """Parameters of an item; raises UnknownItemError if unknown."""
        params = self.get(item_id)
        if params is None:
            raise UnknownItemError(
                "No IRT parameters registered for item", context={"item_id": item_id}
            )
        return params

    def snapshot(self) -> Dict[str, ItemParameters]:
        """Copy of the full parameter map."""
        with self._lock:
            return dict(self._parameters)

    def __contains__(self, item_id: object) -> bool:
        with self._lock:
            return item_id in self._parameters

    def __len__(self) -> int:
        with self._lock:
            return len(self._parameters)
