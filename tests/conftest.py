"""
Pytest configuration and shared fixtures for testing.
"""
import sys
from pathlib import Path

# Add project root to path so libs/ is importable without an install
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

import random  # noqa: E402
from typing import Callable, Dict, List, Optional  # noqa: E402

import pytest  # noqa: E402

from cat_engine.core.cat.engine import CATEngine  # noqa: E402
from cat_engine.core.cat.irt import ItemParameters  # noqa: E402
from cat_engine.schemas.cat import (  # noqa: E402
    CATConfiguration,
    CATParameters,
    CATStoppingCriteria,
    Question,
)
from libs.domain_types import DifficultyLevel, QuestionType  # noqa: E402


def make_question(
    item_id: str,
    difficulty: DifficultyLevel = DifficultyLevel.MEDIUM,
    question_type: str = QuestionType.MULTIPLE_CHOICE.value,
    categories: Optional[List[str]] = None,
) -> Question:
    """Build a question bank item."""
    return Question(
        id=item_id,
        difficulty=difficulty,
        content={"type": question_type},
        categories=categories or [],
    )


def make_config(
    min_questions: int = 1,
    max_questions: int = 20,
    max_sem: float = 0.3,
    min_reliability: float = 0.9,
    time_limit_minutes: Optional[float] = None,
    **kwargs,
) -> CATConfiguration:
    """Build a configuration; test lengths and thresholds go to the stopping criteria."""
    parameters = kwargs.pop("parameters", None) or CATParameters(
        content_constraints=kwargs.pop("content_constraints", []),
        exposure_control=kwargs.pop("exposure_control", "none"),
    )
    return CATConfiguration(
        parameters=parameters,
        stopping_criteria=CATStoppingCriteria(
            min_questions=min_questions,
            max_questions=max_questions,
            max_sem=max_sem,
            min_reliability=min_reliability,
            time_limit_minutes=time_limit_minutes,
        ),
        **kwargs,
    )


@pytest.fixture
def question_factory() -> Callable[..., Question]:
    return make_question


@pytest.fixture
def config_factory() -> Callable[..., CATConfiguration]:
    return make_config


@pytest.fixture
def engine() -> CATEngine:
    """A fresh engine with a seeded random source."""
    return CATEngine(rng=random.Random(42))


@pytest.fixture
def calibrated_engine(engine: CATEngine) -> CATEngine:
    """Engine with a known 3-item bank: q-easy, q-medium, q-hard."""
    params: Dict[str, ItemParameters] = {
        "q-easy": ItemParameters(a=1.2, b=-1.0, c=0.2),
        "q-medium": ItemParameters(a=1.3, b=0.0, c=0.2),
        "q-hard": ItemParameters(a=1.1, b=1.0, c=0.2),
    }
    for item_id, item_params in params.items():
        engine.update_item_parameters(item_id, item_params)
    return engine


@pytest.fixture
def three_questions() -> List[Question]:
    return [
        make_question("q-easy", DifficultyLevel.EASY, categories=["algebra"]),
        make_question("q-medium", DifficultyLevel.MEDIUM, categories=["algebra"]),
        make_question("q-hard", DifficultyLevel.HARD, categories=["geometry"]),
    ]
