"""
Pydantic schemas for CAT engine inputs.

These schemas define:
- Question bank items consumed at session start
- Candidate responses collected by the delivery layer
- Per-assessment adaptive testing configuration
"""
from typing import Any, List, Optional, Self

from pydantic import BaseModel, Field, model_validator

from cat_engine.core.config import settings
from libs.domain_types import (
    AbilityEstimationMethod,
    DifficultyLevel,
    ExposureControlMethod,
    IRTModel,
    ItemSelectionMethod,
)


class QuestionContent(BaseModel):
    """Subset of question content the engine reads."""

    type: str = Field(..., description="Question content type, e.g. 'multiple-choice'")


class Question(BaseModel):
    """Question bank item offered to an adaptive session."""

    id: str = Field(..., min_length=1, description="Question (item) id")
    difficulty: DifficultyLevel = Field(
        DifficultyLevel.MEDIUM, description="Declared difficulty tier (1-5)"
    )
    content: QuestionContent
    categories: List[str] = Field(
        default_factory=list,
        description="Content categories; the first one drives content balancing",
    )


class QuestionResponse(BaseModel):
    """A graded candidate response, as delivered by the orchestration layer."""

    response: Any = Field(None, description="Raw response payload")
    response_time_ms: int = Field(0, ge=0, description="Time spent on the item")
    is_correct: bool = Field(..., description="Correctness decided by the grader")


class ContentConstraint(BaseModel):
    """Quota for one content category."""

    category: str = Field(..., min_length=1)
    min_items: int = Field(0, ge=0)
    max_items: int = Field(..., ge=0)
    weight: float = Field(
        0.0, ge=0.0, description="Selection boost while the category is below min_items"
    )

    @model_validator(mode="after")
    def validate_bounds(self) -> Self:
        if self.min_items > self.max_items:
            raise ValueError(
                f"min_items ({self.min_items}) must not exceed max_items "
                f"({self.max_items}) for category '{self.category}'"
            )
        return self


class CATParameters(BaseModel):
    """Algorithm parameters for an adaptive assessment."""

    starting_ability: float = Field(
        default_factory=lambda: settings.CAT_DEFAULT_STARTING_ABILITY, ge=-6.0, le=6.0
    )
    exposure_control: ExposureControlMethod = ExposureControlMethod.NONE
    content_constraints: List[ContentConstraint] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_constraints(self) -> Self:
        categories = [c.category for c in self.content_constraints]
        duplicates = sorted({c for c in categories if categories.count(c) > 1})
        if duplicates:
            raise ValueError(f"Duplicate content constraint categories: {duplicates}")
        return self


class CATStoppingCriteria(BaseModel):
    """Thresholds evaluated before each item selection."""

    max_sem: float = Field(0.3, ge=0.0)
    min_reliability: float = Field(0.9, le=1.0)
    max_questions: int = Field(20, ge=1)
    min_questions: int = Field(1, ge=0)
    time_limit_minutes: Optional[float] = Field(None, gt=0.0)
    confidence_interval: float = Field(
        0.95, gt=0.0, lt=1.0, description="Confidence level for reported ability"
    )

    @model_validator(mode="after")
    def validate_lengths(self) -> Self:
        if self.min_questions > self.max_questions:
            raise ValueError(
                f"min_questions ({self.min_questions}) must not exceed "
                f"max_questions ({self.max_questions})"
            )
        return self


class CATConfiguration(BaseModel):
    """Adaptive testing configuration for one assessment."""

    algorithm: IRTModel = IRTModel.IRT_2PL
    parameters: CATParameters = Field(default_factory=CATParameters)
    stopping_criteria: CATStoppingCriteria = Field(default_factory=CATStoppingCriteria)
    item_selection: ItemSelectionMethod = ItemSelectionMethod.MAXIMUM_INFORMATION
    ability_estimation: AbilityEstimationMethod = AbilityEstimationMethod.MLE
