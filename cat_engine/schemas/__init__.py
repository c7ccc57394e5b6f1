"""
Pydantic schemas for engine input validation.
"""
from .cat import (
    CATConfiguration,
    CATParameters,
    CATStoppingCriteria,
    ContentConstraint,
    Question,
    QuestionContent,
    QuestionResponse,
)

__all__ = [
    "CATConfiguration",
    "CATParameters",
    "CATStoppingCriteria",
    "ContentConstraint",
    "Question",
    "QuestionContent",
    "QuestionResponse",
]
