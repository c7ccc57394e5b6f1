"""
Exceptions raised by the CAT engine.

Pool exhaustion and numeric degeneracy (zero information, zero posterior mass)
are not errors; they are handled by documented fallbacks and never raised.
"""

from typing import Any, Dict, Optional


class CATError(Exception):
    """Base exception for CAT engine errors."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        if not self.context:
            return self.message
        details = ", ".join(f"{k}={v}" for k, v in self.context.items())
        return f"{self.message} ({details})"


class InvalidSessionError(CATError):
    """Session id is unknown or the session is no longer active.

    Not retryable: callers must not reuse the session.
    """


class DuplicateSessionError(CATError):
    """A session already exists for the same (assessment, participant, attempt)."""


class InvalidResponseError(CATError):
    """A response refers to an item that cannot be scored in this session."""


class UnknownItemError(CATError):
    """No IRT parameters are registered for an item."""
