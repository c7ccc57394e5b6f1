"""Sentry backend for error tracking.

This module handles all Sentry SDK interactions: initialization, exception
capture with scoped context, flush and shutdown.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, is_dataclass
from datetime import date, datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

import sentry_sdk
from sentry_sdk.integrations.logging import LoggingIntegration

if TYPE_CHECKING:
    from libs.observability.config import SentryConfig

logger = logging.getLogger(__name__)


def serialize_value(value: Any, _depth: int = 0) -> Any:
    """Convert a value to something Sentry can store as JSON.

    Handles enums, datetimes, dataclasses and containers; falls back to
    ``str()``. Nesting deeper than 10 levels is cut off.
    """
    if _depth > 10:
        return "<max depth>"
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if is_dataclass(value) and not isinstance(value, type):
        return serialize_value(asdict(value), _depth + 1)
    if isinstance(value, dict):
        return {str(k): serialize_value(v, _depth + 1) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [serialize_value(item, _depth + 1) for item in value]
    return str(value)


class SentryBackend:
    """Backend for Sentry error tracking."""

    def __init__(self, config: SentryConfig) -> None:
        self._config = config
        self._initialized = False

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    def init(self) -> bool:
        """Initialize the Sentry SDK.

        Returns:
            True if Sentry is ready, False if skipped (disabled or no DSN) or
            failed. Never raises.
        """
        if not self._config.enabled or not self._config.dsn:
            logger.debug("Sentry initialization skipped (disabled or DSN not configured)")
            return False

        try:
            sentry_sdk.init(
                dsn=self._config.dsn,
                environment=self._config.environment,
                release=self._config.release,
                traces_sample_rate=self._config.traces_sample_rate,
                send_default_pii=self._config.send_default_pii,
                # Errors are reported explicitly through the facade
                integrations=[LoggingIntegration(level=None, event_level=None)],
            )
        except Exception as e:
            logger.error(f"Failed to initialize Sentry: {e}", exc_info=True)
            return False

        self._initialized = True
        logger.info(
            f"Sentry initialized for environment '{self._config.environment}' "
            f"with {self._config.traces_sample_rate * 100:.0f}% trace sampling"
        )
        return True

    def capture_error(
        self,
        exception: BaseException,
        *,
        context: dict[str, Any] | None = None,
        level: str = "error",
        tags: dict[str, str] | None = None,
    ) -> str | None:
        """Capture an exception. Returns the event id, or None if not initialized."""
        if not self._initialized:
            return None

        with sentry_sdk.new_scope() as scope:
            if context:
                scope.set_context("additional", serialize_value(context))
            for key, value in (tags or {}).items():
                scope.set_tag(key, value)
            scope.level = level
            return scope.capture_exception(exception)

    def flush(self, timeout: float = 2.0) -> None:
        if self._initialized:
            sentry_sdk.flush(timeout=timeout)

    def shutdown(self) -> None:
        if not self._initialized:
            return
        client = sentry_sdk.get_client()
        if client is not None:
            client.close(timeout=2.0)
        self._initialized = False
