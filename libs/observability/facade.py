"""Public API facade for observability.

This module provides the unified interface that application code uses.
Errors go to Sentry; metrics and traces go to OpenTelemetry.

Example:
    Basic usage with error capture and metrics::

        from libs.observability import observability

        observability.init(service_name="cat-engine", environment="production")

        try:
            risky_operation()
        except Exception as e:
            observability.capture_error(e, context={"operation": "risky"})
            raise

        observability.record_metric(
            "cat.items.selected",
            value=1,
            metric_type="counter",
        )

        with observability.start_span("cat.select_item") as span:
            span.set_attribute("pool_size", 120)
"""

from __future__ import annotations

import atexit
import logging
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Iterator, Literal

from libs.observability.validation import high_cardinality_labels

if TYPE_CHECKING:
    from libs.observability.config import ObservabilityConfig

logger = logging.getLogger(__name__)

MetricType = Literal["counter", "histogram", "updown_counter"]
ErrorLevel = Literal["debug", "info", "warning", "error", "fatal"]


class SpanContext:
    """Wrapper around an OTEL span that tolerates tracing being disabled.

    Exceptions raised inside the span are recorded and mark the span as
    failed.
    """

    def __init__(self, name: str, otel_span: Any = None):
        self._name = name
        self._otel_span = otel_span

    @property
    def name(self) -> str:
        return self._name

    def set_attribute(self, key: str, value: Any) -> None:
        if self._otel_span is not None:
            self._otel_span.set_attribute(key, value)

    def set_status(self, status: Literal["ok", "error"], description: str = "") -> None:
        if self._otel_span is not None:
            from opentelemetry.trace import StatusCode

            code = StatusCode.OK if status == "ok" else StatusCode.ERROR
            self._otel_span.set_status(code, description)

    def record_exception(self, exception: BaseException) -> None:
        if self._otel_span is not None:
            self._otel_span.record_exception(exception)

    def __enter__(self) -> SpanContext:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if exc_val is not None:
            self.record_exception(exc_val)
            self.set_status("error", str(exc_val))


class ObservabilityFacade:
    """Unified facade for observability operations.

    Every method is safe to call before ``init``; calls are dropped until
    the backends are up.
    """

    def __init__(self) -> None:
        self._initialized = False
        self._config: ObservabilityConfig | None = None
        self._sentry_backend: Any = None
        self._otel_backend: Any = None
        self._atexit_registered = False

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def config(self) -> ObservabilityConfig | None:
        return self._config

    def init(
        self,
        config_path: str | None = None,
        service_name: str | None = None,
        environment: str | None = None,
        **overrides: Any,
    ) -> bool:
        """Initialize observability backends.

        Idempotent: a second call logs a warning and returns True without
        reinitializing.

        Args:
            config_path: Optional YAML file layered over the bundled defaults.
            service_name: Override for the OTEL service name.
            environment: Override for the Sentry environment.
            **overrides: ``sentry_*`` or ``otel_*`` keyword overrides.

        Returns:
            False if configuration failed to load, True otherwise.
        """
        if self._initialized:
            logger.warning(
                "Observability already initialized. Skipping reinitialization. "
                "Call shutdown() first if you need to reconfigure."
            )
            return True

        from libs.observability.config import ConfigurationError, load_config

        try:
            self._config = load_config(
                config_path=config_path,
                service_name=service_name,
                environment=environment,
                **overrides,
            )
        except ConfigurationError as e:
            logger.error("Failed to load observability configuration: %s", e)
            return False

        active: list[str] = []

        if self._config.sentry.enabled:
            from libs.observability.sentry_backend import SentryBackend

            self._sentry_backend = SentryBackend(self._config.sentry)
            if self._sentry_backend.init():
                active.append("Sentry")

        if self._config.otel.enabled:
            from libs.observability.otel_backend import OTELBackend

            self._otel_backend = OTELBackend(self._config.otel)
            if self._otel_backend.init():
                active.append("OpenTelemetry")

        self._initialized = True

        if not self._atexit_registered:
            atexit.register(self._atexit_shutdown)
            self._atexit_registered = True

        if active:
            logger.info(
                "Observability initialized: %s (service=%s, environment=%s)",
                ", ".join(active),
                self._config.otel.service_name,
                self._config.sentry.environment,
            )
        else:
            logger.warning(
                "Observability initialized but no backends are active. "
                "Check your configuration."
            )
        return True

    def _atexit_shutdown(self) -> None:
        if self._initialized:
            try:
                self.flush(timeout=2.0)
                self.shutdown()
            except Exception as e:
                logger.debug("Error during atexit shutdown: %s", e)

    def capture_error(
        self,
        exception: BaseException,
        *,
        context: dict[str, Any] | None = None,
        level: ErrorLevel = "error",
        tags: dict[str, str] | None = None,
    ) -> str | None:
        """Send an exception to Sentry.

        Args:
            exception: The exception to capture.
            context: Extra data shown as "additional" context.
            level: Sentry severity.
            tags: Searchable string tags.

        Returns:
            The Sentry event id, or None if Sentry is not active or the
            capture itself failed.
        """
        if self._sentry_backend is None:
            logger.debug("capture_error dropped, Sentry not active: %r", exception)
            return None

        try:
            return self._sentry_backend.capture_error(
                exception, context=context, level=level, tags=tags
            )
        except Exception as e:
            logger.error("Failed to capture error in Sentry: %s", e)
            return None

    def record_metric(
        self,
        name: str,
        value: float | int,
        *,
        labels: dict[str, str] | None = None,
        metric_type: MetricType = "counter",
        unit: str | None = None,
    ) -> None:
        """Record a metric through OpenTelemetry.

        Labels that look like per-entity identifiers are logged as a
        cardinality warning but still recorded.
        """
        if self._otel_backend is None:
            return

        risky = high_cardinality_labels(labels)
        if risky:
            logger.warning(
                "Metric %s uses high-cardinality labels: %s", name, ", ".join(risky)
            )

        try:
            self._otel_backend.record_metric(
                name, value, labels=labels, metric_type=metric_type, unit=unit
            )
        except Exception as e:
            logger.warning("Failed to record metric %s: %s", name, e)

    @contextmanager
    def start_span(
        self, name: str, *, attributes: dict[str, Any] | None = None
    ) -> Iterator[SpanContext]:
        """Start a tracing span. Yields a no-op SpanContext when tracing is off."""
        if self._otel_backend is None:
            with SpanContext(name) as span:
                yield span
            return

        with self._otel_backend.start_span(name, attributes=attributes) as otel_span:
            with SpanContext(name, otel_span) as span:
                yield span

    def flush(self, timeout: float = 2.0) -> None:
        """Flush pending events; each backend is attempted even if one fails."""
        if not self._initialized:
            return

        if self._sentry_backend is not None:
            try:
                self._sentry_backend.flush(timeout)
            except Exception as e:
                logger.warning("Sentry backend flush failed: %s", e)

        if self._otel_backend is not None:
            try:
                self._otel_backend.flush(timeout)
            except Exception as e:
                logger.warning("OTEL backend flush failed: %s", e)

    def shutdown(self) -> None:
        """Shut down backends. Idempotent."""
        if not self._initialized:
            return

        logger.info("Shutting down observability backends")

        if self._sentry_backend is not None:
            try:
                self._sentry_backend.shutdown()
            except Exception as e:
                logger.warning("Sentry backend shutdown failed: %s", e)
            finally:
                self._sentry_backend = None

        if self._otel_backend is not None:
            try:
                self._otel_backend.shutdown()
            except Exception as e:
                logger.warning("OTEL backend shutdown failed: %s", e)
            finally:
                self._otel_backend = None

        self._initialized = False
        self._config = None
