"""
Adaptive testing metrics instrumentation for OpenTelemetry.

CATMetrics listens to a CATEngine's lifecycle events and records:
- Sessions started and finished (by status and reason)
- Items selected and responses processed (by correctness)
- Active sessions
- Final SEM and test length distributions

Usage:
    from cat_engine.metrics import metrics

    metrics.initialize()
    metrics.attach(engine)
"""
import logging
from typing import TYPE_CHECKING

from cat_engine.core.cat.events import CATEvent
from cat_engine.core.config import settings
from libs.domain_types import CATEventType
from libs.observability import observability

if TYPE_CHECKING:
    from cat_engine.core.cat.engine import CATEngine

logger = logging.getLogger(__name__)


class CATMetrics:
    """
    Engine-level metrics using OpenTelemetry.

    All methods are no-ops until ``initialize`` succeeds, which requires
    OTEL metrics to be enabled in settings and the observability facade to be
    initialized first.
    """

    def __init__(self) -> None:
        self._initialized = False

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    def initialize(self) -> None:
        """
        Enable metric recording.

        Should be called during startup after the observability facade is
        initialized.
        """
        if not settings.OTEL_ENABLED or not settings.OTEL_METRICS_ENABLED:
            logger.info("CAT metrics not enabled (OTEL_METRICS_ENABLED=False)")
            return

        if self._initialized:
            logger.warning("CAT metrics already initialized")
            return

        if not observability.is_initialized:
            logger.error(
                "Observability facade not initialized. "
                "CATMetrics requires the facade to be initialized first. "
                "Metrics will not be recorded."
            )
            return

        self._initialized = True
        logger.info("CAT metrics initialized successfully")

    def attach(self, engine: "CATEngine") -> None:
        """Subscribe to an engine's lifecycle events."""
        engine.subscribe(self.handle_event)

    def detach(self, engine: "CATEngine") -> None:
        engine.unsubscribe(self.handle_event)

    def handle_event(self, event: CATEvent) -> None:
        """Translate a lifecycle event into metric updates."""
        if not self._initialized:
            return

        if event.type == CATEventType.SESSION_STARTED:
            self.record_session_started(event)
        elif event.type == CATEventType.ITEM_SELECTED:
            self.record_item_selected(event)
        elif event.type == CATEventType.RESPONSE_PROCESSED:
            self.record_response_processed(event)
        elif event.type in (
            CATEventType.SESSION_COMPLETED,
            CATEventType.SESSION_TERMINATED,
        ):
            self.record_session_finished(event)

    def _pool_size_label(self, event: CATEvent) -> str:
        if event.session is None:
            return "unknown"
        pool = len(event.session.item_categories)
        if pool < 50:
            return "small"
        if pool < 500:
            return "medium"
        return "large"

    def record_session_started(self, event: CATEvent) -> None:
        observability.record_metric(
            name="cat.sessions.started",
            value=1,
            labels={"pool_size": self._pool_size_label(event)},
            metric_type="counter",
            unit="1",
        )
        observability.record_metric(
            name="cat.sessions.active",
            value=1,
            metric_type="updown_counter",
            unit="1",
        )

    def record_item_selected(self, event: CATEvent) -> None:
        observability.record_metric(
            name="cat.items.selected",
            value=1,
            metric_type="counter",
            unit="1",
        )

    def record_response_processed(self, event: CATEvent) -> None:
        item = event.payload.get("item")
        correct = "unknown" if item is None else str(item.is_correct).lower()
        observability.record_metric(
            name="cat.responses.processed",
            value=1,
            labels={"correct": correct},
            metric_type="counter",
            unit="1",
        )

    def record_session_finished(self, event: CATEvent) -> None:
        session = event.session
        status = session.status.value if session is not None else "unknown"
        reason = str(event.payload.get("reason") or "unknown")
        labels = {"status": status, "reason": reason}

        observability.record_metric(
            name="cat.sessions.finished",
            value=1,
            labels=labels,
            metric_type="counter",
            unit="1",
        )
        observability.record_metric(
            name="cat.sessions.active",
            value=-1,
            metric_type="updown_counter",
            unit="1",
        )
        if session is not None:
            observability.record_metric(
                name="cat.session.sem",
                value=session.sem,
                labels=labels,
                metric_type="histogram",
                unit="1",
            )
            observability.record_metric(
                name="cat.session.items",
                value=len(session.administered_items),
                labels=labels,
                metric_type="histogram",
                unit="1",
            )


# Singleton instance
metrics = CATMetrics()
