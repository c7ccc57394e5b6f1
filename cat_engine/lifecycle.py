"""
Process startup and shutdown for hosts embedding the CAT engine.

Usage:
    from cat_engine.lifecycle import startup, shutdown

    engine = CATEngine()
    startup(engine)
    try:
        ...
    finally:
        shutdown(engine)
"""
import logging
from typing import Optional

from cat_engine.core.cat.engine import CATEngine
from cat_engine.core.config import settings
from cat_engine.core.logging_config import setup_logging
from cat_engine.metrics import metrics
from libs.observability import observability

logger = logging.getLogger(__name__)


def init_observability() -> bool:
    """
    Initialize the observability facade from engine settings.

    Sentry is enabled only when SENTRY_DSN is set.

    Returns:
        Whatever ``observability.init`` returns.
    """
    return observability.init(
        service_name=settings.OTEL_SERVICE_NAME,
        environment=settings.ENV,
        sentry_enabled=bool(settings.SENTRY_DSN),
        sentry_dsn=settings.SENTRY_DSN or None,
        sentry_release=settings.APP_VERSION,
        sentry_traces_sample_rate=settings.SENTRY_TRACES_SAMPLE_RATE,
        otel_enabled=settings.OTEL_ENABLED,
        otel_service_version=settings.APP_VERSION,
        otel_exporter=settings.OTEL_EXPORTER,
        otel_endpoint=settings.OTEL_OTLP_ENDPOINT,
        otel_metrics_enabled=settings.OTEL_METRICS_ENABLED,
    )


def startup(engine: Optional[CATEngine] = None) -> None:
    """Configure logging, observability and engine metrics."""
    setup_logging()
    init_observability()

    metrics.initialize()
    if engine is not None and metrics.is_initialized:
        metrics.attach(engine)
    logger.info(f"{settings.APP_NAME} {settings.APP_VERSION} started (env={settings.ENV})")


def shutdown(engine: Optional[CATEngine] = None) -> None:
    """Detach metrics and flush observability backends."""
    if engine is not None:
        metrics.detach(engine)
    observability.flush()
    observability.shutdown()
