"""OpenTelemetry backend for metrics and tracing.

Supports two exporters:
- "console": writes to stdout, for local development and simulations
- "otlp": sends to an OTLP/HTTP collector endpoint
"""

from __future__ import annotations

import logging
import re
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Iterator, Literal

from opentelemetry import metrics, trace
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import (
    ConsoleMetricExporter,
    PeriodicExportingMetricReader,
)
from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_VERSION, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.sdk.trace.sampling import TraceIdRatioBased

if TYPE_CHECKING:
    from libs.observability.config import OTELConfig

logger = logging.getLogger(__name__)

MetricType = Literal["counter", "histogram", "updown_counter"]

# Lowercase alphanumerics, underscores and dots; must start with a letter
_METRIC_NAME_PATTERN = re.compile(r"^[a-z][a-z0-9_.]*$")


def validate_metric_name(name: str) -> str | None:
    """Return an error message for a badly formed metric name, else None."""
    if not name:
        return "Metric name cannot be empty"
    if not _METRIC_NAME_PATTERN.match(name):
        return (
            f"Metric name '{name}' does not follow conventions. "
            "Use lowercase letters, numbers, underscores, and dots."
        )
    return None


class OTELBackend:
    """Backend for OpenTelemetry metrics and tracing."""

    def __init__(self, config: OTELConfig) -> None:
        self._config = config
        self._initialized = False
        self._meter: Any = None
        self._tracer: Any = None
        self._instruments: dict[tuple[str, str], Any] = {}
        self._meter_provider: MeterProvider | None = None
        self._tracer_provider: TracerProvider | None = None

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    def init(self) -> bool:
        """Initialize metrics and tracing providers.

        Returns:
            True if initialized, False if skipped or failed. Never raises.
        """
        if not self._config.enabled or self._config.exporter == "none":
            logger.debug("OpenTelemetry initialization skipped (disabled)")
            return False

        if self._initialized:
            logger.warning("OpenTelemetry already initialized, skipping")
            return True

        try:
            attributes = {SERVICE_NAME: self._config.service_name}
            if self._config.service_version:
                attributes[SERVICE_VERSION] = self._config.service_version
            resource = Resource(attributes=attributes)

            if self._config.traces_enabled:
                self._init_tracing(resource)
            if self._config.metrics_enabled:
                self._init_metrics(resource)
        except Exception as e:
            logger.error(f"Failed to initialize OpenTelemetry: {e}", exc_info=True)
            return False

        self._initialized = True
        logger.info(
            f"OpenTelemetry initialized with {self._config.exporter} exporter "
            f"(service={self._config.service_name})"
        )
        return True

    def _endpoint(self, signal: str) -> str | None:
        if not self._config.endpoint:
            return None
        return f"{self._config.endpoint.rstrip('/')}/v1/{signal}"

    def _init_tracing(self, resource: Resource) -> None:
        provider = TracerProvider(
            resource=resource,
            sampler=TraceIdRatioBased(self._config.traces_sample_rate),
        )
        if self._config.exporter == "console":
            provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))
        elif self._endpoint("traces"):
            from opentelemetry.exporter.otlp.proto.http.trace_exporter import (
                OTLPSpanExporter,
            )

            provider.add_span_processor(
                BatchSpanProcessor(OTLPSpanExporter(endpoint=self._endpoint("traces")))
            )
        else:
            logger.warning("OTLP exporter configured but no endpoint set; traces dropped")

        trace.set_tracer_provider(provider)
        self._tracer_provider = provider
        self._tracer = trace.get_tracer(self._config.service_name)

    def _init_metrics(self, resource: Resource) -> None:
        interval = self._config.metrics_export_interval_millis
        readers: list[Any] = []
        if self._config.exporter == "console":
            readers.append(
                PeriodicExportingMetricReader(
                    ConsoleMetricExporter(), export_interval_millis=interval
                )
            )
        elif self._endpoint("metrics"):
            from opentelemetry.exporter.otlp.proto.http.metric_exporter import (
                OTLPMetricExporter,
            )

            readers.append(
                PeriodicExportingMetricReader(
                    OTLPMetricExporter(endpoint=self._endpoint("metrics")),
                    export_interval_millis=interval,
                )
            )
        else:
            logger.warning("OTLP exporter configured but no endpoint set; metrics dropped")

        provider = MeterProvider(resource=resource, metric_readers=readers)
        metrics.set_meter_provider(provider)
        self._meter_provider = provider
        self._meter = metrics.get_meter(self._config.service_name)

    def _instrument(self, name: str, metric_type: MetricType, unit: str | None) -> Any:
        key = (name, metric_type)
        instrument = self._instruments.get(key)
        if instrument is None:
            if metric_type == "histogram":
                instrument = self._meter.create_histogram(name=name, unit=unit or "1")
            elif metric_type == "updown_counter":
                instrument = self._meter.create_up_down_counter(name=name, unit=unit or "1")
            else:
                instrument = self._meter.create_counter(name=name, unit=unit or "1")
            self._instruments[key] = instrument
        return instrument

    def record_metric(
        self,
        name: str,
        value: float | int,
        *,
        labels: dict[str, str] | None = None,
        metric_type: MetricType = "counter",
        unit: str | None = None,
    ) -> None:
        """Record a counter increment, histogram observation or up/down delta."""
        if not self._initialized or self._meter is None:
            return

        error = validate_metric_name(name)
        if error:
            logger.warning(error)

        instrument = self._instrument(name, metric_type, unit)
        if metric_type == "histogram":
            instrument.record(value, attributes=labels or {})
        else:
            instrument.add(value, attributes=labels or {})

    @contextmanager
    def start_span(
        self, name: str, *, attributes: dict[str, Any] | None = None
    ) -> Iterator[Any]:
        """Start a span; yields None when tracing is not initialized."""
        if not self._initialized or self._tracer is None:
            yield None
            return

        with self._tracer.start_as_current_span(name, attributes=attributes) as span:
            yield span

    def flush(self, timeout: float = 2.0) -> None:
        timeout_millis = int(timeout * 1000)
        for provider in (self._meter_provider, self._tracer_provider):
            if provider is None:
                continue
            try:
                provider.force_flush(timeout_millis=timeout_millis)
            except Exception as e:
                logger.warning("Failed to flush OpenTelemetry provider: %s", e)

    def shutdown(self) -> None:
        for provider in (self._meter_provider, self._tracer_provider):
            if provider is None:
                continue
            try:
                provider.shutdown()
            except Exception as e:
                logger.warning("Failed to shutdown OpenTelemetry provider: %s", e)
        self._meter_provider = None
        self._tracer_provider = None
        self._initialized = False
