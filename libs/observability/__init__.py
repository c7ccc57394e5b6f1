"""Unified observability abstraction for the CAT engine.

This package provides a single API for application-level instrumentation
that routes to the appropriate backend systems:
- Errors go to Sentry
- Metrics and traces go to OpenTelemetry

Usage:
    from libs.observability import observability

    # Initialize at application startup
    observability.init(service_name="cat-engine")

    # Capture errors (routed to Sentry)
    try:
        risky_operation()
    except Exception as e:
        observability.capture_error(e, context={"operation": "risky"})
        raise

    # Record metrics (routed to OTEL)
    observability.record_metric(
        name="cat.sessions.started",
        value=1,
        labels={"pool_size": "small"},
        metric_type="counter",
    )

    # Distributed tracing
    with observability.start_span("cat.process_response") as span:
        span.set_attribute("items_administered", 7)

Security:
    Context passed to ``capture_error`` is sent to Sentry as-is. Pass opaque
    identifiers (session ids) rather than participant PII.
"""

from libs.observability.facade import ObservabilityFacade, SpanContext

# Singleton instance for application use
observability = ObservabilityFacade()

__all__ = ["observability", "ObservabilityFacade", "SpanContext"]
