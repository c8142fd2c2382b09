"""
Prometheus metrics for the interview relay services.

Metric families are declared as tables below; ``MetricsCollector`` builds
them into a registry of its own and exposes small helpers that silently
ignore metric names a service did not register.
"""

from prometheus_client import Counter, Histogram, Gauge, Info, CollectorRegistry, generate_latest
from typing import Dict, Any, Optional, Sequence, Tuple, Type

from relay_shared.errors import RelayException

MetricSpec = Tuple[Type, str, str, Sequence[str]]

COMMON_METRICS: Sequence[MetricSpec] = (
    (Counter, "http_requests_total", "Total HTTP requests", ("method", "endpoint", "status_code")),
    (Histogram, "http_request_duration_seconds", "HTTP request duration in seconds", ("method", "endpoint")),
    (Counter, "health_check_total", "Total health check requests", ("status",)),
    (Counter, "errors_total", "Total errors", ("error_type", "service")),
    (Counter, "business_events_total", "Total business events", ("event_type", "service")),
)

RELAY_METRICS: Sequence[MetricSpec] = (
    (Counter, "tokens_issued_total", "Relay tokens issued", ()),
    (Counter, "token_consumptions_total", "Relay token consumption attempts", ("result",)),
    (Gauge, "token_store_size", "Outstanding relay tokens", ()),
    (Gauge, "active_relay_sessions", "Relay sessions currently bridging", ()),
    (Counter, "relay_sessions_total", "Finished relay sessions", ("outcome",)),
    (Counter, "relay_frames_total", "Frames forwarded by relay sessions", ("direction",)),
    (Histogram, "relay_session_duration_seconds", "Bridged relay session duration in seconds", ()),
    (Counter, "provider_requests_total", "Recording provider API calls", ("operation", "status")),
)

SERVICE_METRICS: Dict[str, Sequence[MetricSpec]] = {
    "relay": RELAY_METRICS,
}


class MetricsCollector:
    """Per-service metrics registry."""

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        # Several service instances can live in one process (tests), so no global registry
        self.registry = registry if registry is not None else CollectorRegistry()
        self._metrics: Dict[str, Any] = {}

        info = Info("service_info", "Service information", registry=self.registry)
        info.info({"service": service_name, "version": "1.0.0"})

        for spec in (*COMMON_METRICS, *SERVICE_METRICS.get(service_name, ())):
            self._register(*spec)

    def _register(self, kind: Type, name: str, documentation: str, labels: Sequence[str]):
        self._metrics[name] = kind(name, documentation, list(labels), registry=self.registry)

    def render(self) -> bytes:
        """Render the registry in Prometheus text format."""
        return generate_latest(self.registry)

    def record_http_request(self, method: str, endpoint: str, status_code: int, duration: float):
        self.increment_counter("http_requests_total", method=method, endpoint=endpoint, status_code=str(status_code))
        self.observe_histogram("http_request_duration_seconds", duration, method=method, endpoint=endpoint)

    def record_health_check(self, status: str):
        self.increment_counter("health_check_total", status=status)

    def record_error(self, error: Any):
        """Count an error by its code; accepts a code string or a RelayException."""
        error_type = error.code if isinstance(error, RelayException) else str(error)
        self.increment_counter("errors_total", error_type=error_type, service=self.service_name)

    def record_business_event(self, event_type: str):
        self.increment_counter("business_events_total", event_type=event_type, service=self.service_name)

    def increment_counter(self, metric_name: str, **labels):
        metric = self._metric(metric_name, labels)
        if metric is not None:
            metric.inc()

    def set_gauge(self, metric_name: str, value: float, **labels):
        metric = self._metric(metric_name, labels)
        if metric is not None:
            metric.set(value)

    def adjust_gauge(self, metric_name: str, delta: float, **labels):
        """Move a gauge up (positive delta) or down."""
        metric = self._metric(metric_name, labels)
        if metric is not None:
            metric.inc(delta)

    def observe_histogram(self, metric_name: str, value: float, **labels):
        metric = self._metric(metric_name, labels)
        if metric is not None:
            metric.observe(value)

    def _metric(self, metric_name: str, labels: Dict[str, Any]):
        metric = self._metrics.get(metric_name)
        if metric is None:
            return None
        return metric.labels(**labels) if labels else metric


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Get a metrics collector for a service."""
    return MetricsCollector(service_name, registry)
