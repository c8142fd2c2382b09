"""
Business-event reporting shared by relay routes.

A business event is one log line plus one ``business_events_total`` sample,
so dashboards and log search agree on what happened.
"""

from typing import Any, Optional

from .errors import RelayException
from .logging import get_logger
from .metrics import MetricsCollector, get_metrics_collector


class ObservabilityManager:
    """Pairs structured logs with their metrics for a service."""

    def __init__(self, service_name: str, metrics: Optional[MetricsCollector] = None):
        self.service_name = service_name
        self.metrics = metrics or get_metrics_collector(service_name)
        self.logger = get_logger(f"{service_name}.events")

    def log_business_event(self, event_type: str, **fields: Any):
        self.logger.info("Business event", event_type=event_type, **fields)
        self.metrics.record_business_event(event_type)

    def log_rejection(self, exc: RelayException, **fields: Any):
        """Record a request refused with a client or provider error."""
        log = self.logger.error if exc.status_code >= 500 else self.logger.warning
        log(
            "Request rejected",
            code=exc.code,
            message=exc.message,
            details=exc.details,
            **fields
        )
        self.metrics.record_error(exc)


def get_observability_manager(service_name: str, metrics: Optional[MetricsCollector] = None) -> ObservabilityManager:
    """Get an observability manager for a service."""
    return ObservabilityManager(service_name, metrics)
