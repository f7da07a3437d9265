"""
Shared metrics configuration for the EOG Parser service.
"""

from prometheus_client import Counter, Histogram, Gauge, Info, CollectorRegistry, REGISTRY
from typing import Dict, Any, Optional
import time
import threading
from contextlib import contextmanager


class MetricsCollector:
    """Centralized metrics collector for services."""

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry or REGISTRY
        self._metrics: Dict[str, Any] = {}
        self._setup_metrics()

    def _setup_metrics(self):
        """Set up common metrics for the service."""

        # Service info
        self._metrics["service_info"] = Info(
            "service_info",
            "Service information",
            registry=self.registry
        )
        self._metrics["service_info"].info({
            "service": self.service_name,
            "version": "1.0.0"
        })

        # HTTP metrics
        self._metrics["http_requests_total"] = Counter(
            "http_requests_total",
            "Total HTTP requests",
            ["method", "endpoint", "status_code"],
            registry=self.registry
        )

        self._metrics["http_request_duration_seconds"] = Histogram(
            "http_request_duration_seconds",
            "HTTP request duration in seconds",
            ["method", "endpoint"],
            registry=self.registry
        )

        # Health check metrics
        self._metrics["health_check_total"] = Counter(
            "health_check_total",
            "Total health check requests",
            ["status"],
            registry=self.registry
        )

        # Error metrics
        self._metrics["errors_total"] = Counter(
            "errors_total",
            "Total errors",
            ["error_type", "service"],
            registry=self.registry
        )

        if self.service_name == "parser":
            self._setup_parser_metrics()

    def _setup_parser_metrics(self):
        """Set up parser-specific metrics."""
        self._metrics["parse_requests_total"] = Counter(
            "parse_requests_total",
            "Total PDF parse requests",
            ["outcome"],
            registry=self.registry
        )

        self._metrics["backend_calls_total"] = Counter(
            "backend_calls_total",
            "Total extraction backend calls",
            ["backend", "outcome"],
            registry=self.registry
        )

        self._metrics["backend_call_duration_seconds"] = Histogram(
            "backend_call_duration_seconds",
            "Extraction backend call duration in seconds",
            ["backend"],
            buckets=(1, 5, 15, 30, 60, 120, 180, 240, 300, 600),
            registry=self.registry
        )

        self._metrics["rate_limit_rejections_total"] = Counter(
            "rate_limit_rejections_total",
            "Total requests rejected by the rate limiter",
            registry=self.registry
        )

        self._metrics["gateway_ready"] = Gauge(
            "gateway_ready",
            "Whether the agent gateway is considered ready (1) or not (0)",
            registry=self.registry
        )

    def get_metric(self, name: str):
        """Get a metric by name."""
        return self._metrics.get(name)

    def record_http_request(self, method: str, endpoint: str, status_code: int, duration: float):
        """Record HTTP request metrics."""
        self._metrics["http_requests_total"].labels(
            method=method,
            endpoint=endpoint,
            status_code=str(status_code)
        ).inc()

        self._metrics["http_request_duration_seconds"].labels(
            method=method,
            endpoint=endpoint
        ).observe(duration)

    def record_health_check(self, status: str):
        """Record health check metrics."""
        self._metrics["health_check_total"].labels(status=status).inc()

    def record_error(self, error_type: str, service: Optional[str] = None):
        """Record error metrics."""
        service_name = service or self.service_name
        self._metrics["errors_total"].labels(error_type=error_type, service=service_name).inc()

    @contextmanager
    def time_operation(self, operation_name: str, **labels):
        """Context manager to time an operation."""
        start_time = time.time()
        try:
            yield
        finally:
            duration = time.time() - start_time
            if operation_name in self._metrics:
                self._metrics[operation_name].labels(**labels).observe(duration)

    def increment_counter(self, metric_name: str, **labels):
        """Increment a counter metric."""
        if metric_name in self._metrics:
            metric = self._metrics[metric_name]
            (metric.labels(**labels) if labels else metric).inc()

    def set_gauge(self, metric_name: str, value: float, **labels):
        """Set a gauge metric value."""
        if metric_name in self._metrics:
            metric = self._metrics[metric_name]
            (metric.labels(**labels) if labels else metric).set(value)


_collectors: Dict[tuple, MetricsCollector] = {}
_collectors_lock = threading.Lock()


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Get the metrics collector for a service.

    Collectors are cached per (service, registry): prometheus_client refuses
    to register the same metric name twice on one registry.
    """
    key = (service_name, id(registry or REGISTRY))
    with _collectors_lock:
        if key not in _collectors:
            _collectors[key] = MetricsCollector(service_name, registry)
        return _collectors[key]
