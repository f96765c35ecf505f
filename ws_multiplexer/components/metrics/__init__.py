"""
Metrics and observability components.

Internal metrics collection and Prometheus exposition.
"""

from ws_multiplexer.components.metrics.collector import (
    MetricsCollector,
    FrameMetrics,
    DispatchMetrics,
    ConnectionMetrics,
)
from ws_multiplexer.components.metrics.prometheus import (
    PrometheusFormatter,
    generate_prometheus_metrics,
)

__all__ = [
    # Metrics collector
    "MetricsCollector",
    "FrameMetrics",
    "DispatchMetrics",
    "ConnectionMetrics",
    # Prometheus
    "PrometheusFormatter",
    "generate_prometheus_metrics",
]
