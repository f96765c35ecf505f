"""
Prometheus Metrics Export for the Multiplexer.

Formats ``WebSocketMultiplexer.get_stats()`` in Prometheus text exposition
format. No external dependencies required.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


# =============================================================================
# Metric Types
# =============================================================================


class MetricType(str, Enum):
    """Prometheus metric types."""

    COUNTER = "counter"
    GAUGE = "gauge"


@dataclass(frozen=True)
class MetricDefinition:
    """
    Definition of a metric for Prometheus output.

    ``section`` names the sub-dictionary of the stats the value is read from
    and ``source`` the key inside it.
    """

    name: str
    help_text: str
    metric_type: MetricType
    section: str
    source: str


# =============================================================================
# Metric Definitions
# =============================================================================


METRIC_DEFINITIONS: list[MetricDefinition] = [
    # Subscription gauges
    MetricDefinition(
        "subscriptions_active",
        "Subscription records currently held",
        MetricType.GAUGE, "subscriptions", "active_subscriptions",
    ),
    MetricDefinition(
        "listeners_total",
        "Listeners registered across all subscriptions",
        MetricType.GAUGE, "subscriptions", "total_listeners",
    ),
    MetricDefinition(
        "subscriptions_completed",
        "Subscriptions completed by the backend on the current connection",
        MetricType.GAUGE, "subscriptions", "completed_keys",
    ),
    MetricDefinition(
        "unsubscribes_pending",
        "Subscriptions waiting for their debounced teardown",
        MetricType.GAUGE, "debounce", "pending",
    ),

    # Frame counters
    MetricDefinition(
        "frames_requests_sent_total",
        "REQUEST frames queued on the transport",
        MetricType.COUNTER, "metrics", "frames_requests_sent",
    ),
    MetricDefinition(
        "frames_closes_sent_total",
        "CLOSE frames queued on the transport",
        MetricType.COUNTER, "metrics", "frames_closes_sent",
    ),
    MetricDefinition(
        "frames_send_skipped_total",
        "Frames not sent because no connection was open",
        MetricType.COUNTER, "metrics", "frames_send_skipped",
    ),
    MetricDefinition(
        "frames_received_total",
        "Addressed frames received",
        MetricType.COUNTER, "metrics", "frames_received",
    ),

    # Dispatch counters
    MetricDefinition(
        "messages_delivered_total",
        "Payloads delivered to listeners",
        MetricType.COUNTER, "metrics", "dispatch_delivered",
    ),
    MetricDefinition(
        "listener_errors_total",
        "Listener calls that raised",
        MetricType.COUNTER, "metrics", "dispatch_listener_errors",
    ),

    # Connection counters
    MetricDefinition(
        "connect_attempts_total",
        "Transport connection attempts",
        MetricType.COUNTER, "metrics", "connection_attempts",
    ),
    MetricDefinition(
        "connect_failures_total",
        "Failed transport connection attempts",
        MetricType.COUNTER, "metrics", "connection_failures",
    ),
    MetricDefinition(
        "connect_timeouts_total",
        "Connection attempts that timed out",
        MetricType.COUNTER, "metrics", "connection_timeouts",
    ),
    MetricDefinition(
        "reconnects_total",
        "Reconnections after a dropped transport",
        MetricType.COUNTER, "metrics", "connection_reconnects",
    ),
    MetricDefinition(
        "resubscribed_keys_total",
        "Subscriptions replayed after reconnections",
        MetricType.COUNTER, "metrics", "connection_resubscribed_keys",
    ),
]

# Discarded inbound frames, exported as one counter labelled by reason
DISCARD_REASONS: tuple[str, ...] = (
    "malformed",
    "payload_errors",
    "oversize",
    "unknown_type",
    "unaddressed",
    "no_listeners",
)


# =============================================================================
# Prometheus Formatter
# =============================================================================


class PrometheusFormatter:
    """
    Formats metrics in Prometheus text exposition format.

    Reference: https://prometheus.io/docs/instrumenting/exposition_formats/

    Usage:
        formatter = PrometheusFormatter()
        output = formatter.format_all_metrics(multiplexer.get_stats())
    """

    def __init__(self, prefix: str = "wsmux"):
        """
        Args:
            prefix: Prefix for all metric names.
        """
        self._prefix = prefix

    def format_metric(
        self,
        name: str,
        value: float | int,
        help_text: str,
        metric_type: MetricType,
        labels: dict[str, str] | None = None,
    ) -> str:
        """
        Format a single metric in Prometheus format.

        Args:
            name: Metric name without prefix.
            value: Metric value.
            help_text: Help text description.
            metric_type: Prometheus metric type.
            labels: Optional label key-value pairs.

        Returns:
            Prometheus-formatted metric string.
        """
        full_name = f"{self._prefix}_{name}"
        lines = [
            f"# HELP {full_name} {help_text}",
            f"# TYPE {full_name} {metric_type.value}",
        ]
        if labels:
            label_str = ",".join(f'{k}="{v}"' for k, v in labels.items())
            lines.append(f"{full_name}{{{label_str}}} {value}")
        else:
            lines.append(f"{full_name} {value}")
        return "\n".join(lines)

    def format_all_metrics(self, stats: dict[str, Any]) -> str:
        """
        Format all metrics from multiplexer stats.

        Args:
            stats: Stats dictionary from WebSocketMultiplexer.get_stats().

        Returns:
            Complete Prometheus exposition format string.
        """
        lines: list[str] = []

        connection = stats.get("connection", {})
        lines.append(self.format_metric(
            "connection_open",
            1 if connection.get("state") == "open" else 0,
            "Whether the shared transport is open",
            MetricType.GAUGE,
        ))

        for definition in METRIC_DEFINITIONS:
            lines.append(self.format_metric(
                definition.name,
                stats.get(definition.section, {}).get(definition.source, 0),
                definition.help_text,
                definition.metric_type,
            ))

        metrics = stats.get("metrics", {})
        name = f"{self._prefix}_frames_discarded_total"
        lines.append(f"# HELP {name} Inbound frames discarded by reason")
        lines.append(f"# TYPE {name} counter")
        for reason in DISCARD_REASONS:
            lines.append(f'{name}{{reason="{reason}"}} {metrics.get(f"dispatch_{reason}", 0)}')

        return "\n".join(lines) + "\n"


def generate_prometheus_metrics(stats: dict[str, Any], prefix: str = "wsmux") -> str:
    """Convenience wrapper around PrometheusFormatter.format_all_metrics."""
    return PrometheusFormatter(prefix).format_all_metrics(stats)
