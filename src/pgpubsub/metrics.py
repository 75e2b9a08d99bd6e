"""Prometheus metrics and a tiny HTTP server to expose them.

Call `start_metrics_server(port)` once in a process to expose /metrics.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram, start_http_server


# Publish path
MESSAGES_PUBLISHED_TOTAL = Counter(
    "pubsub_messages_published_total", "Total messages pushed", ["topic"]
)

# Delivery engine
MESSAGES_DELIVERED_TOTAL = Counter(
    "pubsub_messages_delivered_total",
    "Total messages whose callback succeeded and whose claim committed",
    ["topic", "source"],  # backlog | notification
)
CLAIMS_SKIPPED_TOTAL = Counter(
    "pubsub_claims_skipped_total",
    "Claims abandoned because the row was locked elsewhere, already processed, or on another topic",
    ["topic", "source"],
)
CALLBACK_FAILURES_TOTAL = Counter(
    "pubsub_callback_failures_total", "Total callback failures (message left as new)", ["topic"]
)
MALFORMED_NOTIFICATIONS_TOTAL = Counter(
    "pubsub_malformed_notifications_total", "Notifications whose payload was not a message id"
)
ACTIVE_SUBSCRIPTIONS = Gauge(
    "pubsub_active_subscriptions", "Subscription loops currently running", ["topic"]
)
DELIVERY_LATENCY_SECONDS = Histogram(
    "pubsub_delivery_latency_seconds",
    "Time from claim to commit for a single message",
    buckets=(0.005, 0.01, 0.05, 0.1, 0.5, 1, 2, 5, 30),
)


def start_metrics_server(port: int = 9000) -> None:
    start_http_server(port)
