"""
Prometheus instrumentation for reservations, settlement and HTTP traffic.
Exposed at /metrics.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Inventory ledger
reservation_attempts = Counter(
    "reservation_attempts_total",
    "Seat reservation attempts",
    ["outcome"],  # reserved, seat_conflict, insufficient_capacity, unavailable
)

reservation_latency = Histogram(
    "reservation_latency_seconds",
    "Seat reservation latency",
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0],
)

db_retries = Counter(
    "db_retry_attempts_total",
    "Reservation transactions retried after a transient storage error",
)

# Booking lifecycle
booking_cancellations = Counter(
    "booking_cancellations_total",
    "Booking cancellations",
    ["result"],  # cancelled, noop
)

# Payment reconciliation
payment_transitions = Counter(
    "payment_transitions_total",
    "Payment status transitions",
    ["status", "channel"],  # channel: initiate, direct, webhook, cancel
)

webhook_events = Counter(
    "payment_webhook_events_total",
    "Payment processor webhook deliveries",
    ["event_type", "outcome"],  # outcome: applied, noop, ignored, rejected
)

# HTTP
http_request_latency = Histogram(
    "http_request_latency_seconds",
    "HTTP request latency",
    ["method", "status_code"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5],
)


def metrics_endpoint() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


def record_reservation(outcome: str) -> None:
    reservation_attempts.labels(outcome=outcome).inc()


def record_payment_transition(status: str, channel: str) -> None:
    payment_transitions.labels(status=status, channel=channel).inc()


def record_webhook_event(event_type: str, outcome: str) -> None:
    webhook_events.labels(event_type=event_type, outcome=outcome).inc()
