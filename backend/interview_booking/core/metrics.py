"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at the /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Booking metrics
booking_attempts = Counter(
    'interview_booking_attempts_total',
    'Total interview booking attempts',
    ['outcome']  # success, or the rejection code
)

booking_latency = Histogram(
    'interview_booking_latency_seconds',
    'Booking request latency',
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0]
)

booking_retries = Counter(
    'interview_booking_retries_total',
    'Booking transactions retried after losing a version check',
    ['reason']  # slot_version, ledger_version, integrity, db_lock
)

booking_cancellations = Counter(
    'interview_booking_cancellations_total',
    'Cancellations by result',
    ['result']  # cancelled, noop
)

# Slot generation metrics
slots_generated = Counter(
    'interview_slots_generated_total',
    'Slots touched by generation runs',
    ['action']  # created, removed, deactivated, preserved, updated
)

# Phase controller metrics
phase_transitions = Counter(
    'event_phase_transitions_total',
    'Event phase changes',
    ['source', 'to_phase']  # source: auto, manual
)

# Rate limiting metrics
rate_limit_decisions = Counter(
    'auth_rate_limit_decisions_total',
    'Failed-login rate limiter decisions',
    ['result']  # allowed, denied
)

redis_connection_errors = Counter(
    'redis_connection_errors_total',
    'Redis connection errors'
)


def metrics_endpoint() -> Response:
    """Prometheus metrics endpoint."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


def record_booking_attempt(outcome: str):
    """Record booking attempt. Outcome: success or a rejection code."""
    booking_attempts.labels(outcome=outcome).inc()


def record_booking_retry(reason: str):
    booking_retries.labels(reason=reason).inc()


def record_phase_transition(source: str, phase: int):
    phase_transitions.labels(source=source, to_phase=str(phase)).inc()


def record_rate_limit(allowed: bool):
    result = "allowed" if allowed else "denied"
    rate_limit_decisions.labels(result=result).inc()


def record_slot_generation(created: int = 0, removed: int = 0, deactivated: int = 0,
                           preserved: int = 0, updated: int = 0):
    for action, count in (
        ("created", created),
        ("removed", removed),
        ("deactivated", deactivated),
        ("preserved", preserved),
        ("updated", updated),
    ):
        if count:
            slots_generated.labels(action=action).inc(count)
