"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, Gauge, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Reservation metrics
reservation_attempts = Counter(
    'reservation_attempts_total',
    'Total reservation attempts',
    ['result']  # success, conflict, not_found, invalid, gateway_error, error
)

reservation_latency = Histogram(
    'reservation_latency_seconds',
    'Reservation latency including the gateway order request',
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0]
)

# Payment metrics
payment_outcomes = Counter(
    'payment_outcomes_total',
    'Payment outcomes received from the gateway',
    ['outcome', 'applied']  # Completed/Failed, true/false
)

signature_failures = Counter(
    'payment_signature_failures_total',
    'Payment verifications or webhooks rejected for a bad signature',
    ['source']  # verify, webhook
)

# Reconciliation metrics
reconciliation_results = Counter(
    'reconciliation_results_total',
    'Reconciliation job results',
    ['result']  # expired, already_finalized, retried, dead_lettered
)

reconciliation_enqueue_failures = Counter(
    'reconciliation_enqueue_failures_total',
    'Bookings committed without a scheduled reconciliation job'
)

sweep_reconciled = Counter(
    'reconciliation_sweep_expired_total',
    'Unmonitored bookings expired by the secondary sweep'
)

queue_depth = Gauge(
    'reconciliation_queue_depth',
    'Jobs in the delayed queue',
    ['state']  # delayed, inflight, dead
)


def metrics_endpoint() -> Response:
    """
    Prometheus metrics endpoint.

    Usage:
        @app.get("/metrics")
        def metrics():
            return metrics_endpoint()
    """
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )

# Convenience functions for instrumentation
def record_reservation_attempt(result: str):
    """Record reservation attempt by result label."""
    reservation_attempts.labels(result=result).inc()

def record_payment_outcome(outcome: str, applied: bool):
    payment_outcomes.labels(outcome=outcome, applied=str(applied).lower()).inc()

def record_reconciliation(result: str):
    reconciliation_results.labels(result=result).inc()

def record_queue_stats(stats: dict):
    """Publish queue depth from a DelayedQueue.stats() snapshot."""
    for state in ("delayed", "inflight", "dead"):
        if state in stats:
            queue_depth.labels(state=state).set(stats[state])
