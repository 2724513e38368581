"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Request lifecycle metrics
song_requests = Counter(
    'song_requests_total',
    'Song request submissions',
    ['result']  # submitted, quota, duplicate, disabled, invalid
)

request_status_changes = Counter(
    'request_status_changes_total',
    'Song request updates by resulting status',
    ['status']
)

# Voting metrics
request_votes = Counter(
    'request_votes_total',
    'Votes cast on song requests',
    ['vote_type', 'outcome']  # created, unchanged, switched
)

# Store metrics
store_operations = Counter(
    'store_operations_total',
    'Backing store operations',
    ['store', 'operation', 'result']  # ok, error
)

store_fallbacks = Counter(
    'store_fallbacks_total',
    'Operations served by the fallback store',
    ['operation']
)

store_mirror_failures = Counter(
    'store_mirror_failures_total',
    'Failed best-effort mirror writes to the fallback store',
    ['operation']
)

# Recommendation metrics
recommendation_latency = Histogram(
    'recommendation_latency_seconds',
    'Best-next-track scoring latency',
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0]
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
def record_song_request(result: str):
    """Record a submission outcome. Result: submitted, quota, duplicate, disabled, invalid"""
    song_requests.labels(result=result).inc()


def record_status_change(status: str):
    request_status_changes.labels(status=status).inc()


def record_vote(vote_type: str, outcome: str):
    """Record a vote. Outcome: created, unchanged, switched"""
    request_votes.labels(vote_type=vote_type, outcome=outcome).inc()


def record_store_operation(store: str, operation: str, ok: bool):
    result = "ok" if ok else "error"
    store_operations.labels(store=store, operation=operation, result=result).inc()


def record_store_fallback(operation: str):
    store_fallbacks.labels(operation=operation).inc()


def record_mirror_failure(operation: str):
    store_mirror_failures.labels(operation=operation).inc()
