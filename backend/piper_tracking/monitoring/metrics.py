"""
Prometheus metrics for the tracking service.
"""
from prometheus_client import Counter, CollectorRegistry, generate_latest, CONTENT_TYPE_LATEST

# Create registry
REGISTRY = CollectorRegistry()

# Counters
TRACKING_EVENTS_RECORDED = Counter(
    'piper_tracking_events_recorded_total',
    'Tracking events appended to the event store',
    ['event_type'],
    registry=REGISTRY
)

TRACKING_EVENTS_DROPPED = Counter(
    'piper_tracking_events_dropped_total',
    'Best-effort tracking events that failed to record and were swallowed',
    ['event_type'],
    registry=REGISTRY
)

MALFORMED_TRACKING_TOKENS = Counter(
    'piper_tracking_malformed_tokens_total',
    'Inbound tracking requests whose token or redirect URL failed to decode',
    ['endpoint', 'kind'],
    registry=REGISTRY
)

CAMPAIGN_TRANSITIONS = Counter(
    'piper_campaign_transitions_total',
    'Campaign lifecycle transitions applied',
    ['from_status', 'to_status'],
    registry=REGISTRY
)


def track_event_recorded(event_type: str):
    """Track a successful append"""
    TRACKING_EVENTS_RECORDED.labels(event_type=event_type).inc()


def track_event_dropped(event_type: str):
    """Track a swallowed recording failure"""
    TRACKING_EVENTS_DROPPED.labels(event_type=event_type).inc()


def track_malformed_token(endpoint: str, kind: str):
    """Track an undecodable tracking token or redirect URL"""
    MALFORMED_TRACKING_TOKENS.labels(endpoint=endpoint, kind=kind).inc()


def track_transition(from_status: str, to_status: str):
    """Track a campaign status change"""
    CAMPAIGN_TRANSITIONS.labels(from_status=from_status, to_status=to_status).inc()


def get_metrics():
    """Get metrics in Prometheus text format"""
    return generate_latest(REGISTRY)


def metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
