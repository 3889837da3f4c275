"""Prometheus counters for the relay path, exposed at ``/metrics``."""

from prometheus_client import Counter

RELAY_REQUESTS = Counter(
    "mailbridge_relay_requests_total",
    "Relay submissions by outcome",
    ["outcome"],
)
RELAY_RATE_LIMITED = Counter(
    "mailbridge_relay_rate_limited_total",
    "Relay submissions rejected by the per-IP rate limiter",
)
