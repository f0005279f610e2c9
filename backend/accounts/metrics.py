"""Prometheus metrics helpers for the accounts domain."""
from __future__ import annotations

from prometheus_client import Counter

AUTH_EVENT_COUNT = Counter(
    "accounts_auth_events_total",
    "Number of account and authentication events",
    labelnames=("event", "outcome"),
)


def record_auth_event(event: str, outcome: str = "success") -> None:
    AUTH_EVENT_COUNT.labels(event=event, outcome=outcome).inc()
