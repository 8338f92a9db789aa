"""Prometheus metrics exported by KubePulse."""

from __future__ import annotations

from prometheus_client import Counter, Gauge

events_published_total = Counter(
    "kubepulse_events_published_total",
    "Pod events published to subscribers",
    ["action"],
)

events_dropped_total = Counter(
    "kubepulse_events_dropped_total",
    "Pod events evicted from a full subscriber queue",
)

subscribers = Gauge(
    "kubepulse_subscribers",
    "Currently registered event subscribers",
)

watch_sessions = Gauge(
    "kubepulse_watch_sessions",
    "Watch sessions by lifecycle state",
    ["state"],
)

cache_pods = Gauge(
    "kubepulse_cache_pods",
    "Pods held in the resource cache",
    ["namespace_filter"],
)
