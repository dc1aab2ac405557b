"""Prometheus metrics for runner-reclaim."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

# Pass metrics
PASSES_TOTAL = Counter("reclaim_passes_total", "Total scale-down passes", ["outcome"])
PASS_DURATION = Histogram(
    "reclaim_pass_duration_seconds",
    "Scale-down pass duration in seconds",
    buckets=(0.5, 1, 5, 10, 30, 60, 120, 300),
)
LAST_PASS = Gauge("reclaim_last_pass_timestamp", "Last completed pass timestamp")

# Per-instance decisions
DECISIONS_TOTAL = Counter("reclaim_decisions_total", "Reclaim decisions", ["action"])

# Fleet
FLEET_SIZE = Gauge("reclaim_fleet_size", "Runner instances seen in the last pass")

__all__ = [
    "PASSES_TOTAL",
    "PASS_DURATION",
    "LAST_PASS",
    "DECISIONS_TOTAL",
    "FLEET_SIZE",
]
