"""Central registry for Prometheus metrics used across wikiguard."""

from __future__ import annotations

from prometheus_client import Counter, Histogram


IP_REPUTATION_REFRESH = Counter(
	"wikiguard_ip_reputation_refresh_total",
	"IP reputation refresh attempts by outcome",
	["outcome"],
)

IP_REPUTATION_LOOKUP_FAILURES = Counter(
	"wikiguard_ip_reputation_lookup_failures_total",
	"Reputation provider lookups that failed or timed out",
)

IP_REPUTATION_LOOKUP_LATENCY = Histogram(
	"wikiguard_ip_reputation_lookup_seconds",
	"Reputation provider lookup latency in seconds",
	buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0),
)


def inc_refresh(outcome: str) -> None:
	IP_REPUTATION_REFRESH.labels(outcome=outcome).inc()


def inc_lookup_failure() -> None:
	IP_REPUTATION_LOOKUP_FAILURES.inc()


def observe_lookup_latency(seconds: float) -> None:
	IP_REPUTATION_LOOKUP_LATENCY.observe(max(0.0, seconds))
