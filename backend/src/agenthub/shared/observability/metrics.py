"""Prometheus metrics for the agent platform."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram


# ── HTTP metrics ─────────────────────────────────────────────
HTTP_REQUESTS_TOTAL = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code"],
)

HTTP_REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

# ── Provider metrics ─────────────────────────────────────────
PROVIDER_CALLS = Counter(
    "llm_provider_calls_total",
    "Upstream provider call attempts",
    ["provider", "outcome"],  # success / auth / rate_limit / upstream / validation / parse
)

PROVIDER_LATENCY = Histogram(
    "llm_provider_latency_seconds",
    "Upstream provider call latency",
    ["provider"],
    buckets=(0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0),
)

PROVIDER_AVAILABLE = Gauge(
    "llm_provider_available",
    "1 when the provider is currently marked available",
    ["provider"],
)

# ── Credit metrics ───────────────────────────────────────────
CREDIT_DEDUCTIONS = Counter(
    "credit_deductions_total",
    "Ledger debit attempts",
    ["outcome"],  # success / duplicate / insufficient / error
)

CREDITS_GRANTED = Counter(
    "credits_granted_total",
    "Credits added to balances",
    ["type"],
)

# ── Agent metrics ────────────────────────────────────────────
AGENT_TURNS = Counter(
    "agent_turns_total",
    "Agent turns by terminal state",
    ["agent_id", "outcome"],
)

AGENT_LATENCY = Histogram(
    "agent_turn_latency_seconds",
    "End-to-end agent turn latency",
    ["agent_id"],
    buckets=(0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0),
)

MULTI_PROVIDER_QUERIES = Counter(
    "multi_provider_queries_total",
    "Multi-provider queries by number of successful providers",
    ["successes"],
)

# ── Event bus metrics ────────────────────────────────────────
EVENTS_PUBLISHED = Counter(
    "domain_events_published_total",
    "Domain events published on the in-process bus",
    ["event_type"],
)

EVENT_HANDLER_ERRORS = Counter(
    "domain_event_handler_errors_total",
    "Subscriber failures swallowed by the event bus",
    ["event_type"],
)
