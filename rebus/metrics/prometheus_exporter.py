"""Prometheus exporter helpers."""

from __future__ import annotations

from prometheus_client import Counter, Gauge


batch_runs_total = Counter(
    "rebus_batch_runs_total",
    "Batch production attempts by trigger and outcome.",
    ["trigger", "outcome"],
)

render_jobs_total = Counter(
    "rebus_render_jobs_total",
    "Image rendering jobs by terminal status.",
    ["status"],
)

prompt_cache_requests_total = Counter(
    "rebus_prompt_cache_requests_total",
    "Prompt lookups served from cache or fetched upstream.",
    ["result"],
)

last_batch_success_timestamp = Gauge(
    "rebus_last_batch_success_timestamp",
    "Unix time of the last successfully persisted batch.",
)
