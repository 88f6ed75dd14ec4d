"""Prometheus metrics for modelgate."""

from __future__ import annotations

from prometheus_client import Counter, Histogram

# Chat completions
modelgate_requests_total = Counter(
    "modelgate_requests_total",
    "Total chat completion calls dispatched to vendors",
    ["vendor", "model", "stream", "status"],
)
modelgate_request_duration_seconds = Histogram(
    "modelgate_request_duration_seconds",
    "Chat completion call duration in seconds; streams are timed until the last chunk",
    ["vendor", "model", "stream"],
    buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
)
modelgate_retries_total = Counter(
    "modelgate_retries_total",
    "Retries performed by the dispatch backoff policy",
    ["vendor", "reason"],
)
modelgate_stream_bad_frames_total = Counter(
    "modelgate_stream_bad_frames_total",
    "Stream frames skipped because they could not be parsed",
    ["vendor"],
)
