"""Prometheus metrics helpers."""

from __future__ import annotations

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST

REQUEST_COUNT = Counter(
    "medq_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"],
)
REQUEST_LATENCY = Histogram(
    "medq_request_latency_seconds",
    "Latency of HTTP requests in seconds",
    ["endpoint"],
)
AI_CALLS = Counter(
    "medq_ai_calls_total",
    "AI gateway calls by purpose and outcome",
    ["purpose", "outcome"],
)
AI_LATENCY = Histogram(
    "medq_ai_call_latency_seconds",
    "Latency of AI gateway calls in seconds",
    ["purpose"],
)
SECTION_OUTCOMES = Counter(
    "medq_section_outcomes_total",
    "Terminal section outcomes",
    ["outcome"],
)
FILE_OUTCOMES = Counter(
    "medq_file_outcomes_total",
    "File pipeline outcomes",
    ["outcome"],
)
VISION_PAGES = Counter(
    "medq_vision_pages_total",
    "Pages analysed by the batch vision path",
    ["outcome"],
)


def record_request(method: str, endpoint: str, status: int, latency: float) -> None:
    REQUEST_COUNT.labels(method=method, endpoint=endpoint, status=status).inc()
    REQUEST_LATENCY.labels(endpoint=endpoint).observe(latency)


def record_ai_call(purpose: str, success: bool, latency: float) -> None:
    AI_CALLS.labels(purpose=purpose, outcome="success" if success else "failure").inc()
    AI_LATENCY.labels(purpose=purpose).observe(latency)


def record_section_outcome(outcome: str) -> None:
    SECTION_OUTCOMES.labels(outcome=outcome).inc()


def record_file_outcome(outcome: str) -> None:
    FILE_OUTCOMES.labels(outcome=outcome).inc()


def record_vision_pages(succeeded: int, failed: int) -> None:
    if succeeded:
        VISION_PAGES.labels(outcome="success").inc(succeeded)
    if failed:
        VISION_PAGES.labels(outcome="failure").inc(failed)


def latest_metrics() -> tuple[bytes, str]:
    data = generate_latest()
    return data, CONTENT_TYPE_LATEST
