from __future__ import annotations

from contextlib import contextmanager

from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest

registry = CollectorRegistry(auto_describe=True)

PIPELINE_STAGE_DURATION = Histogram(
    "seereview_pipeline_stage_duration_seconds",
    "Duration (seconds) of each comic generation stage.",
    ["stage"],
    registry=registry,
)

PROVIDER_CALL_DURATION = Histogram(
    "seereview_provider_call_duration_seconds",
    "Latency for external AI and place provider calls per operation.",
    ["operation"],
    registry=registry,
)

PROVIDER_CALLS_TOTAL = Counter(
    "seereview_provider_calls_total",
    "Total provider calls partitioned by operation and status.",
    ["operation", "status"],
    registry=registry,
)

PROVIDER_RETRIES_TOTAL = Counter(
    "seereview_provider_retries_total",
    "Number of retries issued after transient provider failures.",
    ["operation"],
    registry=registry,
)

CACHE_LOOKUPS_TOTAL = Counter(
    "seereview_comic_cache_lookups_total",
    "Comic cache lookups by result (hit, miss, stale, bypass).",
    ["result"],
    registry=registry,
)

CONTENT_POLICY_FALLBACKS_TOTAL = Counter(
    "seereview_content_policy_fallbacks_total",
    "Image generations that fell back to the generic prompt.",
    registry=registry,
)

LEADERBOARD_WRITES_TOTAL = Counter(
    "seereview_leaderboard_writes_total",
    "Leaderboard write outcomes after a generation.",
    ["status"],
    registry=registry,
)

COMICS_GENERATED_TOTAL = Counter(
    "seereview_comics_generated_total",
    "Comics generated, labeled by the prompt that produced the image.",
    ["prompt_kind"],
    registry=registry,
)

EXPIRED_COMICS_DELETED_TOTAL = Counter(
    "seereview_expired_comics_deleted_total",
    "Expired comics removed by the cache sweeper.",
    registry=registry,
)


@contextmanager
def track_stage(stage: str):
    with PIPELINE_STAGE_DURATION.labels(stage=stage).time():
        yield


@contextmanager
def track_provider_call(operation: str):
    timer = PROVIDER_CALL_DURATION.labels(operation=operation).time()
    timer.__enter__()
    try:
        yield
        PROVIDER_CALLS_TOTAL.labels(operation=operation, status="success").inc()
    except Exception:
        PROVIDER_CALLS_TOTAL.labels(operation=operation, status="error").inc()
        raise
    finally:
        timer.__exit__(None, None, None)


def record_provider_retry(operation: str) -> None:
    PROVIDER_RETRIES_TOTAL.labels(operation=operation).inc()


def record_cache_lookup(result: str) -> None:
    CACHE_LOOKUPS_TOTAL.labels(result=result).inc()


def record_content_policy_fallback() -> None:
    CONTENT_POLICY_FALLBACKS_TOTAL.inc()


def record_leaderboard_write(status: str) -> None:
    LEADERBOARD_WRITES_TOTAL.labels(status=status).inc()


def record_comic_generated(prompt_kind: str) -> None:
    COMICS_GENERATED_TOTAL.labels(prompt_kind=prompt_kind).inc()


def record_expired_comics_deleted(count: int) -> None:
    if count > 0:
        EXPIRED_COMICS_DELETED_TOTAL.inc(count)


def get_metrics_payload() -> bytes:
    return generate_latest(registry)
