"""
Lightweight in-process metrics - cache hit/miss/error counters per cache
type and generator call durations.

Emitted as structured log lines and exposed at /metrics as a JSON snapshot.
"""

import time
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import Dict, Any

from app.utils.logger import get_logger

logger = get_logger("metrics")

_counters: Dict[str, int] = defaultdict(int)
_histograms: Dict[str, list] = defaultdict(list)

MAX_HISTOGRAM_SAMPLES = 500  # Rolling window


def inc(name: str, value: int = 1) -> None:
    """Increment a counter."""
    _counters[name] += value


def observe(name: str, value: float) -> None:
    """Record a histogram observation (e.g., duration)."""
    bucket = _histograms[name]
    bucket.append(value)
    if len(bucket) > MAX_HISTOGRAM_SAMPLES:
        _histograms[name] = bucket[-MAX_HISTOGRAM_SAMPLES:]


def get_counter(name: str) -> int:
    return _counters.get(name, 0)


@asynccontextmanager
async def track_duration(service: str, operation: str = "call"):
    """
    Track call duration and success/failure.

    Usage:
        async with track_duration("openrouter", "career_recommendations"):
            result = await client.chat.completions.create(...)
    """
    start = time.monotonic()
    try:
        yield
    except BaseException:
        duration_ms = (time.monotonic() - start) * 1000
        observe(f"{service}.{operation}.duration_ms", duration_ms)
        inc(f"{service}.{operation}.error")
        logger.warning(
            "metrics.call",
            extra={
                "service": service,
                "operation": operation,
                "duration_ms": round(duration_ms, 1),
                "status": "error",
            },
        )
        raise

    duration_ms = (time.monotonic() - start) * 1000
    observe(f"{service}.{operation}.duration_ms", duration_ms)
    inc(f"{service}.{operation}.success")
    logger.info(
        "metrics.call",
        extra={
            "service": service,
            "operation": operation,
            "duration_ms": round(duration_ms, 1),
            "status": "success",
        },
    )


def _cache_summary() -> Dict[str, Any]:
    summary = {}
    for cache_type in sorted({name.split(".")[1] for name in _counters if name.startswith("ai_cache.")}):
        hits = _counters.get(f"ai_cache.{cache_type}.hit", 0)
        misses = _counters.get(f"ai_cache.{cache_type}.miss", 0)
        lookups = hits + misses
        summary[cache_type] = {
            "hits": hits,
            "misses": misses,
            "errors": _counters.get(f"ai_cache.{cache_type}.error", 0),
            "hit_ratio": round(hits / lookups, 3) if lookups else None,
        }
    return summary


def get_snapshot() -> Dict[str, Any]:
    """Return a snapshot of all counters, histogram summaries and cache hit ratios."""
    snapshot: Dict[str, Any] = {"counters": dict(_counters)}

    summaries = {}
    for name, samples in _histograms.items():
        if samples:
            sorted_s = sorted(samples)
            p50_idx = int(len(sorted_s) * 0.5)
            p95_idx = int(len(sorted_s) * 0.95)
            summaries[name] = {
                "count": len(sorted_s),
                "p50": round(sorted_s[p50_idx], 1),
                "p95": round(sorted_s[min(p95_idx, len(sorted_s) - 1)], 1),
                "max": round(sorted_s[-1], 1),
            }
    snapshot["histograms"] = summaries
    snapshot["ai_cache"] = _cache_summary()
    return snapshot


def reset() -> None:
    """Reset all metrics (useful for testing)."""
    _counters.clear()
    _histograms.clear()
