"""Token buckets kept in persisted state, refilled lazily from wall-clock time."""
from __future__ import annotations

from ccbell._types import PersistedState, RateBucket


def limits_per_minute(per_minute: int | None, burst: int | None = None) -> tuple[int | None, float | None]:
    """Convert a per-minute rate into (capacity, refill_per_second)."""
    if not per_minute or per_minute <= 0:
        return None, None
    capacity = burst if burst and burst > 0 else per_minute
    return capacity, per_minute / 60.0


def refill(bucket: RateBucket | None, capacity: int, refill_per_second: float, now: float) -> RateBucket:
    """Return the bucket as of `now`. Missing buckets start full."""
    if bucket is None:
        return {
            "tokens": float(capacity),
            "last_refill_at": now,
            "capacity": capacity,
            "refill_per_second": refill_per_second,
        }
    elapsed = max(0.0, now - bucket["last_refill_at"])
    tokens = min(float(capacity), bucket["tokens"] + elapsed * refill_per_second)
    return {
        "tokens": max(0.0, tokens),
        "last_refill_at": max(now, bucket["last_refill_at"]),
        "capacity": capacity,
        "refill_per_second": refill_per_second,
    }


def available(
    state: PersistedState, key: str, capacity: int, refill_per_second: float, now: float,
) -> tuple[bool, float]:
    """Check for a whole token without consuming. Returns (allowed, retry_after_seconds)."""
    bucket = refill(state["rate_limits"].get(key), capacity, refill_per_second, now)
    if bucket["tokens"] >= 1.0:
        return True, 0.0
    if refill_per_second <= 0:
        return False, float("inf")
    return False, (1.0 - bucket["tokens"]) / refill_per_second


def consume(state: PersistedState, key: str, capacity: int, refill_per_second: float, now: float) -> None:
    """Refill then take one token, never going below zero."""
    bucket = refill(state["rate_limits"].get(key), capacity, refill_per_second, now)
    bucket["tokens"] = max(0.0, bucket["tokens"] - 1.0)
    state["rate_limits"][key] = bucket
