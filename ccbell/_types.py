"""Type definitions for ccbell persisted state structures."""
from __future__ import annotations

from typing import TypedDict


class RateBucket(TypedDict):
    tokens: float
    last_refill_at: float
    capacity: int
    refill_per_second: float


class QuickDisable(TypedDict):
    until: float
    resume_profile: str | None


class QueueEntry(TypedDict):
    id: int
    kind: str
    sound_path: str
    volume: float
    priority: int
    enqueued_at: float
    cooldown: float
    rate_capacity: int | None
    rate_refill: float | None


class DrainLease(TypedDict):
    holder_pid: int
    token: str
    acquired_at: float
    heartbeat_at: float


class PersistedState(TypedDict):
    cooldowns: dict[str, float]
    rate_limits: dict[str, RateBucket]
    quick_disable: QuickDisable | None
    playback_queue: list[QueueEntry]
    drain_lease: DrainLease | None
    profile: str | None
    seq: int
