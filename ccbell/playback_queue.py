"""Bounded playback queue ordered by (priority desc, enqueued_at asc)."""
from __future__ import annotations

from ccbell._types import QueueEntry
from ccbell.config import DROP_NEWEST


def order_key(entry: QueueEntry) -> tuple[int, float, int]:
    """Dispatch order: highest priority first, FIFO within a priority."""
    return (-entry["priority"], entry["enqueued_at"], entry["id"])


def _eviction_key(entry: QueueEntry) -> tuple[int, float, int]:
    return (entry["priority"], entry["enqueued_at"], entry["id"])


def enqueue(queue: list[QueueEntry], entry: QueueEntry, max_size: int, policy: str) -> tuple[bool, QueueEntry | None]:
    """Insert entry in dispatch order, applying the drop policy when full.

    Returns (accepted, evicted). Under "newest" a full queue refuses the
    incoming entry. Under "oldest" the lowest-priority, oldest entry is
    evicted, which is the incoming entry itself when it ranks lowest.
    """
    evicted: QueueEntry | None = None
    if len(queue) >= max_size:
        if policy == DROP_NEWEST:
            return False, None
        victim = min([*queue, entry], key=_eviction_key)
        if victim is entry:
            return False, entry
        queue.remove(victim)
        evicted = victim
        # A shrunken max_size may leave more than one extra
        while len(queue) >= max_size:
            extra = min(queue, key=_eviction_key)
            queue.remove(extra)
    queue.append(entry)
    queue.sort(key=order_key)
    return True, evicted


def pop(queue: list[QueueEntry]) -> QueueEntry | None:
    """Remove and return the next entry to dispatch."""
    if not queue:
        return None
    queue.sort(key=order_key)
    return queue.pop(0)
