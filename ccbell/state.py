"""Persisted state: load, atomic writes, cross-process locking."""
from __future__ import annotations

import fcntl
import json
import math
import os
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any, TypeVar

from ccbell._log import debug, log
from ccbell._types import DrainLease, PersistedState, QueueEntry, QuickDisable, RateBucket
from ccbell.config import DEFAULT_LOCK_TIMEOUT_MS, STATE_FILE

T = TypeVar("T")

LOCK_TIMEOUT = DEFAULT_LOCK_TIMEOUT_MS / 1000
_LOCK_POLL = 0.01


class LockTimeout(Exception):
    """The state lock could not be acquired within the timeout."""


def default_state() -> PersistedState:
    return {
        "cooldowns": {},
        "rate_limits": {},
        "quick_disable": None,
        "playback_queue": [],
        "drain_lease": None,
        "profile": None,
        "seq": 0,
    }


def _num(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _bucket(raw: Any) -> RateBucket | None:
    if not isinstance(raw, dict):
        return None
    tokens, last, cap, refill = (raw.get(k) for k in ("tokens", "last_refill_at", "capacity", "refill_per_second"))
    if not (_num(tokens) and _num(last) and _int(cap) and _num(refill)) or cap < 1 or refill < 0:
        return None
    return {
        "tokens": min(max(float(tokens), 0.0), float(cap)),
        "last_refill_at": float(last),
        "capacity": cap,
        "refill_per_second": float(refill),
    }


def _entry(raw: Any) -> QueueEntry | None:
    if not isinstance(raw, dict):
        return None
    if not (_int(raw.get("id")) and isinstance(raw.get("kind"), str) and isinstance(raw.get("sound_path"), str)):
        return None
    if not (_num(raw.get("volume")) and _int(raw.get("priority")) and _num(raw.get("enqueued_at"))):
        return None
    cap = raw.get("rate_capacity")
    refill = raw.get("rate_refill")
    cooldown = raw.get("cooldown", 0)
    return {
        "id": raw["id"],
        "kind": raw["kind"],
        "sound_path": raw["sound_path"],
        "volume": float(raw["volume"]),
        "priority": raw["priority"],
        "enqueued_at": float(raw["enqueued_at"]),
        "cooldown": float(cooldown) if _num(cooldown) else 0.0,
        "rate_capacity": cap if _int(cap) and cap > 0 else None,
        "rate_refill": float(refill) if _num(refill) and _int(cap) and cap > 0 else None,
    }


def _quick_disable(raw: Any) -> QuickDisable | None:
    if not isinstance(raw, dict) or not _num(raw.get("until")):
        return None
    resume = raw.get("resume_profile")
    return {"until": float(raw["until"]), "resume_profile": resume if isinstance(resume, str) else None}


def _lease(raw: Any) -> DrainLease | None:
    if not isinstance(raw, dict):
        return None
    if not (_int(raw.get("holder_pid")) and isinstance(raw.get("token"), str)):
        return None
    if not (_num(raw.get("acquired_at")) and _num(raw.get("heartbeat_at"))):
        return None
    return {
        "holder_pid": raw["holder_pid"],
        "token": raw["token"],
        "acquired_at": float(raw["acquired_at"]),
        "heartbeat_at": float(raw["heartbeat_at"]),
    }


def _normalize(raw: dict[str, Any]) -> PersistedState:
    """Coerce decoded JSON into a PersistedState, dropping malformed parts."""
    state = default_state()

    cooldowns = raw.get("cooldowns")
    if isinstance(cooldowns, dict):
        state["cooldowns"] = {str(k): float(v) for k, v in cooldowns.items() if _num(v)}

    buckets = raw.get("rate_limits")
    if isinstance(buckets, dict):
        for key, value in buckets.items():
            bucket = _bucket(value)
            if bucket is not None:
                state["rate_limits"][str(key)] = bucket

    state["quick_disable"] = _quick_disable(raw.get("quick_disable"))

    queue = raw.get("playback_queue")
    if isinstance(queue, list):
        state["playback_queue"] = [e for e in (_entry(r) for r in queue) if e is not None]

    state["drain_lease"] = _lease(raw.get("drain_lease"))

    profile = raw.get("profile")
    state["profile"] = profile if isinstance(profile, str) and profile else None

    seq = raw.get("seq")
    max_id = max((e["id"] for e in state["playback_queue"]), default=0)
    state["seq"] = max(seq if _int(seq) else 0, max_id)
    return state


def load(path: Path | None = None) -> PersistedState:
    """Read persisted state. Missing or corrupt files yield the default state."""
    path = path or STATE_FILE
    try:
        raw = json.loads(path.read_bytes())
    except FileNotFoundError:
        return default_state()
    except OSError as e:
        debug(f"State read error, using defaults: {e}")
        return default_state()
    except ValueError as e:
        debug(f"State corrupt, resetting: {e}")
        return default_state()
    if not isinstance(raw, dict):
        debug("State corrupt (not an object), resetting")
        return default_state()
    return _normalize(raw)


def save_atomically(state: PersistedState, path: Path | None = None) -> None:
    """Write state via temp file + rename so readers never see a partial file.

    Raises OSError when the state cannot be written.
    """
    path = path or STATE_FILE
    tmp = path.with_suffix(".tmp")
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp.write_text(json.dumps(state))
    tmp.replace(path)


def _acquire(fd: Any, timeout: float) -> None:
    deadline = time.monotonic() + timeout
    while True:
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
            return
        except BlockingIOError:
            if time.monotonic() >= deadline:
                raise LockTimeout(f"state lock busy for {timeout:.2f}s") from None
            time.sleep(_LOCK_POLL)


def with_lock(fn: Callable[[PersistedState], T], path: Path | None = None, timeout: float | None = None) -> T:
    """Locked load → fn(state) → atomic save. fn mutates state in place.

    Raises LockTimeout if the lock is not acquired within timeout seconds,
    and OSError if the lock file or state cannot be opened or written.
    Nothing is saved when fn raises.
    """
    path = path or STATE_FILE
    timeout = LOCK_TIMEOUT if timeout is None else timeout
    path.parent.mkdir(parents=True, exist_ok=True)
    lock_path = path.with_suffix(".lock")
    lock_path.touch(exist_ok=True)
    fd = lock_path.open("r")
    try:
        _acquire(fd, timeout)
        try:
            state = load(path)
            result = fn(state)
            save_atomically(state, path)
            return result
        finally:
            fcntl.flock(fd, fcntl.LOCK_UN)
    finally:
        fd.close()


def reset_state(path: Path | None = None) -> None:
    """Remove the state file."""
    path = path or STATE_FILE
    try:
        path.unlink(missing_ok=True)
        path.with_suffix(".tmp").unlink(missing_ok=True)
    except OSError as e:
        log(f"State reset error: {e}")


def pid_alive(pid: int) -> bool:
    """Check whether a process with this PID exists."""
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    except OSError:
        return False
    return True
