"""Sequencing: enqueue admitted events and drain the queue under a single leader.

Every hook runs in its own short-lived process. Admitted events go into the
shared queue under the state lock; whichever invocation holds the drain lease
plays entries one at a time, releasing the lock around each playback.
"""
from __future__ import annotations

import os
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from ccbell import player
from ccbell._log import debug, log
from ccbell._types import PersistedState, QueueEntry
from ccbell.admission import AdmissionResult, apply_dispatch, decide, quick_disable_active, recheck_entry
from ccbell.events import Event
from ccbell.playback_queue import enqueue, pop
from ccbell.resolver import EffectiveEventConfig, EngineSettings
from ccbell.state import LockTimeout, load, pid_alive, with_lock

DENIED = "denied"
DROPPED = "dropped"
QUEUED = "queued"
DRAINED = "drained"
DIRECT = "direct"

PlayFn = Callable[[str, float, float], tuple[bool, str | None]]


@dataclass(frozen=True)
class Outcome:
    status: str
    admission: AdmissionResult
    played: int = 0


def expire_quick_disable(state: PersistedState, now: float) -> bool:
    """Clear an expired quick-disable window and restore its profile."""
    qd = state["quick_disable"]
    if qd is None or now < qd["until"]:
        return False
    state["quick_disable"] = None
    state["profile"] = qd["resume_profile"]
    debug(f"Quick-disable expired, profile → {qd['resume_profile'] or '(config)'}")
    return True


def lease_is_stale(state: PersistedState, now: float, lease_timeout: float) -> bool:
    lease = state["drain_lease"]
    if lease is None:
        return True
    return now - lease["heartbeat_at"] > lease_timeout or not pid_alive(lease["holder_pid"])


def try_acquire_lease(state: PersistedState, token: str, now: float, lease_timeout: float) -> bool:
    """Take the drain lease if it is free, stale, or already ours."""
    lease = state["drain_lease"]
    if lease is not None and lease["token"] != token:
        if not lease_is_stale(state, now, lease_timeout):
            return False
        debug(f"Reclaiming stale drain lease from pid {lease['holder_pid']}")
    state["drain_lease"] = {
        "holder_pid": os.getpid(),
        "token": token,
        "acquired_at": now,
        "heartbeat_at": now,
    }
    return True


def _build_entry(state: PersistedState, cfg: EffectiveEventConfig, sound_path: str, now: float) -> QueueEntry:
    state["seq"] += 1
    capacity, refill = cfg.rate_limit
    return {
        "id": state["seq"],
        "kind": cfg.kind,
        "sound_path": sound_path,
        "volume": cfg.volume,
        "priority": cfg.priority,
        "enqueued_at": now,
        "cooldown": cfg.cooldown,
        "rate_capacity": capacity,
        "rate_refill": refill,
    }


def notify(
    event: Event,
    settings: EngineSettings,
    cfg: EffectiveEventConfig,
    *,
    sound_path: str | None = None,
    play: PlayFn | None = None,
    clock: Callable[[], float] | None = None,
    sleep: Callable[[float], None] | None = None,
    path: Path | None = None,
) -> Outcome:
    """Admit, enqueue and, if this invocation wins the lease, drain the queue."""
    play = play or player.play
    clock = clock or time.time
    if sound_path is None:
        resolved = player.resolve_sound(cfg.sound)
        if resolved is None:
            debug(f"Sound {cfg.sound!r} for {event.kind} not found")
        sound_path = str(resolved) if resolved else ""
    token = uuid.uuid4().hex

    def admit(state: PersistedState) -> tuple[AdmissionResult, QueueEntry | None, bool]:
        now = clock()
        expire_quick_disable(state, now)
        result = decide(state, settings, cfg, event, now)
        if not result.admitted:
            return result, None, False
        entry = _build_entry(state, cfg, sound_path, now)
        accepted, evicted = enqueue(state["playback_queue"], entry, settings.max_queue, settings.drop_policy)
        if evicted is not None and evicted is not entry:
            debug(f"Queue full, evicted {evicted['kind']} #{evicted['id']}")
        if not accepted:
            return result, None, False
        return result, entry, try_acquire_lease(state, token, now, settings.lease_timeout)

    try:
        result, entry, leader = with_lock(admit, path, settings.lock_timeout)
    except LockTimeout as e:
        log(f"{e}; playing {event.kind} directly")
        return _direct_play(event, settings, cfg, sound_path, play, clock, path)
    except OSError as e:
        log(f"State unavailable ({e}); playing {event.kind} directly")
        return _direct_play(event, settings, cfg, sound_path, play, clock, path)

    if not result.admitted:
        debug(f"Denied {event.kind}: {result.describe()}")
        return Outcome(DENIED, result)
    if entry is None:
        debug(f"Queue full ({settings.drop_policy} policy), dropped {event.kind}")
        return Outcome(DROPPED, result)
    if not leader:
        debug(f"Queued {event.kind} #{entry['id']} for the active drain leader")
        return Outcome(QUEUED, result)
    played = drain(settings, token, play=play, clock=clock, sleep=sleep, path=path)
    return Outcome(DRAINED, result, played)


def drain(
    settings: EngineSettings,
    token: str,
    *,
    play: PlayFn | None = None,
    clock: Callable[[], float] | None = None,
    sleep: Callable[[float], None] | None = None,
    path: Path | None = None,
) -> int:
    """Leader loop: pop, play with the lock released, stamp, space. Returns dispatch count."""
    play = play or player.play
    clock = clock or time.time
    sleep = sleep or time.sleep
    played = 0
    global_rate = settings.global_rate_limit

    def take(state: PersistedState) -> tuple[QueueEntry | None, bool]:
        now = clock()
        lease = state["drain_lease"]
        if lease is None or lease["token"] != token:
            return None, False
        expire_quick_disable(state, now)
        queue = state["playback_queue"]
        if quick_disable_active(state, now) and queue:
            debug(f"Quick-disable active, discarding {len(queue)} queued")
            queue.clear()
        entry = pop(queue)
        while entry is not None:
            check = recheck_entry(state, entry, global_rate, now)
            if check.admitted:
                lease["heartbeat_at"] = now
                return entry, True
            debug(f"Skipping queued {entry['kind']} #{entry['id']}: {check.describe()}")
            entry = pop(queue)
        state["drain_lease"] = None
        return None, True

    while True:
        try:
            entry, owned = with_lock(take, path, settings.lock_timeout)
        except (LockTimeout, OSError) as e:
            log(f"{e}; leaving queue to the next invocation")
            break
        if entry is None:
            if not owned:
                debug("Drain lease taken over, stopping")
            break

        ok, err = play(entry["sound_path"], entry["volume"], settings.play_timeout)
        played += 1
        if not ok:
            log(f"Playback failed for {entry['kind']}: {err}")

        def stamp(state: PersistedState, entry: QueueEntry = entry) -> bool:
            now = clock()
            apply_dispatch(state, entry, global_rate, now)
            lease = state["drain_lease"]
            if lease is not None and lease["token"] == token:
                lease["heartbeat_at"] = now
            return bool(state["playback_queue"])

        try:
            pending = with_lock(stamp, path, settings.lock_timeout)
        except (LockTimeout, OSError) as e:
            log(f"{e}; cooldown for {entry['kind']} not recorded")
            pending = True
        if pending:
            sleep(settings.spacing)
    return played


def _direct_play(
    event: Event,
    settings: EngineSettings,
    cfg: EffectiveEventConfig,
    sound_path: str,
    play: PlayFn,
    clock: Callable[[], float],
    path: Path | None,
) -> Outcome:
    """Degraded path when the lock is unavailable: decide on a snapshot, play now."""
    result = decide(load(path), settings, cfg, event, clock())
    if not result.admitted:
        debug(f"Denied {event.kind}: {result.describe()}")
        return Outcome(DENIED, result)
    ok, err = play(sound_path, cfg.volume, settings.play_timeout)
    if not ok:
        log(f"Playback failed for {event.kind}: {err}")
    return Outcome(DIRECT, result, 1)
