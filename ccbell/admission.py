"""Admission: decide whether an event may play, without side effects."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

from ccbell import ratelimit
from ccbell._types import PersistedState, QueueEntry
from ccbell.config import GLOBAL_BUCKET

if TYPE_CHECKING:
    from ccbell.events import Event
    from ccbell.resolver import EffectiveEventConfig, EngineSettings

ADMITTED = "admitted"
DENIED_GLOBAL_DISABLED = "global_disabled"
DENIED_QUICK_DISABLE = "quick_disable"
DENIED_QUIET_HOURS = "quiet_hours"
DENIED_EVENT_DISABLED = "event_disabled"
DENIED_COOLDOWN = "cooldown"
DENIED_RATE_LIMITED = "rate_limited"


@dataclass(frozen=True)
class QuietHours:
    """Time-of-day window in minutes after midnight. end < start wraps midnight."""

    start: int
    end: int

    def __str__(self) -> str:
        return f"{self.start // 60:02d}:{self.start % 60:02d}-{self.end // 60:02d}:{self.end % 60:02d}"


@dataclass(frozen=True)
class AdmissionResult:
    reason: str
    remaining: float = 0.0

    @property
    def admitted(self) -> bool:
        return self.reason == ADMITTED

    def describe(self) -> str:
        if self.reason in (DENIED_COOLDOWN, DENIED_RATE_LIMITED):
            return f"{self.reason} ({self.remaining:.1f}s remaining)"
        return self.reason


def parse_hhmm(text: str) -> int:
    """Parse "HH:MM" into minutes after midnight."""
    hours, sep, minutes = text.strip().partition(":")
    if not sep or not hours.isdigit() or not minutes.isdigit() or len(minutes) != 2:
        raise ValueError(f"Expected HH:MM, got {text!r}")
    h, m = int(hours), int(minutes)
    if h > 23 or m > 59:
        raise ValueError(f"Time out of range: {text!r}")
    return h * 60 + m


def in_quiet_hours(window: QuietHours | None, when: datetime) -> bool:
    """Membership test for wrapping and non-wrapping windows."""
    if window is None or window.start == window.end:
        return False
    t = when.hour * 60 + when.minute
    if window.start < window.end:
        return window.start <= t < window.end
    return t >= window.start or t < window.end


def quick_disable_active(state: PersistedState, now: float) -> bool:
    qd = state["quick_disable"]
    return qd is not None and now < qd["until"]


def _rate_check(state: PersistedState, key: str, capacity: int | None, refill: float | None, now: float) -> float | None:
    """Seconds until a token is available, or None if one is available now."""
    if not capacity or refill is None:
        return None
    allowed, wait = ratelimit.available(state, key, capacity, refill, now)
    return None if allowed else wait


def check_budget(
    state: PersistedState,
    kind: str,
    cooldown: float,
    rate: tuple[int | None, float | None],
    global_rate: tuple[int | None, float | None],
    now: float,
) -> AdmissionResult:
    """Cooldown and rate-limit checks shared by admission and dispatch time."""
    last = state["cooldowns"].get(kind)
    if cooldown > 0 and last is not None and now - last < cooldown:
        return AdmissionResult(DENIED_COOLDOWN, cooldown - (now - last))
    for key, (capacity, refill) in ((kind, rate), (GLOBAL_BUCKET, global_rate)):
        wait = _rate_check(state, key, capacity, refill, now)
        if wait is not None:
            return AdmissionResult(DENIED_RATE_LIMITED, wait)
    return AdmissionResult(ADMITTED)


def decide(
    state: PersistedState, settings: EngineSettings, cfg: EffectiveEventConfig, event: Event, now: float,
) -> AdmissionResult:
    """Evaluate admission, cheapest checks first; the first denial wins.

    Pure: callers stamp cooldowns and consume tokens only after dispatch.
    """
    if not settings.enabled:
        return AdmissionResult(DENIED_GLOBAL_DISABLED)
    qd = state["quick_disable"]
    if qd is not None and now < qd["until"]:
        return AdmissionResult(DENIED_QUICK_DISABLE, qd["until"] - now)
    if in_quiet_hours(settings.quiet_hours, datetime.fromtimestamp(now)):
        return AdmissionResult(DENIED_QUIET_HOURS)
    if not cfg.enabled:
        return AdmissionResult(DENIED_EVENT_DISABLED)
    return check_budget(state, event.kind, cfg.cooldown, cfg.rate_limit, settings.global_rate_limit, now)


def recheck_entry(state: PersistedState, entry: QueueEntry, global_rate: tuple[int | None, float | None], now: float) -> AdmissionResult:
    """Re-run the cooldown/rate checks for a queued entry just before dispatch."""
    return check_budget(
        state, entry["kind"], entry["cooldown"], (entry["rate_capacity"], entry["rate_refill"]), global_rate, now,
    )


def apply_dispatch(state: PersistedState, entry: QueueEntry, global_rate: tuple[int | None, float | None], now: float) -> None:
    """Stamp the cooldown and consume rate-limit tokens after a dispatch attempt."""
    state["cooldowns"][entry["kind"]] = now
    if entry["rate_capacity"] and entry["rate_refill"] is not None:
        ratelimit.consume(state, entry["kind"], entry["rate_capacity"], entry["rate_refill"], now)
    capacity, refill = global_rate
    if capacity and refill is not None:
        ratelimit.consume(state, GLOBAL_BUCKET, capacity, refill, now)
