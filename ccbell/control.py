"""User controls stored in state: quick-disable window and profile override."""
from __future__ import annotations

import re
import time
from pathlib import Path

from ccbell._types import PersistedState, QuickDisable
from ccbell.state import with_lock

_DURATION_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([smhd]?)\s*$", re.IGNORECASE)
_UNIT_SECONDS = {"s": 1, "m": 60, "h": 3600, "d": 86400, "": 60}


def parse_duration(text: str) -> float:
    """Parse "90s", "15m", "2h", "1d" or bare minutes into seconds."""
    match = _DURATION_RE.match(text)
    if not match:
        raise ValueError(f"Invalid duration: {text!r} (use e.g. 90s, 15m, 2h)")
    seconds = float(match.group(1)) * _UNIT_SECONDS[match.group(2).lower()]
    if seconds <= 0:
        raise ValueError(f"Duration must be positive: {text!r}")
    return seconds


def quick_disable(seconds: float, now: float | None = None, path: Path | None = None) -> QuickDisable:
    """Suppress all notifications for `seconds`. Extends rather than shortens an active window."""
    now = time.time() if now is None else now

    def updater(state: PersistedState) -> QuickDisable:
        current = state["quick_disable"]
        if current is not None and now < current["until"]:
            window: QuickDisable = {
                "until": max(current["until"], now + seconds),
                "resume_profile": current["resume_profile"],
            }
        else:
            window = {"until": now + seconds, "resume_profile": state["profile"]}
        state["quick_disable"] = window
        return window

    return with_lock(updater, path)


def resume(path: Path | None = None) -> bool:
    """End quick-disable now. Returns True if a window was active."""

    def updater(state: PersistedState) -> bool:
        window = state["quick_disable"]
        if window is None:
            return False
        state["quick_disable"] = None
        state["profile"] = window["resume_profile"]
        return window["until"] > time.time()

    return with_lock(updater, path)


def set_profile(name: str | None, path: Path | None = None) -> None:
    """Set or clear (None) the profile override.

    During quick-disable the override is applied when the window ends.
    """

    def updater(state: PersistedState) -> None:
        window = state["quick_disable"]
        if window is not None and time.time() < window["until"]:
            window["resume_profile"] = name
        else:
            state["profile"] = name

    with_lock(updater, path)
