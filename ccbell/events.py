"""Events: kinds, hook payload mapping."""
from __future__ import annotations

import os
import time
from dataclasses import dataclass, field
from typing import Any

from ccbell.config import BUILTIN_KINDS, HOOK_EVENT_KINDS, IDLE_PROMPT, NOTIFICATION_HOOK, PERMISSION_PROMPT


@dataclass(frozen=True)
class Event:
    kind: str
    fired_at: float = field(default_factory=time.time)
    source_pid: int = field(default_factory=os.getpid)
    cwd: str = ""


def declared_kinds(*configs: dict[str, Any]) -> set[str]:
    """Event kinds declared under `events` in any config layer or profile."""
    kinds: set[str] = set()
    for cfg in configs:
        events = cfg.get("events")
        if isinstance(events, dict):
            kinds.update(k for k in events if isinstance(k, str))
        profiles = cfg.get("profiles")
        if isinstance(profiles, dict):
            for profile in profiles.values():
                if isinstance(profile, dict) and isinstance(profile.get("events"), dict):
                    kinds.update(k for k in profile["events"] if isinstance(k, str))
    return kinds


def is_known_kind(kind: str, *configs: dict[str, Any]) -> bool:
    """Built-in kinds plus user-defined kinds declared in config."""
    return kind in BUILTIN_KINDS or kind in declared_kinds(*configs)


def kind_from_hook(payload: dict[str, Any]) -> str | None:
    """Map a Claude Code hook payload to an event kind."""
    name = payload.get("hook_event_name", "")
    if name in HOOK_EVENT_KINDS:
        return HOOK_EVENT_KINDS[name]
    if name == NOTIFICATION_HOOK:
        ntype = payload.get("notification_type")
        if isinstance(ntype, str) and ntype:
            return ntype
        # Older payloads carry only the message text
        message = str(payload.get("message", "")).lower()
        if "permission" in message:
            return PERMISSION_PROMPT
        if "waiting for your input" in message or "idle" in message:
            return IDLE_PROMPT
    return None
