"""Config resolution: layer defaults, global config, profile and workspace overrides."""
from __future__ import annotations

import math
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from ccbell._log import debug
from ccbell.admission import QuietHours, parse_hhmm
from ccbell.config import (
    CONFIG_PATH,
    DEFAULT_LEASE_TIMEOUT,
    DEFAULT_LOCK_TIMEOUT_MS,
    DEFAULT_MAX_QUEUE,
    DEFAULT_PLAY_TIMEOUT,
    DEFAULT_PRIORITY,
    DEFAULT_PROFILE,
    DEFAULT_SPACING_MS,
    DEFAULT_VOLUME,
    DROP_OLDEST,
    DROP_POLICIES,
    WORKSPACE_CONFIG_NAME,
    _cfg_bool,
    _cfg_str,
    _read_json_object,
)
from ccbell.ratelimit import limits_per_minute

# Top-level keys a workspace file may override
_WORKSPACE_GLOBAL_KEYS = ("enabled", "quietHours")


@dataclass(frozen=True)
class EffectiveEventConfig:
    kind: str
    enabled: bool
    sound: str
    volume: float
    cooldown: float
    priority: int
    rate_limit_per_minute: int | None = None
    rate_limit_burst: int | None = None

    @property
    def rate_limit(self) -> tuple[int | None, float | None]:
        return limits_per_minute(self.rate_limit_per_minute, self.rate_limit_burst)


@dataclass(frozen=True)
class EngineSettings:
    enabled: bool = True
    debug: bool = False
    active_profile: str = DEFAULT_PROFILE
    quiet_hours: QuietHours | None = None
    max_queue: int = DEFAULT_MAX_QUEUE
    drop_policy: str = DROP_OLDEST
    spacing: float = DEFAULT_SPACING_MS / 1000
    lease_timeout: float = DEFAULT_LEASE_TIMEOUT
    lock_timeout: float = DEFAULT_LOCK_TIMEOUT_MS / 1000
    play_timeout: float = DEFAULT_PLAY_TIMEOUT
    global_rate_limit_per_minute: int | None = None
    global_rate_limit_burst: int | None = None

    def __post_init__(self) -> None:
        # The leader cannot heartbeat while a sound plays
        floor = self.play_timeout + self.lock_timeout + self.spacing
        if self.lease_timeout < floor:
            object.__setattr__(self, "lease_timeout", floor)

    @property
    def global_rate_limit(self) -> tuple[int | None, float | None]:
        return limits_per_minute(self.global_rate_limit_per_minute, self.global_rate_limit_burst)


def _section(mapping: Any, key: str) -> dict[str, Any]:
    value = mapping.get(key) if isinstance(mapping, dict) else None
    return value if isinstance(value, dict) else {}


def _is_bool(v: Any) -> bool:
    return isinstance(v, bool)


def _is_number(v: Any) -> bool:
    return isinstance(v, (int, float)) and not isinstance(v, bool) and math.isfinite(v)


def _is_int(v: Any) -> bool:
    return isinstance(v, int) and not isinstance(v, bool)


def _builtin_event(kind: str) -> dict[str, Any]:
    return {
        "enabled": True,
        "sound": f"bundled:{kind}",
        "volume": DEFAULT_VOLUME.get(kind, 0.5),
        "cooldown": 0,
        "priority": DEFAULT_PRIORITY.get(kind, 0),
        "rateLimitPerMinute": 0,
        "rateLimitBurst": 0,
    }


# field name → validator; values failing validation fall through to the layer below
_EVENT_FIELDS: dict[str, Any] = {
    "enabled": _is_bool,
    "sound": lambda v: isinstance(v, str) and bool(v.strip()),
    "volume": _is_number,
    "cooldown": lambda v: _is_number(v) and v >= 0,
    "priority": _is_int,
    "rateLimitPerMinute": lambda v: _is_int(v) and v >= 0,
    "rateLimitBurst": lambda v: _is_int(v) and v >= 0,
}


def resolve(
    global_config: dict[str, Any],
    active_profile: str | None,
    workspace_override: dict[str, Any] | None,
    kind: str,
) -> EffectiveEventConfig:
    """Overlay built-in defaults → global events → profile events → workspace events."""
    layers = [
        _section(_section(global_config, "events"), kind),
        _section(_section(_section(_section(global_config, "profiles"), active_profile or ""), "events"), kind),
        _section(_section(workspace_override or {}, "events"), kind),
    ]
    merged = _builtin_event(kind)
    for layer in layers:
        for name, valid in _EVENT_FIELDS.items():
            if name in layer and valid(layer[name]):
                merged[name] = layer[name]
    return EffectiveEventConfig(
        kind=kind,
        enabled=merged["enabled"],
        sound=merged["sound"].strip(),
        volume=min(max(float(merged["volume"]), 0.0), 1.0),
        cooldown=float(merged["cooldown"]),
        priority=merged["priority"],
        rate_limit_per_minute=merged["rateLimitPerMinute"] or None,
        rate_limit_burst=merged["rateLimitBurst"] or None,
    )


def _quiet_hours(raw: Any) -> QuietHours | None:
    if not isinstance(raw, dict):
        return None
    start, end = raw.get("start"), raw.get("end")
    if not isinstance(start, str) or not isinstance(end, str):
        return None
    try:
        return QuietHours(parse_hhmm(start), parse_hhmm(end))
    except ValueError as e:
        debug(f"Ignoring quietHours: {e}")
        return None


def _positive(value: Any, default: float) -> float:
    return float(value) if _is_number(value) and value > 0 else default


def resolve_settings(
    global_config: dict[str, Any],
    workspace_override: dict[str, Any] | None = None,
    profile_override: str | None = None,
) -> EngineSettings:
    """Build the engine-wide settings: env → workspace → global config → defaults."""
    merged = dict(global_config)
    for key in _WORKSPACE_GLOBAL_KEYS:
        if workspace_override and key in workspace_override:
            merged[key] = workspace_override[key]

    profile = os.environ.get("CCBELL_PROFILE") or profile_override or _cfg_str(
        "CCBELL_PROFILE", "activeProfile", DEFAULT_PROFILE, merged,
    ) or DEFAULT_PROFILE

    queue = _section(merged, "queue")
    max_queue = queue.get("maxSize")
    policy = queue.get("dropPolicy")
    spacing_ms = queue.get("spacingMs")
    per_minute = merged.get("rateLimitPerMinute")
    burst = merged.get("rateLimitBurst")

    return EngineSettings(
        enabled=_cfg_bool("CCBELL_ENABLED", "enabled", True, merged),
        debug=_cfg_bool("CCBELL_DEBUG", "debug", False, merged),
        active_profile=profile,
        quiet_hours=_quiet_hours(merged.get("quietHours")),
        max_queue=max_queue if _is_int(max_queue) and max_queue > 0 else DEFAULT_MAX_QUEUE,
        drop_policy=policy if policy in DROP_POLICIES else DROP_OLDEST,
        spacing=spacing_ms / 1000 if _is_number(spacing_ms) and spacing_ms >= 0 else DEFAULT_SPACING_MS / 1000,
        lease_timeout=_positive(merged.get("leaseTimeout"), DEFAULT_LEASE_TIMEOUT),
        lock_timeout=_positive(merged.get("lockTimeoutMs"), DEFAULT_LOCK_TIMEOUT_MS) / 1000,
        play_timeout=_positive(merged.get("playTimeout"), DEFAULT_PLAY_TIMEOUT),
        global_rate_limit_per_minute=per_minute if _is_int(per_minute) and per_minute > 0 else None,
        global_rate_limit_burst=burst if _is_int(burst) and burst > 0 else None,
    )


def load_workspace_config(cwd: str | os.PathLike[str] | None) -> dict[str, Any]:
    """Read <cwd>/.claude/ccbell.config.json, skipping the global file itself."""
    if not cwd:
        return {}
    path = Path(cwd) / WORKSPACE_CONFIG_NAME
    try:
        if path.resolve() == CONFIG_PATH.resolve():
            return {}
    except OSError:
        return {}
    return _read_json_object(path)
