"""Configuration: paths, config file loading, settings, constants."""
from __future__ import annotations

import json
import os
import sys
from pathlib import Path
from typing import Any

# ── Paths ────────────────────────────────────────────────────────────────────

CLAUDE_DIR = Path.home() / ".claude"
CONFIG_PATH = Path(os.environ.get("CCBELL_CONFIG") or CLAUDE_DIR / "ccbell.config.json")
STATE_DIR = Path(os.environ.get("CCBELL_STATE_DIR") or CLAUDE_DIR / "ccbell-state")
STATE_FILE = STATE_DIR / "state.json"
WORKSPACE_CONFIG_NAME = Path(".claude") / "ccbell.config.json"

# ── Config File Loader ───────────────────────────────────────────────────────

_ccbell_config: dict | None = None


def _read_json_object(path: Path) -> dict[str, Any]:
    """Read a JSON object from path. Returns {} if missing, unreadable or not an object."""
    try:
        data = json.loads(path.read_text())
    except (OSError, json.JSONDecodeError, UnicodeDecodeError):
        return {}
    return data if isinstance(data, dict) else {}


def _load_config() -> dict[str, Any]:
    """Load ~/.claude/ccbell.config.json (cached per invocation)."""
    global _ccbell_config
    if _ccbell_config is None:
        _ccbell_config = _read_json_object(CONFIG_PATH)
    return _ccbell_config


def _cfg_bool(env_key: str, config_key: str, default: bool, config: dict | None = None) -> bool:
    """Read a boolean: env var ("1"/"0") → config (true/false) → default."""
    env = os.environ.get(env_key)
    if env is not None:
        return env == "1"
    val = (_load_config() if config is None else config).get(config_key)
    if isinstance(val, bool):
        return val
    return default


def _cfg_str(env_key: str, config_key: str, default: str, config: dict | None = None) -> str:
    """Read a string: env var → config → default."""
    env = os.environ.get(env_key)
    if env is not None:
        return env
    val = (_load_config() if config is None else config).get(config_key)
    if isinstance(val, str):
        return val
    return default


def ensure_config() -> bool:
    """Write the default config file if none exists. Returns True if created."""
    if CONFIG_PATH.exists():
        return False
    try:
        CONFIG_PATH.parent.mkdir(parents=True, exist_ok=True)
        CONFIG_PATH.write_text(json.dumps(DEFAULT_CONFIG, indent=2) + "\n")
    except OSError:
        return False
    return True


# ── CLI Mode ─────────────────────────────────────────────────────────────────

DRY_RUN = "--dry-run" in sys.argv

# ── Constants ────────────────────────────────────────────────────────────────

STOP = "stop"
PERMISSION_PROMPT = "permission_prompt"
IDLE_PROMPT = "idle_prompt"
SUBAGENT = "subagent"

BUILTIN_KINDS: tuple[str, ...] = (STOP, PERMISSION_PROMPT, IDLE_PROMPT, SUBAGENT)

# Claude Code hook_event_name → event kind
HOOK_EVENT_KINDS: dict[str, str] = {
    "Stop": STOP,
    "SubagentStop": SUBAGENT,
}
NOTIFICATION_HOOK = "Notification"

# Permission prompts outrank completions, which outrank idle/subagent chimes
DEFAULT_PRIORITY: dict[str, int] = {
    PERMISSION_PROMPT: 100,
    STOP: 50,
    IDLE_PROMPT: 20,
    SUBAGENT: 10,
}

DEFAULT_VOLUME: dict[str, float] = {
    PERMISSION_PROMPT: 0.7,
}

GLOBAL_BUCKET = "_global"

DROP_OLDEST = "oldest"
DROP_NEWEST = "newest"
DROP_POLICIES = (DROP_OLDEST, DROP_NEWEST)

DEFAULT_PROFILE = "default"
DEFAULT_MAX_QUEUE = 8
DEFAULT_SPACING_MS = 300
DEFAULT_LEASE_TIMEOUT = 30
DEFAULT_LOCK_TIMEOUT_MS = 2000
DEFAULT_PLAY_TIMEOUT = 10
DEFAULT_QUIET_MINUTES = 30

DEFAULT_CONFIG: dict[str, Any] = {
    "enabled": True,
    "debug": False,
    "activeProfile": DEFAULT_PROFILE,
    "quietHours": {"start": None, "end": None},
    "queue": {"maxSize": DEFAULT_MAX_QUEUE, "dropPolicy": DROP_OLDEST, "spacingMs": DEFAULT_SPACING_MS},
    "events": {
        kind: {
            "enabled": True,
            "sound": f"bundled:{kind}",
            "volume": DEFAULT_VOLUME.get(kind, 0.5),
            "cooldown": 0,
            "priority": DEFAULT_PRIORITY[kind],
        }
        for kind in BUILTIN_KINDS
    },
    "profiles": {},
}
