"""ccbell: sound notifications for Claude Code hooks."""
from __future__ import annotations

__version__ = "0.3.0"

# Re-export the primary entry points
from ccbell._log import debug as _debug, log as _log  # noqa: F401
from ccbell.admission import AdmissionResult, QuietHours, decide, in_quiet_hours, parse_hhmm  # noqa: F401
from ccbell.config import (  # noqa: F401
    BUILTIN_KINDS,
    CLAUDE_DIR,
    CONFIG_PATH,
    DRY_RUN,
    STATE_DIR,
    STATE_FILE,
    _cfg_bool,
    _cfg_str,
    _load_config,
)
from ccbell.control import parse_duration, quick_disable, resume, set_profile  # noqa: F401
from ccbell.events import Event, is_known_kind, kind_from_hook  # noqa: F401
from ccbell.player import build_command, find_player, play, resolve_sound  # noqa: F401
from ccbell.playback_queue import enqueue, pop  # noqa: F401
from ccbell.resolver import EffectiveEventConfig, EngineSettings, load_workspace_config, resolve, resolve_settings  # noqa: F401
from ccbell.sequencer import Outcome, drain, notify  # noqa: F401
from ccbell.state import LockTimeout, default_state, load, reset_state, save_atomically, with_lock  # noqa: F401
