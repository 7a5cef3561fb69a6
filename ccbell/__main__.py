"""Hook entry point for python3 -m ccbell."""
from __future__ import annotations

import json
import os
import sys
import time

from ccbell import __version__
from ccbell._log import debug, log, setup_debug_logging
from ccbell.config import BUILTIN_KINDS, CONFIG_PATH, STATE_DIR, STATE_FILE, _load_config, ensure_config
from ccbell.events import Event, is_known_kind, kind_from_hook
from ccbell.player import find_player, resolve_sound
from ccbell.resolver import load_workspace_config, resolve, resolve_settings
from ccbell.sequencer import lease_is_stale, notify
from ccbell.state import load


def main(kind: str | None = None) -> None:
    """Hook handler: play one event through admission and the shared queue.

    With no kind, the Claude Code hook payload is read from stdin. Errors are
    logged, never raised: a missed chime must not fail the hook.
    """
    try:
        _handle(kind)
    except Exception as e:
        log(f"Unexpected error: {e}")


def _handle(kind: str | None) -> None:
    cwd = os.getcwd()
    explicit = kind is not None
    if kind is None:
        raw = sys.stdin.read()
        if not raw.strip():
            debug("Empty stdin, nothing to do")
            return
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as e:
            log(f"Invalid JSON on stdin: {e}")
            return
        if not isinstance(payload, dict):
            log("Hook payload is not a JSON object")
            return
        kind = kind_from_hook(payload)
        if kind is None:
            debug(f"Ignoring hook {payload.get('hook_event_name')!r}")
            return
        cwd = payload.get("cwd") or cwd

    if ensure_config():
        log(f"Created default config at {CONFIG_PATH}")

    global_config = _load_config()
    workspace = load_workspace_config(cwd)
    if not is_known_kind(kind, global_config, workspace):
        (log if explicit else debug)(f"Unknown event '{kind}' (built-in: {', '.join(BUILTIN_KINDS)})")
        return

    snapshot = load()
    settings = resolve_settings(global_config, workspace, snapshot["profile"])
    if settings.debug:
        setup_debug_logging(STATE_DIR)
    cfg = resolve(global_config, settings.active_profile, workspace, kind)

    outcome = notify(Event(kind, cwd=cwd), settings, cfg)
    debug(f"{kind}: {outcome.status} ({outcome.admission.describe()}), dispatched {outcome.played}")


def health_check() -> None:
    """Run self-diagnostics and print results."""
    checks: list[tuple[str, bool, str]] = []

    player = find_player()
    checks.append(("Audio player", player is not None, player or "none found (mpv, paplay, aplay, ffplay, afplay)"))

    config_ok = True
    config_detail = str(CONFIG_PATH)
    if CONFIG_PATH.exists():
        try:
            config_ok = isinstance(json.loads(CONFIG_PATH.read_text()), dict)
        except (OSError, json.JSONDecodeError) as e:
            config_ok = False
            config_detail = f"invalid: {e}"
    else:
        config_detail = "not created yet (defaults apply)"
    checks.append(("Config file", config_ok, config_detail))

    global_config = _load_config()
    missing = [k for k in BUILTIN_KINDS if resolve_sound(resolve(global_config, None, None, k).sound) is None]
    checks.append(("Sounds", not missing, "all resolved" if not missing else f"missing: {', '.join(missing)}"))

    state_ok = False
    state_err = ""
    try:
        STATE_DIR.mkdir(parents=True, exist_ok=True)
        test_file = STATE_DIR / ".health_check"
        test_file.write_text("ok")
        test_file.unlink()
        state_ok = True
    except OSError as e:
        state_err = str(e)
    checks.append(("State dir", state_ok, str(STATE_DIR) if state_ok else state_err))

    state_valid = True
    if STATE_FILE.exists():
        try:
            state_valid = isinstance(json.loads(STATE_FILE.read_text()), dict)
        except (OSError, json.JSONDecodeError):
            state_valid = False
    checks.append(("State file", state_valid, "valid" if state_valid else "corrupt (will be reset)"))

    state = load()
    lease = state["drain_lease"]
    settings = resolve_settings(global_config, None, state["profile"])
    if lease is None:
        lease_detail = "idle"
    elif lease_is_stale(state, time.time(), settings.lease_timeout):
        lease_detail = f"stale (pid {lease['holder_pid']}), next event reclaims it"
    else:
        lease_detail = f"held by pid {lease['holder_pid']}"
    checks.append(("Drain lease", True, lease_detail))

    print(f"🩺 ccbell v{__version__} health check")
    print("────────────────────────────────────────────────")
    all_ok = True
    for name, ok, detail in checks:
        icon = "✅" if ok else "❌"
        print(f"  {icon} {name:16s} {detail}")
        if not ok:
            all_ok = False
    print("────────────────────────────────────────────────")
    if all_ok:
        print("  ✅ All checks passed")
    else:
        print("  ❌ Issues detected")
    sys.exit(0 if all_ok else 1)


if __name__ == "__main__":
    from ccbell.cli import cli_main
    cli_main()
