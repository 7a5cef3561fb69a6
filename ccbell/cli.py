"""Unified CLI dispatcher for ccbell."""
from __future__ import annotations

import os
import sys
import time
from datetime import datetime
from typing import TYPE_CHECKING, Any, TextIO

from ccbell.config import DEFAULT_QUIET_MINUTES

if TYPE_CHECKING:
    from ccbell._types import PersistedState
    from ccbell.resolver import EngineSettings


def _fmt_duration(seconds: float) -> str:
    """Human-readable duration: 45s, 12m, 1h05m."""
    total = max(0, int(seconds))
    if total < 60:
        return f"{total}s"
    if total < 3600:
        return f"{total // 60}m"
    h, m = divmod(total // 60, 60)
    return f"{h}h{m:02d}m"


def _fmt_time(ts: float) -> str:
    return datetime.fromtimestamp(ts).strftime("%H:%M:%S")


def _settings_and_config() -> tuple[EngineSettings, dict[str, Any], dict[str, Any], PersistedState]:
    """Resolve settings for the current directory along with config layers and state."""
    from ccbell.config import _load_config
    from ccbell.resolver import load_workspace_config, resolve_settings
    from ccbell.state import load

    global_config = _load_config()
    workspace = load_workspace_config(os.getcwd())
    state = load()
    return resolve_settings(global_config, workspace, state["profile"]), global_config, workspace, state


def _do_hook(kind: str | None) -> None:
    """Process one hook event (kind given, or payload on stdin)."""
    from ccbell.__main__ import main
    main(kind)


def _do_quiet(duration: str | None) -> None:
    """Quick-disable all notifications for a while."""
    from ccbell.control import parse_duration, quick_disable

    try:
        seconds = parse_duration(duration) if duration else DEFAULT_QUIET_MINUTES * 60
    except ValueError as e:
        print(f"❌ ccbell: {e}", file=sys.stderr)
        sys.exit(1)
    window = quick_disable(seconds)
    print(f"🔕 ccbell quiet until {_fmt_time(window['until'])} ({_fmt_duration(window['until'] - time.time())})")


def _do_resume() -> None:
    """End quick-disable now."""
    from ccbell.control import resume

    if resume():
        print("🔔 ccbell resumed")
    else:
        print("🔔 ccbell was not quieted")


def _do_profile(name: str | None) -> None:
    """Show or set the active profile override."""
    from ccbell.control import set_profile

    settings, global_config, _workspace, state = _settings_and_config()
    if name is None:
        profiles = global_config.get("profiles")
        names = sorted(profiles) if isinstance(profiles, dict) else []
        source = "override" if state["profile"] else "config"
        print(f"🎚️  active profile: {settings.active_profile} ({source})")
        if names:
            print(f"   available: {', '.join(names)}")
        return
    if name == "--clear":
        set_profile(None)
        print("🎚️  profile override cleared")
        return
    profiles = global_config.get("profiles")
    if name != "default" and not (isinstance(profiles, dict) and name in profiles):
        print(f"⚠️  profile '{name}' is not defined in config; event defaults apply", file=sys.stderr)
    set_profile(name)
    print(f"🎚️  profile → {name}")


def _do_status() -> None:
    """Print enabled state, quick-disable, queue and lease."""
    from ccbell.admission import in_quiet_hours
    from ccbell.sequencer import lease_is_stale

    settings, _global_config, _workspace, state = _settings_and_config()
    now = time.time()

    print("📊 ccbell status")
    print("──────────────────────────────────────")
    print(f"  {'🔔' if settings.enabled else '🔕'} enabled      {settings.enabled}")
    print(f"  🎚️  profile      {settings.active_profile}")

    qd = state["quick_disable"]
    if qd is not None and now < qd["until"]:
        print(f"  🔕 quiet        until {_fmt_time(qd['until'])} ({_fmt_duration(qd['until'] - now)} left)")
    else:
        print("  🔔 quiet        off")

    if settings.quiet_hours is not None:
        inside = in_quiet_hours(settings.quiet_hours, datetime.fromtimestamp(now))
        print(f"  🌙 quiet hours  {settings.quiet_hours}{' (now)' if inside else ''}")
    else:
        print("  🌙 quiet hours  none")

    queue = state["playback_queue"]
    print(f"  📋 queue        {len(queue)}/{settings.max_queue} ({settings.drop_policy})")
    for entry in queue:
        print(f"     └─ {entry['kind']} (priority {entry['priority']}, queued {_fmt_time(entry['enqueued_at'])})")

    lease = state["drain_lease"]
    if lease is None:
        print("  ⚪ leader       none")
    elif lease_is_stale(state, now, settings.lease_timeout):
        print(f"  🟡 leader       pid {lease['holder_pid']} (stale)")
    else:
        print(f"  🟢 leader       pid {lease['holder_pid']}")

    if state["cooldowns"]:
        print("  ⏱️  last played")
        for kind, ts in sorted(state["cooldowns"].items()):
            print(f"     └─ {kind:18s} {_fmt_duration(now - ts)} ago")
    print("──────────────────────────────────────")


def _do_test(kind: str | None) -> None:
    """Play an event's sound directly, bypassing admission and the queue."""
    from ccbell.config import BUILTIN_KINDS
    from ccbell.player import play, resolve_sound
    from ccbell.resolver import resolve

    settings, global_config, workspace, _state = _settings_and_config()
    kinds = [kind] if kind else list(BUILTIN_KINDS)
    failed = False
    for k in kinds:
        cfg = resolve(global_config, settings.active_profile, workspace, k)
        path = resolve_sound(cfg.sound)
        if path is None:
            print(f"  ❌ {k:18s} sound {cfg.sound!r} not found")
            failed = True
            continue
        ok, err = play(str(path), cfg.volume, settings.play_timeout)
        print(f"  {'✅' if ok else '❌'} {k:18s} {path.name}" + (f" ({err})" if err else ""))
        failed = failed or not ok
        time.sleep(settings.spacing)
    if failed:
        sys.exit(1)


def _do_config() -> None:
    """Print effective settings and per-event configuration."""
    from ccbell.config import BUILTIN_KINDS, CONFIG_PATH, STATE_FILE
    from ccbell.events import declared_kinds
    from ccbell.resolver import resolve

    settings, global_config, workspace, _state = _settings_and_config()
    kinds = list(BUILTIN_KINDS) + sorted(declared_kinds(global_config, workspace) - set(BUILTIN_KINDS))

    print("⚙️  ccbell config")
    print("──────────────────────────────────────")
    print(f"  📄 config_file:    {CONFIG_PATH}")
    print(f"  📄 state_file:     {STATE_FILE}")
    print(f"  🔔 enabled:        {settings.enabled}")
    print(f"  🐞 debug:          {settings.debug}")
    print(f"  🎚️  profile:        {settings.active_profile}")
    print(f"  🌙 quiet_hours:    {settings.quiet_hours or '(none)'}")
    print(f"  📋 queue:          max {settings.max_queue}, drop {settings.drop_policy}, spacing {settings.spacing:g}s")
    print(f"  ⏱️  lease_timeout:  {settings.lease_timeout:g}s")
    print(f"  ⏱️  lock_timeout:   {settings.lock_timeout:g}s")
    print(f"  ⏱️  play_timeout:   {settings.play_timeout:g}s")
    limit = settings.global_rate_limit_per_minute
    print(f"  🚦 rate_limit:     {f'{limit}/min' if limit else '(none)'}")
    print()
    for kind in kinds:
        cfg = resolve(global_config, settings.active_profile, workspace, kind)
        rate = f"{cfg.rate_limit_per_minute}/min" if cfg.rate_limit_per_minute else "-"
        print(
            f"  {'🔔' if cfg.enabled else '🔕'} {kind:18s} {cfg.sound:28s} vol {cfg.volume:.2f} "
            f"cooldown {cfg.cooldown:g}s pri {cfg.priority} rate {rate}"
        )
    print("──────────────────────────────────────")


def _do_reset() -> None:
    """Clear cooldowns, rate limits, queue and lease."""
    from ccbell.state import reset_state
    reset_state()
    print("🧹 ccbell state reset")


def _do_health() -> None:
    """Run health check diagnostics."""
    from ccbell.__main__ import health_check
    health_check()


def _do_version() -> None:
    """Print version string."""
    from ccbell import __version__
    print(f"🔔 ccbell {__version__}")


def _print_usage(file: TextIO | None = None) -> None:
    from ccbell import __version__
    print(
        f"🔔 ccbell {__version__}\n"
        "\n"
        "usage: ccbell <event|command> [args] [--dry-run]\n"
        "\n"
        "events (hook mode):\n"
        "  stop, permission_prompt, idle_prompt, subagent, or a kind defined in config\n"
        "  (with no arguments and piped stdin, the hook JSON payload is read)\n"
        "\n"
        "commands:\n"
        "  🔕 quiet [DURATION]  suppress all sounds (default 30m; e.g. 90s, 15m, 2h)\n"
        "  🔔 resume            end quiet now\n"
        "  🎚️  profile [NAME]    show or set the active profile (--clear to unset)\n"
        "  📊 status            show quiet state, queue and leader\n"
        "  🔊 test [EVENT]      play sounds directly, bypassing admission\n"
        "  ⚙️  config            print effective configuration\n"
        "  🧹 reset             clear cooldowns, rate limits and queue\n"
        "  🩺 health            run self-diagnostics\n"
        "  🏷️  version           print version\n",
        file=file or sys.stdout,
    )


# All recognised subcommands and their flag aliases
_SUBCOMMANDS: frozenset[str] = frozenset({
    "quiet", "resume", "profile", "status", "test", "config", "reset", "health", "version", "help",
})

_FLAG_MAP: dict[str, str] = {
    "--status": "status",
    "--config": "config",
    "--health": "health",
    "--version": "version",
    "-V": "version",
    "--help": "help",
    "-h": "help",
}


def cli_main(argv: list[str] | None = None) -> None:
    """Unified CLI entry point.

    A first argument that is not a subcommand is an event kind (hook mode).
    With no arguments and piped stdin, the hook payload is read from stdin.
    """
    args = sys.argv[1:] if argv is None else argv

    # --dry-run is consumed by config.py at import time; strip it from dispatch args
    args = [a for a in args if a != "--dry-run"]

    if not args:
        if not sys.stdin.isatty():
            _do_hook(None)
        else:
            _print_usage()
        return

    cmd = _FLAG_MAP.get(args[0], args[0])
    arg: str | None = args[1] if len(args) > 1 else None

    if cmd not in _SUBCOMMANDS:
        if cmd.startswith("-"):
            print(f"❌ ccbell: unknown option '{cmd}'", file=sys.stderr)
            _print_usage(sys.stderr)
            sys.exit(1)
        _do_hook(cmd)
    elif cmd == "quiet":
        _do_quiet(arg)
    elif cmd == "resume":
        _do_resume()
    elif cmd == "profile":
        _do_profile(arg)
    elif cmd == "status":
        _do_status()
    elif cmd == "test":
        _do_test(arg)
    elif cmd == "config":
        _do_config()
    elif cmd == "reset":
        _do_reset()
    elif cmd == "health":
        _do_health()
    elif cmd == "version":
        _do_version()
    else:
        _print_usage()
