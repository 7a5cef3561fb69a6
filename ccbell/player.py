"""Playback: resolve sound specifiers and run an external audio player."""
from __future__ import annotations

import os
import re
import shutil
import subprocess
import sys
from pathlib import Path

from ccbell.config import CLAUDE_DIR, DEFAULT_PLAY_TIMEOUT, DRY_RUN, _cfg_str

SOUND_EXTENSIONS = (".aiff", ".wav", ".mp3", ".ogg", ".oga")

MACOS_SYSTEM_SOUNDS = Path("/System/Library/Sounds")
FREEDESKTOP_SOUNDS = Path("/usr/share/sounds/freedesktop/stereo")
PLUGIN_CACHE = CLAUDE_DIR / "plugins" / "cache"

# Linux preference: mpv (most reliable), paplay (PulseAudio), aplay (ALSA), ffplay
LINUX_PLAYERS = ("mpv", "paplay", "aplay", "ffplay")
MACOS_PLAYERS = ("afplay",)


def _version_key(name: str) -> tuple[tuple[int, ...], str]:
    return tuple(int(n) for n in re.findall(r"\d+", name)), name


def _cached_plugin_root() -> Path | None:
    """Newest installed version under plugins/cache/<marketplace>/ccbell/."""
    try:
        versions = [v for d in PLUGIN_CACHE.glob("*/ccbell") for v in d.iterdir() if v.is_dir()]
    except OSError:
        return None
    if not versions:
        return None
    return max(versions, key=lambda v: _version_key(v.name))


def _bundled_dirs() -> list[Path]:
    dirs: list[Path] = []
    env_dir = os.environ.get("CCBELL_SOUNDS_DIR")
    if env_dir:
        dirs.append(Path(env_dir))
    plugin_root = os.environ.get("CLAUDE_PLUGIN_ROOT")
    if plugin_root:
        dirs.append(Path(plugin_root) / "sounds")
    else:
        cached = _cached_plugin_root()
        if cached is not None:
            dirs.append(cached / "sounds")
    dirs.append(Path(__file__).resolve().parent / "sounds")
    return dirs


def _find_named(dirs: list[Path], name: str) -> Path | None:
    for d in dirs:
        for ext in ("", *SOUND_EXTENSIONS):
            candidate = d / f"{name}{ext}"
            if candidate.is_file():
                return candidate
    return None


def resolve_sound(spec: str) -> Path | None:
    """Resolve bundled:NAME, system:NAME, custom:PATH or a plain path to a file."""
    scheme, sep, rest = spec.partition(":")
    if sep and scheme == "bundled":
        return _find_named(_bundled_dirs(), rest)
    if sep and scheme == "system":
        return _find_named([MACOS_SYSTEM_SOUNDS if sys.platform == "darwin" else FREEDESKTOP_SOUNDS], rest)
    path = Path(rest if sep and scheme == "custom" else spec).expanduser()
    return path if path.is_file() else None


def find_player(platform: str | None = None) -> str | None:
    """Pick the audio player binary: configured player, then platform defaults."""
    configured = _cfg_str("CCBELL_PLAYER", "player", "")
    if configured and shutil.which(configured):
        return configured
    platform = platform or sys.platform
    candidates = MACOS_PLAYERS if platform == "darwin" else LINUX_PLAYERS
    for name in candidates:
        if shutil.which(name):
            return name
    return None


def build_command(player: str, path: str, volume: float) -> list[str]:
    """Command line for playing `path` at `volume` (0..1) with `player`."""
    pct = round(volume * 100)
    name = Path(player).name
    if name == "afplay":
        return [player, "-v", f"{volume:.2f}", path]
    if name == "mpv":
        return [player, "--no-video", "--no-terminal", f"--volume={pct}", path]
    if name == "ffplay":
        return [player, "-nodisp", "-autoexit", "-loglevel", "quiet", "-volume", str(pct), path]
    if name == "paplay":
        return [player, f"--volume={round(volume * 65536)}", path]
    if name == "aplay":
        return [player, "-q", path]
    return [player, path]


def play(sound_path: str, volume: float, timeout: float = DEFAULT_PLAY_TIMEOUT) -> tuple[bool, str | None]:
    """Play a file and block until the player exits or times out. Never raises."""
    if DRY_RUN:
        print(f"[dry-run] play({sound_path!r}, volume={volume:.2f})")
        return True, None
    if not sound_path or not Path(sound_path).is_file():
        return False, f"sound file not found: {sound_path or '(unresolved)'}"
    player = find_player()
    if player is None:
        return False, "no audio player found (install mpv, pulseaudio-utils, alsa-utils or ffmpeg)"
    cmd = build_command(player, sound_path, volume)
    try:
        result = subprocess.run(
            cmd, stdin=subprocess.DEVNULL, stdout=subprocess.DEVNULL, stderr=subprocess.PIPE,
            timeout=timeout, check=False,
        )
    except subprocess.TimeoutExpired:
        return False, f"{player} timed out after {timeout:g}s"
    except OSError as e:
        return False, f"{player}: {e}"
    if result.returncode != 0:
        err = result.stderr.decode(errors="replace").strip().splitlines()
        return False, f"{player} exited with {result.returncode}" + (f": {err[-1]}" if err else "")
    return True, None
