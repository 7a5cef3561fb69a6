"""Tests for sound resolution and the external player wrapper."""
from __future__ import annotations

import subprocess
import sys
from pathlib import Path
from typing import Any

import pytest


def _player() -> Any:
    return sys.modules["ccbell.player"]


class TestResolveSound:
    """Test sound specifier resolution."""

    def test_bundled(self, ccbell: Any, sounds_dir: Path) -> None:
        assert ccbell.resolve_sound("bundled:stop") == sounds_dir / "stop.wav"

    def test_bundled_missing(self, ccbell: Any, sounds_dir: Path) -> None:
        assert ccbell.resolve_sound("bundled:nope") is None

    def test_bundled_from_plugin_root(self, ccbell: Any, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        sounds = tmp_path / "plugin" / "sounds"
        sounds.mkdir(parents=True)
        (sounds / "chime.aiff").write_bytes(b"FORM")
        monkeypatch.setenv("CLAUDE_PLUGIN_ROOT", str(tmp_path / "plugin"))
        assert ccbell.resolve_sound("bundled:chime") == sounds / "chime.aiff"

    def test_bundled_from_newest_cached_plugin(self, ccbell: Any, tmp_path: Path) -> None:
        cache = tmp_path / "plugins" / "cache" / "market" / "ccbell"
        for version in ("0.9.0", "0.10.0", "0.2.5"):
            sounds = cache / version / "sounds"
            sounds.mkdir(parents=True)
            (sounds / "chime.wav").write_bytes(b"RIFF")
        assert ccbell.resolve_sound("bundled:chime") == cache / "0.10.0" / "sounds" / "chime.wav"

    def test_plugin_root_beats_cache(self, ccbell: Any, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        cached = tmp_path / "plugins" / "cache" / "market" / "ccbell" / "1.0.0" / "sounds"
        cached.mkdir(parents=True)
        (cached / "chime.wav").write_bytes(b"RIFF")
        root = tmp_path / "plugin" / "sounds"
        root.mkdir(parents=True)
        (root / "chime.wav").write_bytes(b"RIFF")
        monkeypatch.setenv("CLAUDE_PLUGIN_ROOT", str(tmp_path / "plugin"))
        assert ccbell.resolve_sound("bundled:chime") == root / "chime.wav"

    def test_missing_cache_is_ignored(self, ccbell: Any) -> None:
        assert _player()._cached_plugin_root() is None

    def test_custom_and_plain_paths(self, ccbell: Any, tmp_path: Path) -> None:
        f = tmp_path / "ding.mp3"
        f.write_bytes(b"ID3")
        assert ccbell.resolve_sound(f"custom:{f}") == f
        assert ccbell.resolve_sound(str(f)) == f

    def test_missing_custom(self, ccbell: Any, tmp_path: Path) -> None:
        assert ccbell.resolve_sound(f"custom:{tmp_path / 'gone.wav'}") is None

    def test_system_sound(self, ccbell: Any, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        system = tmp_path / "system"
        system.mkdir()
        (system / "Glass.aiff").write_bytes(b"FORM")
        monkeypatch.setattr(_player(), "MACOS_SYSTEM_SOUNDS", system)
        monkeypatch.setattr(_player(), "FREEDESKTOP_SOUNDS", system)
        assert ccbell.resolve_sound("system:Glass") == system / "Glass.aiff"


class TestFindPlayer:
    """Test player discovery."""

    def test_macos_prefers_afplay(self, ccbell: Any, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(_player().shutil, "which", lambda name: f"/usr/bin/{name}")
        assert ccbell.find_player("darwin") == "afplay"

    def test_linux_order(self, ccbell: Any, monkeypatch: pytest.MonkeyPatch) -> None:
        available = {"aplay", "ffplay"}
        monkeypatch.setattr(_player().shutil, "which", lambda name: name if name in available else None)
        assert ccbell.find_player("linux") == "aplay"

    def test_configured_player_wins(self, ccbell: Any, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(_player().shutil, "which", lambda name: name)
        monkeypatch.setenv("CCBELL_PLAYER", "ffplay")
        assert ccbell.find_player("linux") == "ffplay"

    def test_none_available(self, ccbell: Any, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(_player().shutil, "which", lambda name: None)
        assert ccbell.find_player("linux") is None


class TestBuildCommand:
    """Test per-player command lines and volume mapping."""

    @pytest.mark.parametrize("player,expected", [
        ("afplay", ["afplay", "-v", "0.50", "/s.wav"]),
        ("mpv", ["mpv", "--no-video", "--no-terminal", "--volume=50", "/s.wav"]),
        ("ffplay", ["ffplay", "-nodisp", "-autoexit", "-loglevel", "quiet", "-volume", "50", "/s.wav"]),
        ("paplay", ["paplay", "--volume=32768", "/s.wav"]),
        ("aplay", ["aplay", "-q", "/s.wav"]),
        ("/opt/bin/custom-player", ["/opt/bin/custom-player", "/s.wav"]),
    ])
    def test_commands(self, ccbell: Any, player: str, expected: list[str]) -> None:
        assert ccbell.build_command(player, "/s.wav", 0.5) == expected


class TestPlay:
    """Test play() error reporting. Never raises."""

    def test_missing_file(self, ccbell: Any, tmp_path: Path) -> None:
        ok, err = ccbell.play(str(tmp_path / "nope.wav"), 0.5)
        assert ok is False
        assert "not found" in err

    def test_unresolved_path(self, ccbell: Any) -> None:
        ok, err = ccbell.play("", 0.5)
        assert ok is False
        assert "unresolved" in err

    def test_no_player(self, ccbell: Any, sounds_dir: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(_player().shutil, "which", lambda name: None)
        ok, err = ccbell.play(str(sounds_dir / "stop.wav"), 0.5)
        assert ok is False
        assert "no audio player" in err

    def test_success(self, ccbell: Any, sounds_dir: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        seen: list[list[str]] = []

        def fake_run(cmd: list[str], **kwargs: Any) -> subprocess.CompletedProcess[bytes]:
            seen.append(cmd)
            return subprocess.CompletedProcess(cmd, 0, b"", b"")

        monkeypatch.setattr(_player().shutil, "which", lambda name: name if name == "mpv" else None)
        monkeypatch.setattr(_player().subprocess, "run", fake_run)
        assert ccbell.play(str(sounds_dir / "stop.wav"), 0.25) == (True, None)
        assert seen[0][0] == "mpv"
        assert "--volume=25" in seen[0]

    def test_nonzero_exit(self, ccbell: Any, sounds_dir: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        def fake_run(cmd: list[str], **kwargs: Any) -> subprocess.CompletedProcess[bytes]:
            return subprocess.CompletedProcess(cmd, 1, b"", b"warming up\nno sink available\n")

        monkeypatch.setattr(_player().shutil, "which", lambda name: name if name == "paplay" else None)
        monkeypatch.setattr(_player().subprocess, "run", fake_run)
        ok, err = ccbell.play(str(sounds_dir / "stop.wav"), 0.5)
        assert ok is False
        assert err == "paplay exited with 1: no sink available"

    def test_timeout(self, ccbell: Any, sounds_dir: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        def fake_run(cmd: list[str], **kwargs: Any) -> subprocess.CompletedProcess[bytes]:
            raise subprocess.TimeoutExpired(cmd, kwargs["timeout"])

        monkeypatch.setattr(_player().shutil, "which", lambda name: name if name == "mpv" else None)
        monkeypatch.setattr(_player().subprocess, "run", fake_run)
        ok, err = ccbell.play(str(sounds_dir / "stop.wav"), 0.5, timeout=2)
        assert ok is False
        assert "timed out after 2s" in err

    def test_dry_run(self, ccbell: Any, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
        monkeypatch.setattr(_player(), "DRY_RUN", True)
        assert ccbell.play("/s/stop.wav", 0.5) == (True, None)
        assert "[dry-run]" in capsys.readouterr().out
