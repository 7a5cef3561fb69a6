"""Shared fixtures for ccbell tests."""
from __future__ import annotations

import importlib
import json
import sys
from pathlib import Path
from types import ModuleType
from typing import Any

import pytest

_ENV_KEYS = (
    "CCBELL_ENABLED", "CCBELL_DEBUG", "CCBELL_PROFILE", "CCBELL_PLAYER",
    "CCBELL_SOUNDS_DIR", "CLAUDE_PLUGIN_ROOT",
)


@pytest.fixture()
def _add_project_root(monkeypatch: pytest.MonkeyPatch) -> None:
    """Add the project root to sys.path so we can import ccbell."""
    root = str(Path(__file__).resolve().parent.parent)
    if root not in sys.path:
        monkeypatch.syspath_prepend(root)


@pytest.fixture()
def ccbell(_add_project_root: None, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Any:
    """Import ccbell with a sandboxed state directory and config file."""
    import ccbell as _ccbell

    # __init__.py re-exports shadow some submodule names; use sys.modules.
    def _submod(name: str) -> ModuleType:
        importlib.import_module(f"ccbell.{name}")
        return sys.modules[f"ccbell.{name}"]

    _config = _submod("config")
    all_mods = [_config] + [
        _submod(name) for name in (
            "_log", "state", "player", "resolver", "sequencer", "control", "cli", "__main__",
        )
    ]

    state_dir = tmp_path / "ccbell-state"
    state_dir.mkdir()

    patches: dict[str, object] = {
        "STATE_DIR": state_dir,
        "STATE_FILE": state_dir / "state.json",
        "CONFIG_PATH": tmp_path / "ccbell.config.json",
        "PLUGIN_CACHE": tmp_path / "plugins" / "cache",
        "DRY_RUN": False,
    }
    for attr, value in patches.items():
        for mod in all_mods:
            if hasattr(mod, attr):
                monkeypatch.setattr(mod, attr, value)
        if hasattr(_ccbell, attr):
            monkeypatch.setattr(_ccbell, attr, value)

    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)

    # Clear caches
    monkeypatch.setattr(_config, "_ccbell_config", None)

    yield _ccbell

    sys.modules["ccbell._log"].disable_debug_logging()


@pytest.fixture()
def write_config(ccbell: Any) -> Any:
    """Write the global config file and reset the per-invocation cache."""
    _config = sys.modules["ccbell.config"]

    def _write(data: dict[str, Any]) -> Path:
        _config.CONFIG_PATH.write_text(json.dumps(data))
        _config._ccbell_config = None
        return _config.CONFIG_PATH

    return _write


@pytest.fixture()
def sounds_dir(ccbell: Any, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Bundled sound directory with one file per built-in kind."""
    d = tmp_path / "sounds"
    d.mkdir()
    for kind in ccbell.BUILTIN_KINDS:
        (d / f"{kind}.wav").write_bytes(b"RIFF")
    monkeypatch.setenv("CCBELL_SOUNDS_DIR", str(d))
    return d


@pytest.fixture()
def played(ccbell: Any, monkeypatch: pytest.MonkeyPatch) -> list[tuple[str, float]]:
    """Replace player.play with a call recorder."""
    calls: list[tuple[str, float]] = []

    def fake_play(sound_path: str, volume: float, timeout: float = 10) -> tuple[bool, str | None]:  # noqa: ARG001
        calls.append((sound_path, volume))
        return True, None

    monkeypatch.setattr(sys.modules["ccbell.player"], "play", fake_play)
    return calls


class FakeClock:
    """Manually advanced wall clock."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def state_path(ccbell: Any) -> Path:
    return sys.modules["ccbell.state"].STATE_FILE
