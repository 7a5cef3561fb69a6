"""Logging: stderr warnings plus an opt-in debug channel."""
from __future__ import annotations

import logging
import logging.handlers
import sys
from pathlib import Path

_debug_logger: logging.Logger | None = None
_debug_enabled = False


def setup_debug_logging(state_dir: Path) -> None:
    """Enable the debug channel with a rotating file handler under state_dir."""
    global _debug_logger, _debug_enabled
    _debug_enabled = True
    if _debug_logger is not None:
        return
    try:
        state_dir.mkdir(parents=True, exist_ok=True)
        handler = logging.handlers.RotatingFileHandler(
            state_dir / "ccbell.log", maxBytes=1024 * 1024, backupCount=2,
        )
    except OSError as e:
        print(f"[ccbell] Debug log unavailable: {e}", file=sys.stderr)
        return
    handler.setFormatter(logging.Formatter("%(asctime)s [%(process)d] %(message)s", datefmt="%Y-%m-%d %H:%M:%S"))
    _debug_logger = logging.getLogger("ccbell")
    _debug_logger.setLevel(logging.DEBUG)
    _debug_logger.addHandler(handler)


def disable_debug_logging() -> None:
    """Turn the debug channel off and detach its file handler."""
    global _debug_logger, _debug_enabled
    _debug_enabled = False
    if _debug_logger is not None:
        for handler in list(_debug_logger.handlers):
            _debug_logger.removeHandler(handler)
            handler.close()
    _debug_logger = None


def log(msg: str) -> None:
    """Log a warning to stderr (and the debug file when enabled)."""
    if _debug_logger:
        _debug_logger.warning(msg)
    print(f"[ccbell] {msg}", file=sys.stderr)


def debug(msg: str) -> None:
    """Diagnostic message; silent unless debug logging is enabled."""
    if not _debug_enabled:
        return
    if _debug_logger:
        _debug_logger.debug(msg)
    print(f"[ccbell] {msg}", file=sys.stderr)
