"""
Logging configuration — one call at CLI startup.

Every module does ``logger = logging.getLogger(__name__)`` and inherits
what is configured here. Steps log under ``provision.steps``.

Console level precedence:
    --debug  >  -v  >  -q  >  PROVISION_LOG_LEVEL  >  WARNING

A log file is written when PROVISION_LOG_FILE is set. It always gets
full detail at PROVISION_LOG_FILE_LEVEL (default: the console level) and
rotates at PROVISION_LOG_MAX_SIZE bytes, keeping five old copies.
"""

from __future__ import annotations

import logging
import logging.handlers
import os
import sys
from dataclasses import dataclass
from pathlib import Path

# ── Formats ─────────────────────────────────────────────────────

_CONSOLE_FORMATS: dict[int, tuple[str, str | None]] = {
    logging.DEBUG: ("%(asctime)s %(levelname)-5s %(name)s:%(lineno)d — %(message)s", "%H:%M:%S"),
    logging.INFO: ("%(asctime)s [%(name)s] %(message)s", "%H:%M:%S"),
}
_CONSOLE_DEFAULT = ("%(levelname)s: %(message)s", None)

_FILE_FORMAT = "%(asctime)s %(levelname)-5s %(process)d %(name)s:%(lineno)d — %(message)s"
_FILE_DATEFMT = "%Y-%m-%d %H:%M:%S"

DEFAULT_LOG_MAX_SIZE = 1_048_576
_LOG_BACKUPS = 5


@dataclass
class LogSettings:
    """Logging knobs read from the environment."""

    level: str = "WARNING"
    log_file: str | None = None
    log_file_level: str | None = None
    log_max_size: int = DEFAULT_LOG_MAX_SIZE

    @classmethod
    def from_env(cls) -> LogSettings:
        max_size = os.environ.get("PROVISION_LOG_MAX_SIZE", "")
        return cls(
            level=os.environ.get("PROVISION_LOG_LEVEL", "WARNING"),
            log_file=os.environ.get("PROVISION_LOG_FILE") or None,
            log_file_level=os.environ.get("PROVISION_LOG_FILE_LEVEL") or None,
            log_max_size=int(max_size) if max_size.isdigit() else DEFAULT_LOG_MAX_SIZE,
        )


def console_level(debug: bool, verbose: bool, quiet: bool, fallback: str = "WARNING") -> str:
    """Resolve the console level from CLI flags."""
    if debug:
        return "DEBUG"
    if verbose:
        return "INFO"
    if quiet:
        return "ERROR"
    return fallback


def setup_logging(
    level: str = "WARNING",
    log_file: str | None = None,
    log_file_level: str | None = None,
    log_max_size: int = DEFAULT_LOG_MAX_SIZE,
) -> None:
    """Configure the root logger for the whole process.

    Safe to call more than once: previous handlers are replaced.
    """
    console = _parse_level(level)
    handlers: list[logging.Handler] = [_console_handler(console)]
    effective = console

    if log_file:
        file_level = _parse_level(log_file_level) if log_file_level else console
        handlers.append(_file_handler(log_file, file_level, log_max_size))
        effective = min(effective, file_level)

    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        if isinstance(handler, logging.FileHandler):
            handler.close()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(effective)

    logging.raiseExceptions = False


def _console_handler(level: int) -> logging.Handler:
    fmt, datefmt = _CONSOLE_DEFAULT
    for threshold in sorted(_CONSOLE_FORMATS):
        if level <= threshold:
            fmt, datefmt = _CONSOLE_FORMATS[threshold]
            break
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt, datefmt=datefmt))
    return handler


def _file_handler(path: str, level: int, max_size: int) -> logging.Handler:
    target = Path(path).expanduser()
    target.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.handlers.RotatingFileHandler(
        target,
        maxBytes=max_size,
        backupCount=_LOG_BACKUPS,
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt=_FILE_DATEFMT))
    return handler


def _parse_level(level: str | None) -> int:
    if not level:
        return logging.WARNING
    numeric = getattr(logging, level.upper(), None)
    return numeric if isinstance(numeric, int) else logging.WARNING
