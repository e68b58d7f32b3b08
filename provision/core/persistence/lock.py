"""
State lock — one invocation per state namespace at a time.

An exclusive, non-blocking ``flock`` on ``<namespace>/.lock``. The lock
is released when the file handle closes, so a crashed process never
leaves a stale lock behind.
"""

from __future__ import annotations

import fcntl
import logging
import os
from pathlib import Path
from typing import IO

from provision.core.errors import StateCorruption, StateLocked

logger = logging.getLogger(__name__)


class StateLock:
    """Context manager around an exclusive flock."""

    def __init__(self, path: Path):
        self._path = path
        self._fh: IO[str] | None = None

    @property
    def path(self) -> Path:
        return self._path

    @property
    def held(self) -> bool:
        return self._fh is not None

    def acquire(self) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fh = open(self._path, "a+", encoding="utf-8")
        except OSError as e:
            raise StateCorruption(f"Cannot open state lock {self._path}: {e}") from e
        try:
            fcntl.flock(fh.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except OSError as e:
            fh.close()
            raise StateLocked(
                f"Another provisioning run holds {self._path}; wait for it to finish"
            ) from e
        fh.seek(0)
        fh.truncate()
        fh.write(f"pid={os.getpid()}\n")
        fh.flush()
        self._fh = fh
        logger.debug("Acquired state lock %s", self._path)

    def release(self) -> None:
        if self._fh is None:
            return
        fcntl.flock(self._fh.fileno(), fcntl.LOCK_UN)
        self._fh.close()
        self._fh = None
        logger.debug("Released state lock %s", self._path)

    def __enter__(self) -> StateLock:
        self.acquire()
        return self

    def __exit__(self, *exc: object) -> None:
        self.release()
