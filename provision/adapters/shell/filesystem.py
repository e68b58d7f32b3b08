"""
File operations — read, write, back up and restore configuration files.

Files the current user can write are handled in-process. Files that
need root (``sudo=True``) go through the executor with ``cat``/``tee``/
``cp -a``/``rm -f`` so every privileged mutation is a visible command.

Every modification of an existing file is preceded by a timestamped
backup (``PATH.bak.YYYYmmddHHMMSS``), which is what revert restores.
"""

from __future__ import annotations

import logging
import os
import shutil
import time
from pathlib import Path

from provision.adapters.base import Executor

logger = logging.getLogger(__name__)

BACKUP_TIMESTAMP = "%Y%m%d%H%M%S"


class FileOps:
    """Receipt-free file helpers used by file-editing steps."""

    def __init__(self, executor: Executor):
        self._executor = executor

    def exists(self, path: str, sudo: bool = False) -> bool:
        if sudo:
            return self._executor.execute("test", ["-e", path]).ok
        return Path(path).exists()

    def read(self, path: str, sudo: bool = False) -> str | None:
        """Return the file's text, or None if it does not exist."""
        if sudo:
            if not self.exists(path, sudo=True):
                return None
            return self._executor.execute("cat", [path], sudo=True, strip=False).check().stdout
        target = Path(path)
        if not target.is_file():
            return None
        return target.read_text(encoding="utf-8")

    def write(self, path: str, content: str, sudo: bool = False, mode: str | None = None) -> None:
        """Replace the file's content, creating parent directories."""
        if sudo:
            parent = str(Path(path).parent)
            self._executor.execute("mkdir", ["-p", parent], sudo=True).check()
            self._executor.execute("tee", [path], sudo=True, input=content).check()
            if mode:
                self._executor.execute("chmod", [mode, path], sudo=True).check()
        else:
            target = Path(path)
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding="utf-8")
            if mode:
                os.chmod(target, int(mode, 8))
        logger.debug("Wrote %d bytes to %s", len(content), path)

    def backup(self, path: str, sudo: bool = False) -> str | None:
        """Copy *path* to a timestamped sibling. Returns the backup path.

        Returns None when there is nothing to back up.
        """
        if not self.exists(path, sudo=sudo):
            return None

        base = f"{path}.bak.{time.strftime(BACKUP_TIMESTAMP)}"
        dest = base
        counter = 1
        while self.exists(dest, sudo=sudo):
            dest = f"{base}.{counter}"
            counter += 1

        if sudo:
            self._executor.execute("cp", ["-a", path, dest], sudo=True).check()
        else:
            shutil.copy2(path, dest)
        logger.info("Backed up %s → %s", path, dest)
        return dest

    def restore(self, backup: str, path: str, sudo: bool = False) -> None:
        """Put a backup back in place of *path*."""
        if sudo:
            self._executor.execute("cp", ["-a", backup, path], sudo=True).check()
        else:
            shutil.copy2(backup, path)
        logger.info("Restored %s from %s", path, backup)

    def remove(self, path: str, sudo: bool = False) -> None:
        if sudo:
            self._executor.execute("rm", ["-f", path], sudo=True).check()
        else:
            Path(path).unlink(missing_ok=True)
        logger.info("Removed %s", path)
