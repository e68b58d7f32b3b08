"""
Run history — one NDJSON line per run or uninstall.

Lives next to the change ledger in ``<state_dir>/<plan>/audit.ndjson``.
Dry runs leave no trace. Lines are only ever appended; unreadable ones
are skipped with a warning so one bad write never hides the rest.
"""

from __future__ import annotations

import json
import logging
from collections import deque
from collections.abc import Iterator
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)


class AuditEntry(BaseModel):
    """Summary of one invocation."""

    timestamp: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())
    run_id: str = ""
    plan: str = ""
    mode: str = ""                 # run, uninstall
    status: str = ""               # ok, partial, failed

    steps_total: int = 0
    applied: int = 0
    satisfied: int = 0
    failed: int = 0
    skipped: int = 0
    reverted: int = 0
    duration_ms: int = 0

    outcomes: dict[str, str] = Field(default_factory=dict)
    not_attempted: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)

    # platform, user, --only selection...
    context: dict[str, Any] = Field(default_factory=dict)


class AuditWriter:
    """Appends to and reads back a plan's run history."""

    def __init__(self, path: Path):
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def write(self, entry: AuditEntry) -> None:
        """Append *entry*. A failed write is logged, never raised."""
        line = json.dumps(entry.model_dump(mode="json"), ensure_ascii=False)
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("a", encoding="utf-8") as f:
                f.write(line + "\n")
        except OSError as e:
            logger.error("Could not append to run history %s: %s", self._path, e)
            return
        logger.debug("History entry written: %s %s (%s)", entry.mode, entry.run_id, entry.status)

    def _lines(self) -> Iterator[tuple[int, str]]:
        if not self._path.is_file():
            return
        try:
            with self._path.open("r", encoding="utf-8") as f:
                for line_num, line in enumerate(f, start=1):
                    if line.strip():
                        yield line_num, line
        except OSError as e:
            logger.error("Could not read run history %s: %s", self._path, e)

    @staticmethod
    def _parse(line_num: int, line: str) -> AuditEntry | None:
        try:
            return AuditEntry.model_validate(json.loads(line))
        except (json.JSONDecodeError, ValidationError) as e:
            logger.warning("Skipping unreadable history line %d: %s", line_num, e)
            return None

    def read_all(self) -> list[AuditEntry]:
        """Every readable entry, oldest first."""
        return [e for e in (self._parse(n, line) for n, line in self._lines()) if e is not None]

    def read_recent(self, n: int = 20) -> list[AuditEntry]:
        """The last *n* readable entries, oldest first."""
        if n <= 0:
            return []
        tail: deque[AuditEntry] = deque(maxlen=n)
        for line_num, line in self._lines():
            entry = self._parse(line_num, line)
            if entry is not None:
                tail.append(entry)
        return list(tail)

    def entry_count(self) -> int:
        return sum(1 for _ in self._lines())
