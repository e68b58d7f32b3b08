"""
State store — append-only ledger of ChangeRecords, keyed by step id.

Stored as NDJSON in ``<state_dir>/<plan name>/changes.ndjson``. The
file is never rewritten: ``record`` appends a line and fsyncs before
returning, ``clear`` appends a tombstone. The live view is rebuilt by
replaying the file, so a crash can only ever lose the line that was
being written when it happened.

A torn final line (no trailing newline, invalid JSON) is the signature
of exactly that crash and is skipped. Anything else that cannot be
read raises StateCorruption, because uninstall safety depends on it.
"""

from __future__ import annotations

import json
import logging
import os
from datetime import UTC, datetime
from pathlib import Path

from pydantic import ValidationError

from provision.core.errors import StateCorruption
from provision.core.models.change import ChangeRecord

logger = logging.getLogger(__name__)

DEFAULT_STATE_ROOT = Path("~/.local/state/provision")
CHANGES_FILE = "changes.ndjson"
AUDIT_FILE = "audit.ndjson"
LOCK_FILE = ".lock"


def default_state_root(configured: str | None = None) -> Path:
    """Resolve the state root directory.

    Precedence: ``PROVISION_STATE_DIR`` env var > plan ``state_dir`` >
    ``$XDG_STATE_HOME/provision`` > ``~/.local/state/provision``.
    """
    env = os.environ.get("PROVISION_STATE_DIR")
    if env:
        return Path(env).expanduser()
    if configured:
        return Path(configured).expanduser()
    xdg = os.environ.get("XDG_STATE_HOME")
    if xdg:
        return Path(xdg) / "provision"
    return DEFAULT_STATE_ROOT.expanduser()


def namespace_dir(state_root: Path, plan_name: str) -> Path:
    """Per-plan directory inside the state root."""
    return state_root / plan_name


class StateStore:
    """Durable record of what each step changed."""

    def __init__(self, path: Path):
        self._path = path

    @classmethod
    def for_plan(cls, state_root: Path, plan_name: str) -> StateStore:
        return cls(namespace_dir(state_root, plan_name) / CHANGES_FILE)

    @property
    def path(self) -> Path:
        return self._path

    # ── Reads ───────────────────────────────────────────────────

    def _replay(self) -> dict[str, list[ChangeRecord]]:
        if not self._path.is_file():
            return {}

        try:
            raw = self._path.read_text(encoding="utf-8")
        except OSError as e:
            raise StateCorruption(f"Cannot read state file {self._path}: {e}") from e

        live: dict[str, list[ChangeRecord]] = {}
        lines = raw.split("\n")
        torn_tail = not raw.endswith("\n")

        for line_num, line in enumerate(lines, start=1):
            if not line.strip():
                continue
            try:
                event = json.loads(line)
                op = event["op"]
                step_id = event["step_id"]
                if op == "record":
                    change = ChangeRecord.model_validate(event["change"])
                    live.setdefault(step_id, []).append(change)
                elif op == "clear":
                    live.pop(step_id, None)
                else:
                    raise ValueError(f"unknown op {op!r}")
            except (json.JSONDecodeError, KeyError, TypeError, ValueError, ValidationError) as e:
                if torn_tail and line_num == len(lines):
                    logger.warning(
                        "Ignoring incomplete last line in %s (interrupted write)", self._path
                    )
                    continue
                raise StateCorruption(
                    f"Corrupt state file {self._path} at line {line_num}: {e}"
                ) from e
        return live

    def has_record(self, step_id: str) -> bool:
        """Whether *step_id* has live (un-cleared) records."""
        return bool(self._replay().get(step_id))

    def records_for(self, step_id: str) -> list[ChangeRecord]:
        """Live records for *step_id*, oldest first."""
        return list(self._replay().get(step_id, []))

    def all_records(self) -> dict[str, list[ChangeRecord]]:
        """Live records for every step, in first-recorded order."""
        return self._replay()

    # ── Writes ──────────────────────────────────────────────────

    def _append(self, event: dict) -> None:
        line = json.dumps(event, ensure_ascii=False) + "\n"
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("a", encoding="utf-8") as f:
                f.write(line)
                f.flush()
                os.fsync(f.fileno())
        except OSError as e:
            raise StateCorruption(f"Cannot write state file {self._path}: {e}") from e

    def record(self, step_id: str, change: ChangeRecord) -> None:
        """Append one change for *step_id*. Durable on return."""
        if change.step_id != step_id:
            change = change.model_copy(update={"step_id": step_id})
        self._append({
            "op": "record",
            "step_id": step_id,
            "change": change.model_dump(mode="json"),
        })
        logger.debug("Recorded %s for %s: %s", change.kind, step_id, change.subject)

    def clear(self, step_id: str) -> None:
        """Forget every record of *step_id* (after a successful revert)."""
        self._append({
            "op": "clear",
            "step_id": step_id,
            "at": datetime.now(UTC).isoformat(),
        })
        logger.debug("Cleared records for %s", step_id)
