"""
ChangeRecord — the durable note of one mutation a step made.

Records are what make ``provision uninstall`` safe: only what a step
recorded is ever reverted, so anything that existed before
provisioning is left alone.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

ChangeKind = Literal[
    "package-installed",
    "file-modified",
    "service-enabled",
    "group-membership-added",
    "command-run",
]


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class ChangeRecord(BaseModel):
    """One reversible change.

    ``data`` holds whatever the owning step needs to undo the change:
    a package name, a file path and its backup, a unit and its prior
    state, a user and a group.
    """

    step_id: str = ""
    kind: ChangeKind
    data: dict[str, Any] = Field(default_factory=dict)
    recorded_at: str = Field(default_factory=_now_iso)

    @property
    def subject(self) -> str:
        """Short human label for what was changed."""
        for key in ("package", "path", "unit", "group", "command"):
            if key in self.data:
                return str(self.data[key])
        return self.kind
