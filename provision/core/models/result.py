"""
CommandResult and ExecutionResult — what commands and steps return.

The executor hands back a CommandResult for every process it ran; the
runner hands back an ExecutionResult for every step it looked at.
Failures are captured in the result rather than raised.
"""

from __future__ import annotations

import shlex
from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from provision.core.errors import NonZeroExit

StepOutcome = Literal[
    "applied",
    "already-satisfied",
    "failed",
    "skipped",
    "would-apply",
    "reverted",
]


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class CommandResult(BaseModel):
    """Outcome of one external process."""

    command: list[str]
    exit_code: int
    stdout: str = ""
    stderr: str = ""
    duration_ms: int = 0

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    @property
    def command_line(self) -> str:
        return shlex.join(self.command)

    @property
    def output(self) -> str:
        """Combined stdout and stderr."""
        return "\n".join(part for part in (self.stdout, self.stderr) if part)

    def check(self) -> CommandResult:
        """Return self, or raise NonZeroExit if the command failed."""
        if not self.ok:
            raise NonZeroExit(self)
        return self


class ExecutionResult(BaseModel):
    """Result of running (or checking, or reverting) one step."""

    step_id: str
    label: str = ""
    outcome: StepOutcome

    exit_code: int | None = None
    stdout: str = ""
    stderr: str = ""
    error: str | None = None
    changes: int = 0

    started_at: str = Field(default_factory=_now_iso)
    ended_at: str = Field(default_factory=_now_iso)
    duration_ms: int = 0

    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.outcome != "failed"

    @property
    def failed(self) -> bool:
        return self.outcome == "failed"

    def with_command(self, result: CommandResult | None) -> ExecutionResult:
        """Copy exit code and captured output from a command result."""
        if result is not None:
            self.exit_code = result.exit_code
            self.stdout = result.stdout
            self.stderr = result.stderr
        return self
