"""
Error taxonomy for the provisioning engine.

Steps never terminate the process. They raise one of these and the
runner decides, per step policy, whether the run continues.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from provision.core.models.change import ChangeRecord
    from provision.core.models.result import CommandResult


class ProvisionError(Exception):
    """Base error for everything the engine raises on purpose."""


class ConfigError(ProvisionError):
    """Raised when the provisioning plan is missing or invalid."""


class UnknownStepError(ConfigError):
    """Raised when a step selection names ids the plan does not declare."""

    def __init__(self, unknown: list[str]):
        self.unknown = unknown
        super().__init__(f"Unknown step id(s): {', '.join(unknown)}")


class UnsupportedPlatform(ProvisionError):
    """Raised when the host does not match what the plan (or a step) needs."""


class LaunchError(ProvisionError):
    """The command could not be started (binary missing, not executable)."""

    def __init__(self, command: str, reason: str):
        self.command = command
        self.reason = reason
        super().__init__(f"Cannot launch '{command}': {reason}")


class NonZeroExit(ProvisionError):
    """The command ran but reported failure."""

    def __init__(self, result: CommandResult, message: str | None = None):
        self.result = result
        super().__init__(
            message or f"'{result.command_line}' exited with code {result.exit_code}"
        )


class CommandTimeout(NonZeroExit):
    """The command did not finish within its timeout."""


class CheckError(ProvisionError):
    """The "already applied?" check itself could not run."""


class StateCorruption(ProvisionError):
    """The state store cannot be read or written. Always fatal to the run."""


class StateLocked(StateCorruption):
    """Another invocation holds the lock for the same state namespace."""


class StepFailed(ProvisionError):
    """A step could not complete.

    ``records`` carries the changes that *did* complete before the
    failure, so they can still be persisted and reverted later.
    """

    def __init__(
        self,
        message: str,
        records: list[ChangeRecord] | None = None,
        result: CommandResult | None = None,
    ):
        self.records = list(records or [])
        self.result = result
        super().__init__(message)


class StepDeclined(ProvisionError):
    """The user answered "no" to a step's confirmation prompt."""
