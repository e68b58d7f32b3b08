"""
systemd adapter — enable/start/stop/disable with status queries.
"""

from __future__ import annotations

import logging

from provision.adapters.base import Executor
from provision.core.models.result import CommandResult

logger = logging.getLogger(__name__)


def unit_name(unit: str) -> str:
    """Normalize a bare name to a ``.service`` unit."""
    return unit if "." in unit else f"{unit}.service"


class SystemdServices:
    """Drive ``systemctl`` for system units (sudo) or user units (``--user``)."""

    def __init__(self, executor: Executor):
        self._executor = executor

    def _systemctl(
        self,
        args: list[str],
        user: bool = False,
        mutate: bool = False,
        timeout: float | None = None,
    ) -> CommandResult:
        argv = ["--user", *args] if user else args
        return self._executor.execute(
            "systemctl", argv, timeout, sudo=mutate and not user
        )

    def exists(self, unit: str, user: bool = False, timeout: float | None = None) -> bool:
        """Whether the unit file is known to systemd."""
        result = self._systemctl(
            ["list-unit-files", "--no-legend", unit_name(unit)], user=user, timeout=timeout
        )
        return result.ok and bool(result.stdout.strip())

    def is_enabled(self, unit: str, user: bool = False, timeout: float | None = None) -> bool:
        return self._systemctl(
            ["is-enabled", "--quiet", unit_name(unit)], user=user, timeout=timeout
        ).ok

    def is_active(self, unit: str, user: bool = False, timeout: float | None = None) -> bool:
        return self._systemctl(
            ["is-active", "--quiet", unit_name(unit)], user=user, timeout=timeout
        ).ok

    def enable(self, unit: str, user: bool = False, timeout: float | None = None) -> CommandResult:
        return self._systemctl(["enable", unit_name(unit)], user=user, mutate=True, timeout=timeout)

    def disable(self, unit: str, user: bool = False, timeout: float | None = None) -> CommandResult:
        return self._systemctl(["disable", unit_name(unit)], user=user, mutate=True, timeout=timeout)

    def start(self, unit: str, user: bool = False, timeout: float | None = None) -> CommandResult:
        return self._systemctl(["start", unit_name(unit)], user=user, mutate=True, timeout=timeout)

    def stop(self, unit: str, user: bool = False, timeout: float | None = None) -> CommandResult:
        return self._systemctl(["stop", unit_name(unit)], user=user, mutate=True, timeout=timeout)

    def daemon_reload(self, user: bool = False, timeout: float | None = None) -> CommandResult:
        return self._systemctl(["daemon-reload"], user=user, mutate=True, timeout=timeout)
