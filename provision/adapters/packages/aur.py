"""
AUR helper adapter — pamac, paru or yay.

Helpers build as the invoking user and escalate on their own, so they
are never run under sudo. Installed state is always verified through
pacman, since helpers sometimes exit 0 without installing anything.
"""

from __future__ import annotations

import logging

from provision.adapters.base import Executor
from provision.adapters.packages.base import PackageManager, PackageManagerKind
from provision.core.models.result import CommandResult

logger = logging.getLogger(__name__)

# Detection order
AUR_HELPERS = ("pamac", "paru", "yay")


def detect_aur_helper(executor: Executor, preference: str = "auto") -> str | None:
    """Pick the AUR helper to use.

    Args:
        executor: Used to look binaries up on PATH.
        preference: ``auto`` (first found of pamac, paru, yay), ``none``,
            or a specific helper name.

    Returns:
        The helper binary name, or None when no helper is usable.
    """
    if preference == "none":
        return None
    candidates = AUR_HELPERS if preference == "auto" else (preference,)
    for helper in candidates:
        if executor.which(helper):
            logger.debug("AUR helper selected: %s", helper)
            return helper
    logger.debug("No AUR helper found (wanted: %s)", preference)
    return None


class AurHelper(PackageManager):
    """AUR packages through a helper binary."""

    kind = PackageManagerKind.AUR

    def __init__(self, executor: Executor, helper: str):
        super().__init__(executor)
        if helper not in AUR_HELPERS:
            raise ValueError(f"Unsupported AUR helper: {helper}")
        self.helper = helper

    @property
    def name(self) -> str:
        return self.helper

    def is_installed(self, package: str, timeout: float | None = None) -> bool:
        return self._executor.execute("pacman", ["-Q", package], timeout).ok

    def is_available(self, package: str, timeout: float | None = None) -> bool:
        if self.helper == "pamac":
            return self._executor.execute("pamac", ["info", "--aur", package], timeout).ok
        return self._executor.execute(self.helper, ["-Si", package], timeout).ok

    def install(self, package: str, timeout: float | None = None) -> CommandResult:
        if self.helper == "pamac":
            args = ["install", "--no-confirm", "--needed", package]
        else:
            args = ["-S", "--noconfirm", "--needed", package]
        return self._executor.execute(self.helper, args, timeout)

    def remove(self, packages: list[str], timeout: float | None = None) -> CommandResult:
        return self._executor.execute(
            "pacman", ["-Rns", "--noconfirm", *packages], timeout, sudo=True
        )
