"""
pacman adapter — Arch Linux and derivatives.
"""

from __future__ import annotations

from provision.adapters.packages.base import PackageManager, PackageManagerKind
from provision.core.models.result import CommandResult


class Pacman(PackageManager):
    """Official repositories through ``pacman``."""

    kind = PackageManagerKind.PACMAN

    def is_installed(self, package: str, timeout: float | None = None) -> bool:
        return self._executor.execute("pacman", ["-Q", package], timeout).ok

    def is_available(self, package: str, timeout: float | None = None) -> bool:
        return self._executor.execute("pacman", ["-Si", package], timeout).ok

    def install(self, package: str, timeout: float | None = None) -> CommandResult:
        return self._executor.execute(
            "pacman", ["-S", "--needed", "--noconfirm", package], timeout, sudo=True
        )

    def remove(self, packages: list[str], timeout: float | None = None) -> CommandResult:
        return self._executor.execute(
            "pacman", ["-Rns", "--noconfirm", *packages], timeout, sudo=True
        )
