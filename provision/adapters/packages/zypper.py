"""
zypper adapter — openSUSE Tumbleweed / Leap.
"""

from __future__ import annotations

from provision.adapters.packages.base import PackageManager, PackageManagerKind
from provision.core.models.result import CommandResult


class Zypper(PackageManager):
    """openSUSE repositories through ``zypper`` (queries through ``rpm``)."""

    kind = PackageManagerKind.ZYPPER

    def is_installed(self, package: str, timeout: float | None = None) -> bool:
        return self._executor.execute("rpm", ["-q", package], timeout).ok

    def is_available(self, package: str, timeout: float | None = None) -> bool:
        # zypper exits 104 when a search finds nothing
        return self._executor.execute(
            "zypper",
            ["--non-interactive", "search", "--match-exact", package],
            timeout,
        ).ok

    def install(self, package: str, timeout: float | None = None) -> CommandResult:
        return self._executor.execute(
            "zypper", ["--non-interactive", "install", package], timeout, sudo=True
        )

    def remove(self, packages: list[str], timeout: float | None = None) -> CommandResult:
        return self._executor.execute(
            "zypper",
            ["--non-interactive", "remove", "--clean-deps", *packages],
            timeout,
            sudo=True,
        )
