"""Package manager adapters — pacman, zypper and AUR helpers.

The set of supported managers is closed. One is selected at startup
and passed to steps explicitly through the provisioning context.
"""

from provision.adapters.base import Executor
from provision.adapters.packages.aur import AUR_HELPERS, AurHelper, detect_aur_helper
from provision.adapters.packages.base import PackageManager, PackageManagerKind
from provision.adapters.packages.pacman import Pacman
from provision.adapters.packages.zypper import Zypper

__all__ = [
    "AUR_HELPERS",
    "AurHelper",
    "PackageManager",
    "PackageManagerKind",
    "Pacman",
    "Zypper",
    "create_package_manager",
    "detect_aur_helper",
]


def create_package_manager(
    kind: PackageManagerKind,
    executor: Executor,
    helper: str | None = None,
) -> PackageManager:
    """Instantiate the manager for *kind*."""
    if kind is PackageManagerKind.PACMAN:
        return Pacman(executor)
    if kind is PackageManagerKind.ZYPPER:
        return Zypper(executor)
    if kind is PackageManagerKind.AUR:
        if not helper:
            raise ValueError("An AUR helper binary is required for PackageManagerKind.AUR")
        return AurHelper(executor, helper)
    raise ValueError(f"Unknown package manager kind: {kind!r}")
