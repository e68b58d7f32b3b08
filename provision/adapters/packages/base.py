"""
Package manager base — "install if missing" over a native tool.
"""

from __future__ import annotations

import enum
from abc import ABC, abstractmethod

from provision.adapters.base import Executor
from provision.core.models.result import CommandResult


class PackageManagerKind(str, enum.Enum):
    """The closed set of package managers the engine can drive."""

    PACMAN = "pacman"
    ZYPPER = "zypper"
    AUR = "aur"


class PackageManager(ABC):
    """Query, install and remove packages.

    Query methods return booleans. Mutating methods return the
    CommandResult and leave it to the caller to decide what a failure
    means.
    """

    kind: PackageManagerKind

    def __init__(self, executor: Executor):
        self._executor = executor

    @property
    def name(self) -> str:
        return self.kind.value

    @abstractmethod
    def is_installed(self, package: str, timeout: float | None = None) -> bool:
        """Whether *package* is currently installed."""

    @abstractmethod
    def is_available(self, package: str, timeout: float | None = None) -> bool:
        """Whether *package* can be installed from this manager's sources."""

    @abstractmethod
    def install(self, package: str, timeout: float | None = None) -> CommandResult:
        """Install *package* (no-op if it is already there)."""

    @abstractmethod
    def remove(self, packages: list[str], timeout: float | None = None) -> CommandResult:
        """Remove *packages* in one transaction."""

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} kind={self.kind.value!r}>"
