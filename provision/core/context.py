"""
Provisioning context — everything a step needs, passed explicitly.

One context is built per invocation by the use case layer and handed
to every step's check/apply/revert. There is no module-level state:
the executor, platform facts, selected package manager, prompts and
resolved variables all travel in this object.
"""

from __future__ import annotations

import getpass
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from provision.adapters.base import Executor
from provision.adapters.packages import PackageManager
from provision.adapters.services.systemd import SystemdServices
from provision.adapters.shell.filesystem import FileOps
from provision.core.errors import UnsupportedPlatform
from provision.core.models.change import ChangeRecord
from provision.core.models.platform import PlatformInfo
from provision.core.services.prompts import Prompter


@dataclass
class ProvisionContext:
    """Explicit collaborators for steps."""

    executor: Executor
    platform: PlatformInfo = field(default_factory=PlatformInfo)
    package_manager: PackageManager | None = None
    aur: PackageManager | None = None
    prompter: Prompter = field(default_factory=lambda: Prompter(interactive=False))
    variables: dict[str, str] = field(default_factory=dict)
    plan_dir: Path = field(default_factory=Path.cwd)
    dry_run: bool = False
    user: str = field(default_factory=getpass.getuser)
    logger: logging.Logger = field(default_factory=lambda: logging.getLogger("provision.steps"))
    recorder: Callable[[ChangeRecord], None] | None = None

    services: SystemdServices = field(init=False)
    files: FileOps = field(init=False)

    def __post_init__(self) -> None:
        self.services = SystemdServices(self.executor)
        self.files = FileOps(self.executor)

    @property
    def packages(self) -> PackageManager:
        """The selected package manager (raises if the host has none)."""
        if self.package_manager is None:
            raise UnsupportedPlatform(
                f"No supported package manager on {self.platform.os_id}"
            )
        return self.package_manager

    def record(self, change: ChangeRecord) -> ChangeRecord:
        """Persist *change* right away (when a runner is attached) and return it."""
        if self.recorder is not None:
            self.recorder(change)
        return change

    @property
    def assume_yes(self) -> bool:
        return self.prompter.assume_yes
