"""
Shared test fixtures and configuration.

``FakeHost`` scripts a MockExecutor so that pacman, systemctl, id,
getent and gpasswd behave like a tiny in-memory Arch machine.
"""

from __future__ import annotations

import textwrap
from pathlib import Path

import pytest

from provision.adapters.mock import MockExecutor
from provision.adapters.packages import AurHelper, Pacman
from provision.core.context import ProvisionContext
from provision.core.models.platform import PlatformInfo
from provision.core.persistence.state_store import StateStore
from provision.core.services.prompts import Prompter

ARCH = PlatformInfo(os_id="arch", os_name="Arch Linux", os_version_id="rolling", arch="x86_64")


class FakeHost:
    """In-memory package database, unit table and group table."""

    def __init__(self, user: str = "alice"):
        self.user = user
        self.executor = MockExecutor()
        self.installed: set[str] = set()
        self.repo: set[str] | None = None       # None: every package is in the repos
        self.aur: set[str] = set()
        self.broken: set[str] = set()           # installs of these fail
        self.units: dict[str, dict[str, bool]] = {}
        self.groups: dict[str, set[str]] = {}

        ex = self.executor
        ex.set_handler("pacman -Q", lambda argv: 0 if argv[2] in self.installed else 1)
        ex.set_handler("pacman -Si", lambda argv: 0 if self._in_repo(argv[2]) else 1)
        ex.set_handler("pacman -S", self._install)
        ex.set_handler("pacman -Rns", self._remove)
        ex.set_handler("yay -Si", lambda argv: 0 if argv[2] in self.aur else 1)
        ex.set_handler("yay -S", self._install)

        ex.set_handler("systemctl list-unit-files", self._list_units)
        ex.set_handler("systemctl is-enabled", lambda argv: self._unit_flag(argv, "enabled"))
        ex.set_handler("systemctl is-active", lambda argv: self._unit_flag(argv, "active"))
        ex.set_handler("systemctl enable", lambda argv: self._set_unit(argv, "enabled", True))
        ex.set_handler("systemctl disable", lambda argv: self._set_unit(argv, "enabled", False))
        ex.set_handler("systemctl start", lambda argv: self._set_unit(argv, "active", True))
        ex.set_handler("systemctl stop", lambda argv: self._set_unit(argv, "active", False))

        ex.set_handler("id -nG", self._id_groups)
        ex.set_handler("getent group", lambda argv: 0 if argv[2] in self.groups else 2)
        ex.set_handler("gpasswd -a", self._gpasswd_add)
        ex.set_handler("gpasswd -d", self._gpasswd_del)

    # ── packages ────────────────────────────────────────────────

    def _in_repo(self, package: str) -> bool:
        return self.repo is None or package in self.repo

    def _install(self, argv: list[str]) -> tuple[int, str]:
        package = argv[-1]
        if package in self.broken:
            return 1, ""
        if argv[0] == "pacman" and not self._in_repo(package):
            return 1, ""
        self.installed.add(package)
        return 0, f"installed {package}"

    def _remove(self, argv: list[str]) -> int:
        for package in argv[3:]:
            self.installed.discard(package)
        return 0

    # ── units ───────────────────────────────────────────────────

    def add_unit(self, name: str, enabled: bool = False, active: bool = False) -> None:
        self.units[f"{name}.service"] = {"enabled": enabled, "active": active}

    def _list_units(self, argv: list[str]) -> tuple[int, str]:
        unit = argv[-1]
        if unit in self.units:
            return 0, f"{unit} disabled enabled"
        return 0, ""

    def _unit_flag(self, argv: list[str], flag: str) -> int:
        unit = self.units.get(argv[-1])
        return 0 if unit and unit[flag] else 1

    def _set_unit(self, argv: list[str], flag: str, value: bool) -> int:
        unit = self.units.get(argv[-1])
        if unit is None:
            return 5
        unit[flag] = value
        return 0

    # ── groups ──────────────────────────────────────────────────

    def _id_groups(self, argv: list[str]) -> tuple[int, str]:
        user = argv[-1]
        names = [user] + sorted(g for g, members in self.groups.items() if user in members)
        return 0, " ".join(names)

    def _gpasswd_add(self, argv: list[str]) -> int:
        user, group = argv[2], argv[3]
        if group not in self.groups:
            return 3
        self.groups[group].add(user)
        return 0

    def _gpasswd_del(self, argv: list[str]) -> int:
        user, group = argv[2], argv[3]
        if user not in self.groups.get(group, set()):
            return 3
        self.groups[group].discard(user)
        return 0


@pytest.fixture
def host() -> FakeHost:
    return FakeHost()


@pytest.fixture
def ctx(host: FakeHost, tmp_path: Path) -> ProvisionContext:
    """Non-interactive context wired to the fake host."""
    return ProvisionContext(
        executor=host.executor,
        platform=ARCH,
        package_manager=Pacman(host.executor),
        aur=AurHelper(host.executor, "yay"),
        prompter=Prompter(interactive=False),
        plan_dir=tmp_path,
        user=host.user,
    )


@pytest.fixture
def store(tmp_path: Path) -> StateStore:
    return StateStore(tmp_path / "state" / "demo" / "changes.ndjson")


@pytest.fixture
def tmp_state_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point PROVISION_STATE_DIR at a temporary directory."""
    state_dir = tmp_path / "state"
    state_dir.mkdir()
    monkeypatch.setenv("PROVISION_STATE_DIR", str(state_dir))
    return state_dir


@pytest.fixture
def write_plan(tmp_path: Path):
    """Write a provision.yml into tmp_path and return its path."""

    def _write(content: str, name: str = "provision.yml") -> Path:
        path = tmp_path / name
        path.write_text(textwrap.dedent(content))
        return path

    return _write
