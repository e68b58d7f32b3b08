"""
Platform detection — distro, architecture and runtime environment.

Reads ``/etc/os-release`` and a handful of kernel files once at
startup; the result is passed around explicitly inside the
provisioning context rather than exported as globals.
"""

from __future__ import annotations

import logging
import os
import platform as _platform
import shlex
from pathlib import Path

from provision.adapters.base import Executor
from provision.adapters.packages import PackageManagerKind
from provision.core.errors import LaunchError, UnsupportedPlatform
from provision.core.models.platform import PlatformInfo

logger = logging.getLogger(__name__)

OS_RELEASE = Path("/etc/os-release")
PROC_VERSION = Path("/proc/version")
PROC_1_CGROUP = Path("/proc/1/cgroup")


def parse_os_release(text: str) -> dict[str, str]:
    """Parse os-release ``KEY=value`` lines (values may be quoted)."""
    values: dict[str, str] = {}
    for raw in text.splitlines():
        line = raw.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, _, value = line.partition("=")
        try:
            parts = shlex.split(value)
        except ValueError:
            parts = [value.strip("\"'")]
        values[key.strip()] = parts[0] if parts else ""
    return values


def _read(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8", errors="replace")
    except OSError:
        return ""


def _detect_virt(executor: Executor | None) -> str:
    if executor is None:
        return "none"
    try:
        result = executor.execute("systemd-detect-virt", timeout=5)
    except LaunchError:
        return "none"
    if result.ok and result.stdout.strip():
        return result.stdout.strip()
    return "none"


def detect_platform(
    executor: Executor | None = None,
    os_release: Path = OS_RELEASE,
    proc_version: Path = PROC_VERSION,
    cgroup: Path = PROC_1_CGROUP,
) -> PlatformInfo:
    """Build a PlatformInfo for the current host."""
    release = parse_os_release(_read(os_release))
    uname = _platform.uname()

    is_wsl = "microsoft" in _read(proc_version).lower() or bool(os.environ.get("WSL_DISTRO_NAME"))
    cgroup_text = _read(cgroup)
    is_container = "docker" in cgroup_text or "lxc" in cgroup_text

    info = PlatformInfo(
        os_id=release.get("ID", "unknown"),
        os_name=release.get("NAME", "Unknown Linux"),
        os_version_id=release.get("VERSION_ID", "unknown"),
        os_like=release.get("ID_LIKE", "").split(),
        arch=uname.machine,
        kernel=uname.release,
        is_wsl=is_wsl,
        is_container=is_container,
        virt_type=_detect_virt(executor),
    )
    logger.info("Detected platform: %s", info.summary)
    return info


def ensure_supported(info: PlatformInfo, targets: list[str]) -> None:
    """Raise UnsupportedPlatform unless the host matches one of *targets*.

    An empty target list accepts any platform.
    """
    if not targets:
        return
    if any(info.is_like(t) for t in targets):
        return
    raise UnsupportedPlatform(
        f"Unsupported platform: detected {info.os_id} ({info.os_name}), "
        f"expected: {', '.join(targets)}"
    )


def select_package_manager(preference: str, info: PlatformInfo) -> PackageManagerKind | None:
    """Map a plan's ``package_manager`` setting to a concrete kind.

    ``auto`` picks pacman on Arch-likes and zypper on SUSE-likes, and
    None anywhere else (steps that need packages will then fail).
    """
    if preference == "pacman":
        return PackageManagerKind.PACMAN
    if preference == "zypper":
        return PackageManagerKind.ZYPPER
    if info.is_arch:
        return PackageManagerKind.PACMAN
    if info.is_suse:
        return PackageManagerKind.ZYPPER
    logger.debug("No package manager for %s", info.os_id)
    return None
