"""
PlatformInfo — what kind of machine we are provisioning.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class PlatformInfo(BaseModel):
    """Distro and runtime facts, read once at startup."""

    os_id: str = "unknown"
    os_name: str = "Unknown Linux"
    os_version_id: str = "unknown"
    os_like: list[str] = Field(default_factory=list)
    arch: str = ""
    kernel: str = ""
    is_wsl: bool = False
    is_container: bool = False
    virt_type: str = "none"

    @property
    def is_virtual(self) -> bool:
        return self.virt_type != "none"

    @property
    def is_arm(self) -> bool:
        return self.arch in ("arm64", "aarch64")

    def is_like(self, target: str) -> bool:
        """True if the distro is *target* or declares it in ID_LIKE."""
        return self.os_id == target or target in self.os_like

    @property
    def is_arch(self) -> bool:
        return self.is_like("arch")

    @property
    def is_suse(self) -> bool:
        return self.is_like("suse") or self.is_like("opensuse") or self.os_id.startswith("opensuse")

    @property
    def summary(self) -> str:
        parts = [
            f"{self.os_id} ({self.os_name} {self.os_version_id})",
            self.arch or "?",
            f"kernel:{self.kernel or '?'}",
        ]
        if self.is_wsl:
            parts.append("WSL")
        if self.is_container:
            parts.append("Container")
        if self.is_virtual:
            parts.append(f"VM:{self.virt_type}")
        if self.is_arm:
            parts.append("ARM")
        return " / ".join(parts)
