"""Service manager adapters."""

from provision.adapters.services.systemd import SystemdServices, unit_name

__all__ = ["SystemdServices", "unit_name"]
