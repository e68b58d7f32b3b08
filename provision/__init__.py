"""Provision — idempotent workstation provisioning steps with rollback."""

__version__ = "0.1.0"
