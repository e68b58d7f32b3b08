"""Adapters — bindings to the tools a provisioning step drives.

Public re-exports for convenient access.
"""

from provision.adapters.base import Executor
from provision.adapters.mock import MockExecutor
from provision.adapters.shell.command import ShellExecutor

__all__ = [
    "Executor",
    "MockExecutor",
    "ShellExecutor",
]
