"""
Executor base — the contract between steps and external processes.

Steps never call ``subprocess`` themselves. Everything they run goes
through an Executor, which makes every side effect observable and lets
tests swap in a scripted double.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence

from provision.core.models.result import CommandResult


class Executor(ABC):
    """Abstract command executor.

    ``execute`` MUST NOT raise for a non-zero exit: the exit code is in
    the returned CommandResult. It raises ``LaunchError`` only when the
    program cannot be started at all, and ``CommandTimeout`` when an
    explicit timeout expires.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Executor identifier (e.g. 'shell', 'mock')."""

    @abstractmethod
    def which(self, program: str) -> str | None:
        """Resolve *program* on PATH, or None if it is not installed."""

    @abstractmethod
    def execute(
        self,
        command: str,
        args: Sequence[str] = (),
        timeout: float | None = None,
        *,
        sudo: bool = False,
        input: str | None = None,
        cwd: str | None = None,
        env: Mapping[str, str] | None = None,
        strip: bool = True,
    ) -> CommandResult:
        """Run ``command args...`` and capture its result.

        Captured output is whitespace-stripped unless *strip* is False
        (needed when the output is file content).
        """

    def shell(
        self,
        script: str,
        timeout: float | None = None,
        *,
        sudo: bool = False,
        cwd: str | None = None,
    ) -> CommandResult:
        """Run a shell snippet through ``sh -c``."""
        return self.execute("sh", ["-c", script], timeout, sudo=sudo, cwd=cwd)

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"
