"""
Mock executor — universal test double for command execution.

Returns scripted results without touching the machine. Responses can
be fixed per command line, computed by a handler for a command prefix,
or fall back to a default exit code.
"""

from __future__ import annotations

import shlex
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass

from provision.adapters.base import Executor
from provision.core.errors import LaunchError
from provision.core.models.result import CommandResult

Handler = Callable[[list[str]], "CommandResult | int | tuple[int, str]"]


@dataclass
class ExecutedCommand:
    """One call received by the mock."""

    argv: list[str]
    sudo: bool = False
    input: str | None = None
    timeout: float | None = None
    strip: bool = True

    @property
    def line(self) -> str:
        return shlex.join(self.argv)


class MockExecutor(Executor):
    """Scripted executor for tests.

    By default every command succeeds with empty output. Binaries
    registered with ``set_missing`` raise ``LaunchError`` the way a real
    missing program would.
    """

    def __init__(self, default_exit_code: int = 0, default_output: str = ""):
        self._default_exit_code = default_exit_code
        self._default_output = default_output
        self._responses: dict[str, CommandResult] = {}
        self._handlers: dict[str, Handler] = {}
        self._missing: set[str] = set()
        self._call_log: list[ExecutedCommand] = []

    @property
    def name(self) -> str:
        return "mock"

    @property
    def call_log(self) -> list[ExecutedCommand]:
        """Every command this mock has received."""
        return self._call_log

    @property
    def commands(self) -> list[str]:
        """Command lines received, in order."""
        return [c.line for c in self._call_log]

    @property
    def call_count(self) -> int:
        return len(self._call_log)

    def calls_matching(self, prefix: str) -> list[ExecutedCommand]:
        return [c for c in self._call_log if c.line.startswith(prefix)]

    def which(self, program: str) -> str | None:
        if program in self._missing:
            return None
        return f"/usr/bin/{program}"

    def set_missing(self, *programs: str) -> None:
        """Make these binaries behave as not installed."""
        self._missing.update(programs)

    def set_response(
        self,
        command_line: str,
        exit_code: int = 0,
        stdout: str = "",
        stderr: str = "",
    ) -> None:
        """Fix the result of one exact command line."""
        argv = shlex.split(command_line)
        self._responses[shlex.join(argv)] = CommandResult(
            command=argv, exit_code=exit_code, stdout=stdout, stderr=stderr
        )

    def set_handler(self, prefix: str, handler: Handler) -> None:
        """Compute results for every command line starting with *prefix*.

        The handler receives argv and returns a CommandResult, an exit
        code, or an ``(exit_code, stdout)`` tuple. The longest matching
        prefix wins.
        """
        self._handlers[prefix] = handler

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
        argv = [command, *args]
        call = ExecutedCommand(argv=argv, sudo=sudo, input=input, timeout=timeout, strip=strip)
        self._call_log.append(call)

        if command in self._missing:
            raise LaunchError(command, "not found on PATH")

        line = call.line
        if line in self._responses:
            return self._responses[line]

        matches = [p for p in self._handlers if line == p or line.startswith(p + " ")]
        if matches:
            handler = self._handlers[max(matches, key=len)]
            return _coerce(argv, handler(argv))

        return CommandResult(
            command=argv,
            exit_code=self._default_exit_code,
            stdout=self._default_output,
        )

    def reset(self) -> None:
        """Clear call log, responses and handlers."""
        self._call_log.clear()
        self._responses.clear()
        self._handlers.clear()
        self._missing.clear()


def _coerce(argv: list[str], value: CommandResult | int | tuple[int, str]) -> CommandResult:
    if isinstance(value, CommandResult):
        return value
    if isinstance(value, tuple):
        code, out = value
        return CommandResult(command=argv, exit_code=code, stdout=out)
    return CommandResult(command=argv, exit_code=int(value))
