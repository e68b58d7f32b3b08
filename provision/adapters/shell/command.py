"""
Shell executor — the single place where ``subprocess.run`` is called.

Privilege escalation, timing, output capture and launch-failure
classification are all centralised here.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import time
from collections.abc import Mapping, Sequence

from provision.adapters.base import Executor
from provision.core.errors import CommandTimeout, LaunchError
from provision.core.models.result import CommandResult

logger = logging.getLogger(__name__)


class ShellExecutor(Executor):
    """Run real processes on the local machine.

    Args:
        non_interactive: Use ``sudo -n`` so a missing credential fails
            fast instead of waiting on a password prompt.
    """

    def __init__(self, non_interactive: bool = False):
        self._non_interactive = non_interactive

    @property
    def name(self) -> str:
        return "shell"

    def which(self, program: str) -> str | None:
        return shutil.which(program)

    def _argv(self, command: str, args: Sequence[str], sudo: bool) -> list[str]:
        argv = [command, *args]
        if sudo and os.geteuid() != 0:
            prefix = ["sudo", "-n"] if self._non_interactive else ["sudo"]
            argv = prefix + argv
        return argv

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
        if "/" not in command and self.which(command) is None:
            raise LaunchError(command, "not found on PATH")

        argv = self._argv(command, args, sudo)
        run_env = None
        if env:
            run_env = os.environ.copy()
            run_env.update(env)

        logger.debug("Executing: %s (cwd=%s, timeout=%s)", argv, cwd, timeout)
        start = time.monotonic()
        try:
            proc = subprocess.run(
                argv,
                capture_output=True,
                text=True,
                timeout=timeout,
                input=input,
                cwd=cwd,
                env=run_env,
            )
        except FileNotFoundError as e:
            raise LaunchError(argv[0], "not found") from e
        except PermissionError as e:
            raise LaunchError(argv[0], "permission denied") from e
        except subprocess.TimeoutExpired as e:
            elapsed_ms = int((time.monotonic() - start) * 1000)
            partial = CommandResult(
                command=argv,
                exit_code=-1,
                stdout=_text(e.stdout),
                stderr=_text(e.stderr),
                duration_ms=elapsed_ms,
            )
            raise CommandTimeout(partial, f"'{partial.command_line}' timed out after {timeout}s") from e

        elapsed_ms = int((time.monotonic() - start) * 1000)
        result = CommandResult(
            command=argv,
            exit_code=proc.returncode,
            stdout=proc.stdout.strip() if strip else proc.stdout,
            stderr=proc.stderr.strip(),
            duration_ms=elapsed_ms,
        )
        logger.debug("→ exit %d in %dms", result.exit_code, elapsed_ms)
        return result


def _text(data: str | bytes | None) -> str:
    if data is None:
        return ""
    if isinstance(data, bytes):
        return data.decode("utf-8", errors="replace").strip()
    return data.strip()
