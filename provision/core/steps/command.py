"""
Command step — arbitrary shell commands guarded by a check command.

Covers everything the built-in kinds don't: ``composer global
require``, ``valet install``, ``ollama pull``, ``docker run``...
"""

from __future__ import annotations

from provision.core.context import ProvisionContext
from provision.core.errors import StepFailed
from provision.core.models.change import ChangeRecord
from provision.core.steps.base import Step, StepParams


class CommandParams(StepParams):
    apply: str
    check: str | None = None
    revert: str | None = None
    sudo: bool = False
    cwd: str | None = None


class CommandStep(Step):
    """Run ``apply`` unless ``check`` exits 0.

    Without a ``check`` the step is never considered satisfied.
    A ``command-run`` record is kept only when there is a ``revert``
    command to replay later.
    """

    kind = "command"
    Params = CommandParams

    def check(self, ctx: ProvisionContext) -> bool:
        if not self.params.check:
            return False
        return self.sh(ctx, self.params.check, sudo=self.params.sudo, cwd=self.params.cwd).ok

    def apply(self, ctx: ProvisionContext) -> list[ChangeRecord]:
        p = self.params
        result = self.sh(ctx, p.apply, sudo=p.sudo, cwd=p.cwd)
        if not result.ok:
            raise StepFailed(f"Command failed (exit {result.exit_code}): {p.apply}", result=result)
        if p.revert:
            return [ctx.record(
                self.change("command-run", command=p.apply, revert=p.revert, sudo=p.sudo, cwd=p.cwd)
            )]
        return []

    def revert(self, ctx: ProvisionContext, records: list[ChangeRecord]) -> list[str]:
        warnings: list[str] = []
        for record in records:
            script = record.data.get("revert")
            if not script:
                continue
            result = self.sh(ctx, script, sudo=bool(record.data.get("sudo")), cwd=record.data.get("cwd"))
            if not result.ok:
                warnings.append(f"Revert command failed (exit {result.exit_code}): {script}")
        return warnings
