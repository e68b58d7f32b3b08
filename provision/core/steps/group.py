"""
Group step — add a user to a supplementary group (e.g. vboxusers, docker).
"""

from __future__ import annotations

from provision.core.context import ProvisionContext
from provision.core.errors import CheckError, StepFailed
from provision.core.models.change import ChangeRecord
from provision.core.steps.base import Step, StepParams


class GroupParams(StepParams):
    group: str
    user: str | None = None


class GroupStep(Step):
    """Membership is effective after the user logs in again."""

    kind = "group"
    Params = GroupParams

    def _user(self, ctx: ProvisionContext) -> str:
        return self.params.user or ctx.user

    def check(self, ctx: ProvisionContext) -> bool:
        user = self._user(ctx)
        result = ctx.executor.execute("id", ["-nG", user], self.timeout)
        if not result.ok:
            raise CheckError(f"Cannot list groups of {user}: {result.stderr or f'exit {result.exit_code}'}")
        return self.params.group in result.stdout.split()

    def apply(self, ctx: ProvisionContext) -> list[ChangeRecord]:
        user, group = self._user(ctx), self.params.group
        if not ctx.executor.execute("getent", ["group", group], self.timeout).ok:
            raise StepFailed(f"Group {group} does not exist")
        try:
            if self.check(ctx):
                return []
        except CheckError as e:
            raise StepFailed(str(e)) from e
        result = ctx.executor.execute("gpasswd", ["-a", user, group], self.timeout, sudo=True)
        if not result.ok:
            raise StepFailed(f"Could not add {user} to {group}", result=result)
        ctx.logger.info("Added %s to %s (log out and back in to apply)", user, group)
        return [ctx.record(self.change("group-membership-added", user=user, group=group))]

    def revert(self, ctx: ProvisionContext, records: list[ChangeRecord]) -> list[str]:
        warnings: list[str] = []
        for record in records:
            user, group = record.data["user"], record.data["group"]
            result = ctx.executor.execute("gpasswd", ["-d", user, group], self.timeout, sudo=True)
            if not result.ok:
                warnings.append(f"Could not remove {user} from {group} (maybe already removed)")
        return warnings
