"""
Service step — make sure a systemd unit is enabled and/or running.
"""

from __future__ import annotations

from provision.core.context import ProvisionContext
from provision.core.errors import NonZeroExit, StepFailed
from provision.core.models.change import ChangeRecord
from provision.core.steps.base import Step, StepParams


class ServiceParams(StepParams):
    unit: str
    enable: bool = True
    start: bool = True
    user: bool = False


class ServiceStep(Step):
    """Enable/start a unit; revert disables/stops only what this step changed."""

    kind = "service"
    Params = ServiceParams

    def check(self, ctx: ProvisionContext) -> bool:
        p = self.params
        if p.enable and not ctx.services.is_enabled(p.unit, p.user, self.timeout):
            return False
        if p.start and not ctx.services.is_active(p.unit, p.user, self.timeout):
            return False
        return True

    def apply(self, ctx: ProvisionContext) -> list[ChangeRecord]:
        p = self.params
        services = ctx.services

        if not services.exists(p.unit, p.user, self.timeout):
            # a unit file written by an earlier step is only visible after a reload
            services.daemon_reload(p.user, self.timeout)
            if not services.exists(p.unit, p.user, self.timeout):
                raise StepFailed(f"Unit {p.unit} not found")

        enabled = False
        started = False
        records: list[ChangeRecord] = []
        try:
            if p.enable and not services.is_enabled(p.unit, p.user, self.timeout):
                services.enable(p.unit, p.user, self.timeout).check()
                enabled = True
            if p.start and not services.is_active(p.unit, p.user, self.timeout):
                services.start(p.unit, p.user, self.timeout).check()
                started = True
        except NonZeroExit as e:
            if enabled:
                records.append(ctx.record(
                    self.change("service-enabled", unit=p.unit, user=p.user, enabled=True, started=False)
                ))
            raise StepFailed(str(e), records=records, result=e.result) from e

        if enabled or started:
            records.append(ctx.record(
                self.change("service-enabled", unit=p.unit, user=p.user, enabled=enabled, started=started)
            ))
        return records

    def revert(self, ctx: ProvisionContext, records: list[ChangeRecord]) -> list[str]:
        warnings: list[str] = []
        for record in records:
            unit = record.data["unit"]
            user = bool(record.data.get("user"))
            if record.data.get("started"):
                result = ctx.services.stop(unit, user, self.timeout)
                if not result.ok:
                    warnings.append(f"Could not stop {unit}: {result.stderr or result.exit_code}")
            if record.data.get("enabled"):
                result = ctx.services.disable(unit, user, self.timeout)
                if not result.ok:
                    warnings.append(f"Could not disable {unit}: {result.stderr or result.exit_code}")
        return warnings
