"""
Package step — install packages that are missing, remove only those
this step installed.
"""

from __future__ import annotations

from typing import Literal

from provision.adapters.packages import PackageManager
from provision.core.context import ProvisionContext
from provision.core.errors import ProvisionError, StepFailed
from provision.core.models.change import ChangeRecord
from provision.core.models.result import CommandResult
from provision.core.steps.base import Step, StepParams


class PackageParams(StepParams):
    packages: list[str]
    source: Literal["repo", "aur"] = "repo"
    aur_fallback: bool = False


class PackageStep(Step):
    """Install a list of packages.

    A ``package-installed`` record is only created for a package that
    was verified absent immediately before it was installed, so
    uninstall never removes something the user already had.
    Installation continues past individual failures; the step fails at
    the end if any package did not install.
    """

    kind = "packages"
    Params = PackageParams

    def check(self, ctx: ProvisionContext) -> bool:
        return all(ctx.packages.is_installed(p, self.timeout) for p in self.params.packages)

    def _aur(self, ctx: ProvisionContext, package: str) -> PackageManager:
        if ctx.aur is None:
            raise StepFailed(f"{package} needs an AUR helper but none is available")
        return ctx.aur

    def _installer(self, ctx: ProvisionContext, package: str) -> PackageManager:
        if self.params.source == "aur":
            return self._aur(ctx, package)
        if self.params.aur_fallback and not ctx.packages.is_available(package, self.timeout):
            return self._aur(ctx, package)
        return ctx.packages

    def apply(self, ctx: ProvisionContext) -> list[ChangeRecord]:
        records: list[ChangeRecord] = []
        failed: list[str] = []
        last_failure: CommandResult | None = None

        for package in self.params.packages:
            try:
                if ctx.packages.is_installed(package, self.timeout):
                    ctx.logger.info("%s already installed", package)
                    continue

                manager = self._installer(ctx, package)
                ctx.logger.info("Installing %s via %s", package, manager.name)
                result = manager.install(package, self.timeout)
                if result.ok and manager.is_installed(package, self.timeout):
                    records.append(ctx.record(
                        self.change("package-installed", package=package, manager=manager.name)
                    ))
                    continue

                ctx.logger.warning("Failed to install %s via %s", package, manager.name)
                failed.append(package)
                last_failure = result
            except StepFailed as e:
                ctx.logger.warning("%s", e)
                failed.append(package)
            except ProvisionError as e:
                raise StepFailed(str(e), records=records) from e

        if failed:
            raise StepFailed(
                f"Failed to install: {', '.join(failed)}",
                records=records,
                result=last_failure,
            )
        return records

    def revert(self, ctx: ProvisionContext, records: list[ChangeRecord]) -> list[str]:
        packages = [r.data["package"] for r in records if r.kind == "package-installed"]
        present = [p for p in dict.fromkeys(packages) if ctx.packages.is_installed(p, self.timeout)]
        if not present:
            ctx.logger.info("None of the recorded packages are installed; nothing to remove")
            return []

        ctx.logger.info("Removing %s", ", ".join(present))
        result = ctx.packages.remove(present, self.timeout)
        if not result.ok:
            return [
                f"Some removals failed (deps in use or required): "
                f"{result.stderr or result.stdout or f'exit {result.exit_code}'}"
            ]
        return []
