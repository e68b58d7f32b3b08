"""
Run use case — provision (or uninstall) a plan on this machine.

This is the top-level orchestrator: it loads the plan, detects the
platform, selects the package manager, resolves variables, builds the
steps, takes the state lock and drives the runner. The full vertical
slice from user intent to audited execution.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from provision.adapters.base import Executor
from provision.adapters.packages import (
    PackageManagerKind,
    create_package_manager,
    detect_aur_helper,
)
from provision.core.config.loader import (
    PLAN_CONFIG_FILE,
    find_plan_file,
    load_plan,
    resolve_variables,
)
from provision.core.context import ProvisionContext
from provision.core.engine.runner import (
    ResultCallback,
    RunReport,
    StartCallback,
    generate_run_id,
    revert_steps,
    run_steps,
    select_steps,
    write_audit_entry,
)
from provision.core.errors import (
    ConfigError,
    StateCorruption,
    UnknownStepError,
    UnsupportedPlatform,
)
from provision.core.models.plan import PlanConfig
from provision.core.models.platform import PlatformInfo
from provision.core.persistence.audit import AuditWriter
from provision.core.persistence.lock import StateLock
from provision.core.persistence.state_store import (
    AUDIT_FILE,
    CHANGES_FILE,
    LOCK_FILE,
    StateStore,
    default_state_root,
    namespace_dir,
)
from provision.core.services.platform import (
    detect_platform,
    ensure_supported,
    select_package_manager,
)
from provision.core.services.prompts import Prompter
from provision.core.steps.base import Step
from provision.core.steps.registry import build_steps

logger = logging.getLogger(__name__)


@dataclass
class ProvisionResult:
    """Result of a run or uninstall invocation."""

    report: RunReport | None = None
    plan: PlanConfig | None = None
    config_path: Path | None = None
    platform: PlatformInfo | None = None
    state_dir: Path | None = None
    steps: list[Step] = field(default_factory=list)
    error: str | None = None
    usage_error: bool = False

    @property
    def exit_code(self) -> int:
        if self.usage_error:
            return 2
        if self.report is not None:
            return self.report.exit_code
        return 1 if self.error else 0

    def to_dict(self) -> dict:
        result: dict = {}
        if self.error:
            result["error"] = self.error
        if self.report is None:
            result["exit_code"] = self.exit_code
            return result

        result["plan"] = self.plan.name if self.plan else ""
        result["config_path"] = str(self.config_path) if self.config_path else None
        result["platform"] = self.platform.summary if self.platform else ""
        result["state_dir"] = str(self.state_dir) if self.state_dir else None
        result["report"] = self.report.to_dict()
        result["exit_code"] = self.exit_code
        return result


@dataclass
class _Session:
    plan: PlanConfig
    steps: list[Step]
    ctx: ProvisionContext
    namespace: Path


def _prepare(
    result: ProvisionResult,
    config_path: Path | None,
    only: list[str] | None,
    dry_run: bool,
    executor: Executor | None,
    prompter: Prompter,
    platform: PlatformInfo | None,
) -> _Session | None:
    """Everything up to (not including) the first step. Sets result.error."""
    # ── Load plan ────────────────────────────────────────────────
    if config_path is None:
        config_path = find_plan_file()
    if config_path is None:
        result.error = f"No {PLAN_CONFIG_FILE} found. Create one or pass --config."
        return None
    try:
        plan = load_plan(config_path)
    except ConfigError as e:
        result.error = str(e)
        return None
    result.plan = plan
    result.config_path = config_path

    # ── Validate selection before asking anything ───────────────
    if only:
        unknown = [s for s in only if s not in plan.step_ids]
        if unknown:
            result.error = str(UnknownStepError(unknown))
            result.usage_error = True
            return None

    # ── Platform & package manager ──────────────────────────────
    if executor is None:
        from provision.adapters.shell.command import ShellExecutor

        executor = ShellExecutor(non_interactive=not prompter.interactive)

    if platform is None:
        platform = detect_platform(executor)
    result.platform = platform
    try:
        ensure_supported(platform, plan.platforms)
    except UnsupportedPlatform as e:
        result.error = str(e)
        return None

    package_manager = None
    aur = None
    kind = select_package_manager(plan.package_manager, platform)
    if kind is not None:
        package_manager = create_package_manager(kind, executor)
        if kind is PackageManagerKind.PACMAN:
            helper = detect_aur_helper(executor, plan.aur_helper)
            if helper:
                aur = create_package_manager(PackageManagerKind.AUR, executor, helper)
    logger.info(
        "Package manager: %s, AUR helper: %s",
        package_manager.name if package_manager else "none",
        aur.name if aur else "none",
    )

    # ── Variables & steps ───────────────────────────────────────
    variables = resolve_variables(plan.variables, prompter)
    try:
        steps = build_steps(plan, variables)
    except ConfigError as e:
        result.error = str(e)
        return None
    if only:
        steps = select_steps(steps, only)
    result.steps = steps

    ctx = ProvisionContext(
        executor=executor,
        platform=platform,
        package_manager=package_manager,
        aur=aur,
        prompter=prompter,
        variables=variables,
        plan_dir=config_path.parent.resolve(),
        dry_run=dry_run,
    )

    namespace = namespace_dir(default_state_root(plan.state_dir), plan.name)
    result.state_dir = namespace
    return _Session(plan=plan, steps=steps, ctx=ctx, namespace=namespace)


def _audit_context(session: _Session, only: list[str] | None) -> dict:
    return {
        "platform": session.ctx.platform.summary,
        "user": session.ctx.user,
        "only": list(only or []),
        "steps": [s.id for s in session.steps],
    }


def run_provisioning(
    config_path: Path | None = None,
    only: list[str] | None = None,
    dry_run: bool = False,
    assume_yes: bool = False,
    executor: Executor | None = None,
    prompter: Prompter | None = None,
    platform: PlatformInfo | None = None,
    on_start: StartCallback | None = None,
    on_result: ResultCallback | None = None,
) -> ProvisionResult:
    """Bring the machine to the state the plan describes.

    Args:
        config_path: Explicit path to provision.yml (default: search upward).
        only: Restrict the run to these step ids (declared order kept).
        dry_run: Check only; write nothing.
        assume_yes: Answer yes to every confirmation.
        executor: Command executor (default: real subprocesses).
        prompter: Prompt handler (default: terminal, honouring assume_yes).
        platform: Pre-detected platform (default: detect now).
        on_start: Called before each step.
        on_result: Called with each step's result as soon as it is known.

    Returns:
        ProvisionResult with the run report.
    """
    result = ProvisionResult()
    prompter = prompter or Prompter(assume_yes=assume_yes)
    session = _prepare(result, config_path, only, dry_run, executor, prompter, platform)
    if session is None:
        return result

    store = StateStore(session.namespace / CHANGES_FILE)
    run_id = generate_run_id()

    if dry_run:
        result.report = run_steps(
            session.steps, session.ctx, store,
            plan=session.plan.name, run_id=run_id,
            on_start=on_start, on_result=on_result,
        )
        return result

    try:
        with StateLock(session.namespace / LOCK_FILE):
            report = run_steps(
                session.steps, session.ctx, store,
                plan=session.plan.name, run_id=run_id,
                on_start=on_start, on_result=on_result,
            )
    except StateCorruption as e:
        result.error = str(e)
        return result

    result.report = report
    if report.error:
        result.error = report.error
    write_audit_entry(report, AuditWriter(session.namespace / AUDIT_FILE), _audit_context(session, only))
    return result


def uninstall_provisioning(
    config_path: Path | None = None,
    only: list[str] | None = None,
    assume_yes: bool = False,
    executor: Executor | None = None,
    prompter: Prompter | None = None,
    platform: PlatformInfo | None = None,
    on_start: StartCallback | None = None,
    on_result: ResultCallback | None = None,
) -> ProvisionResult:
    """Revert everything the plan's steps recorded, newest step first.

    Each step is confirmed before it is reverted unless *assume_yes*.
    Best-effort: a step that cannot be fully reverted keeps its records
    and the rest still run.
    """
    result = ProvisionResult()
    prompter = prompter or Prompter(assume_yes=assume_yes)
    session = _prepare(result, config_path, only, False, executor, prompter, platform)
    if session is None:
        return result

    store = StateStore(session.namespace / CHANGES_FILE)
    try:
        with StateLock(session.namespace / LOCK_FILE):
            report = revert_steps(
                session.steps, session.ctx, store,
                plan=session.plan.name,
                on_start=on_start, on_result=on_result,
            )
    except StateCorruption as e:
        result.error = str(e)
        return result

    result.report = report
    if report.error:
        result.error = report.error
    write_audit_entry(report, AuditWriter(session.namespace / AUDIT_FILE), _audit_context(session, only))
    return result
