"""
Runner — the check → apply → record loop.

Takes an ordered list of steps and drives each through

    Pending → Checking → {Satisfied | Applying} → {Applied | Failed}

persisting ChangeRecords as soon as a step reports them. Step failure
policy decides whether a failed step aborts the run (``fatal``) or is
reported and skipped past (``warn``). Uninstall walks the same list in
reverse and hands every step its stored records.

Flow:
    select → check → (confirm) → apply → persist records → report
"""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from provision.core.context import ProvisionContext
from provision.core.errors import (
    CheckError,
    NonZeroExit,
    StateCorruption,
    StepDeclined,
    StepFailed,
    UnknownStepError,
)
from provision.core.models.change import ChangeRecord
from provision.core.models.result import ExecutionResult, StepOutcome
from provision.core.persistence.audit import AuditEntry, AuditWriter
from provision.core.persistence.state_store import StateStore
from provision.core.steps.base import Step

logger = logging.getLogger(__name__)

ResultCallback = Callable[[ExecutionResult], None]
StartCallback = Callable[[Step], None]

OUTCOME_MARKERS: dict[str, str] = {
    "applied": "✓",
    "already-satisfied": "✓",
    "reverted": "✓",
    "would-apply": "→",
    "skipped": "⊘",
    "failed": "✗",
}


@dataclass
class RunReport:
    """What happened to every step of one invocation."""

    run_id: str = ""
    plan: str = ""
    mode: str = "run"                       # run, dry-run, uninstall
    results: list[ExecutionResult] = field(default_factory=list)
    not_attempted: list[str] = field(default_factory=list)
    aborted: bool = False                   # a fatal step failed
    interrupted: bool = False               # Ctrl-C
    error: str | None = None                # state store failure
    duration_ms: int = 0

    def count(self, outcome: StepOutcome) -> int:
        return sum(1 for r in self.results if r.outcome == outcome)

    @property
    def total(self) -> int:
        return len(self.results) + len(self.not_attempted)

    @property
    def applied(self) -> int:
        return self.count("applied")

    @property
    def satisfied(self) -> int:
        return self.count("already-satisfied")

    @property
    def failed(self) -> int:
        return self.count("failed")

    @property
    def skipped(self) -> int:
        return self.count("skipped")

    @property
    def would_apply(self) -> int:
        return self.count("would-apply")

    @property
    def reverted(self) -> int:
        return self.count("reverted")

    @property
    def status(self) -> str:
        if self.aborted or self.interrupted or self.error:
            return "failed"
        if self.failed:
            return "partial"
        return "ok"

    @property
    def exit_code(self) -> int:
        if self.interrupted:
            return 130
        if self.aborted or self.error:
            return 1
        return 0

    @property
    def errors(self) -> list[str]:
        errors = [f"{r.step_id}: {r.error}" for r in self.results if r.failed and r.error]
        if self.error:
            errors.append(self.error)
        return errors

    def get(self, step_id: str) -> ExecutionResult | None:
        for result in self.results:
            if result.step_id == step_id:
                return result
        return None

    def to_dict(self) -> dict:
        return {
            "run_id": self.run_id,
            "plan": self.plan,
            "mode": self.mode,
            "status": self.status,
            "exit_code": self.exit_code,
            "total": self.total,
            "applied": self.applied,
            "satisfied": self.satisfied,
            "failed": self.failed,
            "skipped": self.skipped,
            "would_apply": self.would_apply,
            "reverted": self.reverted,
            "aborted": self.aborted,
            "interrupted": self.interrupted,
            "error": self.error,
            "duration_ms": self.duration_ms,
            "results": [r.model_dump(mode="json") for r in self.results],
            "not_attempted": self.not_attempted,
        }


# ── Selection ───────────────────────────────────────────────────


def select_steps(steps: list[Step], only: Iterable[str] | None = None) -> list[Step]:
    """Filter *steps* to the ids in *only*, keeping declared order.

    Raises:
        UnknownStepError: If *only* names an id that is not declared.
    """
    if not only:
        return list(steps)
    wanted = [s.strip() for s in only if s.strip()]
    known = {s.id for s in steps}
    unknown = [s for s in wanted if s not in known]
    if unknown:
        raise UnknownStepError(unknown)
    return [s for s in steps if s.id in wanted]


# ── Helpers ─────────────────────────────────────────────────────


class _Timer:
    def __init__(self) -> None:
        self.started_at = datetime.now(UTC).isoformat()
        self._t0 = time.monotonic()

    def finish(self, result: ExecutionResult) -> ExecutionResult:
        result.started_at = self.started_at
        result.ended_at = datetime.now(UTC).isoformat()
        result.duration_ms = int((time.monotonic() - self._t0) * 1000)
        return result


def _is_satisfied(step: Step, ctx: ProvisionContext) -> tuple[bool, CheckError | None]:
    """Run ``check()``; a check that blows up means "not satisfied"."""
    try:
        return bool(step.check(ctx)), None
    except CheckError as e:
        error = e
    except Exception as e:
        error = CheckError(f"check for {step.id} could not run: {e}")
    logger.info("%s; treating as not satisfied", error)
    return False, error


def _persist(
    store: StateStore,
    step: Step,
    records: list[ChangeRecord],
    recorded: list[ChangeRecord],
) -> None:
    """Persist whatever of *records* is not in *recorded* yet, and track it there."""
    for record in records:
        if any(record is done for done in recorded):
            continue
        store.record(step.id, record)
        recorded.append(record)


def _emit(
    report: RunReport,
    result: ExecutionResult,
    on_result: ResultCallback | None,
) -> None:
    report.results.append(result)
    logger.info(
        "%s %s → %s",
        OUTCOME_MARKERS.get(result.outcome, "?"),
        result.step_id,
        result.outcome,
    )
    if on_result is not None:
        on_result(result)


# ── Run ─────────────────────────────────────────────────────────


def _apply_step(step: Step, ctx: ProvisionContext, store: StateStore) -> ExecutionResult:
    """Confirm, apply and persist one unsatisfied step.

    StateCorruption propagates: the run cannot continue without a
    trustworthy ledger.
    """
    result = ExecutionResult(step_id=step.id, label=step.label, outcome="applied")

    if step.confirm and not ctx.prompter.confirm(step.confirm, default=step.confirm_default):
        result.outcome = "skipped"
        result.error = "declined"
        return result

    recorded: list[ChangeRecord] = []

    def record_now(change: ChangeRecord) -> None:
        store.record(step.id, change)
        recorded.append(change)

    ctx.recorder = record_now
    try:
        records = step.apply(ctx)
    except StepDeclined as e:
        result.outcome = "skipped"
        result.error = str(e) or "declined"
        result.changes = len(recorded)
        return result
    except StepFailed as e:
        _persist(store, step, e.records, recorded)
        result.outcome = "failed"
        result.error = str(e)
        result.changes = len(recorded)
        return result.with_command(e.result)
    except NonZeroExit as e:
        result.outcome = "failed"
        result.error = str(e)
        result.changes = len(recorded)
        return result.with_command(e.result)
    except StateCorruption:
        raise
    except Exception as e:
        logger.debug("Step %s raised", step.id, exc_info=True)
        result.outcome = "failed"
        result.error = str(e) or e.__class__.__name__
        result.changes = len(recorded)
        return result
    finally:
        ctx.recorder = None

    _persist(store, step, records, recorded)
    result.changes = len(recorded)
    return result


def run_steps(
    steps: list[Step],
    ctx: ProvisionContext,
    store: StateStore,
    *,
    plan: str = "",
    run_id: str | None = None,
    on_start: StartCallback | None = None,
    on_result: ResultCallback | None = None,
) -> RunReport:
    """Bring every step to its desired state, in declared order.

    With ``ctx.dry_run`` only ``check()`` runs: unsatisfied steps are
    reported as ``would-apply`` and nothing is written.
    """
    report = RunReport(
        run_id=run_id or generate_run_id(),
        plan=plan,
        mode="dry-run" if ctx.dry_run else "run",
    )
    t0 = time.monotonic()

    for index, step in enumerate(steps):
        if on_start is not None:
            on_start(step)
        timer = _Timer()
        try:
            satisfied, check_error = _is_satisfied(step, ctx)
            if satisfied:
                result = ExecutionResult(step_id=step.id, label=step.label, outcome="already-satisfied")
            elif ctx.dry_run:
                result = ExecutionResult(step_id=step.id, label=step.label, outcome="would-apply")
            else:
                result = _apply_step(step, ctx, store)
        except StateCorruption as e:
            report.error = str(e)
            _emit(report, timer.finish(ExecutionResult(
                step_id=step.id, label=step.label, outcome="failed", error=str(e),
            )), on_result)
            report.not_attempted = [s.id for s in steps[index + 1:]]
            break
        except KeyboardInterrupt:
            report.interrupted = True
            _emit(report, timer.finish(ExecutionResult(
                step_id=step.id, label=step.label, outcome="failed", error="interrupted",
            )), on_result)
            report.not_attempted = [s.id for s in steps[index + 1:]]
            break

        result.metadata["policy"] = step.policy
        if check_error is not None:
            result.metadata["check_error"] = str(check_error)
        _emit(report, timer.finish(result), on_result)

        if result.failed and step.policy == "fatal":
            logger.error("Fatal step %s failed; aborting run", step.id)
            report.aborted = True
            report.not_attempted = [s.id for s in steps[index + 1:]]
            break

    report.duration_ms = int((time.monotonic() - t0) * 1000)
    return report


# ── Uninstall ───────────────────────────────────────────────────


def _revert_step(step: Step, ctx: ProvisionContext, store: StateStore) -> ExecutionResult:
    result = ExecutionResult(step_id=step.id, label=step.label, outcome="reverted")

    records = store.records_for(step.id)
    if not records:
        result.outcome = "skipped"
        result.error = "nothing recorded"
        return result

    if not ctx.prompter.confirm(f"Revert '{step.label}' ({len(records)} change(s))?", default=False):
        result.outcome = "skipped"
        result.error = "declined"
        return result

    try:
        warnings = step.revert(ctx, list(reversed(records)))
    except StateCorruption:
        raise
    except Exception as e:
        logger.debug("Revert of %s raised", step.id, exc_info=True)
        warnings = [str(e) or e.__class__.__name__]

    result.changes = len(records)
    if warnings:
        for warning in warnings:
            logger.warning("%s: %s", step.id, warning)
        result.outcome = "failed"
        result.error = "; ".join(warnings)
        result.metadata["warnings"] = warnings
        return result

    store.clear(step.id)
    return result


def revert_steps(
    steps: list[Step],
    ctx: ProvisionContext,
    store: StateStore,
    *,
    plan: str = "",
    run_id: str | None = None,
    on_start: StartCallback | None = None,
    on_result: ResultCallback | None = None,
) -> RunReport:
    """Undo recorded changes in reverse declared order, best-effort.

    A step's records are cleared only when its revert reported no
    warnings, so a partial revert can be retried later.
    """
    report = RunReport(run_id=run_id or generate_run_id(), plan=plan, mode="uninstall")
    t0 = time.monotonic()
    ordered = list(reversed(steps))

    for index, step in enumerate(ordered):
        if on_start is not None:
            on_start(step)
        timer = _Timer()
        try:
            result = _revert_step(step, ctx, store)
        except StateCorruption as e:
            report.error = str(e)
            _emit(report, timer.finish(ExecutionResult(
                step_id=step.id, label=step.label, outcome="failed", error=str(e),
            )), on_result)
            report.not_attempted = [s.id for s in ordered[index + 1:]]
            break
        except KeyboardInterrupt:
            report.interrupted = True
            report.not_attempted = [s.id for s in ordered[index:]]
            break
        _emit(report, timer.finish(result), on_result)

    report.duration_ms = int((time.monotonic() - t0) * 1000)
    return report


# ── Audit ───────────────────────────────────────────────────────


def write_audit_entry(
    report: RunReport,
    audit_writer: AuditWriter,
    context: dict[str, Any] | None = None,
) -> None:
    """Append one ledger entry summarising *report*."""
    entry = AuditEntry(
        run_id=report.run_id,
        plan=report.plan,
        mode=report.mode,
        status=report.status,
        steps_total=report.total,
        applied=report.applied,
        satisfied=report.satisfied,
        failed=report.failed,
        skipped=report.skipped,
        reverted=report.reverted,
        duration_ms=report.duration_ms,
        outcomes={r.step_id: r.outcome for r in report.results},
        not_attempted=list(report.not_attempted),
        errors=report.errors,
        context=context or {},
    )
    audit_writer.write(entry)


def generate_run_id() -> str:
    """Generate a unique run ID."""
    now = datetime.now(UTC).strftime("%Y%m%d-%H%M%S")
    short = uuid.uuid4().hex[:6]
    return f"run-{now}-{short}"
