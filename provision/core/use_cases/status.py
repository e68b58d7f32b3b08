"""
State use cases — inspect and maintain what earlier runs recorded.

Read-only views of the change ledger and the audit history, plus
``forget`` for dropping a step's records without reverting them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from provision.core.config.loader import find_plan_file, load_plan
from provision.core.errors import ConfigError, StateCorruption
from provision.core.models.change import ChangeRecord
from provision.core.models.plan import PlanConfig
from provision.core.persistence.audit import AuditEntry, AuditWriter
from provision.core.persistence.lock import StateLock
from provision.core.persistence.state_store import (
    AUDIT_FILE,
    CHANGES_FILE,
    LOCK_FILE,
    StateStore,
    default_state_root,
    namespace_dir,
)


def _load(config_path: Path | None) -> tuple[PlanConfig, Path]:
    if config_path is None:
        config_path = find_plan_file()
    plan = load_plan(config_path)
    return plan, namespace_dir(default_state_root(plan.state_dir), plan.name)


# ── state show ──────────────────────────────────────────────────


@dataclass
class StepState:
    """Declared step plus whatever the ledger holds for it."""

    id: str
    kind: str
    label: str
    policy: str
    records: list[ChangeRecord] = field(default_factory=list)

    @property
    def recorded(self) -> bool:
        return bool(self.records)


@dataclass
class StateResult:
    """Recorded changes per declared step."""

    plan: PlanConfig | None = None
    state_dir: Path | None = None
    steps: list[StepState] = field(default_factory=list)
    orphans: dict[str, list[ChangeRecord]] = field(default_factory=dict)
    error: str | None = None

    @property
    def recorded_count(self) -> int:
        return sum(1 for s in self.steps if s.recorded)

    def to_dict(self) -> dict:
        if self.error:
            return {"error": self.error}
        return {
            "plan": self.plan.name if self.plan else "",
            "state_dir": str(self.state_dir) if self.state_dir else None,
            "steps": [
                {
                    "id": s.id,
                    "kind": s.kind,
                    "label": s.label,
                    "policy": s.policy,
                    "recorded": s.recorded,
                    "records": [r.model_dump(mode="json") for r in s.records],
                }
                for s in self.steps
            ],
            "orphans": {
                step_id: [r.model_dump(mode="json") for r in records]
                for step_id, records in self.orphans.items()
            },
        }


def get_state(config_path: Path | None = None) -> StateResult:
    """Show every declared step and the changes recorded for it.

    Records for step ids the plan no longer declares are reported as
    orphans; uninstall cannot reach them.
    """
    result = StateResult()
    try:
        plan, namespace = _load(config_path)
        result.plan = plan
        result.state_dir = namespace
        live = StateStore(namespace / CHANGES_FILE).all_records()
    except (ConfigError, StateCorruption) as e:
        result.error = str(e)
        return result

    for spec in plan.steps:
        result.steps.append(StepState(
            id=spec.id,
            kind=spec.kind,
            label=spec.label or spec.id,
            policy=spec.policy,
            records=live.pop(spec.id, []),
        ))
    result.orphans = live
    return result


# ── state history ───────────────────────────────────────────────


@dataclass
class HistoryResult:
    """Most recent audit entries for the plan."""

    plan: PlanConfig | None = None
    entries: list[AuditEntry] = field(default_factory=list)
    total: int = 0
    error: str | None = None

    def to_dict(self) -> dict:
        if self.error:
            return {"error": self.error}
        return {
            "plan": self.plan.name if self.plan else "",
            "total": self.total,
            "entries": [e.model_dump(mode="json") for e in self.entries],
        }


def get_history(config_path: Path | None = None, n: int = 10) -> HistoryResult:
    """Read the last *n* runs from the audit ledger."""
    result = HistoryResult()
    try:
        plan, namespace = _load(config_path)
    except ConfigError as e:
        result.error = str(e)
        return result

    writer = AuditWriter(namespace / AUDIT_FILE)
    result.plan = plan
    result.total = writer.entry_count()
    result.entries = writer.read_recent(n)
    return result


# ── state forget ────────────────────────────────────────────────


@dataclass
class ForgetResult:
    step_id: str = ""
    forgotten: int = 0
    error: str | None = None

    def to_dict(self) -> dict:
        if self.error:
            return {"error": self.error}
        return {"step_id": self.step_id, "forgotten": self.forgotten}


def forget_step(step_id: str, config_path: Path | None = None) -> ForgetResult:
    """Drop a step's records without reverting anything.

    For changes that were undone by hand. Works for orphaned ids too.
    """
    result = ForgetResult(step_id=step_id)
    try:
        _, namespace = _load(config_path)
        store = StateStore(namespace / CHANGES_FILE)
        with StateLock(namespace / LOCK_FILE):
            records = store.records_for(step_id)
            if not records:
                result.error = f"Nothing recorded for '{step_id}'"
                return result
            store.clear(step_id)
    except (ConfigError, StateCorruption) as e:
        result.error = str(e)
        return result

    result.forgotten = len(records)
    return result
