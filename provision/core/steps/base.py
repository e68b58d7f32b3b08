"""
Step base — the check/apply/revert contract.

A step is a named, idempotent unit of provisioning:

    check(ctx)           → True when there is nothing to do
    apply(ctx)           → ChangeRecords for every mutation it made
    revert(ctx, records) → undo those mutations, best-effort

Each ChangeRecord goes through ``ctx.record`` as soon as its mutation
succeeded, so it is durable even if the run dies mid-step.

Steps raise instead of exiting: ``StepFailed`` (carrying the records
of whatever did complete), ``StepDeclined`` when the user says no, or
any ProvisionError from the executor. The runner turns those into
results according to the step's failure policy.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, ClassVar

from pydantic import BaseModel, ConfigDict

from provision.core.models.change import ChangeKind, ChangeRecord
from provision.core.models.plan import FailurePolicy
from provision.core.models.result import CommandResult

if TYPE_CHECKING:
    from provision.core.context import ProvisionContext


class StepParams(BaseModel):
    """Base for kind-specific parameters. Frozen; unknown keys rejected."""

    model_config = ConfigDict(frozen=True, extra="forbid")


class Step(ABC):
    """Abstract provisioning step.

    To create a new step kind:
        1. Subclass Step, set ``kind`` and a ``Params`` model
        2. Implement check and apply (and revert if it records changes)
        3. Register it in ``STEP_KINDS``
    """

    kind: ClassVar[str] = "custom"
    Params: ClassVar[type[StepParams] | None] = None

    def __init__(
        self,
        id: str,
        *,
        label: str = "",
        policy: FailurePolicy = "fatal",
        timeout: float | None = None,
        confirm: str | None = None,
        confirm_default: bool = True,
        params: StepParams | dict[str, Any] | None = None,
    ):
        self._id = id
        self._label = label
        self._policy = policy
        self._timeout = timeout
        self._confirm = confirm
        self._confirm_default = confirm_default
        if self.Params is not None and not isinstance(params, self.Params):
            params = self.Params.model_validate(params or {})
        self._params = params

    @property
    def id(self) -> str:
        return self._id

    @property
    def label(self) -> str:
        return self._label or self._id

    @property
    def policy(self) -> FailurePolicy:
        return self._policy

    @property
    def timeout(self) -> float | None:
        return self._timeout

    @property
    def confirm(self) -> str | None:
        """Question to ask before apply, if any."""
        return self._confirm

    @property
    def confirm_default(self) -> bool:
        return self._confirm_default

    @property
    def params(self) -> Any:
        return self._params

    @abstractmethod
    def check(self, ctx: ProvisionContext) -> bool:
        """Return True if the step is already satisfied."""

    @abstractmethod
    def apply(self, ctx: ProvisionContext) -> list[ChangeRecord]:
        """Make the change. Safe to call when already satisfied."""

    def revert(self, ctx: ProvisionContext, records: list[ChangeRecord]) -> list[str]:
        """Undo *records* (newest first). Returns warnings; never fatal."""
        if not records:
            return []
        return [f"{self.id}: no revert procedure for {len(records)} recorded change(s)"]

    # ── Helpers for subclasses ──────────────────────────────────

    def change(self, kind: ChangeKind, **data: Any) -> ChangeRecord:
        return ChangeRecord(step_id=self.id, kind=kind, data=data)

    def sh(
        self,
        ctx: ProvisionContext,
        script: str,
        *,
        sudo: bool = False,
        cwd: str | None = None,
    ) -> CommandResult:
        """Run a shell snippet with this step's timeout."""
        return ctx.executor.shell(script, self.timeout, sudo=sudo, cwd=cwd)

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} id={self.id!r} policy={self.policy!r}>"
