"""
Plan model — the provisioning plan loaded from provision.yml.

A plan is configuration data: which steps exist, in which order, with
which parameters. The engine knows nothing about specific packages,
units or files beyond what a plan declares.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

FailurePolicy = Literal["fatal", "warn"]


class VariableSpec(BaseModel):
    """A value collected once at startup and substituted into step params."""

    default: str = ""
    prompt: str = ""
    description: str = ""


class StepSpec(BaseModel):
    """One step declaration.

    Common fields are declared here; everything else is kind-specific
    and validated by the step kind's own parameter model.
    """

    model_config = ConfigDict(extra="allow")

    id: str
    kind: str
    label: str = ""
    policy: FailurePolicy = "fatal"
    timeout: float | None = None
    confirm: str | None = None
    confirm_default: bool = True

    @property
    def params(self) -> dict[str, Any]:
        """Kind-specific parameters (every undeclared key)."""
        return dict(self.model_extra or {})


class PlanConfig(BaseModel):
    """Root plan — loaded from provision.yml."""

    version: int = 1

    name: str
    description: str = ""
    platforms: list[str] = Field(default_factory=list)
    package_manager: Literal["auto", "pacman", "zypper"] = "auto"
    aur_helper: Literal["auto", "pamac", "paru", "yay", "none"] = "auto"
    state_dir: str | None = None

    variables: dict[str, VariableSpec] = Field(default_factory=dict)
    steps: list[StepSpec] = Field(default_factory=list)

    def get_step(self, step_id: str) -> StepSpec | None:
        """Look up a step declaration by id."""
        for step in self.steps:
            if step.id == step_id:
                return step
        return None

    @property
    def step_ids(self) -> list[str]:
        return [s.id for s in self.steps]
