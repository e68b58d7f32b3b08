"""
Step registry — turn plan declarations into Step objects.

Maps each ``kind`` to its class, renders ``$variable`` references in
string parameters, and validates parameters against the kind's model.
"""

from __future__ import annotations

import logging
import string
from typing import Any

from pydantic import ValidationError

from provision.core.errors import ConfigError
from provision.core.models.plan import PlanConfig, StepSpec
from provision.core.steps.base import Step
from provision.core.steps.command import CommandStep
from provision.core.steps.files import FileStep, IniStep, LineStep
from provision.core.steps.group import GroupStep
from provision.core.steps.packages import PackageStep
from provision.core.steps.service import ServiceStep

logger = logging.getLogger(__name__)

STEP_KINDS: dict[str, type[Step]] = {
    cls.kind: cls
    for cls in (PackageStep, ServiceStep, FileStep, LineStep, IniStep, GroupStep, CommandStep)
}


def render(value: Any, variables: dict[str, str]) -> Any:
    """Substitute ``$name`` / ``${name}`` in every string inside *value*.

    Unknown names are left untouched, so ``$HOME`` or udev's
    ``ATTR{idVendor}`` survive rendering.
    """
    if isinstance(value, str):
        return string.Template(value).safe_substitute(variables)
    if isinstance(value, list):
        return [render(v, variables) for v in value]
    if isinstance(value, dict):
        return {k: render(v, variables) for k, v in value.items()}
    return value


def build_step(spec: StepSpec, variables: dict[str, str] | None = None) -> Step:
    """Build one Step from its declaration."""
    cls = STEP_KINDS.get(spec.kind)
    if cls is None:
        raise ConfigError(
            f"Step '{spec.id}': unknown kind '{spec.kind}' "
            f"(expected one of: {', '.join(sorted(STEP_KINDS))})"
        )

    variables = variables or {}
    try:
        return cls(
            spec.id,
            label=render(spec.label, variables),
            policy=spec.policy,
            timeout=spec.timeout,
            confirm=render(spec.confirm, variables),
            confirm_default=spec.confirm_default,
            params=render(spec.params, variables),
        )
    except ValidationError as e:
        raise ConfigError(f"Step '{spec.id}' ({spec.kind}): invalid parameters: {e}") from e


def build_steps(plan: PlanConfig, variables: dict[str, str] | None = None) -> list[Step]:
    """Build every step of *plan*, in declared order."""
    steps = [build_step(spec, variables) for spec in plan.steps]
    logger.debug("Built %d steps: %s", len(steps), ", ".join(s.id for s in steps))
    return steps
