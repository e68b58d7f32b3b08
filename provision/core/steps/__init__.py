"""Steps — the check/apply/revert units a plan is made of."""

from provision.core.steps.base import Step, StepParams
from provision.core.steps.command import CommandStep
from provision.core.steps.files import FileStep, IniStep, LineStep
from provision.core.steps.group import GroupStep
from provision.core.steps.packages import PackageStep
from provision.core.steps.registry import STEP_KINDS, build_step, build_steps
from provision.core.steps.service import ServiceStep

__all__ = [
    "STEP_KINDS",
    "CommandStep",
    "FileStep",
    "GroupStep",
    "IniStep",
    "LineStep",
    "PackageStep",
    "ServiceStep",
    "Step",
    "StepParams",
    "build_step",
    "build_steps",
]
