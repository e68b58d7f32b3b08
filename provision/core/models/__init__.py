"""
Domain models — Pydantic types for the provisioning engine.

All models are re-exported here for convenient access:

    from provision.core.models import ChangeRecord, ExecutionResult, PlanConfig
"""

from provision.core.models.change import ChangeKind, ChangeRecord
from provision.core.models.plan import FailurePolicy, PlanConfig, StepSpec, VariableSpec
from provision.core.models.platform import PlatformInfo
from provision.core.models.result import CommandResult, ExecutionResult, StepOutcome

__all__ = [
    # change.py
    "ChangeKind",
    "ChangeRecord",
    # result.py
    "CommandResult",
    "ExecutionResult",
    # plan.py
    "FailurePolicy",
    "PlanConfig",
    # platform.py
    "PlatformInfo",
    "StepOutcome",
    "StepSpec",
    "VariableSpec",
]
