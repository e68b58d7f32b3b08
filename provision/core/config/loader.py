"""
Configuration loader — reads provision.yml into a PlanConfig.

Reads YAML, validates against the Pydantic plan model, checks that
step ids are unique, and returns the typed plan. Step-kind parameters
are validated later, when steps are built.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml
from pydantic import ValidationError

from provision.core.errors import ConfigError
from provision.core.models.plan import PlanConfig, VariableSpec
from provision.core.services.prompts import Prompter

logger = logging.getLogger(__name__)

# Default config filename
PLAN_CONFIG_FILE = "provision.yml"


def find_plan_file(start_dir: Path | None = None) -> Path | None:
    """Search for provision.yml starting from the given directory, walking up.

    Args:
        start_dir: Directory to start searching from (default: cwd).

    Returns:
        Path to provision.yml, or None if not found.
    """
    current = (start_dir or Path.cwd()).resolve()

    for _ in range(20):  # safety limit
        candidate = current / PLAN_CONFIG_FILE
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            break  # filesystem root
        current = parent

    return None


def load_plan(path: Path | None = None) -> PlanConfig:
    """Load and validate a provisioning plan.

    Args:
        path: Explicit path to provision.yml. If None, searches upward.

    Returns:
        Validated PlanConfig.

    Raises:
        ConfigError: If the file is missing or invalid.
    """
    if path is None:
        path = find_plan_file()

    if path is None:
        raise ConfigError(
            f"No {PLAN_CONFIG_FILE} found. Create one or pass --config."
        )

    if not path.is_file():
        raise ConfigError(f"Config file not found: {path}")

    logger.debug("Loading plan from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    try:
        plan = PlanConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid plan configuration in {path}: {e}") from e

    seen: set[str] = set()
    duplicates = []
    for step_id in plan.step_ids:
        if step_id in seen:
            duplicates.append(step_id)
        seen.add(step_id)
    if duplicates:
        raise ConfigError(f"Duplicate step id(s) in {path}: {', '.join(duplicates)}")

    logger.info("Loaded plan '%s' with %d steps", plan.name, len(plan.steps))
    return plan


def resolve_variables(
    variables: dict[str, VariableSpec],
    prompter: Prompter,
) -> dict[str, str]:
    """Collect a value for every plan variable.

    Precedence: ``PROVISION_VAR_<NAME>`` env var > interactive answer >
    declared default.
    """
    resolved: dict[str, str] = {}
    for name, spec in variables.items():
        env_value = os.environ.get(f"PROVISION_VAR_{name.upper()}")
        if env_value is not None:
            resolved[name] = env_value
        elif spec.prompt:
            resolved[name] = prompter.ask(spec.prompt, default=spec.default)
        else:
            resolved[name] = spec.default
        logger.debug("Variable %s = %r", name, resolved[name])
    return resolved
