"""
Tests for plan loading, variable resolution and the bundled plans.
"""

from pathlib import Path

import pytest

from provision.core.config.loader import (
    find_plan_file,
    load_plan,
    resolve_variables,
)
from provision.core.errors import ConfigError
from provision.core.models.plan import VariableSpec
from provision.core.services.prompts import Prompter
from provision.core.engine.runner import run_steps
from provision.core.steps import build_steps

PLANS_DIR = Path(__file__).parent.parent / "plans"

MINIMAL = """\
    name: demo
    steps:
      - id: base
        kind: packages
        packages: [git]
"""


class TestLoadPlan:
    def test_minimal(self, write_plan):
        plan = load_plan(write_plan(MINIMAL))
        assert plan.name == "demo"
        assert plan.step_ids == ["base"]
        assert plan.package_manager == "auto"
        assert plan.aur_helper == "auto"
        step = plan.get_step("base")
        assert step is not None
        assert step.policy == "fatal"
        assert step.params == {"packages": ["git"]}
        assert plan.get_step("nope") is None

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(ConfigError, match="not found"):
            load_plan(tmp_path / "provision.yml")

    def test_no_plan_anywhere(self, tmp_path: Path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        with pytest.raises(ConfigError, match="No provision.yml"):
            load_plan()

    def test_invalid_yaml(self, write_plan):
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_plan(write_plan("name: [unclosed\n"))

    def test_not_a_mapping(self, write_plan):
        with pytest.raises(ConfigError, match="mapping"):
            load_plan(write_plan("- a\n- b\n"))

    def test_schema_violation(self, write_plan):
        with pytest.raises(ConfigError, match="Invalid plan"):
            load_plan(write_plan("""\
                name: demo
                steps:
                  - id: x
                    kind: command
                    policy: sometimes
                    apply: "true"
            """))

    def test_duplicate_ids(self, write_plan):
        with pytest.raises(ConfigError, match="Duplicate step id"):
            load_plan(write_plan("""\
                name: demo
                steps:
                  - {id: a, kind: command, apply: "true"}
                  - {id: a, kind: command, apply: "false"}
            """))

    def test_find_walks_up(self, write_plan, tmp_path: Path):
        path = write_plan(MINIMAL)
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)
        assert find_plan_file(nested) == path.resolve()


class TestResolveVariables:
    def test_default(self):
        values = resolve_variables({"vendor": VariableSpec(default="1004")}, Prompter(interactive=False))
        assert values == {"vendor": "1004"}

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("PROVISION_VAR_VENDOR", "18d1")
        values = resolve_variables(
            {"vendor": VariableSpec(default="1004", prompt="Vendor?")},
            Prompter(interactive=True),
        )
        assert values == {"vendor": "18d1"}

    def test_prompt(self, monkeypatch):
        monkeypatch.delenv("PROVISION_VAR_VENDOR", raising=False)
        monkeypatch.setattr("click.prompt", lambda *a, **kw: "05ac")
        values = resolve_variables(
            {"vendor": VariableSpec(default="1004", prompt="Vendor?")},
            Prompter(interactive=True),
        )
        assert values == {"vendor": "05ac"}

    def test_yes_uses_default_without_prompting(self, monkeypatch):
        monkeypatch.delenv("PROVISION_VAR_VENDOR", raising=False)

        def _boom(*a, **kw):
            raise AssertionError("prompted")

        monkeypatch.setattr("click.prompt", _boom)
        values = resolve_variables(
            {"vendor": VariableSpec(default="1004", prompt="Vendor?")},
            Prompter(assume_yes=True, interactive=True),
        )
        assert values == {"vendor": "1004"}


class TestBundledPlans:
    @pytest.mark.parametrize("name", ["arch-workstation.yml", "opensuse-workstation.yml"])
    def test_plan_loads_and_builds(self, name: str):
        plan = load_plan(PLANS_DIR / name)
        variables = {k: v.default for k, v in plan.variables.items()}
        steps = build_steps(plan, variables)
        assert [s.id for s in steps] == plan.step_ids

    def test_udev_rule_rendered(self):
        plan = load_plan(PLANS_DIR / "arch-workstation.yml")
        steps = {s.id: s for s in build_steps(plan, {"iphone_vendor": "05ac", "android_vendor": "18d1", "android_product": "4ee7"})}
        content = steps["udev-android"].params.content
        assert 'ATTR{idVendor}=="18d1"' in content
        assert 'ATTR{idProduct}=="4ee7"' in content
        assert content.endswith("\n")

    def _arch_steps(self, **overrides: str):
        plan = load_plan(PLANS_DIR / "arch-workstation.yml")
        variables = {k: v.default for k, v in plan.variables.items()}
        variables.update(overrides)
        return plan, {s.id: s for s in build_steps(plan, variables)}

    def test_arch_plan_covers_dev_stack(self):
        plan, _ = self._arch_steps()
        kinds = {s.id: s.kind for s in plan.steps}
        assert kinds["git-identity-name"] == "command"
        assert kinds["git-identity-email"] == "command"
        assert kinds["zshrc-composer-path"] == "line"
        for name in ("mariadb", "postgresql", "valkey"):
            assert kinds[name] == "packages"
            assert kinds[f"{name}-service"] == "service"
        assert kinds["valet-linux"] == "command"
        assert kinds["valet-install"] == "command"
        assert kinds["ollama-listen-all"] == "file"
        assert kinds["ollama-model"] == "command"

    def test_database_failure_policies(self):
        plan, _ = self._arch_steps()
        policy = {s.id: s.policy for s in plan.steps}
        assert policy["mariadb"] == policy["mariadb-service"] == "fatal"
        assert policy["postgresql"] == policy["postgresql-service"] == "fatal"
        assert policy["valkey"] == "fatal"
        assert policy["valkey-service"] == "warn"

    def test_git_identity_rendered(self):
        _, steps = self._arch_steps(git_name="Jane Doe", git_email="jane@example.org")
        assert steps["git-identity-name"].params.apply == 'git config --global user.name "Jane Doe"'
        assert steps["git-identity-email"].params.apply == 'git config --global user.email "jane@example.org"'
        assert steps["ollama-model"].params.apply == 'ollama pull "deepseek-coder-v2:16b"'

    def test_shell_variables_left_alone(self):
        _, steps = self._arch_steps()
        line = steps["zshrc-composer-path"].params.line
        assert line == 'export PATH="$HOME/.config/composer/vendor/bin:$PATH"'

    def test_git_identity_runs_and_is_recorded(self, ctx, store, host):
        scripts: list[str] = []

        def _sh(argv):
            scripts.append(argv[2])
            # the configured name does not match yet
            return 1 if argv[2].startswith("[ -z") else 0

        host.executor.set_handler("sh -c", _sh)
        _, steps = self._arch_steps(git_name="Jane Doe")

        report = run_steps([steps["git-identity-name"]], ctx, store)

        assert report.results[0].outcome == "applied"
        assert scripts[-1] == 'git config --global user.name "Jane Doe"'
        records = store.records_for("git-identity-name")
        assert records[0].data["revert"] == "git config --global --unset user.name"

    def test_empty_git_identity_is_satisfied(self, ctx, store, host):
        host.executor.set_handler("sh -c", lambda argv: 0 if argv[2].startswith('[ -z ""') else 1)
        _, steps = self._arch_steps()

        report = run_steps([steps["git-identity-email"]], ctx, store)

        assert report.results[0].outcome == "already-satisfied"
