"""
Tests for built-in step kinds against the fake host.
"""

from __future__ import annotations

import stat
from pathlib import Path

import pytest
from pydantic import ValidationError

from provision.adapters.shell.command import ShellExecutor
from provision.core.context import ProvisionContext
from provision.core.errors import (
    CheckError,
    ConfigError,
    StepDeclined,
    StepFailed,
    UnsupportedPlatform,
)
from provision.core.models.plan import StepSpec
from provision.core.services.prompts import Prompter
from provision.core.steps import (
    STEP_KINDS,
    CommandStep,
    FileStep,
    GroupStep,
    IniStep,
    LineStep,
    PackageStep,
    ServiceStep,
    build_step,
)
from provision.core.steps.files import get_ini_value, set_ini_value


# ── packages ─────────────────────────────────────────────────────────


class TestPackageStep:
    def test_check(self, ctx, host):
        host.installed |= {"git", "curl"}
        assert PackageStep("base", params={"packages": ["git", "curl"]}).check(ctx)
        assert not PackageStep("base", params={"packages": ["git", "zip"]}).check(ctx)

    def test_records_only_packages_that_were_absent(self, ctx, host):
        host.installed.add("git")
        step = PackageStep("base", params={"packages": ["git", "curl"]})

        records = step.apply(ctx)

        assert [r.data["package"] for r in records] == ["curl"]
        assert records[0].kind == "package-installed"
        assert records[0].data["manager"] == "pacman"
        installs = host.executor.calls_matching("pacman -S --needed")
        assert [c.argv[-1] for c in installs] == ["curl"]
        assert installs[0].sudo is True

    def test_continues_past_failures(self, ctx, host):
        host.broken.add("bad")
        step = PackageStep("base", params={"packages": ["a", "bad", "c"]})

        with pytest.raises(StepFailed) as exc:
            step.apply(ctx)

        assert "bad" in str(exc.value)
        assert [r.data["package"] for r in exc.value.records] == ["a", "c"]
        assert exc.value.result is not None

    def test_aur_fallback(self, ctx, host):
        host.repo = {"firefox"}
        host.aur = {"visual-studio-code-bin"}
        step = PackageStep(
            "apps",
            params={"packages": ["firefox", "visual-studio-code-bin"], "aur_fallback": True},
        )

        records = step.apply(ctx)

        assert {r.data["package"]: r.data["manager"] for r in records} == {
            "firefox": "pacman",
            "visual-studio-code-bin": "yay",
        }
        aur_call = host.executor.calls_matching("yay -S --noconfirm")[0]
        assert aur_call.sudo is False

    def test_aur_source_without_helper(self, ctx, host):
        ctx.aur = None
        step = PackageStep("apps", params={"packages": ["postman-bin"], "source": "aur"})
        with pytest.raises(StepFailed):
            step.apply(ctx)

    def test_no_package_manager(self, ctx):
        ctx.package_manager = None
        step = PackageStep("base", params={"packages": ["git"]})
        with pytest.raises(UnsupportedPlatform):
            step.check(ctx)

    def test_revert_removes_only_recorded(self, ctx, host):
        host.installed.add("git")
        step = PackageStep("base", params={"packages": ["git", "curl", "zip"]})
        records = step.apply(ctx)

        warnings = step.revert(ctx, list(reversed(records)))

        assert warnings == []
        assert host.installed == {"git"}
        removal = host.executor.calls_matching("pacman -Rns")[0]
        assert removal.argv[3:] == ["zip", "curl"]
        assert removal.sudo is True

    def test_revert_skips_packages_already_gone(self, ctx, host):
        step = PackageStep("base", params={"packages": ["curl"]})
        records = step.apply(ctx)
        host.installed.clear()

        assert step.revert(ctx, records) == []
        assert host.executor.calls_matching("pacman -Rns") == []

    def test_revert_failure_is_a_warning(self, ctx, host):
        step = PackageStep("base", params={"packages": ["curl"]})
        records = step.apply(ctx)
        host.executor.set_handler("pacman -Rns", lambda argv: (1, ""))

        warnings = step.revert(ctx, records)

        assert len(warnings) == 1
        assert "Some removals failed" in warnings[0]


# ── service ──────────────────────────────────────────────────────────


class TestServiceStep:
    def test_enable_and_start(self, ctx, host):
        host.add_unit("docker")
        step = ServiceStep("docker", params={"unit": "docker"})
        assert not step.check(ctx)

        records = step.apply(ctx)

        assert host.units["docker.service"] == {"enabled": True, "active": True}
        assert records[0].kind == "service-enabled"
        assert records[0].data == {
            "unit": "docker", "user": False, "enabled": True, "started": True,
        }
        assert step.check(ctx)
        assert host.executor.calls_matching("systemctl enable")[0].sudo is True

    def test_records_only_what_changed(self, ctx, host):
        host.add_unit("sshd", enabled=True)
        records = ServiceStep("sshd", params={"unit": "sshd"}).apply(ctx)
        assert records[0].data["enabled"] is False
        assert records[0].data["started"] is True

    def test_missing_unit(self, ctx, host):
        with pytest.raises(StepFailed, match="not found"):
            ServiceStep("ghost", params={"unit": "ghost"}).apply(ctx)
        assert host.executor.calls_matching("systemctl daemon-reload")

    def test_unit_found_after_reload(self, ctx, host):
        host.executor.set_handler("systemctl daemon-reload", lambda argv: host.add_unit("fresh") or 0)
        records = ServiceStep("fresh", params={"unit": "fresh"}).apply(ctx)
        assert records[0].data["enabled"] is True

    def test_start_failure_keeps_enable_record(self, ctx, host):
        host.add_unit("nginx")
        host.executor.set_handler("systemctl start", lambda argv: 1)

        with pytest.raises(StepFailed) as exc:
            ServiceStep("nginx", params={"unit": "nginx"}).apply(ctx)

        assert len(exc.value.records) == 1
        assert exc.value.records[0].data["enabled"] is True
        assert exc.value.records[0].data["started"] is False

    def test_revert(self, ctx, host):
        host.add_unit("docker")
        step = ServiceStep("docker", params={"unit": "docker"})
        records = step.apply(ctx)

        assert step.revert(ctx, records) == []
        assert host.units["docker.service"] == {"enabled": False, "active": False}

    def test_user_unit_without_sudo(self, ctx, host):
        step = ServiceStep("pipewire", params={"unit": "pipewire", "user": True})
        step.check(ctx)
        call = host.executor.calls_matching("systemctl --user")[0]
        assert call.sudo is False


# ── group ────────────────────────────────────────────────────────────


class TestGroupStep:
    def test_add_membership(self, ctx, host):
        host.groups["vboxusers"] = set()
        step = GroupStep("vbox", params={"group": "vboxusers"})
        assert not step.check(ctx)

        records = step.apply(ctx)

        assert host.groups["vboxusers"] == {"alice"}
        assert records[0].kind == "group-membership-added"
        assert records[0].data == {"user": "alice", "group": "vboxusers"}
        assert step.check(ctx)

    def test_already_member(self, ctx, host):
        host.groups["docker"] = {"alice"}
        step = GroupStep("docker", params={"group": "docker"})
        assert step.check(ctx)
        assert step.apply(ctx) == []

    def test_missing_group(self, ctx, host):
        with pytest.raises(StepFailed, match="does not exist"):
            GroupStep("vbox", params={"group": "vboxusers"}).apply(ctx)

    def test_unknown_user(self, ctx, host):
        host.groups["docker"] = set()
        host.executor.set_response("id -nG ghost", exit_code=1, stderr="id: ghost: no such user")
        step = GroupStep("docker", params={"group": "docker", "user": "ghost"})

        with pytest.raises(CheckError, match="ghost"):
            step.check(ctx)
        with pytest.raises(StepFailed, match="no such user"):
            step.apply(ctx)
        assert not host.executor.calls_matching("gpasswd")

    def test_explicit_user(self, ctx, host):
        host.groups["wheel"] = set()
        GroupStep("wheel", params={"group": "wheel", "user": "bob"}).apply(ctx)
        assert host.groups["wheel"] == {"bob"}

    def test_revert(self, ctx, host):
        host.groups["vboxusers"] = set()
        step = GroupStep("vbox", params={"group": "vboxusers"})
        records = step.apply(ctx)

        assert step.revert(ctx, records) == []
        assert host.groups["vboxusers"] == set()
        assert step.revert(ctx, records)  # second time: already removed


# ── command ──────────────────────────────────────────────────────────


class TestCommandStep:
    def test_without_check_is_never_satisfied(self, ctx):
        assert not CommandStep("c", params={"apply": "true"}).check(ctx)

    def test_check_exit_code(self, ctx, host):
        host.executor.set_handler("sh -c", lambda argv: 0 if argv[2] == "command -v composer" else 1)
        step = CommandStep("c", params={"apply": "install-it", "check": "command -v composer"})
        assert step.check(ctx)

    def test_apply_records_only_with_revert(self, ctx, host):
        assert CommandStep("c", params={"apply": "valet install"}).apply(ctx) == []

        records = CommandStep(
            "c", params={"apply": "valet install", "revert": "valet uninstall --force"},
        ).apply(ctx)
        assert records[0].kind == "command-run"
        assert records[0].data["revert"] == "valet uninstall --force"

    def test_apply_failure(self, ctx, host):
        host.executor.set_handler("sh -c", lambda argv: (2, ""))
        with pytest.raises(StepFailed) as exc:
            CommandStep("c", params={"apply": "exit 2"}).apply(ctx)
        assert exc.value.result.exit_code == 2

    def test_sudo_and_revert(self, ctx, host):
        step = CommandStep("c", params={"apply": "a", "revert": "rm -f /x", "sudo": True})
        records = step.apply(ctx)

        assert step.revert(ctx, records) == []
        calls = host.executor.calls_matching("sh -c")
        assert [c.argv[2] for c in calls] == ["a", "rm -f /x"]
        assert all(c.sudo for c in calls)

    def test_timeout_passed_to_executor(self, ctx, host):
        CommandStep("c", timeout=30, params={"apply": "sleep 1"}).apply(ctx)
        assert host.executor.call_log[-1].timeout == 30


# ── file ─────────────────────────────────────────────────────────────


class TestFileStep:
    def test_create_and_revert(self, ctx, tmp_path: Path):
        target = tmp_path / "etc" / "99-android.rules"
        step = FileStep("udev", params={"path": str(target), "content": "RULE\n"})
        assert not step.check(ctx)

        records = step.apply(ctx)

        assert target.read_text() == "RULE\n"
        assert records[0].data["created"] is True
        assert records[0].data["backup"] is None
        assert step.check(ctx)

        assert step.revert(ctx, records) == []
        assert not target.exists()

    def test_overwrite_takes_backup(self, ctx, tmp_path: Path):
        target = tmp_path / "app.conf"
        target.write_text("old\n")
        step = FileStep("conf", params={"path": str(target), "content": "new\n"})

        records = step.apply(ctx)

        backup = Path(records[0].data["backup"])
        assert backup.name.startswith("app.conf.bak.")
        assert backup.read_text() == "old\n"
        assert target.read_text() == "new\n"

        step.revert(ctx, records)
        assert target.read_text() == "old\n"

    def test_matching_file_is_left_alone(self, ctx, tmp_path: Path):
        target = tmp_path / "same.conf"
        target.write_text("same\n")
        step = FileStep("conf", params={"path": str(target), "content": "same\n"})
        assert step.check(ctx)
        assert step.apply(ctx) == []

    def test_overwrite_confirmation_declined(self, ctx, tmp_path: Path):
        target = tmp_path / "rules"
        target.write_text("mine\n")
        step = FileStep(
            "udev",
            params={"path": str(target), "content": "theirs\n", "confirm_overwrite": "Overwrite?"},
        )
        with pytest.raises(StepDeclined):
            step.apply(ctx)
        assert target.read_text() == "mine\n"

    def test_overwrite_confirmation_with_yes(self, ctx, tmp_path: Path):
        ctx.prompter = Prompter(assume_yes=True)
        target = tmp_path / "rules"
        target.write_text("mine\n")
        step = FileStep(
            "udev",
            params={"path": str(target), "content": "theirs\n", "confirm_overwrite": "Overwrite?"},
        )
        step.apply(ctx)
        assert target.read_text() == "theirs\n"

    def test_source_template(self, ctx, tmp_path: Path):
        (tmp_path / "templates").mkdir()
        (tmp_path / "templates" / "rule.tmpl").write_text('ATTR{idVendor}=="$vendor" HOME=$HOME\n')
        ctx.variables = {"vendor": "18d1"}
        target = tmp_path / "out.rules"
        step = FileStep("udev", params={"path": str(target), "source": "templates/rule.tmpl"})

        step.apply(ctx)

        assert target.read_text() == 'ATTR{idVendor}=="18d1" HOME=$HOME\n'

    def test_missing_content_and_source(self, ctx, tmp_path: Path):
        step = FileStep("bad", params={"path": str(tmp_path / "x")})
        with pytest.raises(StepFailed):
            step.apply(ctx)

    def test_mode(self, ctx, tmp_path: Path):
        target = tmp_path / "secret"
        FileStep("s", params={"path": str(target), "content": "x", "mode": "0600"}).apply(ctx)
        assert stat.S_IMODE(target.stat().st_mode) == 0o600

    def test_on_change_failure_keeps_record(self, ctx, host, tmp_path: Path):
        host.executor.set_handler("sh -c", lambda argv: 1)
        target = tmp_path / "rules"
        step = FileStep(
            "udev",
            params={"path": str(target), "content": "x\n", "on_change": ["udevadm control --reload-rules"]},
        )
        with pytest.raises(StepFailed) as exc:
            step.apply(ctx)
        assert exc.value.records[0].data["path"] == str(target)

    def test_sudo_write_goes_through_executor(self, ctx, host):
        host.executor.set_handler("test -e", lambda argv: 1)
        step = FileStep(
            "udev",
            params={"path": "/etc/udev/rules.d/99-x.rules", "content": "R\n", "sudo": True, "mode": "0644"},
        )

        records = step.apply(ctx)

        tee = host.executor.calls_matching("tee")[0]
        assert tee.sudo is True
        assert tee.input == "R\n"
        assert host.executor.calls_matching("chmod 0644")
        assert records[0].data["sudo"] is True

    def test_revert_with_missing_backup_warns(self, ctx, tmp_path: Path):
        target = tmp_path / "conf"
        target.write_text("old")
        step = FileStep("conf", params={"path": str(target), "content": "new"})
        records = step.apply(ctx)
        Path(records[0].data["backup"]).unlink()

        warnings = step.revert(ctx, records)

        assert len(warnings) == 1
        assert target.read_text() == "new"


# ── line ─────────────────────────────────────────────────────────────


class TestLineStep:
    def test_append_and_revert(self, ctx, tmp_path: Path):
        rc = tmp_path / ".zshrc"
        rc.write_text("export A=1")  # no trailing newline
        step = LineStep("theme", params={"path": str(rc), "line": 'ZSH_THEME="agnoster"'})
        assert not step.check(ctx)

        records = step.apply(ctx)

        assert rc.read_text() == 'export A=1\nZSH_THEME="agnoster"\n'
        assert step.check(ctx)
        assert step.apply(ctx) == []

        step.revert(ctx, records)
        assert rc.read_text() == "export A=1"

    def test_exact_line_match(self, ctx, tmp_path: Path):
        rc = tmp_path / "rc"
        rc.write_text("# ZSH_THEME=x\n")
        assert not LineStep("l", params={"path": str(rc), "line": "ZSH_THEME=x"}).check(ctx)

    def test_missing_file_without_create(self, ctx, tmp_path: Path):
        step = LineStep("l", params={"path": str(tmp_path / "nope"), "line": "x", "create": False})
        with pytest.raises(StepFailed):
            step.apply(ctx)

    def test_creates_file(self, ctx, tmp_path: Path):
        target = tmp_path / "new"
        records = LineStep("l", params={"path": str(target), "line": "x"}).apply(ctx)
        assert target.read_text() == "x\n"
        assert records[0].data["created"] is True


# ── ini ──────────────────────────────────────────────────────────────


class TestIniHelpers:
    TEXT = "# kwinrc\n[Windows]\nFocusPolicy=Click\n\n[Plugins]\nblurEnabled=true\n"

    def test_get(self):
        assert get_ini_value(self.TEXT, "Windows", "FocusPolicy") == "Click"
        assert get_ini_value(self.TEXT, "Plugins", "FocusPolicy") is None
        assert get_ini_value(self.TEXT, "Missing", "x") is None

    def test_replace_existing(self):
        out = set_ini_value(self.TEXT, "Windows", "FocusPolicy", "Mouse")
        assert "FocusPolicy=Mouse" in out
        assert "FocusPolicy=Click" not in out
        assert out.startswith("# kwinrc\n")

    def test_add_to_existing_section(self):
        out = set_ini_value(self.TEXT, "Windows", "BorderlessMaximizedWindows", "true")
        assert out == (
            "# kwinrc\n[Windows]\nFocusPolicy=Click\nBorderlessMaximizedWindows=true\n\n"
            "[Plugins]\nblurEnabled=true\n"
        )

    def test_add_new_section(self):
        out = set_ini_value(self.TEXT, "Compositing", "Enabled", "false")
        assert out.endswith("blurEnabled=true\n\n[Compositing]\nEnabled=false\n")

    def test_empty_file(self):
        assert set_ini_value("", "A", "k", "v") == "[A]\nk=v\n"


class TestIniStep:
    def test_apply_and_revert(self, ctx, tmp_path: Path):
        rc = tmp_path / "kwinrc"
        rc.write_text("[Windows]\nFocusPolicy=Click\n")
        step = IniStep(
            "kwin",
            params={"path": str(rc), "section": "Windows", "key": "FocusPolicy", "value": "Mouse"},
        )
        assert not step.check(ctx)

        records = step.apply(ctx)

        assert rc.read_text() == "[Windows]\nFocusPolicy=Mouse\n"
        assert step.check(ctx)

        step.revert(ctx, records)
        assert rc.read_text() == "[Windows]\nFocusPolicy=Click\n"


# ── root-owned files ─────────────────────────────────────────────────


@pytest.fixture
def shell_ctx(tmp_path: Path, monkeypatch) -> ProvisionContext:
    """Real shell context whose privileged commands run without sudo."""
    monkeypatch.setattr(ShellExecutor, "_argv", lambda self, command, args, sudo: [command, *args])
    return ProvisionContext(
        executor=ShellExecutor(non_interactive=True),
        prompter=Prompter(interactive=False),
        plan_dir=tmp_path,
        user="alice",
    )


class TestRootOwnedFiles:
    """Files edited with ``sudo: true`` go through cat/tee and must keep their bytes."""

    def test_file_without_final_newline_is_idempotent(self, shell_ctx, tmp_path: Path):
        target = tmp_path / "etc" / "app.conf"
        step = FileStep("conf", params={"path": str(target), "content": "A=1", "sudo": True})

        step.apply(shell_ctx)

        assert target.read_text() == "A=1"
        assert step.check(shell_ctx)
        assert step.apply(shell_ctx) == []

    def test_line_keeps_indentation_and_blank_lines(self, shell_ctx, tmp_path: Path):
        target = tmp_path / "rc"
        target.write_text("  indented=1\n\n")
        step = LineStep("l", params={"path": str(target), "line": "x=2", "sudo": True})

        records = step.apply(shell_ctx)

        assert target.read_text() == "  indented=1\n\nx=2\n"
        assert step.check(shell_ctx)
        step.revert(shell_ctx, records)
        assert target.read_text() == "  indented=1\n\n"

    def test_ini_keeps_rest_of_file(self, shell_ctx, tmp_path: Path):
        target = tmp_path / "php.ini"
        target.write_text("; php.ini\n\n[PHP]\n  memory_limit=128M\n\n")
        step = IniStep(
            "php",
            params={"path": str(target), "section": "PHP", "key": "upload_max", "value": "64M", "sudo": True},
        )

        step.apply(shell_ctx)

        assert target.read_text() == "; php.ini\n\n[PHP]\n  memory_limit=128M\nupload_max=64M\n\n"


# ── registry ─────────────────────────────────────────────────────────


class TestRegistry:
    def test_known_kinds(self):
        assert set(STEP_KINDS) == {"packages", "service", "file", "line", "ini", "group", "command"}

    def test_build_renders_variables(self):
        spec = StepSpec.model_validate({
            "id": "udev",
            "kind": "file",
            "label": "Rule for $vendor",
            "path": "/etc/udev/rules.d/99-$vendor.rules",
            "content": 'ATTR{idVendor}=="$vendor" $HOME ${vendor}x',
            "on_change": ["echo $vendor"],
        })

        step = build_step(spec, {"vendor": "18d1"})

        assert isinstance(step, FileStep)
        assert step.label == "Rule for 18d1"
        assert step.params.path == "/etc/udev/rules.d/99-18d1.rules"
        assert step.params.content == 'ATTR{idVendor}=="18d1" $HOME 18d1x'
        assert step.params.on_change == ["echo 18d1"]

    def test_common_fields(self):
        spec = StepSpec.model_validate({
            "id": "apps", "kind": "packages", "packages": ["vlc"],
            "policy": "warn", "timeout": 60, "confirm": "Install apps?", "confirm_default": False,
        })
        step = build_step(spec)
        assert step.policy == "warn"
        assert step.timeout == 60
        assert step.confirm == "Install apps?"
        assert step.confirm_default is False
        assert step.label == "apps"

    def test_unknown_kind(self):
        spec = StepSpec.model_validate({"id": "x", "kind": "flatpak"})
        with pytest.raises(ConfigError, match="unknown kind"):
            build_step(spec)

    def test_invalid_params(self):
        spec = StepSpec.model_validate({"id": "x", "kind": "packages", "pakages": ["vlc"]})
        with pytest.raises(ConfigError, match="invalid parameters"):
            build_step(spec)

    def test_params_are_frozen(self):
        step = PackageStep("p", params={"packages": ["vlc"]})
        with pytest.raises(ValidationError):
            step.params.packages = ["other"]
