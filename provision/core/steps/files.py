"""
File steps — whole files, single lines and INI values.

All three share one mutation path: take a timestamped backup of the
existing file (if any), write the new content, and record a
``file-modified`` change holding the backup path or the fact that the
file was created. Revert restores the backup or deletes the file.
"""

from __future__ import annotations

import os
import string
from pathlib import Path

from provision.core.context import ProvisionContext
from provision.core.errors import ProvisionError, StepDeclined, StepFailed
from provision.core.models.change import ChangeRecord
from provision.core.steps.base import Step, StepParams


# ── INI helpers ─────────────────────────────────────────────────


def _is_header(line: str) -> bool:
    stripped = line.strip()
    return stripped.startswith("[") and stripped.endswith("]")


def _key_of(line: str) -> str | None:
    stripped = line.strip()
    if not stripped or stripped[0] in "#;" or "=" not in stripped:
        return None
    return stripped.split("=", 1)[0].strip()


def get_ini_value(text: str, section: str, key: str) -> str | None:
    """Value of ``key`` in ``[section]``, or None if absent."""
    header = f"[{section}]"
    in_section = False
    for line in text.splitlines():
        if _is_header(line):
            in_section = line.strip() == header
        elif in_section and _key_of(line) == key:
            return line.split("=", 1)[1].strip()
    return None


def set_ini_value(text: str, section: str, key: str, value: str) -> str:
    """Return *text* with ``key=value`` set in ``[section]``.

    Edits in place: comments, ordering and other sections are kept.
    A missing key is added at the end of its section, a missing section
    at the end of the file.
    """
    header = f"[{section}]"
    entry = f"{key}={value}"
    out: list[str] = []
    in_section = False
    done = False

    def insert_at_section_end() -> None:
        idx = len(out)
        while idx > 0 and not out[idx - 1].strip():
            idx -= 1
        out.insert(idx, entry)

    for line in text.splitlines():
        if _is_header(line):
            if in_section and not done:
                insert_at_section_end()
                done = True
            in_section = line.strip() == header
        elif in_section and not done and _key_of(line) == key:
            out.append(entry)
            done = True
            continue
        out.append(line)

    if not done:
        if in_section:
            insert_at_section_end()
        else:
            if out and out[-1].strip():
                out.append("")
            out.extend([header, entry])

    return "\n".join(out) + "\n"


# ── Shared mutation path ────────────────────────────────────────


class FileEditStep(Step):
    """Base for steps that rewrite a single file."""

    def _path(self) -> str:
        return os.path.expanduser(self.params.path)

    def _write(
        self,
        ctx: ProvisionContext,
        current: str | None,
        content: str,
        mode: str | None = None,
    ) -> ChangeRecord:
        path = self._path()
        sudo = self.params.sudo
        backup = ctx.files.backup(path, sudo=sudo) if current is not None else None
        record = self.change(
            "file-modified", path=path, backup=backup, created=current is None, sudo=sudo
        )
        try:
            ctx.files.write(path, content, sudo=sudo, mode=mode)
        except (ProvisionError, OSError) as e:
            raise StepFailed(f"Could not write {path}: {e}", records=[record]) from e
        ctx.logger.info("%s %s", "Created" if current is None else "Updated", path)
        return ctx.record(record)

    def revert(self, ctx: ProvisionContext, records: list[ChangeRecord]) -> list[str]:
        warnings: list[str] = []
        for record in records:
            path = record.data["path"]
            backup = record.data.get("backup")
            sudo = bool(record.data.get("sudo"))
            try:
                if backup:
                    if not ctx.files.exists(backup, sudo=sudo):
                        warnings.append(f"Backup {backup} is gone; left {path} as is")
                        continue
                    ctx.files.restore(backup, path, sudo=sudo)
                elif record.data.get("created"):
                    ctx.files.remove(path, sudo=sudo)
            except (ProvisionError, OSError) as e:
                warnings.append(f"Could not restore {path}: {e}")
        return warnings


# ── file ────────────────────────────────────────────────────────


class FileParams(StepParams):
    path: str
    content: str | None = None
    source: str | None = None
    mode: str | None = None
    sudo: bool = False
    confirm_overwrite: str | None = None
    on_change: list[str] = []
    on_revert: list[str] = []


class FileStep(FileEditStep):
    """Make a file hold exactly the given content.

    ``source`` is a template file relative to the plan directory; it is
    rendered with the plan variables like inline ``content`` is.
    ``on_change`` commands run after the file was written (e.g.
    ``udevadm control --reload-rules``), ``on_revert`` after it was
    restored.
    """

    kind = "file"
    Params = FileParams

    def _desired(self, ctx: ProvisionContext) -> str:
        p = self.params
        if p.content is not None:
            return p.content
        if p.source is None:
            raise StepFailed(f"{self.id}: needs 'content' or 'source'")
        source = Path(p.source).expanduser()
        if not source.is_absolute():
            source = ctx.plan_dir / source
        try:
            template = source.read_text(encoding="utf-8")
        except OSError as e:
            raise StepFailed(f"Cannot read template {source}: {e}") from e
        return string.Template(template).safe_substitute(ctx.variables)

    def check(self, ctx: ProvisionContext) -> bool:
        return ctx.files.read(self._path(), sudo=self.params.sudo) == self._desired(ctx)

    def apply(self, ctx: ProvisionContext) -> list[ChangeRecord]:
        p = self.params
        desired = self._desired(ctx)
        current = ctx.files.read(self._path(), sudo=p.sudo)
        if current == desired:
            return []

        if current is not None and p.confirm_overwrite:
            if not ctx.prompter.confirm(p.confirm_overwrite, default=False):
                raise StepDeclined(f"Kept existing {self._path()}")

        records = [self._write(ctx, current, desired, mode=p.mode)]
        for command in p.on_change:
            result = self.sh(ctx, command, sudo=p.sudo)
            if not result.ok:
                raise StepFailed(
                    f"on_change command failed (exit {result.exit_code}): {command}",
                    records=records,
                    result=result,
                )
        return records

    def revert(self, ctx: ProvisionContext, records: list[ChangeRecord]) -> list[str]:
        warnings = super().revert(ctx, records)
        for command in self.params.on_revert:
            result = self.sh(ctx, command, sudo=self.params.sudo)
            if not result.ok:
                warnings.append(f"on_revert command failed (exit {result.exit_code}): {command}")
        return warnings


# ── line ────────────────────────────────────────────────────────


class LineParams(StepParams):
    path: str
    line: str
    sudo: bool = False
    create: bool = True


class LineStep(FileEditStep):
    """Ensure an exact line is present (``grep -qxF`` semantics)."""

    kind = "line"
    Params = LineParams

    def check(self, ctx: ProvisionContext) -> bool:
        text = ctx.files.read(self._path(), sudo=self.params.sudo)
        return text is not None and self.params.line in text.splitlines()

    def apply(self, ctx: ProvisionContext) -> list[ChangeRecord]:
        p = self.params
        current = ctx.files.read(self._path(), sudo=p.sudo)
        if current is None and not p.create:
            raise StepFailed(f"{self._path()} does not exist")
        if current is not None and p.line in current.splitlines():
            return []

        text = current or ""
        if text and not text.endswith("\n"):
            text += "\n"
        return [self._write(ctx, current, text + p.line + "\n")]


# ── ini ─────────────────────────────────────────────────────────


class IniParams(StepParams):
    path: str
    section: str
    key: str
    value: str
    sudo: bool = False


class IniStep(FileEditStep):
    """Set one ``key=value`` in an INI-style file (KDE rc files, php.ini)."""

    kind = "ini"
    Params = IniParams

    def check(self, ctx: ProvisionContext) -> bool:
        p = self.params
        text = ctx.files.read(self._path(), sudo=p.sudo)
        return text is not None and get_ini_value(text, p.section, p.key) == p.value

    def apply(self, ctx: ProvisionContext) -> list[ChangeRecord]:
        p = self.params
        current = ctx.files.read(self._path(), sudo=p.sudo)
        if current is not None and get_ini_value(current, p.section, p.key) == p.value:
            return []
        patched = set_ini_value(current or "", p.section, p.key, p.value)
        return [self._write(ctx, current, patched)]
