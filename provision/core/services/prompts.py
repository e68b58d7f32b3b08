"""
Interactive prompts — yes/no and free-text questions with a
non-interactive override.

A run started with ``--yes`` (or without a terminal on stdin) never
blocks on input: confirmations resolve to yes under ``--yes`` and to
their default otherwise, free-text questions resolve to their default.
"""

from __future__ import annotations

import logging
import sys

import click

logger = logging.getLogger(__name__)


class Prompter:
    """Line-based prompts on the controlling terminal."""

    def __init__(self, assume_yes: bool = False, interactive: bool | None = None):
        self.assume_yes = assume_yes
        self.interactive = sys.stdin.isatty() if interactive is None else interactive

    @property
    def can_prompt(self) -> bool:
        return self.interactive and not self.assume_yes

    def confirm(self, question: str, default: bool = True) -> bool:
        """Ask a yes/no question."""
        if self.assume_yes:
            logger.info("%s → yes (--yes)", question)
            return True
        if not self.interactive:
            logger.info("%s → %s (non-interactive default)", question, "yes" if default else "no")
            return default
        try:
            return click.confirm(question, default=default)
        except click.Abort:
            raise KeyboardInterrupt from None

    def ask(self, question: str, default: str = "") -> str:
        """Ask for a line of text."""
        if not self.can_prompt:
            return default
        try:
            return click.prompt(question, default=default, show_default=bool(default))
        except click.Abort:
            raise KeyboardInterrupt from None
