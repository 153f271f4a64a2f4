"""Instruction payload handed to the agent for one ticket."""

from __future__ import annotations

import contextlib
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from ticket_runner.tickets import Ticket

logger = logging.getLogger(__name__)


def build_prompt(ticket: Ticket, *, rules_text: str, ticket_text: str) -> str:
    """Concatenate the stage context, workflow rules, and raw ticket markdown."""

    return "\n".join(
        [
            f"# Ticket: {ticket.file} (stage: {ticket.stage}, priority: {ticket.priority})",
            f"# Next stage: {ticket.next_stage}",
            "",
            "## Ticket workflow rules:",
            "",
            rules_text,
            "",
            f"## Contents of `{ticket.path}`:",
            "",
            ticket_text,
            "",
            "## End",
            "Work the ticket as described above.",
            "When you are done, commit everything with a message like: "
            '"ticket(<stage>): <short description>"',
        ],
    )


def load_prompt(ticket: Ticket, rules_path: Path) -> str:
    return build_prompt(
        ticket,
        rules_text=rules_path.read_text("utf-8"),
        ticket_text=ticket.path.read_text("utf-8"),
    )


def instruction_path_for(log_path: Path) -> Path:
    return log_path.with_name(log_path.name.removesuffix(".log") + ".prompt.md")


@contextmanager
def instruction_file(log_path: Path, prompt: str) -> Iterator[Path]:
    """Write the prompt next to the log for the duration of one invocation."""

    path = instruction_path_for(log_path)
    path.write_text(prompt, "utf-8")
    try:
        yield path
    finally:
        with contextlib.suppress(OSError):
            path.unlink()
        logger.debug("Removed instruction file %s", path)
