"""Adapter interface between a ticket run and an external agent CLI."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from ticket_runner.tickets import Ticket


@dataclass(frozen=True, slots=True)
class StreamEvent:
    """Normalized view of one line of agent output.

    ``done`` signals that the agent emitted its final structured result even if
    the process has not exited yet.
    """

    text: str
    done: bool = False
    exit_code: int | None = None


@dataclass(frozen=True, slots=True)
class ArgvInvocation:
    """Exec a program directly with an argument vector."""

    program: str
    arguments: tuple[str, ...] = ()

    @property
    def label(self) -> str:
        return self.program

    def popen_args(self) -> list[str]:
        return [self.program, *self.arguments]


@dataclass(frozen=True, slots=True)
class ShellInvocation:
    """One command string interpreted by the host shell."""

    command: str

    @property
    def label(self) -> str:
        return "agent"

    def popen_args(self) -> str:
        return self.command


Invocation = ArgvInvocation | ShellInvocation
LineNormalizer = Callable[[str], StreamEvent]


@dataclass(frozen=True, slots=True)
class InvocationContext:
    """Everything an adapter may use to render its command line."""

    ticket: Ticket
    instruction_file: Path
    prompt: str
    cwd: Path


@dataclass(frozen=True, slots=True)
class AgentAdapter:
    """Per-agent protocol knowledge: how to launch it and how to read its output."""

    name: str
    build_invocation: Callable[[InvocationContext], Invocation]
    normalizer: LineNormalizer | None = None

    def normalize(self, line: str) -> StreamEvent:
        """Normalize one raw output line; adapters without a normalizer pass it through."""

        if self.normalizer is None:
            return passthrough_event(line)
        return self.normalizer(line)


def passthrough_event(line: str) -> StreamEvent:
    """Plain-text event for lines that are not recognized agent messages."""

    return StreamEvent(text=line if line.endswith("\n") else line + "\n")


def truncate(text: str, limit: int = 200) -> str:
    return text[:limit]
