"""Shared test fixtures."""

from __future__ import annotations

import sys
from collections.abc import Callable, Mapping, Sequence
from pathlib import Path

import pytest

from ticket_runner.agents import AgentAdapter, ArgvInvocation, InvocationContext
from ticket_runner.agents.claude import normalize_claude_line
from ticket_runner.config import RunnerSettings, SupervisionSettings

SCRIPTED_AGENT = (sys.executable, "-m", "ticket_runner.agents.scripted_agent")


def _scripted_invocation(*args: str) -> ArgvInvocation:
    return ArgvInvocation(program=SCRIPTED_AGENT[0], arguments=(*SCRIPTED_AGENT[1:], *args))


def _scripted_adapter(
    per_ticket: Mapping[str, Sequence[str]] | None = None,
    default: Sequence[str] = (),
) -> AgentAdapter:
    """Adapter running the scripted agent; ``per_ticket`` maps ticket file names to extra args."""

    scripts = dict(per_ticket or {})

    def _build(context: InvocationContext) -> ArgvInvocation:
        extra = scripts.get(context.ticket.file, default)
        return _scripted_invocation("--instruction", str(context.instruction_file), *extra)

    return AgentAdapter(name="scripted", build_invocation=_build, normalizer=normalize_claude_line)


@pytest.fixture()
def repo_root(tmp_path: Path) -> Path:
    """Checkout-like layout with a rules document and empty stage directories."""

    rules = tmp_path / "agent-rules" / "tickets.md"
    rules.parent.mkdir(parents=True)
    rules.write_text("Move the ticket to the next stage when done.\n", "utf-8")
    for stage in ("fix", "plan", "implement", "review"):
        (tmp_path / "tickets" / stage).mkdir(parents=True)
    return tmp_path


@pytest.fixture()
def make_ticket(repo_root: Path) -> Callable[..., Path]:
    def _make(stage: str, name: str, text: str = "# Ticket\n\nDo the thing.\n") -> Path:
        path = repo_root / "tickets" / stage / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, "utf-8")
        return path

    return _make


@pytest.fixture()
def settings(repo_root: Path) -> RunnerSettings:
    return RunnerSettings(
        repo_root=repo_root,
        inter_ticket_pause_seconds=0.0,
        supervision=SupervisionSettings(
            idle_timeout_seconds=20.0,
            result_grace_seconds=10.0,
            echo_agent_output=False,
        ),
    )


@pytest.fixture()
def scripted_invocation() -> Callable[..., ArgvInvocation]:
    return _scripted_invocation


@pytest.fixture()
def scripted_adapter() -> Callable[..., AgentAdapter]:
    return _scripted_adapter
