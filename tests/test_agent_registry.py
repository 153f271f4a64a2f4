from __future__ import annotations

from pathlib import Path

import allure
import pytest

from ticket_runner.agents import (
    SUPPORTED_AGENTS,
    ArgvInvocation,
    InvocationContext,
    ShellInvocation,
    StreamEvent,
    UnknownAgentError,
    resolve_adapter,
)
from ticket_runner.tickets import Ticket

pytestmark = [
    allure.epic("Agent Adapters"),
    allure.feature("Registry & Invocation Rendering"),
]


def _context(tmp_path: Path, stage: str = "fix") -> InvocationContext:
    ticket = Ticket(
        file="5-a.md",
        path=tmp_path / "tickets" / stage / "5-a.md",
        stage=stage,
        priority=5,
    )
    return InvocationContext(
        ticket=ticket,
        instruction_file=tmp_path / "tickets" / ".logs" / "5-a.fix.stamp.prompt.md",
        prompt="prompt text",
        cwd=tmp_path,
    )


def test_registry_lists_known_agents() -> None:
    assert SUPPORTED_AGENTS == ("claude", "auggie", "cursor")


def test_resolve_adapter_is_case_insensitive() -> None:
    assert resolve_adapter(" Claude ").name == "claude"


def test_unknown_agent_raises_with_available_names() -> None:
    with pytest.raises(UnknownAgentError, match="Unknown agent: codex. Available: claude"):
        resolve_adapter("codex")


@pytest.mark.parametrize(
    ("stage", "effort"),
    [("fix", "high"), ("plan", "high"), ("review", "high"), ("implement", "medium")],
)
def test_claude_invocation_is_argv_with_stage_effort(
    tmp_path: Path,
    stage: str,
    effort: str,
) -> None:
    context = _context(tmp_path, stage)

    invocation = resolve_adapter("claude").build_invocation(context)

    assert isinstance(invocation, ArgvInvocation)
    assert invocation.program == "claude"
    args = list(invocation.arguments)
    assert args[:4] == [
        "-p",
        "--dangerously-skip-permissions",
        "--verbose",
        "--no-session-persistence",
    ]
    assert args[args.index("--output-format") + 1] == "stream-json"
    assert args[args.index("--effort") + 1] == effort
    assert args[args.index("--append-system-prompt-file") + 1] == str(context.instruction_file)
    assert args[-1] == "Work the ticket as described in the appended system prompt."


def test_auggie_invocation_and_raw_passthrough(tmp_path: Path) -> None:
    context = _context(tmp_path)
    adapter = resolve_adapter("auggie")

    invocation = adapter.build_invocation(context)

    assert invocation == ArgvInvocation(
        program="auggie",
        arguments=("--print", "--instruction", str(context.instruction_file)),
    )
    assert adapter.normalizer is None
    assert adapter.normalize('{"type": "result"}') == StreamEvent(text='{"type": "result"}\n')


def test_cursor_invocation_is_single_shell_string(tmp_path: Path) -> None:
    context = _context(tmp_path)

    invocation = resolve_adapter("cursor").build_invocation(context)

    assert isinstance(invocation, ShellInvocation)
    assert invocation.command == (
        "agent --print -f --trust --output-format stream-json "
        f'--workspace "{tmp_path}" '
        '"Read and follow all instructions in the file: '
        'tickets/.logs/5-a.fix.stamp.prompt.md"'
    )
    assert invocation.popen_args() == invocation.command
    assert invocation.label == "agent"
