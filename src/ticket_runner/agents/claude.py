"""Claude Code adapter: argv invocation and ``stream-json`` normalization."""

from __future__ import annotations

import json
from typing import Any

from ticket_runner.agents.base import (
    AgentAdapter,
    ArgvInvocation,
    InvocationContext,
    StreamEvent,
    passthrough_event,
    truncate,
)

_HIGH_EFFORT_STAGES = frozenset({"fix", "plan", "review"})
_KICKOFF_MESSAGE = "Work the ticket as described in the appended system prompt."


def build_claude_invocation(context: InvocationContext) -> ArgvInvocation:
    effort = "high" if context.ticket.stage in _HIGH_EFFORT_STAGES else "medium"
    return ArgvInvocation(
        program="claude",
        arguments=(
            "-p",
            "--dangerously-skip-permissions",
            "--verbose",
            "--no-session-persistence",
            "--output-format",
            "stream-json",
            "--effort",
            effort,
            "--append-system-prompt-file",
            str(context.instruction_file),
            _KICKOFF_MESSAGE,
        ),
    )


def normalize_claude_line(line: str) -> StreamEvent:
    """Render one Claude ``stream-json`` line as readable text.

    The terminal ``result`` message marks the event ``done`` and carries the
    exit code derived from ``is_error``. Anything unrecognized is passed through.
    """

    try:
        payload = json.loads(line)
    except ValueError:
        return passthrough_event(line)
    if not isinstance(payload, dict):
        return passthrough_event(line)

    try:
        event = _render(payload)
    except (AttributeError, KeyError, TypeError, ValueError):
        event = None
    return event if event is not None else passthrough_event(line)


def _render(payload: dict[str, Any]) -> StreamEvent | None:
    kind = payload.get("type")
    if kind == "system" and payload.get("subtype") == "init":
        return StreamEvent(text=f"[session {payload.get('session_id') or '?'}]\n")
    if kind == "assistant":
        return StreamEvent(text="".join(_assistant_parts(_content(payload))))
    if kind == "user":
        return StreamEvent(text="".join(_user_parts(_content(payload))))
    if kind == "result":
        return _result_event(payload)
    return None


def _content(payload: dict[str, Any]) -> list[dict[str, Any]]:
    message = payload.get("message") or {}
    return list(message.get("content") or [])


def _assistant_parts(blocks: list[dict[str, Any]]) -> list[str]:
    parts: list[str] = []
    for block in blocks:
        if block.get("type") == "text" and block.get("text"):
            parts.append(f"\n[ASSISTANT]\n{block['text']}\n")
        elif block.get("type") == "tool_use":
            preview = _tool_input_preview(block.get("input", ""))
            parts.append(f"\n[TOOL:{block.get('name')}] {preview}\n")
    return parts


def _user_parts(blocks: list[dict[str, Any]]) -> list[str]:
    parts: list[str] = []
    for block in blocks:
        if block.get("type") == "tool_result":
            parts.append(f"  ✓ {truncate(_tool_result_text(block.get('content')))}\n")
        elif block.get("type") == "text" and block.get("text"):
            parts.append(f"\n[USER]\n{block['text']}\n")
    return parts


def _tool_input_preview(value: Any) -> str:
    if isinstance(value, dict | list) or value is None:
        return truncate(json.dumps(value, separators=(",", ":"), ensure_ascii=False))
    return str(value)


def _tool_result_text(content: Any) -> str:
    if isinstance(content, list):
        return "".join(str(item.get("text") or "") for item in content if isinstance(item, dict))
    if content is None:
        return ""
    return str(content)


def _result_event(payload: dict[str, Any]) -> StreamEvent:
    is_error = bool(payload.get("is_error"))
    status = "✗ ERROR" if is_error else "✓ DONE"
    duration_ms = payload.get("duration_ms")
    cost = payload.get("total_cost_usd")
    duration_text = f" | {duration_ms / 1000:.1f}s" if duration_ms is not None else ""
    cost_text = f" | cost ${cost:.4f}" if cost is not None else ""
    return StreamEvent(
        text=f"\n[RESULT {status}{duration_text}{cost_text}]\n{payload.get('result') or ''}\n",
        done=True,
        exit_code=1 if is_error else 0,
    )


CLAUDE_ADAPTER = AgentAdapter(
    name="claude",
    build_invocation=build_claude_invocation,
    normalizer=normalize_claude_line,
)
