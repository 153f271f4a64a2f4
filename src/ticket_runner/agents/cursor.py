"""Cursor agent adapter.

The Cursor CLI is launched through the shell with a single pre-quoted command
string: passing an argument vector together with ``shell=True`` mangles the
quoted prompt on Windows.
"""

from __future__ import annotations

import json
import os
from typing import Any

from ticket_runner.agents.base import (
    AgentAdapter,
    InvocationContext,
    ShellInvocation,
    StreamEvent,
    passthrough_event,
)

_PATH_TOOLS = (
    ("readToolCall", "READ"),
    ("editToolCall", "EDIT"),
    ("writeToolCall", "WRITE"),
    ("lsToolCall", "LS"),
    ("deleteToolCall", "DELETE"),
)
_MUTATING_TOOLS = ("editToolCall", "writeToolCall", "deleteToolCall")


def build_cursor_invocation(context: InvocationContext) -> ShellInvocation:
    relative_path = os.path.relpath(context.instruction_file, context.cwd).replace("\\", "/")
    prompt = f"Read and follow all instructions in the file: {relative_path}"
    return ShellInvocation(
        command=(
            "agent --print -f --trust --output-format stream-json "
            f'--workspace "{context.cwd}" "{prompt}"'
        ),
    )


def normalize_cursor_line(line: str) -> StreamEvent:
    """Render one Cursor ``stream-json`` line; unknown lines are passed through."""

    try:
        payload = json.loads(line)
    except ValueError:
        return passthrough_event(line)
    if not isinstance(payload, dict):
        return passthrough_event(line)

    try:
        text = _render(payload)
    except (AttributeError, IndexError, KeyError, TypeError):
        text = None
    return StreamEvent(text=text) if text is not None else passthrough_event(line)


def _render(payload: dict[str, Any]) -> str | None:
    kind = payload.get("type")
    if kind == "user":
        return f"\n[USER]\n{_first_text(payload)}\n"
    if kind == "assistant":
        return f"\n[ASSISTANT]\n{_first_text(payload)}\n"
    if kind == "tool_call" and payload.get("subtype") == "started":
        return _render_started(payload.get("tool_call") or {})
    if kind == "tool_call" and payload.get("subtype") == "completed":
        return _render_completed(payload.get("tool_call") or {})
    return None


def _first_text(payload: dict[str, Any]) -> str:
    content = (payload.get("message") or {}).get("content") or []
    if not content:
        return ""
    return content[0].get("text") or ""


def _args(call: dict[str, Any]) -> dict[str, Any]:
    return call.get("args") or {}


def _render_started(tool_call: dict[str, Any]) -> str:
    if "shellToolCall" in tool_call:
        return f"\n[SHELL] {_args(tool_call['shellToolCall']).get('command', '')}\n"
    if "grepToolCall" in tool_call:
        args = _args(tool_call["grepToolCall"])
        return f"\n[GREP] {args.get('pattern', '')} in {args.get('path', '')}\n"
    for key, label in _PATH_TOOLS:
        if key in tool_call:
            return f"\n[{label}] {_args(tool_call[key]).get('path', '')}\n"
    first_key = next(iter(tool_call), "?")
    return f"\n[TOOL] {first_key}\n"


def _succeeded(call: dict[str, Any] | None) -> bool:
    result = (call or {}).get("result") or {}
    return result.get("success") is not None


def _render_completed(tool_call: dict[str, Any]) -> str:
    if "shellToolCall" in tool_call:
        call = tool_call["shellToolCall"]
        if not _succeeded(call):
            return "  ✗ failed\n"
        return f"  ✓ exit {call['result']['success'].get('exitCode', 0)}\n"
    if "readToolCall" in tool_call:
        call = tool_call["readToolCall"]
        if not _succeeded(call):
            return "  ✗ failed\n"
        return f"  ✓ read {call['result']['success'].get('totalLines', 0)} lines\n"
    if any(key in tool_call for key in _MUTATING_TOOLS):
        first_call = next(iter(tool_call.values()))
        return "  ✓ done\n" if _succeeded(first_call) else "  ✗ failed\n"
    return "  ✓ done\n"


CURSOR_ADAPTER = AgentAdapter(
    name="cursor",
    build_invocation=build_cursor_invocation,
    normalizer=normalize_cursor_line,
)
