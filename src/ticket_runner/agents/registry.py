"""Registry of supported agent adapters."""

from __future__ import annotations

from collections.abc import Mapping

from ticket_runner.agents.auggie import AUGGIE_ADAPTER
from ticket_runner.agents.base import AgentAdapter
from ticket_runner.agents.claude import CLAUDE_ADAPTER
from ticket_runner.agents.cursor import CURSOR_ADAPTER

ADAPTERS: Mapping[str, AgentAdapter] = {
    adapter.name: adapter for adapter in (CLAUDE_ADAPTER, AUGGIE_ADAPTER, CURSOR_ADAPTER)
}
SUPPORTED_AGENTS = tuple(ADAPTERS)


class UnknownAgentError(ValueError):
    """Requested agent has no registered adapter."""


def resolve_adapter(
    name: str,
    adapters: Mapping[str, AgentAdapter] | None = None,
) -> AgentAdapter:
    """Return the adapter registered for ``name`` (case-insensitive)."""

    registry = ADAPTERS if adapters is None else adapters
    normalized = name.strip().lower()
    try:
        return registry[normalized]
    except KeyError:
        raise UnknownAgentError(
            f"Unknown agent: {name}. Available: {', '.join(registry)}",
        ) from None
