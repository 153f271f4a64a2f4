"""Agent adapters: invocation rendering and output normalization per agent CLI."""

from ticket_runner.agents.base import (
    AgentAdapter,
    ArgvInvocation,
    Invocation,
    InvocationContext,
    LineNormalizer,
    ShellInvocation,
    StreamEvent,
)
from ticket_runner.agents.registry import (
    ADAPTERS,
    SUPPORTED_AGENTS,
    UnknownAgentError,
    resolve_adapter,
)

__all__ = [
    "ADAPTERS",
    "SUPPORTED_AGENTS",
    "AgentAdapter",
    "ArgvInvocation",
    "Invocation",
    "InvocationContext",
    "LineNormalizer",
    "ShellInvocation",
    "StreamEvent",
    "UnknownAgentError",
    "resolve_adapter",
]
