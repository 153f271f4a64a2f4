"""Auggie adapter. Its plain-text output is logged as-is."""

from __future__ import annotations

from ticket_runner.agents.base import AgentAdapter, ArgvInvocation, InvocationContext


def build_auggie_invocation(context: InvocationContext) -> ArgvInvocation:
    return ArgvInvocation(
        program="auggie",
        arguments=("--print", "--instruction", str(context.instruction_file)),
    )


AUGGIE_ADAPTER = AgentAdapter(name="auggie", build_invocation=build_auggie_invocation)
