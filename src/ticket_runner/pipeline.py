"""Sequential fail-stop driver that walks the ticket snapshot one agent run at a time."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from functools import partial
from pathlib import Path

import click

from ticket_runner.agents.base import AgentAdapter, InvocationContext
from ticket_runner.config import RunConfiguration, RunnerSettings
from ticket_runner.prompt import instruction_file, load_prompt
from ticket_runner.run_log import (
    RULE_WIDTH,
    RunLogWriter,
    build_log_path,
    ensure_logs_dir,
    write_log_header,
)
from ticket_runner.supervisor import AgentSpawnError, ProcessSupervisor
from ticket_runner.tickets import Ticket, snapshot_tickets
from ticket_runner.versioning import runner_version

logger = logging.getLogger(__name__)

SPAWN_FAILURE_EXIT_CODE = 1
PROMPT_FAILURE_EXIT_CODE = 1


@dataclass(slots=True)
class TicketOutcome:
    """Resolved result of one ticket invocation."""

    ticket: Ticket
    exit_code: int
    log_path: Path


@dataclass(slots=True)
class PipelineRunResult:
    """Summary of one batch run."""

    exit_code: int
    snapshot: list[Ticket]
    outcomes: list[TicketOutcome] = field(default_factory=list)

    @property
    def processed(self) -> list[Ticket]:
        return [outcome.ticket for outcome in self.outcomes]

    @property
    def failed(self) -> TicketOutcome | None:
        for outcome in self.outcomes:
            if outcome.exit_code != 0:
                return outcome
        return None


class PipelineDriver:
    """Run every snapshotted ticket in order and stop at the first non-zero outcome.

    Tickets are never run concurrently. The snapshot is taken once, so tickets
    written or removed by an agent do not change the current batch.
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        settings: RunnerSettings,
        config: RunConfiguration,
        adapter: AgentAdapter,
        emit: Callable[[str], None] = click.echo,
        emit_error: Callable[[str], None] = partial(click.echo, err=True),
        sleep: Callable[[float], None] = time.sleep,
        version: str | None = None,
    ) -> None:
        self._settings = settings
        self._config = config
        self._adapter = adapter
        self._emit = emit
        self._emit_error = emit_error
        self._sleep = sleep
        self._version = version

    @property
    def version(self) -> str:
        if self._version is None:
            self._version = runner_version()
        return self._version

    def snapshot(self) -> list[Ticket]:
        return snapshot_tickets(self._settings.resolved_tickets_dir, self._config.stages)

    def run(self) -> PipelineRunResult:
        tickets = self.snapshot()
        if not tickets:
            self._emit(f"No tickets found in stages: {self._config.stage_summary()}")
            return PipelineRunResult(exit_code=0, snapshot=tickets)

        if self._config.dry_run:
            self._print_dry_run(tickets)
            return PipelineRunResult(exit_code=0, snapshot=tickets)

        rules_path = self._settings.require_rules_file()
        self._emit(
            "\n".join(
                [
                    "═" * RULE_WIDTH,
                    f"  ticket-runner ({self.version})",
                    f"  Snapshotted {len(tickets)} ticket(s) to process.",
                    "═" * RULE_WIDTH,
                ],
            ),
        )
        logs_dir = ensure_logs_dir(self._settings.logs_dir)
        result = PipelineRunResult(exit_code=0, snapshot=tickets)
        total = len(tickets)

        for index, ticket in enumerate(tickets, start=1):
            outcome = self._run_ticket(
                ticket,
                index=index,
                total=total,
                logs_dir=logs_dir,
                rules_path=rules_path,
            )
            result.outcomes.append(outcome)
            if outcome.exit_code != 0:
                self._emit_error(
                    f"\nAgent exited with code {outcome.exit_code} on ticket: {ticket.file}",
                )
                self._emit_error(f"Log: {outcome.log_path}")
                self._emit_error("Stopping to avoid cascading failures. Re-run to retry.")
                result.exit_code = outcome.exit_code
                return result

            self._emit(f"\n  [{index}/{total}] Complete: {ticket.file}\n")
            if index < total:
                self._sleep(self._settings.inter_ticket_pause_seconds)

        self._emit(f"\nDone, {total} ticket(s) processed.")
        return result

    def _print_dry_run(self, tickets: list[Ticket]) -> None:
        self._emit(f"\nticket-runner ({self.version})")
        self._emit(f"Pending tickets in: {self._config.stage_summary()}\n")
        for ticket in tickets:
            self._emit(f"  [{ticket.stage:<9}] P{ticket.priority}  {ticket.file}")
        self._emit(f"\n{len(tickets)} ticket(s) would be processed.")

    def _run_ticket(
        self,
        ticket: Ticket,
        *,
        index: int,
        total: int,
        logs_dir: Path,
        rules_path: Path,
    ) -> TicketOutcome:
        log_path = build_log_path(logs_dir, ticket)
        self._emit(
            "\n".join(
                [
                    "─" * RULE_WIDTH,
                    f"  [{index}/{total}] {ticket.file}",
                    f"  Stage: {ticket.stage} → {ticket.next_stage}  |  "
                    f"Priority: {ticket.priority}",
                    f"  Log: {log_path}",
                    "─" * RULE_WIDTH,
                ],
            ),
        )
        write_log_header(
            log_path,
            ticket=ticket,
            agent=self._adapter.name,
            runner_version=self.version,
        )

        try:
            prompt = load_prompt(ticket, rules_path)
        except OSError as error:
            logger.error("Cannot build prompt for %s: %s", ticket.path, error)
            self._emit_error(f"Cannot read ticket or workflow rules for {ticket.file}: {error}")
            RunLogWriter(log_path).close(
                f"\n[runner] Cannot read ticket or workflow rules: {error}\n"
                f"\n[runner] Agent exited with code {PROMPT_FAILURE_EXIT_CODE}\n",
            )
            return TicketOutcome(
                ticket=ticket,
                exit_code=PROMPT_FAILURE_EXIT_CODE,
                log_path=log_path,
            )

        supervision = self._settings.supervision
        with instruction_file(log_path, prompt) as instruction:
            invocation = self._adapter.build_invocation(
                InvocationContext(
                    ticket=ticket,
                    instruction_file=instruction,
                    prompt=prompt,
                    cwd=self._settings.repo_root,
                ),
            )
            supervisor = ProcessSupervisor(
                invocation=invocation,
                cwd=self._settings.repo_root,
                log_path=log_path,
                normalizer=self._adapter.normalize,
                idle_timeout_seconds=supervision.idle_timeout_seconds,
                result_grace_seconds=supervision.result_grace_seconds,
                echo=supervision.echo_agent_output,
            )
            try:
                exit_code = supervisor.run().exit_code
            except AgentSpawnError as error:
                self._emit_error(str(error))
                exit_code = SPAWN_FAILURE_EXIT_CODE

        logger.info("Ticket %s (%s) finished with code %s", ticket.file, ticket.stage, exit_code)
        return TicketOutcome(ticket=ticket, exit_code=exit_code, log_path=log_path)
