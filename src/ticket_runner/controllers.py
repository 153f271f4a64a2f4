"""Controller behind the ``ticket-runner`` CLI command."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from functools import partial
from pathlib import Path

import click

from ticket_runner.agents import AgentAdapter, resolve_adapter
from ticket_runner.config import RunConfiguration, RunnerSettings, parse_stage_selections
from ticket_runner.pipeline import PipelineDriver, PipelineRunResult

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RunTicketsCommand:
    """CLI input for one batch run."""

    min_priority: int | None = None
    stages: str | None = None
    agent: str | None = None
    dry_run: bool = False
    tickets_dir: Path | None = None
    repo_root: Path | None = None


class TicketRunnerCliController:
    """Resolves configuration up front, then hands the snapshot to the pipeline driver."""

    def __init__(
        self,
        *,
        adapters: Mapping[str, AgentAdapter] | None = None,
        emit: Callable[[str], None] = click.echo,
        emit_error: Callable[[str], None] = partial(click.echo, err=True),
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._adapters = adapters
        self._emit = emit
        self._emit_error = emit_error
        self._sleep = sleep

    def resolve(self, command: RunTicketsCommand) -> tuple[RunnerSettings, RunConfiguration]:
        """Build settings and the immutable run configuration.

        Raises ``ValueError`` subclasses for bad stages, agents or settings.
        """

        settings = RunnerSettings.from_env(
            repo_root=command.repo_root,
            tickets_dir=command.tickets_dir,
        )
        settings.validate_for_run()
        min_priority = (
            command.min_priority
            if command.min_priority is not None
            else settings.default_min_priority
        )
        agent = (command.agent or settings.default_agent).strip().lower()
        config = RunConfiguration(
            agent=agent,
            min_priority=min_priority,
            stages=parse_stage_selections(command.stages, min_priority),
            dry_run=command.dry_run,
        )
        return settings, config

    def run(self, command: RunTicketsCommand) -> PipelineRunResult:
        settings, config = self.resolve(command)
        adapter = resolve_adapter(config.agent, self._adapters)
        logger.info(
            "Running tickets from %s with agent=%s stages=%s dry_run=%s",
            settings.resolved_tickets_dir,
            adapter.name,
            config.stage_summary(),
            config.dry_run,
        )
        driver = PipelineDriver(
            settings=settings,
            config=config,
            adapter=adapter,
            emit=self._emit,
            emit_error=self._emit_error,
            sleep=self._sleep,
        )
        return driver.run()
