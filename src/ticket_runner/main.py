"""CLI entrypoint for ticket-runner."""

import logging
import sys
from pathlib import Path

import rich_click as click

from ticket_runner import __version__
from ticket_runner.agents import SUPPORTED_AGENTS, UnknownAgentError
from ticket_runner.config import ConfigurationError
from ticket_runner.controllers import RunTicketsCommand, TicketRunnerCliController

click.rich_click.USE_MARKDOWN = True
CONTROLLER = TicketRunnerCliController()
CONFIG_ERROR_EXIT_CODE = 1

logger = logging.getLogger(__name__)


@click.command(context_settings={"help_option_names": ["--help", "-h"]})
@click.version_option(version=__version__, prog_name="ticket-runner")
@click.option(
    "--min-priority",
    type=int,
    default=None,
    help="Default min priority for all stages (default: 3, or TICKET_RUNNER_MIN_PRIORITY).",
)
@click.option(
    "--stages",
    default=None,
    help=(
        "Comma-separated stages, optionally with per-stage min priority as `stage:n` "
        "(default: fix,plan,implement,review). Example: `review:5,implement:3,fix`."
    ),
)
@click.option(
    "--agent",
    default=None,
    help=f"Agent adapter: {' | '.join(SUPPORTED_AGENTS)} (default: claude).",
)
@click.option(
    "--dry-run",
    is_flag=True,
    default=False,
    help="List tickets that would be processed without invoking the agent.",
)
@click.option(
    "--tickets-dir",
    type=click.Path(path_type=Path, file_okay=False),
    default=None,
    help="Tickets root directory (default: ./tickets or TICKET_RUNNER_TICKETS_DIR).",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="WARNING",
    show_default=True,
    help="Diagnostic logging level (written to stderr).",
)
def ticket_runner(  # noqa: PLR0913
    min_priority: int | None,
    stages: str | None,
    agent: str | None,
    dry_run: bool,
    tickets_dir: Path | None,
    log_level: str,
) -> None:
    """Process outstanding tickets through the pipeline stages via an agent CLI.

    The ticket list is snapshotted once at startup: tickets created by the agent
    during this run are picked up by the next run, so each ticket advances at
    most one stage per run. The batch stops at the first failing ticket.
    """

    _configure_logging(log_level)
    try:
        result = CONTROLLER.run(
            RunTicketsCommand(
                min_priority=min_priority,
                stages=stages,
                agent=agent,
                dry_run=dry_run,
                tickets_dir=tickets_dir,
            ),
        )
    except (ConfigurationError, UnknownAgentError) as error:
        raise click.ClickException(str(error)) from error
    except Exception as error:  # noqa: BLE001
        logger.exception("Ticket runner failed")
        raise click.ClickException(f"Ticket runner failed: {error}") from error

    if result.exit_code != 0:
        click.get_current_context().exit(result.exit_code)


def main() -> None:
    """Console script entry point; usage errors exit with 1 like configuration errors."""

    try:
        exit_code = ticket_runner.main(standalone_mode=False)
    except click.ClickException as error:
        error.show()
        sys.exit(CONFIG_ERROR_EXIT_CODE)
    except click.Abort:
        click.echo("Aborted!", err=True)
        sys.exit(CONFIG_ERROR_EXIT_CODE)
    sys.exit(exit_code or 0)


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


if __name__ == "__main__":  # pragma: no cover
    main()
