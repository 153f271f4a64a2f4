from __future__ import annotations

import sys
from pathlib import Path

import allure
import pytest
from click.testing import CliRunner

import ticket_runner.main as cli
from ticket_runner import __version__
from ticket_runner.controllers import TicketRunnerCliController

pytestmark = [
    allure.epic("Command Line"),
    allure.feature("ticket-runner"),
]

_ENV_VARS = (
    "TICKET_RUNNER_TICKETS_DIR",
    "TICKET_RUNNER_RULES_PATH",
    "TICKET_RUNNER_DEFAULT_AGENT",
    "TICKET_RUNNER_MIN_PRIORITY",
    "TICKET_RUNNER_IDLE_TIMEOUT_SECONDS",
    "TICKET_RUNNER_RESULT_GRACE_SECONDS",
    "TICKET_RUNNER_INTER_TICKET_PAUSE_SECONDS",
)


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch, repo_root: Path) -> None:
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("TICKET_RUNNER_ECHO_AGENT_OUTPUT", "0")
    monkeypatch.setenv("TICKET_RUNNER_INTER_TICKET_PAUSE_SECONDS", "0")
    monkeypatch.chdir(repo_root)


@pytest.fixture()
def scripted_cli(monkeypatch, scripted_adapter):
    """Point the CLI at the scripted agent; returns a function taking per-ticket args."""

    def _install(per_ticket=None, default=()):
        controller = TicketRunnerCliController(
            adapters={"scripted": scripted_adapter(per_ticket, default)},
            sleep=lambda seconds: None,
        )
        monkeypatch.setattr(cli, "CONTROLLER", controller)

    return _install


def test_help_lists_options() -> None:
    result = CliRunner().invoke(cli.ticket_runner, ["--help"])

    assert result.exit_code == 0
    for option in ("--min-priority", "--stages", "--agent", "--dry-run", "--tickets-dir"):
        assert option in result.output


def test_version_option() -> None:
    result = CliRunner().invoke(cli.ticket_runner, ["--version"])

    assert result.exit_code == 0
    assert __version__ in result.output


def test_unknown_stage_is_configuration_error(make_ticket) -> None:
    make_ticket("fix", "5-crash.md")

    result = CliRunner().invoke(cli.ticket_runner, ["--stages", "deploy"])

    assert result.exit_code == 1
    assert "Unknown stage" in result.output
    assert not Path("tickets/.logs").exists()


def test_unknown_agent_is_configuration_error(make_ticket) -> None:
    make_ticket("fix", "5-crash.md")

    result = CliRunner().invoke(cli.ticket_runner, ["--agent", "copilot"])

    assert result.exit_code == 1
    assert "Unknown agent" in result.output


def test_dry_run_lists_pending_tickets(make_ticket) -> None:
    make_ticket("fix", "5-crash.md")
    make_ticket("review", "7-audit.md")
    make_ticket("review", "2-nit.md")

    result = CliRunner().invoke(cli.ticket_runner, ["--dry-run", "--stages", "review:2,fix"])

    assert result.exit_code == 0
    assert "Pending tickets in: review(>=2), fix(>=3)" in result.output
    lines = [line for line in result.output.splitlines() if line.startswith("  [")]
    assert lines == [
        "  [review   ] P7  7-audit.md",
        "  [review   ] P2  2-nit.md",
        "  [fix      ] P5  5-crash.md",
    ]
    assert "3 ticket(s) would be processed." in result.output


def test_min_priority_option_sets_default_threshold(make_ticket) -> None:
    make_ticket("fix", "5-crash.md")
    make_ticket("fix", "8-outage.md")

    result = CliRunner().invoke(cli.ticket_runner, ["--dry-run", "--min-priority", "6"])

    assert result.exit_code == 0
    assert "8-outage.md" in result.output
    assert "5-crash.md" not in result.output


def test_tickets_dir_option(tmp_path: Path, make_ticket) -> None:
    make_ticket("fix", "5-crash.md")
    elsewhere = tmp_path / "other-tickets"
    (elsewhere / "plan").mkdir(parents=True)
    (elsewhere / "plan" / "4-roadmap.md").write_text("# Roadmap\n", "utf-8")

    result = CliRunner().invoke(
        cli.ticket_runner,
        ["--dry-run", "--tickets-dir", str(elsewhere)],
    )

    assert result.exit_code == 0
    assert "4-roadmap.md" in result.output
    assert "5-crash.md" not in result.output


def test_no_tickets_exits_zero() -> None:
    result = CliRunner().invoke(cli.ticket_runner, [])

    assert result.exit_code == 0
    assert "No tickets found in stages: fix(>=3), plan(>=3), implement(>=3), review(>=3)" in (
        result.output
    )


def test_full_run_processes_snapshot(make_ticket, scripted_cli) -> None:
    make_ticket("fix", "5-crash.md")
    make_ticket("implement", "4-feature.md")
    scripted_cli()

    result = CliRunner().invoke(cli.ticket_runner, ["--agent", "scripted"])

    assert result.exit_code == 0, result.output
    assert "Snapshotted 2 ticket(s) to process." in result.output
    assert "[1/2] Complete: 5-crash.md" in result.output
    assert "[2/2] Complete: 4-feature.md" in result.output
    assert "Done, 2 ticket(s) processed." in result.output
    assert len(list(Path("tickets/.logs").glob("*.log"))) == 2


def test_failing_ticket_sets_exit_code(make_ticket, scripted_cli) -> None:
    make_ticket("fix", "5-crash.md")
    make_ticket("fix", "4-later.md")
    scripted_cli(default=("--result", "none", "--exit-code", "5"))

    result = CliRunner().invoke(cli.ticket_runner, ["--agent", "SCRIPTED"])

    assert result.exit_code == 5
    assert "Agent exited with code 5 on ticket: 5-crash.md" in result.output
    assert "4-later.md" not in result.output


def test_main_maps_usage_errors_to_exit_one(monkeypatch) -> None:
    monkeypatch.setattr(sys, "argv", ["ticket-runner", "--min-priority", "abc"])

    with pytest.raises(SystemExit) as exit_info:
        cli.main()

    assert exit_info.value.code == 1


def test_main_help_exits_zero(monkeypatch, capsys) -> None:
    monkeypatch.setattr(sys, "argv", ["ticket-runner", "--help"])

    with pytest.raises(SystemExit) as exit_info:
        cli.main()

    assert exit_info.value.code == 0
    assert "--dry-run" in capsys.readouterr().out


def test_main_propagates_agent_exit_code(monkeypatch, make_ticket, scripted_cli) -> None:
    make_ticket("review", "6-check.md")
    scripted_cli(default=("--result", "none", "--exit-code", "3"))
    monkeypatch.setattr(sys, "argv", ["ticket-runner", "--agent", "scripted"])

    with pytest.raises(SystemExit) as exit_info:
        cli.main()

    assert exit_info.value.code == 3
