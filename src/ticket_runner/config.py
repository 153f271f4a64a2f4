"""Runtime configuration for the ticket runner."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from ticket_runner.tickets import DEFAULT_STAGE_ORDER, PENDING_STAGES

DEFAULT_MIN_PRIORITY = 3
DEFAULT_AGENT = "claude"


class ConfigurationError(ValueError):
    """Invalid run configuration detected before any agent is spawned."""


@dataclass(frozen=True, slots=True)
class StageSelection:
    """One stage to pull tickets from, with its own priority floor."""

    stage: str
    min_priority: int

    def describe(self) -> str:
        return f"{self.stage}(>={self.min_priority})"


@dataclass(frozen=True, slots=True)
class RunConfiguration:
    """Immutable per-invocation choices resolved from CLI arguments."""

    agent: str
    min_priority: int
    stages: tuple[StageSelection, ...]
    dry_run: bool = False

    def stage_summary(self) -> str:
        return ", ".join(selection.describe() for selection in self.stages)


@dataclass(slots=True)
class SupervisionSettings:
    """Liveness policy for one supervised agent process."""

    idle_timeout_seconds: float = 600.0
    result_grace_seconds: float = 30.0
    echo_agent_output: bool = True


@dataclass(slots=True)
class RunnerSettings:
    """Application settings loaded from the environment."""

    repo_root: Path = field(default_factory=Path.cwd)
    tickets_dir: Path | None = None
    rules_path: Path | None = None
    default_agent: str = DEFAULT_AGENT
    default_min_priority: int = DEFAULT_MIN_PRIORITY
    inter_ticket_pause_seconds: float = 0.5
    supervision: SupervisionSettings = field(default_factory=SupervisionSettings)

    @property
    def resolved_tickets_dir(self) -> Path:
        return self.tickets_dir or self.repo_root / "tickets"

    @property
    def resolved_rules_path(self) -> Path:
        return self.rules_path or self.repo_root / "agent-rules" / "tickets.md"

    @property
    def logs_dir(self) -> Path:
        return self.resolved_tickets_dir / ".logs"

    @classmethod
    def from_env(
        cls,
        repo_root: Path | None = None,
        tickets_dir: Path | None = None,
    ) -> RunnerSettings:
        """Load settings from environment with defaults suitable for a local checkout."""

        root = repo_root or Path.cwd()
        env_tickets_dir = os.getenv("TICKET_RUNNER_TICKETS_DIR", "").strip()
        env_rules_path = os.getenv("TICKET_RUNNER_RULES_PATH", "").strip()
        return cls(
            repo_root=root,
            tickets_dir=tickets_dir or (Path(env_tickets_dir) if env_tickets_dir else None),
            rules_path=Path(env_rules_path) if env_rules_path else None,
            default_agent=os.getenv("TICKET_RUNNER_DEFAULT_AGENT", DEFAULT_AGENT).strip().lower(),
            default_min_priority=_env_int(
                "TICKET_RUNNER_MIN_PRIORITY",
                default=DEFAULT_MIN_PRIORITY,
            ),
            inter_ticket_pause_seconds=_env_float(
                "TICKET_RUNNER_INTER_TICKET_PAUSE_SECONDS",
                default=0.5,
            ),
            supervision=SupervisionSettings(
                idle_timeout_seconds=_env_float(
                    "TICKET_RUNNER_IDLE_TIMEOUT_SECONDS",
                    default=600.0,
                ),
                result_grace_seconds=_env_float(
                    "TICKET_RUNNER_RESULT_GRACE_SECONDS",
                    default=30.0,
                ),
                echo_agent_output=_env_bool("TICKET_RUNNER_ECHO_AGENT_OUTPUT", default=True),
            ),
        )

    def validate_for_run(self) -> None:
        """Raise configuration error if the settings cannot drive an agent run."""

        if self.supervision.idle_timeout_seconds <= 0:
            raise ConfigurationError("TICKET_RUNNER_IDLE_TIMEOUT_SECONDS must be > 0.")
        if self.supervision.result_grace_seconds <= 0:
            raise ConfigurationError("TICKET_RUNNER_RESULT_GRACE_SECONDS must be > 0.")
        if self.inter_ticket_pause_seconds < 0:
            raise ConfigurationError("TICKET_RUNNER_INTER_TICKET_PAUSE_SECONDS must be >= 0.")

    def require_rules_file(self) -> Path:
        """Return the workflow rules path, failing before any agent starts if it is missing."""

        rules_path = self.resolved_rules_path
        if not rules_path.is_file():
            raise ConfigurationError(
                f"Ticket workflow rules not found: {rules_path}. "
                "Set TICKET_RUNNER_RULES_PATH to the rules document.",
            )
        return rules_path


def parse_stage_selections(
    raw: str | None,
    default_min: int,
) -> tuple[StageSelection, ...]:
    """Parse ``--stages`` into ordered selections.

    Tokens are ``stage`` or ``stage:n``; bare names use ``default_min``.
    """

    if raw is None:
        return tuple(StageSelection(stage, default_min) for stage in DEFAULT_STAGE_ORDER)

    selections: list[StageSelection] = []
    for token in raw.split(","):
        token = token.strip()
        stage, sep, priority_raw = token.partition(":")
        stage = stage.strip()
        if stage not in PENDING_STAGES:
            raise ConfigurationError(
                f'Unknown stage: "{stage}". Valid stages: {", ".join(PENDING_STAGES)}',
            )
        if any(selection.stage == stage for selection in selections):
            raise ConfigurationError(f"Stage listed more than once in --stages: {stage!r}")
        min_priority = default_min
        if sep:
            try:
                min_priority = int(priority_raw.strip())
            except ValueError as error:
                raise ConfigurationError(
                    f"Invalid min priority for stage {stage!r}: {priority_raw!r}",
                ) from error
        selections.append(StageSelection(stage, min_priority))
    return tuple(selections)


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value.strip())
    except ValueError as error:
        raise ConfigurationError(f"Invalid integer value for {name}: {value!r}") from error


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return float(value.strip())
    except ValueError as error:
        raise ConfigurationError(f"Invalid number for {name}: {value!r}") from error


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ConfigurationError(f"Invalid boolean value for {name}: {value!r}")
