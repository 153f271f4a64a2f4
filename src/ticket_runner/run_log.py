"""Per-ticket run logs under ``tickets/.logs/``."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import TextIO

from ticket_runner.tickets import Ticket

logger = logging.getLogger(__name__)

RULE_WIDTH = 72


def utc_timestamp() -> str:
    return datetime.now(tz=UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def ensure_logs_dir(logs_dir: Path) -> Path:
    logs_dir.mkdir(parents=True, exist_ok=True)
    return logs_dir


def build_log_path(logs_dir: Path, ticket: Ticket, *, timestamp: str | None = None) -> Path:
    """``<ticket-stem>.<stage>.<timestamp>.log`` with ``:`` and ``.`` made filename-safe."""

    stamp = (timestamp or utc_timestamp()).replace(":", "-").replace(".", "-")
    return logs_dir / f"{ticket.stem}.{ticket.stage}.{stamp}.log"


def write_log_header(
    log_path: Path,
    *,
    ticket: Ticket,
    agent: str,
    runner_version: str,
    started_at: str | None = None,
) -> None:
    """Create the log with its header; the supervisor appends to it afterwards."""

    lines = [
        f"Ticket: {ticket.file}",
        f"Stage: {ticket.stage} → {ticket.next_stage}",
        f"Priority: {ticket.priority}",
        f"Agent: {agent}",
        f"Runner: {runner_version}",
        f"Started: {started_at or utc_timestamp()}",
        "═" * RULE_WIDTH,
        "",
    ]
    log_path.write_text("\n".join(lines), "utf-8")


class RunLogWriter:
    """Append-only log sink that never lets I/O errors mask the run outcome.

    After the first failed write the file is abandoned and further writes are
    dropped; the failure is reported once through ``logging``.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self._handle: TextIO | None = None
        self._failed = False
        try:
            self._handle = path.open("a", encoding="utf-8", errors="replace")
        except OSError as error:
            self._mark_failed(error)

    @property
    def healthy(self) -> bool:
        return self._handle is not None and not self._failed

    def write(self, text: str) -> None:
        if self._handle is None or self._failed or not text:
            return
        try:
            self._handle.write(text)
        except OSError as error:
            self._mark_failed(error)

    def flush(self) -> None:
        if self._handle is None or self._failed:
            return
        try:
            self._handle.flush()
        except OSError as error:
            self._mark_failed(error)

    def close(self, trailer: str | None = None) -> None:
        """Write the optional trailer, then flush and close the file."""

        if trailer:
            self.write(trailer)
        if self._handle is None:
            return
        handle, self._handle = self._handle, None
        try:
            handle.close()
        except OSError as error:
            self._mark_failed(error)

    def _mark_failed(self, error: OSError) -> None:
        if not self._failed:
            logger.warning("Run log %s is no longer writable: %s", self.path, error)
        self._failed = True
