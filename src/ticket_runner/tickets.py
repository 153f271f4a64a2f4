"""Ticket discovery and snapshot ordering from the ``tickets/<stage>/`` layout."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)

PENDING_STAGES = ("fix", "review", "implement", "plan")
DEFAULT_STAGE_ORDER = ("fix", "plan", "implement", "review")
NEXT_STAGE = {
    "fix": "implement",
    "plan": "implement",
    "implement": "review",
    "review": "complete",
}

TICKET_EXTENSION = ".md"
_PRIORITY_PREFIX = re.compile(r"^(\d+)-")


class StageThreshold(Protocol):
    stage: str
    min_priority: int


@dataclass(frozen=True, slots=True)
class Ticket:
    """One unit of work found in a stage directory."""

    file: str
    path: Path
    stage: str
    priority: int

    @property
    def next_stage(self) -> str:
        return NEXT_STAGE[self.stage]

    @property
    def stem(self) -> str:
        return self.file.removesuffix(TICKET_EXTENSION)


def parse_priority(filename: str) -> int | None:
    """Return the integer prefix of ``<priority>-<slug>.md``, or None when absent."""

    match = _PRIORITY_PREFIX.match(Path(filename).name)
    if match is None:
        return None
    return int(match.group(1))


def discover_tickets(tickets_dir: Path, stage: str, min_priority: int) -> list[Ticket]:
    """List tickets of one stage with ``priority >= min_priority``, highest first."""

    stage_dir = tickets_dir / stage
    try:
        entries = sorted(entry.name for entry in stage_dir.iterdir() if entry.is_file())
    except OSError:
        return []

    tickets: list[Ticket] = []
    misnamed: list[str] = []
    for entry in entries:
        if not entry.endswith(TICKET_EXTENSION):
            continue
        priority = parse_priority(entry)
        if priority is None:
            misnamed.append(entry)
            continue
        if priority < min_priority:
            continue
        tickets.append(Ticket(file=entry, path=stage_dir / entry, stage=stage, priority=priority))

    if misnamed:
        logger.warning(
            "Skipping %d file(s) in %s without a numeric priority prefix: %s",
            len(misnamed),
            stage_dir,
            ", ".join(misnamed),
        )

    tickets.sort(key=lambda ticket: -ticket.priority)
    return tickets


def snapshot_tickets(
    tickets_dir: Path,
    selections: Iterable[StageThreshold],
) -> list[Ticket]:
    """Materialize the run order once: stage position first, then descending priority.

    The returned list is never refreshed, so tickets written by an agent during
    the run wait for the next invocation.
    """

    selections = list(selections)
    stage_order = {selection.stage: index for index, selection in enumerate(selections)}
    snapshot: list[Ticket] = []
    for selection in selections:
        snapshot.extend(discover_tickets(tickets_dir, selection.stage, selection.min_priority))

    snapshot.sort(key=lambda ticket: (stage_order.get(ticket.stage, 999), -ticket.priority))
    logger.debug("Snapshotted %d ticket(s) from %s", len(snapshot), tickets_dir)
    return snapshot
