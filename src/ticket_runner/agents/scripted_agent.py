"""Local deterministic agent for supervisor and pipeline integration tests.

Emits Claude-style ``stream-json`` lines so the claude normalizer can be
exercised against a real subprocess.
"""

from __future__ import annotations

import argparse
import json
import sys
import time
from pathlib import Path


def _emit(payload: dict[str, object]) -> None:
    sys.stdout.write(json.dumps(payload) + "\n")
    sys.stdout.flush()


def main(argv: list[str] | None = None) -> int:
    """Play back a scripted agent session."""

    parser = argparse.ArgumentParser()
    parser.add_argument("--instruction", default=None)
    parser.add_argument("--result", choices=("ok", "error", "none"), default="ok")
    parser.add_argument("--message", default="Working on the ticket.")
    parser.add_argument("--stderr", default=None)
    parser.add_argument("--plain", action="append", default=[])
    parser.add_argument("--partial", default=None)
    parser.add_argument("--silence", type=float, default=0.0)
    parser.add_argument("--linger", type=float, default=0.0)
    parser.add_argument("--exit-code", type=int, default=0)
    parser.add_argument("--create-ticket", default=None)
    parser.add_argument("--delete", default=None)
    args = parser.parse_args(argv)

    if args.silence:
        time.sleep(args.silence)

    _emit({"type": "system", "subtype": "init", "session_id": "scripted"})
    if args.instruction:
        exists = Path(args.instruction).is_file()
        _emit(
            {
                "type": "assistant",
                "message": {
                    "content": [{"type": "text", "text": f"instruction present: {exists}"}],
                },
            },
        )
    _emit({"type": "assistant", "message": {"content": [{"type": "text", "text": args.message}]}})
    for line in args.plain:
        sys.stdout.write(line + "\n")
        sys.stdout.flush()
    if args.stderr:
        sys.stderr.write(args.stderr + "\n")
        sys.stderr.flush()

    if args.create_ticket:
        Path(args.create_ticket).write_text("# created by agent\n", "utf-8")
    if args.delete:
        Path(args.delete).unlink(missing_ok=True)

    if args.result != "none":
        _emit(
            {
                "type": "result",
                "is_error": args.result == "error",
                "duration_ms": 1200,
                "total_cost_usd": 0.0125,
                "result": "finished" if args.result == "ok" else "could not finish",
            },
        )

    if args.partial:
        sys.stdout.write(args.partial)
        sys.stdout.flush()

    if args.linger:
        time.sleep(args.linger)
    return args.exit_code


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
