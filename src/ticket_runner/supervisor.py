"""Supervise one agent process: tee its output, enforce liveness, resolve an exit code."""

from __future__ import annotations

import codecs
import contextlib
import logging
import os
import queue
import signal
import subprocess
import sys
import threading
import time
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import IO, TextIO

from ticket_runner.agents.base import (
    Invocation,
    LineNormalizer,
    ShellInvocation,
    StreamEvent,
    passthrough_event,
)
from ticket_runner.run_log import RunLogWriter

logger = logging.getLogger(__name__)

DEFAULT_IDLE_TIMEOUT_SECONDS = 600.0
DEFAULT_RESULT_GRACE_SECONDS = 30.0

_STDOUT = "stdout"
_STDERR = "stderr"
_CHUNK_SIZE = 64 * 1024
_MAX_PENDING_CHUNKS = 64
_TERMINATE_WAIT_SECONDS = 2.0
_POST_KILL_DRAIN_SECONDS = 5.0


class SupervisorState(StrEnum):
    """Lifecycle of one supervised invocation."""

    RUNNING = "running"
    RESULT_RECEIVED = "result_received"
    EXITED = "exited"


class KillReason(StrEnum):
    IDLE_TIMEOUT = "idle_timeout"
    RESULT_HANG = "result_hang"


class AgentSpawnError(RuntimeError):
    """The agent process could not be started at all."""

    def __init__(self, message: str, *, label: str, log_path: Path) -> None:
        super().__init__(message)
        self.label = label
        self.log_path = log_path


@dataclass(slots=True)
class SupervisionResult:
    """Outcome of one supervised invocation."""

    exit_code: int
    raw_exit_code: int | None
    result_exit_code: int | None
    kill_reason: KillReason | None
    log_path: Path

    @property
    def killed(self) -> bool:
        return self.kill_reason is not None


class ProcessSupervisor:
    """Run one invocation to completion under the idle and post-result timers.

    ``RUNNING``: any stdout/stderr data pushes the idle deadline forward; when it
    passes, the process is killed and the run fails.
    ``RESULT_RECEIVED``: the normalizer reported ``done``; the reported exit code
    is latched and a fixed grace deadline replaces the idle one. A process still
    alive at that deadline is killed, but the latched code stands.
    ``EXITED``: the code is resolved and the log trailer is written.
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        invocation: Invocation,
        cwd: Path,
        log_path: Path,
        normalizer: LineNormalizer | None = None,
        idle_timeout_seconds: float = DEFAULT_IDLE_TIMEOUT_SECONDS,
        result_grace_seconds: float = DEFAULT_RESULT_GRACE_SECONDS,
        echo: bool = True,
        stdout: TextIO | None = None,
        stderr: TextIO | None = None,
    ) -> None:
        self.invocation = invocation
        self.cwd = cwd
        self.log_path = log_path
        self.normalizer: LineNormalizer = normalizer or passthrough_event
        self.idle_timeout_seconds = idle_timeout_seconds
        self.result_grace_seconds = result_grace_seconds
        self.echo = echo
        self._stdout = stdout
        self._stderr = stderr
        self.state = SupervisorState.RUNNING
        self.kill_reason: KillReason | None = None
        self._result_exit_code: int | None = None
        self._deadline: float | None = None
        self._line_buffer = ""
        self._decoders = {
            _STDOUT: codecs.getincrementaldecoder("utf-8")(errors="replace"),
            _STDERR: codecs.getincrementaldecoder("utf-8")(errors="replace"),
        }
        self._log: RunLogWriter | None = None

    def run(self) -> SupervisionResult:
        """Spawn, supervise, and return once the log has been closed.

        Raises ``AgentSpawnError`` when the process cannot be started.
        """

        self._log = RunLogWriter(self.log_path)
        try:
            process = self._spawn()
        except OSError as error:
            label = self.invocation.label
            logger.error("Failed to spawn %s: %s", label, error)
            self._log.close(f"\n[runner] Agent spawn error: {error}\n")
            raise AgentSpawnError(
                f"Failed to spawn {label}: {error}",
                label=label,
                log_path=self.log_path,
            ) from error

        try:
            self._supervise(process)
        except BaseException:
            if process.poll() is None:
                _terminate_process(process)
            self._log.close()
            raise

        raw_exit_code = process.returncode
        exit_code = self._resolve_exit_code(raw_exit_code)
        self.state = SupervisorState.EXITED
        self._log.close(f"\n[runner] Agent exited with code {exit_code}\n")
        logger.info(
            "Agent %s exited: code=%s raw=%s kill_reason=%s",
            self.invocation.label,
            exit_code,
            raw_exit_code,
            self.kill_reason,
        )
        return SupervisionResult(
            exit_code=exit_code,
            raw_exit_code=raw_exit_code,
            result_exit_code=self._result_exit_code,
            kill_reason=self.kill_reason,
            log_path=self.log_path,
        )

    def _spawn(self) -> subprocess.Popen[bytes]:
        return subprocess.Popen(  # noqa: S603
            self.invocation.popen_args(),
            cwd=self.cwd,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            shell=isinstance(self.invocation, ShellInvocation),
            start_new_session=os.name != "nt",
        )

    def _supervise(self, process: subprocess.Popen[bytes]) -> None:
        # Bounded: a slow log stalls the readers, which stops draining the pipes.
        events: queue.Queue[tuple[str, bytes | None]] = queue.Queue(maxsize=_MAX_PENDING_CHUNKS)
        readers = [
            threading.Thread(
                target=_pump,
                args=(process.stdout, _STDOUT, events),
                daemon=True,
                name="agent-stdout",
            ),
            threading.Thread(
                target=_pump,
                args=(process.stderr, _STDERR, events),
                daemon=True,
                name="agent-stderr",
            ),
        ]
        for reader in readers:
            reader.start()

        self._deadline = time.monotonic() + self.idle_timeout_seconds
        open_streams = {_STDOUT, _STDERR}
        while open_streams:
            try:
                channel, chunk = events.get(timeout=self._remaining())
            except queue.Empty:
                if self.kill_reason is not None:
                    logger.warning("Agent output pipes still open after kill; abandoning them")
                    break
                self._on_deadline(process)
                continue

            if chunk is None:
                open_streams.discard(channel)
                self._finish_stream(channel)
                continue
            if self.state is SupervisorState.RUNNING and self.kill_reason is None:
                self._deadline = time.monotonic() + self.idle_timeout_seconds
            if channel == _STDOUT:
                self._handle_stdout(chunk)
            else:
                self._handle_stderr(chunk)

        while process.poll() is None:
            if self.kill_reason is not None:
                process.wait()
                break
            try:
                process.wait(timeout=self._remaining())
            except subprocess.TimeoutExpired:
                self._on_deadline(process)

        for reader in readers:
            reader.join(timeout=1)

    def _remaining(self) -> float | None:
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def _on_deadline(self, process: subprocess.Popen[bytes]) -> None:
        if self.state is SupervisorState.RESULT_RECEIVED:
            self.kill_reason = KillReason.RESULT_HANG
            message = "\n[runner] Agent sent result but didn't exit, killing stale process.\n"
        else:
            self.kill_reason = KillReason.IDLE_TIMEOUT
            message = (
                f"\n[runner] Agent idle for {_format_duration(self.idle_timeout_seconds)}, "
                "killing as hung.\n"
            )
        logger.warning("Killing agent %s: %s", self.invocation.label, self.kill_reason)
        self._echo_stderr(message)
        self._write_log(message)
        _terminate_process(process)
        self._deadline = time.monotonic() + _POST_KILL_DRAIN_SECONDS

    def _handle_stdout(self, chunk: bytes) -> None:
        self._line_buffer += self._decoders[_STDOUT].decode(chunk)
        *lines, self._line_buffer = self._line_buffer.split("\n")
        for line in lines:
            self._process_line(line)

    def _handle_stderr(self, chunk: bytes) -> None:
        self._handle_stderr_text(self._decoders[_STDERR].decode(chunk))

    def _finish_stream(self, channel: str) -> None:
        tail = self._decoders[channel].decode(b"", final=True)
        if channel == _STDERR:
            self._handle_stderr_text(tail)
            return
        self._line_buffer += tail
        if self._line_buffer:
            line, self._line_buffer = self._line_buffer.rstrip(), ""
            self._process_line(line)

    def _handle_stderr_text(self, text: str) -> None:
        if not text:
            return
        self._echo_stderr(text)
        self._write_log(text)

    def _process_line(self, line: str) -> None:
        event = self.normalizer(line)
        if event.text:
            self._emit(event.text)
        if event.done:
            self._on_result(event)

    def _on_result(self, event: StreamEvent) -> None:
        # Results printed while the agent is being killed do not count.
        if self.kill_reason is not None:
            return
        self._result_exit_code = event.exit_code if event.exit_code is not None else 0
        self.state = SupervisorState.RESULT_RECEIVED
        self._deadline = time.monotonic() + self.result_grace_seconds

    def _resolve_exit_code(self, raw_exit_code: int | None) -> int:
        if self.kill_reason is KillReason.IDLE_TIMEOUT:
            return 1
        if self._result_exit_code is not None:
            return self._result_exit_code
        # Negative return codes mean the process died from a signal.
        if raw_exit_code is not None and raw_exit_code >= 0:
            return raw_exit_code
        return 1

    def _emit(self, text: str) -> None:
        if self.echo:
            stream = self._stdout or sys.stdout
            stream.write(text)
            stream.flush()
        self._write_log(text)

    def _echo_stderr(self, text: str) -> None:
        if self.echo:
            stream = self._stderr or sys.stderr
            stream.write(text)
            stream.flush()

    def _write_log(self, text: str) -> None:
        if self._log is not None:
            self._log.write(text)


def _pump(
    stream: IO[bytes] | None,
    channel: str,
    events: queue.Queue[tuple[str, bytes | None]],
) -> None:
    if stream is None:
        events.put((channel, None))
        return
    try:
        while chunk := stream.read1(_CHUNK_SIZE):  # type: ignore[attr-defined]
            events.put((channel, chunk))
    except (OSError, ValueError):
        logger.debug("Agent %s pipe closed abruptly", channel, exc_info=True)
    finally:
        events.put((channel, None))


def _terminate_process(process: subprocess.Popen[bytes]) -> None:
    _signal_process(process, signal.SIGTERM)
    try:
        process.wait(timeout=_TERMINATE_WAIT_SECONDS)
    except subprocess.TimeoutExpired:
        _signal_process(process, getattr(signal, "SIGKILL", signal.SIGTERM))
        with contextlib.suppress(subprocess.TimeoutExpired):
            process.wait(timeout=_TERMINATE_WAIT_SECONDS)


def _signal_process(process: subprocess.Popen[bytes], signum: int) -> None:
    if os.name != "nt" and hasattr(os, "killpg"):
        try:
            os.killpg(process.pid, signum)
        except OSError:
            pass
        else:
            return
    with contextlib.suppress(OSError):
        process.send_signal(signum)


def _format_duration(seconds: float) -> str:
    if seconds >= 60:
        return f"{seconds / 60:g}min"
    return f"{seconds:g}s"
