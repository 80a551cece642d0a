"""Bounded execution of one external analyzer process."""

from __future__ import annotations

import logging
import os
import signal
import subprocess
import threading
from dataclasses import dataclass, field
from typing import IO, Callable, Sequence

from ergols.deadline import CancelToken, Deadline, DeadlineClock, MonotonicClock
from ergols.exceptions import SpawnError
from ergols.invariants import never
from ergols.model import RawOutput

logger = logging.getLogger(__name__)

ProcessFactory = Callable[..., subprocess.Popen]

_POLL_INTERVAL_SECONDS = 0.05
_KILL_GRACE_SECONDS = 2.0
_READER_JOIN_SECONDS = 2.0
_READ_CHUNK_BYTES = 64 * 1024
_SYSTEM_CLOCK = MonotonicClock()


@dataclass
class _ProcessHandle:
    """Owned lifetime of one spawned analyzer; never leaves this module."""

    process: subprocess.Popen
    started_at_ns: int
    stdout_buffer: bytearray = field(default_factory=bytearray)
    stderr_buffer: bytearray = field(default_factory=bytearray)
    readers: list[threading.Thread] = field(default_factory=list)
    owns_group: bool = False

    @property
    def pid(self) -> int | None:
        return getattr(self.process, "pid", None)


def _drain(stream: IO[bytes], sink: bytearray) -> None:
    while True:
        try:
            chunk = stream.read(_READ_CHUNK_BYTES)
        except ValueError:
            # The pipe was closed by _release after the join timeout.
            return
        if not chunk:
            return
        sink.extend(chunk)


def _start_reader(handle: _ProcessHandle, stream: IO[bytes] | None, sink: bytearray, label: str) -> None:
    if stream is None:
        return
    reader = threading.Thread(
        target=_drain,
        args=(stream, sink),
        name=f"ergols-analyzer-{label}-{handle.pid}",
        daemon=True,
    )
    reader.start()
    handle.readers.append(reader)


_NEW_SESSION = hasattr(os, "killpg")


def _spawn(
    argv: list[str],
    process_factory: ProcessFactory,
    clock: DeadlineClock,
) -> _ProcessHandle:
    try:
        process = process_factory(
            argv,
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            bufsize=0,
            start_new_session=_NEW_SESSION,
        )
    except OSError as exc:
        logger.warning("analyzer spawn failed: %s (%s)", argv[0], exc)
        raise SpawnError(argv[0], exc.strerror or str(exc)) from exc
    except ValueError as exc:
        # Popen rejects argv elements with embedded NUL characters.
        logger.warning("analyzer spawn rejected argv: %s (%s)", argv[0], exc)
        raise SpawnError(argv[0], str(exc)) from exc
    handle = _ProcessHandle(
        process=process,
        started_at_ns=clock.get_mark(),
        owns_group=_NEW_SESSION and isinstance(process, subprocess.Popen),
    )
    logger.debug("analyzer started pid=%s argv0=%s", handle.pid, argv[0])
    # Source travels in argv; closing stdin lets analyzers that read it see EOF.
    if process.stdin is not None:
        process.stdin.close()
    _start_reader(handle, process.stdout, handle.stdout_buffer, "stdout")
    _start_reader(handle, process.stderr, handle.stderr_buffer, "stderr")
    return handle


def _wait_for_exit(
    handle: _ProcessHandle,
    deadline: Deadline,
    cancel: CancelToken | None,
) -> str:
    process = handle.process
    while True:
        if cancel is not None and cancel.cancelled:
            return "cancelled"
        if process.poll() is not None:
            return "exited"
        if deadline.expired():
            return "timeout"
        interval = min(deadline.remaining_seconds(), _POLL_INTERVAL_SECONDS)
        if cancel is not None:
            cancel.wait(interval)
            continue
        try:
            process.wait(timeout=interval)
        except subprocess.TimeoutExpired:
            continue


def _kill_group(handle: _ProcessHandle) -> None:
    """Kill every process left in the analyzer's session, grandchildren included."""
    if not handle.owns_group or handle.pid is None:
        return
    try:
        os.killpg(handle.pid, signal.SIGKILL)
    except (ProcessLookupError, PermissionError):
        return


def _release(handle: _ProcessHandle) -> None:
    process = handle.process
    if process.poll() is None:
        _kill_group(handle)
        process.kill()
        try:
            process.wait(timeout=_KILL_GRACE_SECONDS)
        except subprocess.TimeoutExpired:
            logger.warning("analyzer pid=%s did not exit after kill", handle.pid)
    for reader in handle.readers:
        reader.join(timeout=_READER_JOIN_SECONDS)
    if any(reader.is_alive() for reader in handle.readers):
        # A descendant still holds the pipes open.
        logger.warning("analyzer pid=%s left descendants holding its pipes", handle.pid)
        _kill_group(handle)
        for reader in handle.readers:
            reader.join(timeout=_READER_JOIN_SECONDS)
    for stream in (process.stdin, process.stdout, process.stderr):
        if stream is not None:
            stream.close()


def invoke(
    command: str,
    args: Sequence[str],
    timeout_ms: int,
    *,
    cancel: CancelToken | None = None,
    process_factory: ProcessFactory = subprocess.Popen,
    clock: DeadlineClock = _SYSTEM_CLOCK,
) -> RawOutput:
    """Run ``command args...`` once and capture its output within ``timeout_ms``.

    stdout and stderr are drained on two reader threads so a child writing
    more than a pipe buffer never blocks. The deadline starts at spawn. When
    it elapses, or ``cancel`` fires, the child is killed and the result has
    ``exit_code=None`` with ``timed_out`` or ``cancelled`` set. On POSIX the
    child leads its own session, so processes it forks are killed with it.

    Raises :class:`SpawnError` when the executable cannot be started or the
    argv is rejected (an embedded NUL byte). On every other path the child
    is reaped and its pipes are closed before returning.
    """
    if not command:
        never("missing analyzer command")
    if int(timeout_ms) <= 0:
        never("invalid analyzer timeout ms", timeout_ms=timeout_ms)
    argv = [command, *args]
    handle = _spawn(argv, process_factory, clock)
    deadline = Deadline.from_timeout_ms(int(timeout_ms), clock=clock)
    status = "exited"
    try:
        status = _wait_for_exit(handle, deadline, cancel)
    finally:
        _release(handle)
    elapsed_ms = (clock.get_mark() - handle.started_at_ns) // 1_000_000
    if status == "timeout":
        logger.warning(
            "analyzer pid=%s killed after %sms (timeout %sms)",
            handle.pid,
            elapsed_ms,
            timeout_ms,
        )
    elif status == "cancelled":
        logger.warning("analyzer pid=%s cancelled after %sms", handle.pid, elapsed_ms)
    else:
        logger.debug(
            "analyzer pid=%s exited code=%s after %sms",
            handle.pid,
            handle.process.returncode,
            elapsed_ms,
        )
    return RawOutput(
        stdout=bytes(handle.stdout_buffer),
        stderr=bytes(handle.stderr_buffer),
        exit_code=handle.process.returncode if status == "exited" else None,
        timed_out=status == "timeout",
        cancelled=status == "cancelled",
    )
