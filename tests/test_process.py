from __future__ import annotations

import logging
import os
import subprocess
import sys
import threading
import time

import pytest

from ergols.deadline import CancelToken
from ergols.exceptions import NeverThrown, SpawnError
from ergols.process import invoke
from tests.process_fakes import FakeProcess, factory_for


def _recording_factory(spawned: list[subprocess.Popen]):
    def _factory(argv, **kwargs):
        proc = subprocess.Popen(argv, **kwargs)
        spawned.append(proc)
        return proc

    return _factory


def test_invoke_captures_streams_and_exit_code() -> None:
    raw = invoke(
        sys.executable,
        [
            "-c",
            "import sys; print(sys.argv[1]); sys.stderr.write('note\\n')",
            'val s = "quoted"',
        ],
        10_000,
    )
    assert raw.exit_code == 0
    assert raw.stdout.decode().strip() == 'val s = "quoted"'
    assert raw.stderr.decode().strip() == "note"
    assert raw.timed_out is False
    assert raw.cancelled is False


def test_invoke_reports_nonzero_exit() -> None:
    raw = invoke(
        sys.executable,
        ["-c", "import sys; sys.stderr.write('3:5: bad\\n'); sys.exit(1)"],
        10_000,
    )
    assert raw.exit_code == 1
    assert raw.stderr.strip() == b"3:5: bad"


def test_invoke_kills_process_past_deadline() -> None:
    spawned: list[subprocess.Popen] = []
    started = time.monotonic()
    raw = invoke(
        sys.executable,
        ["-c", "import time; time.sleep(30)"],
        300,
        process_factory=_recording_factory(spawned),
    )
    elapsed = time.monotonic() - started
    assert raw.timed_out is True
    assert raw.exit_code is None
    assert elapsed < 0.3 + 3.0
    assert len(spawned) == 1
    assert spawned[0].poll() is not None
    assert spawned[0].stdout.closed
    assert spawned[0].stderr.closed


def test_invoke_drains_large_output_without_deadlock() -> None:
    script = (
        "import sys\n"
        "sys.stdout.write('o' * 1_000_000)\n"
        "sys.stderr.write('e' * 1_000_000)\n"
    )
    raw = invoke(sys.executable, ["-c", script], 20_000)
    assert raw.exit_code == 0
    assert len(raw.stdout) == 1_000_000
    assert len(raw.stderr) == 1_000_000


def test_invoke_cancellation_terminates_process() -> None:
    spawned: list[subprocess.Popen] = []
    cancel = CancelToken()
    timer = threading.Timer(0.2, cancel.cancel)
    timer.start()
    try:
        raw = invoke(
            sys.executable,
            ["-c", "import time; time.sleep(30)"],
            20_000,
            cancel=cancel,
            process_factory=_recording_factory(spawned),
        )
    finally:
        timer.cancel()
    assert raw.cancelled is True
    assert raw.timed_out is False
    assert raw.exit_code is None
    assert spawned[0].poll() is not None


def test_invoke_missing_executable_raises_spawn_error(tmp_path) -> None:
    missing = tmp_path / "no-such-analyzer"
    with pytest.raises(SpawnError) as exc:
        invoke(str(missing), ["{ true }"], 1_000)
    assert exc.value.command == str(missing)


def test_invoke_permission_error_raises_spawn_error() -> None:
    def factory(*_args, **_kwargs):
        raise PermissionError(13, "Permission denied")

    with pytest.raises(SpawnError) as exc:
        invoke("java", ["{ true }"], 1_000, process_factory=factory)
    assert "Permission denied" in str(exc.value)


def test_invoke_passes_argv_and_closes_pipes_with_fake_process() -> None:
    proc = FakeProcess(stdout_bytes=b'{"success": true}', stderr_bytes=b"", returncode=0)
    raw = invoke("java", ["-cp", "sigma.jar", "Main", "{ HEIGHT > 1 }"], 1_000, process_factory=factory_for(proc))
    assert proc.argv == ["java", "-cp", "sigma.jar", "Main", "{ HEIGHT > 1 }"]
    assert proc.kwargs["stdout"] == subprocess.PIPE
    assert proc.kwargs["stderr"] == subprocess.PIPE
    assert raw.stdout == b'{"success": true}'
    assert raw.exit_code == 0
    assert proc.stdin.closed and proc.stdout.closed and proc.stderr.closed
    assert proc.killed is False


def test_invoke_kills_hung_fake_process() -> None:
    proc = FakeProcess(stderr_bytes=b"partial", hangs=True)
    raw = invoke("java", ["x"], 50, process_factory=factory_for(proc))
    assert raw.timed_out is True
    assert raw.exit_code is None
    assert raw.stderr == b"partial"
    assert proc.killed is True


def test_invoke_precancelled_token_never_waits() -> None:
    proc = FakeProcess(hangs=True)
    cancel = CancelToken()
    cancel.cancel()
    raw = invoke("java", ["x"], 60_000, cancel=cancel, process_factory=factory_for(proc))
    assert raw.cancelled is True
    assert proc.killed is True


def test_invoke_rejects_invalid_arguments() -> None:
    with pytest.raises(NeverThrown):
        invoke("java", [], 0)
    with pytest.raises(NeverThrown):
        invoke("", [], 1_000)


def test_invoke_nul_byte_in_argv_raises_spawn_error() -> None:
    with pytest.raises(SpawnError) as exc:
        invoke(sys.executable, ["-c", "pass", "{ a\x00 }"], 1_000)
    assert exc.value.command == sys.executable
    assert "null" in exc.value.detail


def test_invoke_rejected_argv_from_factory_raises_spawn_error() -> None:
    def factory(*_args, **_kwargs):
        raise ValueError("embedded null byte")

    with pytest.raises(SpawnError, match="embedded null byte"):
        invoke("java", ["x"], 1_000, process_factory=factory)


def test_fake_process_is_never_group_killed() -> None:
    proc = FakeProcess(hangs=True)
    raw = invoke("java", ["x"], 50, process_factory=factory_for(proc))
    assert raw.timed_out is True
    assert proc.kwargs["start_new_session"] is hasattr(os, "killpg")
    assert proc.killed is True


_FORKING_ANALYZER = (
    "import subprocess, sys, time\n"
    "subprocess.Popen([sys.executable, '-c', 'import time; time.sleep(30)'])\n"
    "{tail}\n"
)


@pytest.mark.skipif(not hasattr(os, "killpg"), reason="process groups are POSIX-only")
def test_invoke_timeout_kills_grandchildren_holding_pipes() -> None:
    started = time.monotonic()
    raw = invoke(
        sys.executable,
        ["-c", _FORKING_ANALYZER.format(tail="time.sleep(30)")],
        500,
    )
    assert raw.timed_out is True
    assert time.monotonic() - started < 0.5 + 1.5


@pytest.mark.skipif(not hasattr(os, "killpg"), reason="process groups are POSIX-only")
def test_invoke_reaps_grandchildren_left_after_normal_exit() -> None:
    started = time.monotonic()
    raw = invoke(
        sys.executable,
        ["-c", _FORKING_ANALYZER.format(tail="print('done')")],
        10_000,
    )
    assert raw.exit_code == 0
    assert raw.stdout.strip() == b"done"
    assert time.monotonic() - started < 10.0


def test_cancellation_is_logged_as_warning(caplog) -> None:
    proc = FakeProcess(hangs=True)
    cancel = CancelToken()
    cancel.cancel()
    with caplog.at_level(logging.WARNING, logger="ergols.process"):
        invoke("java", ["x"], 60_000, cancel=cancel, process_factory=factory_for(proc))
    assert any("cancelled" in record.getMessage() for record in caplog.records)
