from __future__ import annotations

import io
import subprocess
import time


class FakeProcess:
    """In-memory stand-in for subprocess.Popen."""

    def __init__(
        self,
        stdout_bytes: bytes = b"",
        stderr_bytes: bytes = b"",
        returncode: int | None = 0,
        *,
        hangs: bool = False,
    ) -> None:
        self.pid = 4242
        self.stdin = io.BytesIO()
        self.stdout = io.BytesIO(stdout_bytes)
        self.stderr = io.BytesIO(stderr_bytes)
        self.returncode = None if hangs else returncode
        self.killed = False
        self.argv: list[str] | None = None
        self.kwargs: dict[str, object] = {}

    def poll(self) -> int | None:
        return self.returncode

    def wait(self, timeout: float | None = None) -> int:
        if self.returncode is None:
            time.sleep(min(timeout or 0.0, 0.01))
            raise subprocess.TimeoutExpired(cmd=self.argv or [], timeout=timeout or 0.0)
        return self.returncode

    def kill(self) -> None:
        self.killed = True
        self.returncode = -9


def factory_for(process: FakeProcess):
    def _factory(argv, **kwargs):
        process.argv = list(argv)
        process.kwargs = dict(kwargs)
        return process

    return _factory
