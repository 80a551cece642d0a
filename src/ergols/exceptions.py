"""Exception types for the ergols analyzer bridge."""

from __future__ import annotations


class NeverRaise(RuntimeError):
    """Sentinel exception for code paths that must be unreachable.

    Raised through :func:`ergols.invariants.never` when a caller breaks a
    contract (invalid deadline, malformed command payload). It is never
    converted into a diagnostic.
    """

    def __init__(self, message: str, *, env: dict[str, object] | None = None):
        super().__init__(message)
        self.reason = message
        self.env = dict(env or {})


class NeverThrown(NeverRaise):
    """Alias for NeverRaise used by the explicit never() marker."""


class BridgeError(RuntimeError):
    """Base class for operational failures of the analyzer bridge."""


class SpawnError(BridgeError):
    """The analyzer executable could not be started."""

    def __init__(self, command: str, detail: str) -> None:
        super().__init__(f"Failed to start analyzer {command!r}: {detail}")
        self.command = command
        self.detail = detail


class AnalyzerProtocolError(BridgeError):
    """Analyzer stdout was JSON but not a parse payload."""
