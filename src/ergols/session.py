from __future__ import annotations

import threading
from dataclasses import dataclass

from ergols.deadline import CancelToken


@dataclass
class _InFlight:
    request_id: str
    cancel: CancelToken


class DocumentSession:
    """Per-server document state keyed by document URI.

    Tracks the newest request for each document so that a new edit cancels
    the analyzer still running for the previous one, and so callers can drop
    outcomes that arrive after they were superseded.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._in_flight: dict[str, _InFlight] = {}
        self._latest: dict[str, str] = {}

    def begin(self, uri: str, request_id: str) -> CancelToken:
        token = CancelToken()
        with self._lock:
            previous = self._in_flight.get(uri)
            self._in_flight[uri] = _InFlight(request_id=request_id, cancel=token)
            self._latest[uri] = request_id
        if previous is not None:
            previous.cancel.cancel()
        return token

    def is_current(self, uri: str, request_id: str) -> bool:
        with self._lock:
            return self._latest.get(uri) == request_id

    def finish(self, uri: str, request_id: str) -> None:
        with self._lock:
            entry = self._in_flight.get(uri)
            if entry is not None and entry.request_id == request_id:
                del self._in_flight[uri]

    def close(self, uri: str) -> None:
        with self._lock:
            entry = self._in_flight.pop(uri, None)
            self._latest.pop(uri, None)
        if entry is not None:
            entry.cancel.cancel()

    def in_flight(self, uri: str) -> str | None:
        with self._lock:
            entry = self._in_flight.get(uri)
            return entry.request_id if entry is not None else None
