from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import StrEnum

from ergols.json_types import JSONObject


class OutcomeSource(StrEnum):
    ANALYZER = "analyzer"
    HEURISTIC = "heuristic"


class DegradedReason(StrEnum):
    TIMEOUT = "timeout"
    SPAWN_ERROR = "spawn_error"
    CANCELLED = "cancelled"
    MALFORMED_OUTPUT = "malformed_output"


@dataclass(frozen=True)
class AnalysisRequest:
    source_text: str
    request_id: str
    deadline_ms: int
    document_uri: str | None = None


@dataclass(frozen=True)
class RawOutput:
    stdout: bytes = b""
    stderr: bytes = b""
    exit_code: int | None = None
    timed_out: bool = False
    cancelled: bool = False


@dataclass(frozen=True)
class ErrorDescriptor:
    message: str
    offset: int | None = None
    length: int | None = None
    line: int | None = None
    column: int | None = None

    def as_payload(self) -> JSONObject:
        payload: JSONObject = {"message": self.message}
        for key in ("offset", "length", "line", "column"):
            value = getattr(self, key)
            if value is not None:
                payload[key] = value
        return payload


@dataclass(frozen=True)
class AnalysisOutcome:
    success: bool
    errors: tuple[ErrorDescriptor, ...] = field(default_factory=tuple)
    source: OutcomeSource = OutcomeSource.ANALYZER
    degraded: DegradedReason | None = None
    caveat: str | None = None

    @classmethod
    def from_errors(
        cls,
        errors: list[ErrorDescriptor] | tuple[ErrorDescriptor, ...],
        *,
        source: OutcomeSource = OutcomeSource.ANALYZER,
    ) -> "AnalysisOutcome":
        errors = tuple(errors)
        return cls(success=not errors, errors=errors, source=source)

    def degrade(self, reason: DegradedReason, caveat: str) -> "AnalysisOutcome":
        return replace(self, degraded=reason, caveat=caveat)

    def as_payload(self) -> JSONObject:
        return {
            "success": self.success,
            "errors": [error.as_payload() for error in self.errors],
            "source": self.source.value,
            "degraded": self.degraded.value if self.degraded is not None else None,
            "caveat": self.caveat,
        }
