"""Normalize raw analyzer output into an :class:`AnalysisOutcome`."""

from __future__ import annotations

import json
import logging
import re

from pydantic import ValidationError

from ergols.exceptions import AnalyzerProtocolError
from ergols.model import (
    AnalysisOutcome,
    DegradedReason,
    ErrorDescriptor,
    RawOutput,
)
from ergols.schema import AnalyzerPayloadDTO

logger = logging.getLogger(__name__)

_POSITION_RE = re.compile(r"(?P<line>\d+):(?P<column>\d+):\s*(?P<message>.+)")

TIMEOUT_MESSAGE = "Analyzer timed out before reporting a result"
CANCELLED_MESSAGE = "Analysis cancelled by a newer request"
MALFORMED_MESSAGE = "Analyzer exited successfully but its output could not be decoded"
MALFORMED_CAVEAT = "analyzer output was not a structured payload; treated as success"
SILENT_FAILURE_MESSAGE = "Analyzer reported failure without details"


def _decode(data: bytes) -> str:
    return data.decode("utf-8", errors="replace")


def _zero_based(value: str) -> int:
    return max(0, int(value) - 1)


def _payload_from_stdout(stdout: bytes) -> AnalyzerPayloadDTO | None:
    """Decode the analyzer payload, or None when stdout is not JSON.

    Raises :class:`AnalyzerProtocolError` when stdout is JSON of the wrong
    shape.
    """
    text = _decode(stdout).strip()
    if not text:
        return None
    try:
        loaded = json.loads(text)
    except json.JSONDecodeError:
        return None
    try:
        return AnalyzerPayloadDTO.model_validate(loaded)
    except ValidationError as exc:
        raise AnalyzerProtocolError(
            f"analyzer JSON is not a parse payload ({exc.error_count()} errors)"
        ) from exc


def _outcome_from_payload(payload: AnalyzerPayloadDTO) -> AnalysisOutcome:
    errors = [
        ErrorDescriptor(
            message=error.message,
            offset=error.offset,
            length=error.length,
            line=error.line,
            column=error.column,
        )
        for error in payload.errors
    ]
    if not payload.success and not errors:
        errors.append(ErrorDescriptor(message=SILENT_FAILURE_MESSAGE))
    return AnalysisOutcome.from_errors(errors)


def parse_stderr(stderr: bytes, exit_code: int | None = None) -> list[ErrorDescriptor]:
    """Turn analyzer stderr into descriptors in stream order.

    ``line:column: message`` lines are positioned (converted to 0-based);
    other non-blank lines keep only their message. Never returns an empty
    list.
    """
    text = _decode(stderr)
    errors: list[ErrorDescriptor] = []
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line:
            continue
        match = _POSITION_RE.search(line)
        if match is None:
            errors.append(ErrorDescriptor(message=line))
            continue
        errors.append(
            ErrorDescriptor(
                message=match.group("message").strip(),
                line=_zero_based(match.group("line")),
                column=_zero_based(match.group("column")),
            )
        )
    if errors:
        return errors
    if text.strip():
        return [ErrorDescriptor(message=text.strip())]
    suffix = f" (exit {exit_code})" if exit_code is not None else ""
    return [ErrorDescriptor(message=f"Parse error{suffix}")]


def translate(raw: RawOutput, *, strict: bool = False) -> AnalysisOutcome:
    """Apply the output policy to ``raw``.

    Timeouts and cancellations short-circuit into failed, degraded outcomes.
    Exit 0 with a decodable payload uses the payload; exit 0 without one is
    a success carrying a caveat, or a degraded failure when ``strict``. A
    non-zero exit is read from stderr.
    """
    if raw.timed_out:
        return AnalysisOutcome(
            success=False,
            errors=(ErrorDescriptor(message=TIMEOUT_MESSAGE),),
            degraded=DegradedReason.TIMEOUT,
            caveat="analyzer exceeded its deadline and was terminated",
        )
    if raw.cancelled:
        return AnalysisOutcome(
            success=False,
            errors=(ErrorDescriptor(message=CANCELLED_MESSAGE),),
            degraded=DegradedReason.CANCELLED,
            caveat="superseded by a newer request",
        )
    if raw.exit_code == 0:
        try:
            payload = _payload_from_stdout(raw.stdout)
        except AnalyzerProtocolError as exc:
            logger.debug("%s", exc)
            payload = None
        if payload is not None:
            return _outcome_from_payload(payload)
        logger.debug("analyzer exit 0 with undecodable stdout (%d bytes)", len(raw.stdout))
        if strict:
            return AnalysisOutcome(
                success=False,
                errors=(ErrorDescriptor(message=MALFORMED_MESSAGE),),
                degraded=DegradedReason.MALFORMED_OUTPUT,
                caveat="analyzer output was not a structured payload",
            )
        return AnalysisOutcome(success=True, caveat=MALFORMED_CAVEAT)
    return AnalysisOutcome.from_errors(parse_stderr(raw.stderr, raw.exit_code))
