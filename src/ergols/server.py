from __future__ import annotations

import itertools
import logging
import threading
from pathlib import Path
from typing import Callable

from pygls.lsp.server import LanguageServer
from pydantic import ValidationError
from lsprotocol.types import (
    TEXT_DOCUMENT_COMPLETION,
    TEXT_DOCUMENT_DID_CHANGE,
    TEXT_DOCUMENT_DID_CLOSE,
    TEXT_DOCUMENT_DID_OPEN,
    TEXT_DOCUMENT_DID_SAVE,
    TEXT_DOCUMENT_HOVER,
    CompletionList,
    CompletionOptions,
    CompletionParams,
    Diagnostic,
    DiagnosticSeverity,
    Hover,
    HoverParams,
    LogMessageParams,
    MarkupContent,
    MarkupKind,
    MessageType,
    Position,
    PublishDiagnosticsParams,
    Range,
)

from ergols import __version__
from ergols.config import analyzer_config
from ergols.coordinator import AnalysisCoordinator
from ergols.invariants import never
from ergols.json_types import JSONObject
from ergols.model import AnalysisOutcome, AnalysisRequest, ErrorDescriptor
from ergols.schema import AnalysisOutcomeDTO, AnalyzeCommandDTO
from ergols.session import DocumentSession
from ergols.symbols import completion_items, hover_markdown, word_at_offset

logger = logging.getLogger(__name__)

ANALYZE_COMMAND = "ergols.analyze"
DIAGNOSTIC_SOURCE = "ergoscript"
_UNPOSITIONED_WIDTH = 100


class ErgoLanguageServer(LanguageServer):
    """Language server carrying the document session and the coordinator."""

    def __init__(self, *args, coordinator: AnalysisCoordinator | None = None, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.session = coordinator.session if coordinator is not None else DocumentSession()
        self._coordinator = coordinator
        self._coordinator_lock = threading.Lock()
        self._request_counter = itertools.count(1)

    @property
    def coordinator(self) -> AnalysisCoordinator:
        with self._coordinator_lock:
            if self._coordinator is None:
                root_path = self.workspace.root_path
                root = Path(root_path) if root_path else None
                self._coordinator = AnalysisCoordinator(
                    analyzer_config(root=root), session=self.session
                )
            return self._coordinator

    def next_request_id(self, uri: str) -> str:
        return f"{uri}#{next(self._request_counter)}"


server = ErgoLanguageServer("ergols", __version__)


def _position_at(text: str, offset: int) -> Position:
    offset = max(0, min(offset, len(text)))
    line = text.count("\n", 0, offset)
    line_start = text.rfind("\n", 0, offset) + 1
    return Position(line=line, character=offset - line_start)


def descriptor_range(text: str, error: ErrorDescriptor) -> Range:
    if error.offset is not None:
        length = error.length if error.length else 1
        return Range(
            start=_position_at(text, error.offset),
            end=_position_at(text, error.offset + length),
        )
    if error.line is not None:
        column = error.column or 0
        length = error.length if error.length else 1
        return Range(
            start=Position(line=error.line, character=column),
            end=Position(line=error.line, character=column + length),
        )
    return Range(
        start=Position(line=0, character=0),
        end=Position(line=0, character=_UNPOSITIONED_WIDTH),
    )


def diagnostics_for_outcome(text: str, outcome: AnalysisOutcome) -> list[Diagnostic]:
    return [
        Diagnostic(
            range=descriptor_range(text, error),
            message=error.message,
            severity=DiagnosticSeverity.Error,
            source=DIAGNOSTIC_SOURCE,
        )
        for error in outcome.errors
    ]


def _publish(ls, uri: str, diagnostics: list[Diagnostic], version: int | None = None) -> None:
    ls.text_document_publish_diagnostics(
        PublishDiagnosticsParams(uri=uri, diagnostics=diagnostics, version=version)
    )


def validate_document(ls, uri: str) -> AnalysisOutcome | None:
    """Analyze the current text of ``uri`` and publish when still current.

    Returns the outcome, or None when a newer request superseded this one
    and nothing was published.
    """
    document = ls.workspace.get_text_document(uri)
    text = document.source
    version = getattr(document, "version", None)
    request_id = ls.next_request_id(uri)
    coordinator = ls.coordinator

    def _early(request: AnalysisRequest, heuristic: AnalysisOutcome) -> None:
        if ls.session.is_current(uri, request.request_id):
            _publish(ls, uri, diagnostics_for_outcome(text, heuristic), version)

    request = AnalysisRequest(
        source_text=text,
        request_id=request_id,
        deadline_ms=coordinator.config.timeout_ms,
        document_uri=uri,
    )
    outcome = coordinator.analyze(request, on_heuristic=_early)
    if not ls.session.is_current(uri, request_id):
        logger.debug("dropping stale outcome for %s", request_id)
        return None
    if outcome.caveat:
        ls.window_log_message(
            LogMessageParams(type=MessageType.Info, message=f"ergols: {outcome.caveat}")
        )
    _publish(ls, uri, diagnostics_for_outcome(text, outcome), version)
    return outcome


@server.feature(TEXT_DOCUMENT_DID_OPEN)
@server.thread()
def did_open(ls: ErgoLanguageServer, params) -> None:
    validate_document(ls, params.text_document.uri)


@server.feature(TEXT_DOCUMENT_DID_CHANGE)
@server.thread()
def did_change(ls: ErgoLanguageServer, params) -> None:
    validate_document(ls, params.text_document.uri)


@server.feature(TEXT_DOCUMENT_DID_SAVE)
@server.thread()
def did_save(ls: ErgoLanguageServer, params) -> None:
    validate_document(ls, params.text_document.uri)


@server.feature(TEXT_DOCUMENT_DID_CLOSE)
def did_close(ls: ErgoLanguageServer, params) -> None:
    uri = params.text_document.uri
    ls.session.close(uri)
    _publish(ls, uri, [])


@server.feature(TEXT_DOCUMENT_HOVER)
def hover(ls: ErgoLanguageServer, params: HoverParams) -> Hover | None:
    document = ls.workspace.get_text_document(params.text_document.uri)
    offset = document.offset_at_position(params.position)
    info = hover_markdown(word_at_offset(document.source, offset))
    if info is None:
        return None
    return Hover(contents=MarkupContent(kind=MarkupKind.Markdown, value=info))


@server.feature(
    TEXT_DOCUMENT_COMPLETION,
    CompletionOptions(trigger_characters=[".", " "], resolve_provider=False),
)
def completion(ls: ErgoLanguageServer, params: CompletionParams) -> CompletionList:
    return CompletionList(is_incomplete=False, items=completion_items())


def _require_payload(payload: object, *, command: str) -> dict[str, object]:
    if payload is None:
        never("missing command payload", command=command)
    if not isinstance(payload, dict):
        never(
            "invalid command payload type",
            command=command,
            payload_type=type(payload).__name__,
        )
    return payload


@server.command(ANALYZE_COMMAND)
@server.thread()
def execute_analyze(ls: ErgoLanguageServer, payload: dict | None = None) -> JSONObject:
    payload = _require_payload(payload, command=ANALYZE_COMMAND)
    try:
        command = AnalyzeCommandDTO.model_validate(payload)
    except ValidationError as exc:
        return {"exit_code": 2, "errors": [str(exc)]}
    coordinator = ls.coordinator
    timeout_ms = command.timeout_ms or coordinator.config.timeout_ms
    if timeout_ms <= 0:
        return {"exit_code": 2, "errors": ["timeout_ms must be positive"]}
    request = AnalysisRequest(
        source_text=command.source,
        request_id=command.request_id or ls.next_request_id(ANALYZE_COMMAND),
        deadline_ms=timeout_ms,
    )
    outcome = coordinator.analyze(request)
    response = AnalysisOutcomeDTO.model_validate(outcome.as_payload()).model_dump()
    response["exit_code"] = 0 if outcome.success else 1
    return response


def start(start_fn: Callable[[], None] | None = None) -> None:
    """Start the language server over stdio."""
    (start_fn or server.start_io)()


if __name__ == "__main__":  # pragma: no cover
    start()  # pragma: no cover
