"""End-to-end orchestration of one analysis request."""

from __future__ import annotations

import logging
from typing import Callable

from ergols.config import AnalyzerConfig
from ergols.deadline import CancelToken
from ergols.exceptions import SpawnError
from ergols.heuristics import validate
from ergols.model import (
    AnalysisOutcome,
    AnalysisRequest,
    DegradedReason,
    OutcomeSource,
    RawOutput,
)
from ergols.process import invoke
from ergols.session import DocumentSession
from ergols.translate import translate

logger = logging.getLogger(__name__)

InvokeFn = Callable[..., RawOutput]
HeuristicCallback = Callable[[AnalysisRequest, AnalysisOutcome], None]


class AnalysisCoordinator:
    """Runs the heuristic validator and the external analyzer for a request.

    The analyzer's outcome is authoritative when it completes. When it cannot
    be started, times out (including a request whose deadline is not
    positive), is cancelled, or (in strict mode) prints an
    undecodable result, the heuristic outcome is returned instead, marked
    with the degraded reason. No failure escapes :meth:`analyze`.
    """

    def __init__(
        self,
        config: AnalyzerConfig,
        *,
        session: DocumentSession | None = None,
        invoke_fn: InvokeFn = invoke,
        on_heuristic: HeuristicCallback | None = None,
    ) -> None:
        self.config = config
        self.session = session if session is not None else DocumentSession()
        self._invoke_fn = invoke_fn
        self._on_heuristic = on_heuristic

    def heuristic_outcome(self, request: AnalysisRequest) -> AnalysisOutcome:
        if not self.config.heuristics_enabled:
            return AnalysisOutcome(success=True, source=OutcomeSource.HEURISTIC)
        return AnalysisOutcome.from_errors(
            validate(request.source_text), source=OutcomeSource.HEURISTIC
        )

    def _begin(self, request: AnalysisRequest) -> CancelToken:
        if request.document_uri is None:
            return CancelToken()
        return self.session.begin(request.document_uri, request.request_id)

    def _finish(self, request: AnalysisRequest) -> None:
        if request.document_uri is not None:
            self.session.finish(request.document_uri, request.request_id)

    def _fallback(
        self,
        request: AnalysisRequest,
        heuristic: AnalysisOutcome,
        reason: DegradedReason,
        detail: str,
    ) -> AnalysisOutcome:
        logger.info(
            "request %s: analyzer unavailable (%s), using heuristic result",
            request.request_id,
            reason.value,
        )
        return heuristic.degrade(reason, f"analyzer unavailable ({reason.value}): {detail}")

    def analyze(
        self,
        request: AnalysisRequest,
        *,
        on_heuristic: HeuristicCallback | None = None,
    ) -> AnalysisOutcome:
        """Produce the outcome for ``request``.

        ``on_heuristic`` (or the callback given at construction) receives the
        heuristic outcome as soon as it reports errors, before the analyzer
        has finished.
        """
        cancel = self._begin(request)
        try:
            return self._analyze(request, cancel, on_heuristic or self._on_heuristic)
        finally:
            self._finish(request)

    def _analyze(
        self,
        request: AnalysisRequest,
        cancel: CancelToken,
        on_heuristic: HeuristicCallback | None,
    ) -> AnalysisOutcome:
        heuristic = self.heuristic_outcome(request)
        if not heuristic.success and on_heuristic is not None:
            on_heuristic(request, heuristic)
        if not self.config.enabled:
            return heuristic
        if request.deadline_ms <= 0:
            return self._fallback(
                request,
                heuristic,
                DegradedReason.TIMEOUT,
                f"deadline of {request.deadline_ms}ms already elapsed",
            )

        try:
            raw = self._invoke_fn(
                self.config.command,
                [*self.config.args, request.source_text],
                request.deadline_ms,
                cancel=cancel,
            )
        except SpawnError as exc:
            return self._fallback(request, heuristic, DegradedReason.SPAWN_ERROR, exc.detail)

        outcome = translate(raw, strict=self.config.strict_output)
        if outcome.degraded is not None:
            detail = outcome.caveat or outcome.errors[0].message
            return self._fallback(request, heuristic, outcome.degraded, detail)
        return outcome
