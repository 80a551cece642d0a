from __future__ import annotations

from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict


class AnalyzerErrorDTO(BaseModel):
    model_config = ConfigDict(extra="ignore")

    message: str
    offset: Optional[int] = None
    length: Optional[int] = None
    line: Optional[int] = None
    column: Optional[int] = None


class AnalyzerPayloadDTO(BaseModel):
    """Structured result the analyzer prints on stdout."""

    model_config = ConfigDict(extra="ignore")

    success: bool
    errors: List[AnalyzerErrorDTO] = []
    ast: Any = None


class ErrorDescriptorDTO(BaseModel):
    message: str
    offset: Optional[int] = None
    length: Optional[int] = None
    line: Optional[int] = None
    column: Optional[int] = None


class AnalysisOutcomeDTO(BaseModel):
    success: bool
    errors: List[ErrorDescriptorDTO] = []
    source: str = "analyzer"
    degraded: Optional[str] = None
    caveat: Optional[str] = None


class AnalyzeCommandDTO(BaseModel):
    """Payload of the ``ergols.analyze`` workspace command."""

    source: str
    timeout_ms: Optional[int] = None
    request_id: Optional[str] = None
