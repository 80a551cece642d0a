from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional
import uuid

import typer

from ergols.config import analyzer_config
from ergols.coordinator import AnalysisCoordinator, InvokeFn
from ergols.heuristics import validate
from ergols.json_types import JSONObject
from ergols.model import AnalysisOutcome, AnalysisRequest, OutcomeSource
from ergols.process import invoke
from ergols.schema import AnalysisOutcomeDTO

app = typer.Typer(add_completion=False)

DEFAULT_PARSE_SOURCE = "{ sigmaProp(HEIGHT > 100) }"


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log bridge activity to stderr."),
) -> None:
    """ErgoScript analyzer bridge and language server."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _read_source(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8", errors="replace")
    except OSError as exc:
        raise typer.BadParameter(f"Cannot read {path}: {exc}") from exc


def run_analysis(
    source: str,
    *,
    root: Optional[Path] = None,
    timeout_ms: Optional[int] = None,
    heuristics_only: bool = False,
    strict: bool = False,
    invoke_fn: InvokeFn = invoke,
) -> AnalysisOutcome:
    overrides: JSONObject = {}
    if timeout_ms is not None:
        overrides["timeout_ms"] = timeout_ms
    if heuristics_only:
        overrides["enabled"] = False
    if strict:
        overrides["strict_output"] = True
    config = analyzer_config(root=root, overrides=overrides)
    coordinator = AnalysisCoordinator(config, invoke_fn=invoke_fn)
    request = AnalysisRequest(
        source_text=source,
        request_id=uuid.uuid4().hex,
        deadline_ms=config.timeout_ms,
    )
    return coordinator.analyze(request)


def _emit_outcome(outcome: AnalysisOutcome) -> None:
    normalized = AnalysisOutcomeDTO.model_validate(outcome.as_payload()).model_dump()
    typer.echo(json.dumps(normalized, indent=2, sort_keys=True))
    if outcome.caveat:
        typer.secho(outcome.caveat, err=True, fg=typer.colors.YELLOW)
    if not outcome.success:
        raise typer.Exit(code=1)


@app.command("check")
def check(
    path: Path = typer.Argument(..., exists=True, dir_okay=False),
    root: Optional[Path] = typer.Option(None, "--root", help="Directory holding ergols.toml."),
    timeout_ms: Optional[int] = typer.Option(None, "--timeout-ms", min=1),
    heuristics_only: bool = typer.Option(False, "--heuristics-only"),
    strict: bool = typer.Option(
        False, "--strict", help="Fall back to heuristics when analyzer output is undecodable."
    ),
) -> None:
    """Analyze a file with the external analyzer and emit the outcome JSON."""
    outcome = run_analysis(
        _read_source(path),
        root=root if root is not None else path.parent,
        timeout_ms=timeout_ms,
        heuristics_only=heuristics_only,
        strict=strict,
    )
    _emit_outcome(outcome)


@app.command("parse")
def parse(
    source: str = typer.Argument(DEFAULT_PARSE_SOURCE),
    root: Optional[Path] = typer.Option(None, "--root"),
    timeout_ms: Optional[int] = typer.Option(None, "--timeout-ms", min=1),
) -> None:
    """Run the analyzer bridge on inline source text."""
    _emit_outcome(run_analysis(source, root=root, timeout_ms=timeout_ms))


@app.command("lint")
def lint(path: Path = typer.Argument(..., exists=True, dir_okay=False)) -> None:
    """Run only the local heuristic validator."""
    errors = validate(path.read_bytes())
    _emit_outcome(AnalysisOutcome.from_errors(errors, source=OutcomeSource.HEURISTIC))


@app.command("serve")
def serve() -> None:
    """Start the language server on stdio."""
    from ergols.server import start

    start()


if __name__ == "__main__":  # pragma: no cover
    app()  # pragma: no cover
