from __future__ import annotations

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT / "src") not in sys.path:
    sys.path.insert(0, str(ROOT / "src"))
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


import pytest

from ergols.config import AnalyzerConfig


@pytest.fixture
def analyzer_script(tmp_path: Path):
    """Write a small Python analyzer and return its path."""

    def _write(body: str, name: str = "analyzer.py") -> Path:
        path = tmp_path / name
        path.write_text(body, encoding="utf-8")
        return path

    return _write


@pytest.fixture
def script_config():
    def _build(script: Path, **changes: object) -> AnalyzerConfig:
        values: dict[str, object] = {
            "command": sys.executable,
            "args": (str(script),),
            "timeout_ms": 10_000,
        }
        values.update(changes)
        return AnalyzerConfig(**values)

    return _build
