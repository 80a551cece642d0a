from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time
from pathlib import Path
from typing import TypeAlias
import os
import tomllib

from ergols.invariants import never

DEFAULT_CONFIG_NAME = "ergols.toml"
DEFAULT_ANALYZER_COMMAND = "java"
DEFAULT_ANALYZER_MAIN = "sigma.compiler.ParserCLI"
DEFAULT_ANALYZER_JAR = Path("sigmastate-interpreter/target/scala-2.13/sigma.jar")
DEFAULT_TIMEOUT_MS = 5_000

ENV_TIMEOUT_MS = "ERGOLS_ANALYZER_TIMEOUT_MS"
ENV_COMMAND = "ERGOLS_ANALYZER_COMMAND"
ENV_JAR = "ERGOLS_ANALYZER_JAR"

TomlScalar: TypeAlias = str | int | float | bool | None | date | datetime | time
TomlValue: TypeAlias = TomlScalar | list["TomlValue"] | dict[str, "TomlValue"]
TomlTable: TypeAlias = dict[str, TomlValue]


@dataclass(frozen=True)
class AnalyzerConfig:
    enabled: bool = True
    command: str = DEFAULT_ANALYZER_COMMAND
    args: tuple[str, ...] = field(default_factory=tuple)
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    strict_output: bool = False
    heuristics_enabled: bool = True


def _load_toml(path: Path) -> TomlTable:
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return {}
    except OSError:
        return {}
    try:
        data = tomllib.loads(raw)
    except tomllib.TOMLDecodeError:
        return {}
    return data if isinstance(data, dict) else {}


def load_config(root: Path | None = None, config_path: Path | None = None) -> TomlTable:
    if config_path is None:
        base = root if root is not None else Path.cwd()
        config_path = base / DEFAULT_CONFIG_NAME
    return _load_toml(config_path)


def analyzer_defaults(
    root: Path | None = None, config_path: Path | None = None
) -> TomlTable:
    data = load_config(root=root, config_path=config_path)
    section = data.get("analyzer", {})
    return section if isinstance(section, dict) else {}


def heuristics_defaults(
    root: Path | None = None, config_path: Path | None = None
) -> TomlTable:
    data = load_config(root=root, config_path=config_path)
    section = data.get("heuristics", {})
    return section if isinstance(section, dict) else {}


def _as_bool(value: TomlValue, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return default


def _normalize_args(value: TomlValue) -> tuple[str, ...] | None:
    if value is None:
        return None
    if isinstance(value, str):
        return tuple(part for part in value.split() if part)
    if isinstance(value, list):
        return tuple(str(item) for item in value if item is not None)
    return None


def _timeout_ms(value: object, *, source: str) -> int:
    try:
        ms_value = int(str(value).strip())
    except ValueError:
        never("invalid analyzer timeout ms", source=source, value=value)
    if ms_value <= 0:
        never("invalid analyzer timeout ms", source=source, value=value)
    return ms_value


def default_analyzer_args(jar: Path | str) -> tuple[str, ...]:
    return ("-cp", str(jar), DEFAULT_ANALYZER_MAIN)


def merge_payload(payload: TomlTable, defaults: TomlTable) -> TomlTable:
    merged = dict(defaults)
    for key, value in payload.items():
        if value is None:
            continue
        merged[key] = value
    return merged


def analyzer_config(
    root: Path | None = None,
    config_path: Path | None = None,
    *,
    overrides: TomlTable | None = None,
) -> AnalyzerConfig:
    """Build the analyzer configuration.

    Precedence, lowest first: built-in defaults, ``ergols.toml``, environment
    (``ERGOLS_ANALYZER_*``), explicit ``overrides``.
    """
    section = analyzer_defaults(root=root, config_path=config_path)
    heuristics = heuristics_defaults(root=root, config_path=config_path)
    env: TomlTable = {}
    if os.getenv(ENV_TIMEOUT_MS, "").strip():
        env["timeout_ms"] = _timeout_ms(os.environ[ENV_TIMEOUT_MS], source=ENV_TIMEOUT_MS)
    if os.getenv(ENV_COMMAND, "").strip():
        env["command"] = os.environ[ENV_COMMAND].strip()
    if os.getenv(ENV_JAR, "").strip():
        env["jar"] = os.environ[ENV_JAR].strip()
    merged = merge_payload(overrides or {}, merge_payload(env, section))

    jar_value = merged.get("jar")
    if jar_value not in (None, ""):
        jar = Path(str(jar_value))
    else:
        jar = DEFAULT_ANALYZER_JAR
    if not jar.is_absolute() and root is not None:
        jar = root / jar
    args = _normalize_args(merged.get("args"))
    if args is None:
        args = default_analyzer_args(jar)

    timeout_value = merged.get("timeout_ms")
    timeout_ms = (
        DEFAULT_TIMEOUT_MS
        if timeout_value in (None, "")
        else _timeout_ms(timeout_value, source="analyzer.timeout_ms")
    )
    command = str(merged.get("command") or DEFAULT_ANALYZER_COMMAND)
    return AnalyzerConfig(
        enabled=_as_bool(merged.get("enabled"), True),
        command=command,
        args=args,
        timeout_ms=timeout_ms,
        strict_output=_as_bool(merged.get("strict_output"), False),
        heuristics_enabled=_as_bool(heuristics.get("enabled"), True),
    )
