"""Fast lexical checks used while the external analyzer is absent or slow.

The validator is approximate by construction: three independent bracket
counters plus two conservative line patterns. It runs on every edit, so it
prefers missing an error over reporting a false one, and it never raises.
"""

from __future__ import annotations

import re

from ergols.model import ErrorDescriptor

_BRACKETS = (
    ("{", "}", "brace"),
    ("(", ")", "parenthesis"),
    ("[", "]", "bracket"),
)
_OPENERS = {opener: index for index, (opener, _closer, _name) in enumerate(_BRACKETS)}
_CLOSERS = {closer: index for index, (_opener, closer, _name) in enumerate(_BRACKETS)}

DECLARATION_KEYWORDS = ("val", "def")
_INCOMPLETE_DECL_RE = re.compile(
    r"\b(?P<kw>" + "|".join(DECLARATION_KEYWORDS) + r")[ \t]*\r?$", re.MULTILINE
)
_LAMBDA_ARROW = "=>"


def _coerce_text(source: object) -> str | None:
    if isinstance(source, str):
        return source
    if isinstance(source, (bytes, bytearray, memoryview)):
        return bytes(source).decode("utf-8", errors="replace")
    return None


def _bracket_errors(text: str) -> list[ErrorDescriptor]:
    errors: list[ErrorDescriptor] = []
    depths = [0, 0, 0]
    for offset, char in enumerate(text):
        if char in _OPENERS:
            depths[_OPENERS[char]] += 1
        elif char in _CLOSERS:
            index = _CLOSERS[char]
            if depths[index] == 0:
                _opener, closer, name = _BRACKETS[index]
                errors.append(
                    ErrorDescriptor(
                        message=f"Unexpected closing {name} {closer}",
                        offset=offset,
                        length=1,
                    )
                )
                # A stray closer resets only its own counter.
                continue
            depths[index] -= 1
    end_offset = max(0, len(text) - 1)
    for index, depth in enumerate(depths):
        if depth > 0:
            opener, _closer, name = _BRACKETS[index]
            errors.append(
                ErrorDescriptor(
                    message=f"Unclosed {name} {opener} ({depth} unclosed)",
                    offset=end_offset,
                )
            )
    return errors


def _incomplete_declarations(text: str) -> list[ErrorDescriptor]:
    return [
        ErrorDescriptor(
            message=f"Incomplete {match.group('kw')} declaration",
            offset=match.start("kw"),
            length=len(match.group("kw")),
        )
        for match in _INCOMPLETE_DECL_RE.finditer(text)
    ]


def _misplaced_arrows(text: str) -> list[ErrorDescriptor]:
    errors: list[ErrorDescriptor] = []
    line_start = 0
    for line in text.splitlines(keepends=True):
        if line.strip().startswith(_LAMBDA_ARROW):
            errors.append(
                ErrorDescriptor(
                    message=f"Unexpected {_LAMBDA_ARROW} at start of line",
                    offset=line_start + line.index(_LAMBDA_ARROW),
                    length=len(_LAMBDA_ARROW),
                )
            )
        line_start += len(line)
    return errors


def validate(source: object) -> list[ErrorDescriptor]:
    """Return heuristic syntax errors for ``source`` in discovery order.

    ``source`` may be ``str`` or raw bytes (decoded as UTF-8 with
    replacement). Any other value yields no errors.
    """
    text = _coerce_text(source)
    if not text:
        return []
    errors = _bracket_errors(text)
    errors.extend(_incomplete_declarations(text))
    errors.extend(_misplaced_arrows(text))
    return errors
