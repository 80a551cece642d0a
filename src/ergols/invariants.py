"""Invariant markers."""

from __future__ import annotations

from typing import NoReturn

from ergols.exceptions import NeverThrown


def never(reason: str = "", **env: object) -> NoReturn:
    """Mark a code path as intentionally unreachable.

    The env payload is metadata only; it travels on the raised exception so
    callers can report which value broke the contract.
    """
    raise NeverThrown(reason or "never() marker reached", env=env)
