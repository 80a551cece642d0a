"""ergols package root."""

from ergols.exceptions import NeverRaise, NeverThrown, SpawnError
from ergols.invariants import never

__all__ = ["__version__", "NeverRaise", "NeverThrown", "SpawnError", "never"]

__version__ = "0.1.0"
