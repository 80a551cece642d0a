"""Static hover and completion tables for ErgoScript built-ins."""

from __future__ import annotations

import re
from dataclasses import dataclass

from lsprotocol.types import (
    CompletionItem,
    CompletionItemKind,
    InsertTextFormat,
)

_WORD_BEFORE_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*\Z")
_WORD_AFTER_RE = re.compile(r"^[A-Za-z0-9_]*")

HOVER_DOCS: dict[str, str] = {
    "HEIGHT": "**HEIGHT**: Int\n\nCurrent blockchain height",
    "SELF": "**SELF**: Box\n\nThe box being spent by this transaction",
    "INPUTS": "**INPUTS**: Coll[Box]\n\nCollection of all input boxes of the spending transaction",
    "OUTPUTS": "**OUTPUTS**: Coll[Box]\n\nCollection of all output boxes of the spending transaction",
    "CONTEXT": "**CONTEXT**: Context\n\nThe context of the current transaction",
    "Global": "**Global**: Global\n\nGlobal functions and constants",
    "sigmaProp": "**sigmaProp**(condition: Boolean): SigmaProp\n\nConverts boolean to SigmaProp",
    "proveDlog": "**proveDlog**(value: GroupElement): SigmaProp\n\nCreates a sigma proposition for discrete log proof",
    "blake2b256": "**blake2b256**(input: Coll[Byte]): Coll[Byte]\n\nBlake2b 256-bit hash function",
    "sha256": "**sha256**(input: Coll[Byte]): Coll[Byte]\n\nSHA-256 hash function",
    "Box": "**Box**\n\nRepresents a box (UTXO) in Ergo blockchain",
    "SigmaProp": "**SigmaProp**\n\nSigma proposition that can be proven via zero-knowledge proof",
    "GroupElement": "**GroupElement**\n\nElliptic curve point",
    "BigInt": "**BigInt**\n\n256-bit signed integer",
    "Coll": "**Coll[T]**\n\nCollection type",
    "AvlTree": "**AvlTree**\n\nAuthenticated AVL+ tree",
}


@dataclass(frozen=True)
class CompletionSpec:
    label: str
    kind: CompletionItemKind
    documentation: str
    detail: str | None = None
    snippet: str | None = None

    def to_item(self) -> CompletionItem:
        return CompletionItem(
            label=self.label,
            kind=self.kind,
            detail=self.detail,
            documentation=self.documentation,
            insert_text=self.snippet,
            insert_text_format=InsertTextFormat.Snippet if self.snippet else None,
        )


_VARIABLE = CompletionItemKind.Variable
_KEYWORD = CompletionItemKind.Keyword
_FUNCTION = CompletionItemKind.Function
_CLASS = CompletionItemKind.Class

COMPLETIONS: tuple[CompletionSpec, ...] = (
    CompletionSpec("HEIGHT", _VARIABLE, "Current blockchain height", "Int"),
    CompletionSpec("SELF", _VARIABLE, "The box being spent", "Box"),
    CompletionSpec("INPUTS", _VARIABLE, "Input boxes of the transaction", "Coll[Box]"),
    CompletionSpec("OUTPUTS", _VARIABLE, "Output boxes of the transaction", "Coll[Box]"),
    CompletionSpec("CONTEXT", _VARIABLE, "Transaction context", "Context"),
    CompletionSpec("Global", _VARIABLE, "Global functions and constants", "Global"),
    CompletionSpec("val", _KEYWORD, "Declare a value"),
    CompletionSpec("def", _KEYWORD, "Define a function"),
    CompletionSpec("if", _KEYWORD, "Conditional expression"),
    CompletionSpec("else", _KEYWORD, "Else branch"),
    CompletionSpec("sigmaProp", _FUNCTION, "Convert boolean to SigmaProp", "(Boolean) => SigmaProp", "sigmaProp($1)"),
    CompletionSpec("proveDlog", _FUNCTION, "Create discrete log proof", "(GroupElement) => SigmaProp", "proveDlog($1)"),
    CompletionSpec("blake2b256", _FUNCTION, "Blake2b 256-bit hash", "(Coll[Byte]) => Coll[Byte]", "blake2b256($1)"),
    CompletionSpec("sha256", _FUNCTION, "SHA-256 hash", "(Coll[Byte]) => Coll[Byte]", "sha256($1)"),
    CompletionSpec("deserialize", _FUNCTION, "Deserialize from Base64", "(String) => T", 'deserialize[$1]("$2")'),
    CompletionSpec("Box", _CLASS, "Box type"),
    CompletionSpec("SigmaProp", _CLASS, "Sigma proposition type"),
    CompletionSpec("GroupElement", _CLASS, "Elliptic curve point"),
    CompletionSpec("BigInt", _CLASS, "256-bit signed integer"),
    CompletionSpec("Int", _CLASS, "32-bit integer"),
    CompletionSpec("Long", _CLASS, "64-bit integer"),
    CompletionSpec("Boolean", _CLASS, "Boolean type"),
    CompletionSpec("Coll", _CLASS, "Collection type", snippet="Coll[$1]"),
)


def word_at_offset(text: str, offset: int) -> str | None:
    """Return the identifier touching ``offset``, or None.

    The cursor must sit inside or right after an identifier; a cursor at the
    start of a word does not count.
    """
    offset = max(0, min(offset, len(text)))
    before = _WORD_BEFORE_RE.search(text[:offset])
    if before is None:
        return None
    after = _WORD_AFTER_RE.match(text[offset:])
    return before.group(0) + (after.group(0) if after else "")


def hover_markdown(word: str | None) -> str | None:
    if not word:
        return None
    return HOVER_DOCS.get(word)


def completion_items() -> list[CompletionItem]:
    return [entry.to_item() for entry in COMPLETIONS]
