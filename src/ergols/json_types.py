from __future__ import annotations

"""JSON-like value types used at transport boundaries.

Analyzer stdout, workspace command payloads and CLI output are all JSON; the
aliases keep those surfaces explicit instead of falling back to `Any`.
"""

from typing import TypeAlias


JSONScalar: TypeAlias = str | int | float | bool | None
JSONValue: TypeAlias = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]
JSONObject: TypeAlias = dict[str, JSONValue]
JSONArray: TypeAlias = list[JSONValue]
