"""Typing aliases for parsed OpenAPI documents."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Union

type JSONPrimitive = Union[str, int, float, bool, None]
type JSONValue = JSONPrimitive | list[JSONValue] | Mapping[str, JSONValue]
type JSONObject = Mapping[str, JSONValue]

# Parsed documents keyed by their source identifier.
type DocumentSet = dict[str, JSONObject]
