"""Shared helpers for JSON-Schema shape inspection."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Optional

from .json_types import JSONObject, JSONValue

_PRIMITIVE_KINDS: Mapping[tuple[str, Optional[str]], str] = {
    ("integer", "int32"): "int32",
    ("integer", "int64"): "int64",
    ("number", "float"): "float",
    ("number", "double"): "double",
    ("string", "date"): "date",
    ("string", "date-time"): "date-time",
    ("string", "uuid"): "uuid",
    ("string", "binary"): "binary",
    ("string", "byte"): "byte",
}

_STRUCTURAL_KEYS = ("properties", "additionalProperties", "allOf", "oneOf", "anyOf", "items", "enum")


def schema_types(schema: JSONObject) -> tuple[tuple[str, ...], bool]:
    """Return the declared non-null types and whether ``null`` is accepted.

    Handles both the 3.0 ``nullable`` keyword and 3.1 type lists.
    """
    raw = schema.get("type")
    if isinstance(raw, str):
        types: tuple[str, ...] = (raw,)
    elif isinstance(raw, list):
        types = tuple(item for item in raw if isinstance(item, str))
    else:
        types = ()
    nullable = schema.get("nullable") is True or "null" in types
    return tuple(item for item in types if item != "null"), nullable


def is_object_schema(schema: JSONObject) -> bool:
    """Return whether a schema behaves as an object schema.

    Args:
        schema (JSONObject): Schema node to inspect.

    Returns:
        bool: Whether object modeling rules should apply.
    """
    types, _ = schema_types(schema)
    if types == ("object",):
        return True
    if types:
        return False
    if isinstance(schema.get("properties"), Mapping):
        return True
    if "additionalProperties" in schema:
        return True
    all_of = schema.get("allOf")
    if isinstance(all_of, list) and all_of:
        return all(isinstance(item, Mapping) and is_object_schema(item) for item in all_of)
    return False


def is_constraint_only(schema: JSONObject) -> bool:
    """Whether a schema only adds constraints such as ``required`` to its siblings."""
    types, _ = schema_types(schema)
    if types or "$ref" in schema:
        return False
    return not any(key in schema for key in _STRUCTURAL_KEYS)


def primitive_kind(type_name: str, fmt: JSONValue) -> str:
    """Map an OpenAPI ``type``/``format`` pair to a primitive kind."""
    if type_name not in ("integer", "number", "string", "boolean"):
        return "any"
    if isinstance(fmt, str):
        kind = _PRIMITIVE_KINDS.get((type_name, fmt))
        if kind is not None:
            return kind
    return type_name


def enum_kind(schema: JSONObject, values: Sequence[JSONValue]) -> str:
    """Return the backing kind of an enum from its type or its values."""
    types, _ = schema_types(schema)
    if types and types[0] in ("string", "integer", "number", "boolean"):
        return types[0]
    present = [value for value in values if value is not None]
    if present and all(isinstance(value, bool) for value in present):
        return "boolean"
    if present and all(isinstance(value, int) and not isinstance(value, bool) for value in present):
        return "integer"
    if present and all(isinstance(value, (int, float)) for value in present):
        return "number"
    return "string"


def string_or_none(value: JSONValue) -> Optional[str]:
    """Return stripped text, or ``None`` for blanks and non-strings."""
    if isinstance(value, str):
        stripped = value.strip()
        if stripped:
            return stripped
    return None
