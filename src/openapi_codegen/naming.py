"""Naming helpers for operations, types, fields and enum members."""

from __future__ import annotations

import builtins
import keyword
import re
from collections import Counter
from collections.abc import Hashable, Iterable, Mapping
from dataclasses import dataclass
from typing import Optional

from pydantic import BaseModel, RootModel

from .json_types import JSONObject, JSONValue
from .model_types import OperationSpec, SchemaPosition

_HTTP_METHODS: tuple[str, ...] = (
    "get",
    "put",
    "post",
    "delete",
    "patch",
    "head",
    "options",
    "trace",
)


_IDENTIFIER_SANITIZE_RE = re.compile(r"[^0-9a-zA-Z_]+")
_MULTIPLE_UNDERSCORES_RE = re.compile(r"_+")
_PATH_PARAM_RE = re.compile(r"^\{(?P<name>[^{}]+)\}$")
_WORD_SPLIT_RE = re.compile(r"[^0-9a-zA-Z]+")
_CAMEL_BOUNDARY_RE = re.compile(r"([a-z0-9])([A-Z])")
_ACRONYM_BOUNDARY_RE = re.compile(r"([A-Z]+)([A-Z][a-z])")

_MODEL_RESERVED = set(dir(BaseModel)) | set(dir(RootModel))
_BUILTIN_NAMES = frozenset(dir(builtins))
_BUILTIN_TYPE_NAMES = frozenset(
    {
        "bool",
        "bytes",
        "complex",
        "datetime",
        "dict",
        "float",
        "frozenset",
        "int",
        "list",
        "set",
        "str",
        "tuple",
        "type",
        "uuid",
    }
)


def sanitize_identifier(raw: str, *, lowercase: bool = True) -> str:
    """Convert arbitrary text into a valid Python identifier."""
    text = raw.lower() if lowercase else raw
    text = _IDENTIFIER_SANITIZE_RE.sub("_", text)
    text = _MULTIPLE_UNDERSCORES_RE.sub("_", text).strip("_")
    if not text:
        text = "root"
    if text[0].isdigit():
        text = f"x_{text}"
    if keyword.iskeyword(text):
        text = f"{text}_"
    return text


def path_to_endpoint_name(path: str) -> str:
    """Create a snake case name from a URL path template."""
    segments = [segment for segment in path.split("/") if segment]
    normalized_segments: list[str] = []
    for segment in segments:
        match = _PATH_PARAM_RE.match(segment)
        if match:
            param_name = sanitize_identifier(match.group("name"))
            normalized_segments.append(f"by_{param_name}")
            continue
        normalized_segments.append(sanitize_identifier(segment))

    endpoint_name = "_".join(segment for segment in normalized_segments if segment)
    return endpoint_name or "root"


def to_pascal_case(raw: str) -> str:
    """Join the alphanumeric words of ``raw`` with each first letter upper-cased.

    Inner capitals are preserved, so ``findPetByID`` becomes ``FindPetByID``.
    A leading digit gets an ``N`` prefix.
    """
    words = [word for word in _WORD_SPLIT_RE.split(raw) if word]
    text = "".join(word[0].upper() + word[1:] for word in words)
    if text and text[0].isdigit():
        text = f"N{text}"
    return text


def to_snake_case(raw: str) -> str:
    """Convert camel, pascal or delimited text into a snake case identifier."""
    text = _ACRONYM_BOUNDARY_RE.sub(r"\1_\2", raw)
    text = _CAMEL_BOUNDARY_RE.sub(r"\1_\2", text)
    return sanitize_identifier(text)


def python_field_name(wire_name: str, used: set[str]) -> str:
    """Return a unique attribute name for a model property.

    Names that would shadow ``BaseModel``/``RootModel`` members or builtin type
    names (or the modules annotations refer to) get a ``_field`` suffix;
    repeats get a numeric suffix.
    """
    base = to_snake_case(wire_name)
    if base in _MODEL_RESERVED or base.startswith("model_") or base in _BUILTIN_TYPE_NAMES:
        base = f"{base}_field"
    candidate = base
    index = 2
    while candidate in used:
        candidate = f"{base}_{index}"
        index += 1
    used.add(candidate)
    return candidate


def sanitize_enum_names(values: Iterable[JSONValue]) -> list[str]:
    """Turn raw enum values into distinct identifiers.

    ``""`` becomes ``Empty``, words are joined in pascal case, a leading digit
    gets an ``N`` prefix and repeats get ``1, 2, ...`` in first-seen order.
    """
    names: list[str] = []
    used: set[str] = set()
    counters: Counter[str] = Counter()
    for value in values:
        base = _enum_base_name(value)
        candidate = base
        while candidate in used:
            counters[base] += 1
            candidate = f"{base}{counters[base]}"
        used.add(candidate)
        names.append(candidate)
    return names


def _enum_base_name(value: JSONValue) -> str:
    if isinstance(value, bool):
        text = "true" if value else "false"
    else:
        text = str(value)
    name = to_pascal_case(text)
    if not name:
        name = "Empty"
    if keyword.iskeyword(name):
        name = f"{name}Value"
    return name


_CONTENT_TYPE_LABELS: Mapping[str, str] = {
    "application/json": "JSON",
    "application/xml": "XML",
    "text/xml": "XML",
    "application/yaml": "YAML",
    "application/x-yaml": "YAML",
    "text/yaml": "YAML",
    "text/x-yaml": "YAML",
    "application/x-www-form-urlencoded": "Formdata",
    "multipart/form-data": "Multipart",
    "text/plain": "Text",
}


def content_type_label(content_type: str) -> str:
    """Return the short label used to name types and methods for a media type."""
    media_type = content_type.split(";", maxsplit=1)[0].strip().lower()
    label = _CONTENT_TYPE_LABELS.get(media_type)
    if label is not None:
        return label
    return to_pascal_case(media_type.replace("+", " plus ")) or "Body"


@dataclass(frozen=True)
class _NameRequest:
    key: Hashable
    candidate: str
    priority: int
    order: str


class NameRegistry:
    """Assign unique generated names independent of traversal order.

    Each key requests a candidate name. Keys sharing a candidate are ordered by
    ``(priority, order)``; the first keeps the bare name unless it is reserved,
    the rest get the first free numeric suffix starting at 1.
    """

    def __init__(self, reserved: Iterable[str] = ()) -> None:
        self._reserved = set(reserved) | _BUILTIN_NAMES | set(keyword.kwlist)
        self._requests: dict[Hashable, _NameRequest] = {}

    def request(self, key: Hashable, candidate: str, *, priority: int = 0, order: str = "") -> None:
        self._requests[key] = _NameRequest(key, candidate or "Model", priority, order)

    def assign(self) -> dict[Hashable, str]:
        groups: dict[str, list[_NameRequest]] = {}
        for item in self._requests.values():
            groups.setdefault(item.candidate, []).append(item)

        taken = set(self._reserved) | set(groups)
        assigned: dict[Hashable, str] = {}
        for candidate in sorted(groups):
            members = sorted(groups[candidate], key=lambda item: (item.priority, item.order))
            for index, item in enumerate(members):
                if index == 0 and candidate not in self._reserved:
                    assigned[item.key] = candidate
                    continue
                suffix = 1
                while f"{candidate}{suffix}" in taken:
                    suffix += 1
                name = f"{candidate}{suffix}"
                taken.add(name)
                assigned[item.key] = name
        return assigned


@dataclass(frozen=True)
class _OperationCandidate:
    path: str
    method: str
    operation: JSONObject
    path_item: JSONObject
    operation_id: Optional[str]


def _collect_operation_candidates(raw_paths: Mapping[str, JSONValue]) -> list[_OperationCandidate]:
    candidates: list[_OperationCandidate] = []
    for path in sorted(raw_paths):
        path_item = raw_paths[path]
        if not isinstance(path_item, Mapping):
            continue
        for method in _HTTP_METHODS:
            operation = path_item.get(method)
            if not isinstance(operation, Mapping):
                continue
            candidates.append(
                _OperationCandidate(
                    path=path,
                    method=method,
                    operation=operation,
                    path_item=path_item,
                    operation_id=_normalize_operation_id(operation.get("operationId")),
                )
            )
    return candidates


def _normalize_operation_id(operation_id_raw: JSONValue) -> Optional[str]:
    if isinstance(operation_id_raw, str) and operation_id_raw.strip():
        return to_pascal_case(operation_id_raw.strip()) or None
    return None


def _conflicting_operation_ids(candidates: list[_OperationCandidate]) -> set[str]:
    operation_ids = [candidate.operation_id for candidate in candidates if candidate.operation_id]
    counts = Counter(operation_ids)
    return {name for name, count in counts.items() if count > 1}


def resolve_operations(raw_paths: Mapping[str, JSONValue]) -> tuple[list[OperationSpec], list[str]]:
    """Extract operations and give each a unique pascal case operation id.

    Operations without an ``operationId``, or whose id is shared with another
    operation, are named from their method and path instead.
    """
    candidates = _collect_operation_candidates(raw_paths)
    conflicting_ids = _conflicting_operation_ids(candidates)

    warnings: list[str] = []
    if conflicting_ids:
        joined = ", ".join(sorted(conflicting_ids))
        warnings.append(
            "Conflicting operationId values detected; using path-based naming for conflicts: "
            f"{joined}"
        )

    resolved: list[OperationSpec] = []
    for candidate in candidates:
        operation_id = candidate.operation_id
        if operation_id is None or operation_id in conflicting_ids:
            operation_id = to_pascal_case(
                f"{candidate.method}_{path_to_endpoint_name(candidate.path)}"
            )
        resolved.append(
            OperationSpec(
                path=candidate.path,
                method=candidate.method,
                operation_id=operation_id,
                position=SchemaPosition("", "").child("paths", candidate.path, candidate.method),
                operation=candidate.operation,
                path_item=candidate.path_item,
            )
        )

    return resolved, warnings
