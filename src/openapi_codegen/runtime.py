"""Helpers imported by generated modules.

Parameter encoding follows the OpenAPI style/explode table; the ``bind_*``
functions are the inverse and coerce the decoded text with pydantic.
"""

from __future__ import annotations

import enum
import functools
import json
import re
import types
from collections.abc import Iterable, Mapping, Sequence
from typing import Annotated, Any, Optional, TypeAliasType, Union, get_args, get_origin
from urllib.parse import quote, unquote, urlencode

import yaml
from pydantic import BaseModel, Field, TypeAdapter, ValidationError
from pydantic_core import to_jsonable_python

Int32 = Annotated[int, Field(ge=-(2**31), le=2**31 - 1)]
Int64 = Annotated[int, Field(ge=-(2**63), le=2**63 - 1)]

_DEEP_OBJECT_KEY_RE = re.compile(r"\[([^\[\]]*)\]")
_TEMPLATE_PARAM_RE = re.compile(r"\{([^{}]+)\}")


class ParameterBindingError(RuntimeError):
    """Raised when a parameter cannot be encoded or decoded."""

    def __init__(self, name: str, message: str) -> None:
        super().__init__(f"Invalid format for parameter {name}: {message}")
        self.name = name


class ParamLocation(enum.Enum):
    UNDEFINED = "undefined"
    QUERY = "query"
    PATH = "path"
    HEADER = "header"
    COOKIE = "cookie"


def to_json_value(value: Any) -> Any:
    """Convert models, enums and dates into plain JSON compatible values."""
    return to_jsonable_python(value, by_alias=True, exclude_none=True)


def _scalar_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _escape(text: str, location: ParamLocation) -> str:
    if location in (ParamLocation.PATH, ParamLocation.QUERY):
        return quote(text, safe="")
    return text


def _sorted_items(value: Mapping[str, Any]) -> list[tuple[str, Any]]:
    return sorted(value.items())


def style_param(
    style: str,
    explode: bool,
    name: str,
    value: Any,
    location: ParamLocation = ParamLocation.UNDEFINED,
) -> str:
    """Serialize ``value`` for a parameter called ``name``.

    Args:
        style (str): One of simple, label, matrix, form, spaceDelimited,
            pipeDelimited or deepObject.
        explode (bool): Whether arrays and objects are exploded.
        name (str): Wire name of the parameter.
        value (Any): Value to serialize; models are dumped by alias.
        location (ParamLocation): Where the result is placed; path and query
            values are percent-escaped.

    Returns:
        str: The serialized parameter. Query styles return complete
        ``key=value`` fragments joined with ``&``.
    """
    plain = to_json_value(value)
    escaped_name = _escape(name, location)

    if style == "deepObject":
        if not explode:
            raise ParameterBindingError(name, "deepObject style requires explode")
        if not isinstance(plain, Mapping):
            raise ParameterBindingError(name, "deepObject style only supports objects")
        return "&".join(
            f"{_escape(key, location)}={_escape(_scalar_text(item), location)}"
            for key, item in _deep_object_pairs(name, plain)
        )

    if isinstance(plain, Mapping):
        return _style_object(style, explode, name, escaped_name, plain, location)
    if isinstance(plain, list):
        return _style_array(style, explode, name, escaped_name, plain, location)
    return _style_primitive(style, name, escaped_name, _escape(_scalar_text(plain), location))


def _style_primitive(style: str, name: str, escaped_name: str, text: str) -> str:
    if style == "simple":
        return text
    if style == "label":
        return f".{text}"
    if style == "matrix":
        return f";{escaped_name}={text}"
    if style in ("form", "spaceDelimited", "pipeDelimited"):
        return f"{escaped_name}={text}"
    raise ParameterBindingError(name, f"unsupported style {style!r}")


def _style_array(
    style: str,
    explode: bool,
    name: str,
    escaped_name: str,
    values: Sequence[Any],
    location: ParamLocation,
) -> str:
    parts = [_escape(_scalar_text(item), location) for item in values]
    if style == "simple":
        return ",".join(parts)
    if style == "label":
        return "." + ("." if explode else ",").join(parts)
    if style == "matrix":
        if explode:
            return "".join(f";{escaped_name}={part}" for part in parts)
        return f";{escaped_name}=" + ",".join(parts)
    if style in ("form", "spaceDelimited", "pipeDelimited"):
        if explode:
            return "&".join(f"{escaped_name}={part}" for part in parts)
        separator = {"form": ",", "spaceDelimited": "%20", "pipeDelimited": "|"}[style]
        return f"{escaped_name}=" + separator.join(parts)
    raise ParameterBindingError(name, f"unsupported style {style!r}")


def _style_object(
    style: str,
    explode: bool,
    name: str,
    escaped_name: str,
    value: Mapping[str, Any],
    location: ParamLocation,
) -> str:
    pairs = [
        (_escape(key, location), _escape(_scalar_text(item), location))
        for key, item in _sorted_items(value)
    ]
    if explode:
        joined = [f"{key}={item}" for key, item in pairs]
    else:
        joined = [f"{key},{item}" for key, item in pairs]
    if style == "simple":
        return ",".join(joined)
    if style == "label":
        return "." + ("." if explode else ",").join(joined)
    if style == "matrix":
        if explode:
            return "".join(f";{item}" for item in joined)
        return f";{escaped_name}=" + ",".join(joined)
    if style == "form":
        if explode:
            return "&".join(joined)
        return f"{escaped_name}=" + ",".join(joined)
    raise ParameterBindingError(name, f"style {style!r} does not support objects")


def _deep_object_pairs(prefix: str, value: Any) -> list[tuple[str, Any]]:
    if isinstance(value, Mapping):
        pairs: list[tuple[str, Any]] = []
        for key, item in _sorted_items(value):
            pairs.extend(_deep_object_pairs(f"{prefix}[{key}]", item))
        return pairs
    if isinstance(value, list):
        pairs = []
        for index, item in enumerate(value):
            pairs.extend(_deep_object_pairs(f"{prefix}[{index}]", item))
        return pairs
    return [(prefix, value)]


def encode_form(value: Any) -> str:
    """Encode an object as ``application/x-www-form-urlencoded`` content."""
    plain = to_json_value(value)
    if not isinstance(plain, Mapping):
        raise ParameterBindingError("body", "form bodies must be objects")
    pairs: list[tuple[str, str]] = []
    for key, item in _sorted_items(plain):
        items = item if isinstance(item, list) else [item]
        pairs.extend((key, _form_text(element)) for element in items)
    return urlencode(pairs)


def _form_text(value: Any) -> str:
    if isinstance(value, (Mapping, list)):
        return json.dumps(value, separators=(",", ":"))
    return _scalar_text(value)


def style_json_param(name: str, value: Any) -> str:
    """Serialize a ``content``-encoded parameter as compact JSON."""
    try:
        return json.dumps(to_json_value(value), separators=(",", ":"))
    except (TypeError, ValueError) as exc:
        raise ParameterBindingError(name, str(exc)) from exc


def _unwrap(target: Any) -> Any:
    while True:
        if isinstance(target, TypeAliasType):
            target = target.__value__
            continue
        origin = get_origin(target)
        if origin is Annotated:
            target = get_args(target)[0]
            continue
        if origin is Union or origin is types.UnionType:
            members = [item for item in get_args(target) if item is not type(None)]
            if len(members) == 1:
                target = members[0]
                continue
        return target


def _shape(target: Any) -> str:
    target = _unwrap(target)
    origin = get_origin(target) or target
    if isinstance(origin, type):
        if issubclass(origin, BaseModel):
            root = origin.model_fields.get("root")
            if root is not None and getattr(origin, "__pydantic_root_model__", False):
                return _shape(root.annotation)
            return "object"
        if issubclass(origin, (str, bytes)):
            return "primitive"
        if issubclass(origin, Mapping):
            return "object"
        if issubclass(origin, (list, tuple, set, frozenset)):
            return "array"
    if origin in (Sequence, Iterable):
        return "array"
    return "primitive"


def _validate(name: str, target: Any, value: Any) -> Any:
    try:
        return TypeAdapter(target).validate_python(value)
    except ValidationError as exc:
        raise ParameterBindingError(name, str(exc)) from exc


def _split_pairs(name: str, parts: list[str], explode: bool) -> dict[str, str]:
    if explode:
        result: dict[str, str] = {}
        for part in parts:
            key, sep, item = part.partition("=")
            if not sep:
                raise ParameterBindingError(name, f"expected key=value, got {part!r}")
            result[key] = item
        return result
    if len(parts) % 2:
        raise ParameterBindingError(name, "an object needs an even number of items")
    return dict(zip(parts[::2], parts[1::2], strict=True))


def bind_styled_parameter(
    style: str,
    explode: bool,
    name: str,
    value: str,
    target: Any,
    location: ParamLocation = ParamLocation.UNDEFINED,
) -> Any:
    """Decode a path, header or cookie value produced by :func:`style_param`.

    The value is split according to the style before unescaping, so encoded
    delimiters inside items survive.
    """
    if value == "":
        raise ParameterBindingError(name, "parameter is empty")

    if style == "label":
        if not value.startswith("."):
            raise ParameterBindingError(name, "label style values start with '.'")
        value = value[1:]
    elif style == "matrix":
        prefix = f";{name}="
        if not explode or _shape(target) == "primitive":
            if not value.startswith(prefix):
                raise ParameterBindingError(name, f"matrix style values start with {prefix!r}")
            value = value[len(prefix):]
        elif not value.startswith(";"):
            raise ParameterBindingError(name, "matrix style values start with ';'")
        else:
            value = value[1:]
    elif style not in ("simple", "form"):
        raise ParameterBindingError(name, f"unsupported style {style!r}")

    shape = _shape(target)
    if shape == "primitive":
        return _validate(name, target, _unescape(value, location))

    separator = ","
    if explode and style == "label":
        separator = "."
    elif explode and style == "matrix":
        separator = ";"
    parts = value.split(separator)

    if shape == "array":
        if explode and style == "matrix":
            parts = [part.removeprefix(f"{name}=") for part in parts]
        return _validate(name, target, [_unescape(part, location) for part in parts])

    pairs = _split_pairs(name, parts, explode)
    return _validate(
        name,
        target,
        {_unescape(key, location): _unescape(item, location) for key, item in pairs.items()},
    )


def _unescape(text: str, location: ParamLocation) -> str:
    if location is ParamLocation.PATH:
        return unquote(text)
    return text


@functools.lru_cache(maxsize=256)
def _template_pattern(template: str) -> tuple[re.Pattern[str], tuple[str, ...]]:
    names: list[str] = []
    pieces: list[str] = []
    for index, piece in enumerate(_TEMPLATE_PARAM_RE.split(template)):
        if index % 2:
            names.append(piece)
            pieces.append("([^/]*)")
        else:
            pieces.append(re.escape(piece))
    return re.compile("".join(pieces) + "$"), tuple(names)


def raw_path_params(template: str, raw_path: str) -> Optional[dict[str, str]]:
    """Return the still percent-encoded value of each ``{name}`` in ``template``.

    ``raw_path`` is the request path as sent, optionally with a query string and
    a mount prefix. Returns ``None`` when it does not end with ``template``, for
    example when the server does not expose the raw path.
    """
    pattern, names = _template_pattern(template)
    match = pattern.search(raw_path.partition("?")[0])
    if match is None:
        return None
    return dict(zip(names, match.groups(), strict=True))


def bind_path_parameter(
    style: str,
    explode: bool,
    name: str,
    decoded: str,
    target: Any,
    *,
    raw: Optional[Mapping[str, str]] = None,
) -> Any:
    """Decode a path parameter, splitting its raw form before unescaping.

    Frameworks hand over path values already unescaped, which merges encoded
    delimiters into real ones; ``decoded`` is only used when ``raw`` has no
    value for ``name``.
    """
    if raw is not None and name in raw:
        return bind_styled_parameter(style, explode, name, raw[name], target, ParamLocation.PATH)
    return bind_styled_parameter(style, explode, name, decoded, target)


def bind_query_parameter(
    style: str,
    explode: bool,
    required: bool,
    name: str,
    pairs: Iterable[tuple[str, str]],
    target: Any,
    *,
    siblings: Iterable[str] = (),
) -> Any:
    """Decode a query parameter from already unescaped ``(key, value)`` pairs.

    An exploded form object owns every key that is not the wire name of one of
    ``siblings`` (the operation's other query parameters). Returns ``None``
    when an optional parameter is absent.
    """
    items = list(pairs)
    shape = _shape(target)

    if style == "deepObject":
        if not explode:
            raise ParameterBindingError(name, "deepObject style requires explode")
        nested = _deep_object_value(name, items)
        if nested is None:
            return _missing(name, required)
        return _validate(name, target, nested)

    if style not in ("form", "spaceDelimited", "pipeDelimited"):
        raise ParameterBindingError(name, f"unsupported query style {style!r}")

    values = [item for key, item in items if key == name]
    if shape == "object" and explode:
        others = tuple(siblings)
        owned = [(key, item) for key, item in items if not _claimed_by(key, others)]
        if not owned:
            return _missing(name, required)
        return _validate(name, target, dict(owned))
    if not values:
        return _missing(name, required)

    if shape == "primitive":
        if len(values) > 1:
            raise ParameterBindingError(name, "multiple values for a single value parameter")
        return _validate(name, target, values[0])

    if shape == "array":
        if explode:
            return _validate(name, target, values)
        separator = {"form": ",", "spaceDelimited": " ", "pipeDelimited": "|"}[style]
        return _validate(name, target, values[0].split(separator) if values[0] else [])

    return _validate(name, target, _split_pairs(name, values[0].split(","), False))


def _claimed_by(key: str, names: tuple[str, ...]) -> bool:
    return any(key == other or key.startswith(f"{other}[") for other in names)


def _missing(name: str, required: bool) -> None:
    if required:
        raise ParameterBindingError(name, "query argument is required, but not found")
    return None


def _deep_object_value(name: str, items: list[tuple[str, str]]) -> Optional[dict[str, Any]]:
    result: dict[str, Any] = {}
    found = False
    for key, value in items:
        if not key.startswith(f"{name}["):
            continue
        path = _DEEP_OBJECT_KEY_RE.findall(key[len(name):])
        if not path:
            raise ParameterBindingError(name, f"malformed deepObject key {key!r}")
        found = True
        current = result
        for token in path[:-1]:
            current = current.setdefault(token, {})
            if not isinstance(current, dict):
                raise ParameterBindingError(name, f"conflicting deepObject key {key!r}")
        current[path[-1]] = value
    if not found:
        return None
    return _listify(result)


def _listify(value: Any) -> Any:
    if not isinstance(value, dict):
        return value
    converted = {key: _listify(item) for key, item in value.items()}
    if converted and all(key.isdigit() for key in converted):
        return [converted[key] for key in sorted(converted, key=int)]
    return converted


def bind_optional_parameter(
    style: str,
    explode: bool,
    required: bool,
    name: str,
    value: Optional[str],
    target: Any,
) -> Any:
    """Decode a header or cookie value that may be absent."""
    if value is None:
        if required:
            raise ParameterBindingError(name, "parameter is required, but not found")
        return None
    return bind_styled_parameter(style, explode, name, value, target)


def bind_json_parameter(
    name: str,
    value: Optional[str],
    target: Any,
    *,
    required: bool = True,
) -> Any:
    """Decode a ``content``-encoded JSON parameter."""
    if value is None:
        if required:
            raise ParameterBindingError(name, "parameter is required, but not found")
        return None
    try:
        return TypeAdapter(target).validate_json(value)
    except ValidationError as exc:
        raise ParameterBindingError(name, str(exc)) from exc


def media_type(content_type: Optional[str]) -> str:
    """Return the lower-cased media type without parameters."""
    if not content_type:
        return ""
    return content_type.split(";", maxsplit=1)[0].strip().lower()


def join_url(server: str, path: str) -> str:
    """Append an operation path to the server URL."""
    return server.rstrip("/") + "/" + path.lstrip("/")


def decode_json(content: Union[str, bytes], target: Any) -> Any:
    return TypeAdapter(target).validate_json(content)


def decode_yaml(content: Union[str, bytes], target: Any) -> Any:
    return TypeAdapter(target).validate_python(yaml.safe_load(content))


def as_member(root: Any, target: Any) -> Any:
    """Validate a union's raw value as one of its members."""
    return TypeAdapter(target).validate_python(root)


def merge_json(root: Any, value: Any) -> Any:
    """Merge the JSON form of ``value`` into a union's raw value."""
    update = to_json_value(value)
    if isinstance(root, Mapping) and isinstance(update, Mapping):
        return {**root, **update}
    return update


def decode_union(root: Any, members: Sequence[Any]) -> Any:
    """Return the first member that validates ``root``, in declaration order."""
    errors: list[str] = []
    for member in members:
        try:
            return TypeAdapter(member).validate_python(root)
        except ValidationError as exc:
            errors.append(str(exc))
    raise ValueError("value matches no union member: " + "; ".join(errors))
