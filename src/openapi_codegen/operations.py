"""Operation discovery, tag filtering and parameter/body/response binding."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping
from typing import Optional

from .json_types import JSONObject
from .loader import SchemaGraph
from .model_types import (
    OperationBinding,
    OperationSpec,
    ParameterBinding,
    RequestBodyBinding,
    ResponseBinding,
    SchemaPosition,
)
from .naming import (
    content_type_label,
    python_field_name,
    resolve_operations,
    to_snake_case,
)
from .refs import ResolveError, parse_ref
from .schema_utils import string_or_none

logger = logging.getLogger(__name__)

_ROOT = SchemaPosition("", "")
_TEMPLATE_PARAM_RE = re.compile(r"\{([^{}]+)\}")

_LOCATIONS = ("path", "query", "header", "cookie")
_DEFAULT_STYLES = {"path": "simple", "query": "form", "header": "simple", "cookie": "form"}
_ALLOWED_STYLES = {
    "path": ("simple", "label", "matrix"),
    "query": ("form", "spaceDelimited", "pipeDelimited", "deepObject"),
    "header": ("simple",),
    "cookie": ("form",),
}
_RESERVED_ARGUMENTS = frozenset(
    {
        "self",
        "server",
        "body",
        "content",
        "params",
        "content_type",
        "request_editors",
        "http_client",
        "request",
        "response",
        "handler",
        "url",
        "status",
        "result",
        "exc",
        "wrapper",
        "middlewares",
        "base_url",
        "query",
        "headers",
        "cookies",
        "json",
        "httpx",
        "flask",
        "starlette",
        "aiohttp",
        "datetime",
        "uuid",
    }
)
_YAML_MEDIA_TYPES = frozenset({"application/yaml", "application/x-yaml", "text/yaml", "text/x-yaml"})


class BindError(RuntimeError):
    """Raised when an operation's parameters or bodies cannot be bound."""


def collect_operations(graph: SchemaGraph) -> tuple[list[OperationSpec], list[str]]:
    """Return every operation in the root document with its resolved id."""
    paths = graph.root.get("paths")
    if not isinstance(paths, Mapping):
        return [], []
    return resolve_operations(paths)


def filter_operations(
    operations: Iterable[OperationSpec],
    *,
    include_tags: Iterable[str] = (),
    exclude_tags: Iterable[str] = (),
) -> list[OperationSpec]:
    """Keep operations matching ``include_tags`` and drop those matching ``exclude_tags``.

    An empty include list keeps everything.
    """
    include = set(include_tags)
    exclude = set(exclude_tags)
    kept: list[OperationSpec] = []
    for operation in operations:
        tags = set(operation.tags)
        if include and not tags & include:
            continue
        if exclude and tags & exclude:
            continue
        kept.append(operation)
    return kept


def follow_component(graph: SchemaGraph, position: SchemaPosition) -> tuple[SchemaPosition, JSONObject]:
    """Follow ``$ref`` chains of parameter, body and response objects."""
    seen: set[SchemaPosition] = set()
    current = position
    while True:
        node = graph.node_at(current)
        if not isinstance(node, Mapping):
            raise ResolveError(f"Expected an object at {current}")
        ref = node.get("$ref")
        if not isinstance(ref, str):
            return current, node
        if current in seen:
            raise ResolveError(f"Circular reference at {position}")
        seen.add(current)
        current = parse_ref(ref, base=current.source)


def _content_schema_positions(graph: SchemaGraph, position: SchemaPosition) -> list[SchemaPosition]:
    owner, node = follow_component(graph, position)
    content = node.get("content")
    if not isinstance(content, Mapping):
        return []
    return [
        owner.child("content", content_type, "schema")
        for content_type in sorted(content)
        if isinstance(content[content_type], Mapping) and "schema" in content[content_type]
    ]


def _parameter_positions(operation: OperationSpec) -> list[SchemaPosition]:
    positions: list[SchemaPosition] = []
    path_item_position = _ROOT.child("paths", operation.path)
    for owner, node in (
        (path_item_position, operation.path_item),
        (operation.position, operation.operation),
    ):
        parameters = node.get("parameters")
        if isinstance(parameters, list):
            positions.extend(owner.child("parameters", index) for index in range(len(parameters)))
    return positions


def operation_schema_positions(graph: SchemaGraph, operation: OperationSpec) -> list[SchemaPosition]:
    """Return the schema positions an operation uses, in a stable order."""
    positions: list[SchemaPosition] = []
    for param_position in _parameter_positions(operation):
        owner, param = follow_component(graph, param_position)
        if "schema" in param:
            positions.append(owner.child("schema"))
        else:
            positions.extend(_content_schema_positions(graph, owner))

    if "requestBody" in operation.operation:
        positions.extend(
            _content_schema_positions(graph, operation.position.child("requestBody"))
        )

    responses = operation.operation.get("responses")
    if isinstance(responses, Mapping):
        for status in sorted(responses, key=_status_sort_key):
            positions.extend(
                _content_schema_positions(graph, operation.position.child("responses", status))
            )
    return positions


def reserved_operation_names(
    graph: SchemaGraph,
    operations: Iterable[OperationSpec],
    *,
    response_type_suffix: str = "Response",
) -> set[str]:
    """Names generated per operation that schema types must not take."""
    names: set[str] = set()
    for operation in operations:
        names.add(f"{operation.operation_id}Params")
        names.add(f"{operation.operation_id}{response_type_suffix}")
        if "requestBody" not in operation.operation:
            continue
        _, body = follow_component(graph, operation.position.child("requestBody"))
        content = body.get("content")
        if isinstance(content, Mapping):
            for content_type in content:
                label = content_type_label(content_type)
                names.add(f"{operation.operation_id}{label}RequestBody")
    return names


def _status_sort_key(status: str) -> tuple[int, str]:
    if status.isdigit():
        return (0, status.zfill(3))
    if status.lower() == "default":
        return (2, status)
    return (1, status.upper())


def _normalize_status(status: str) -> str:
    if status.lower() == "default":
        return "default"
    return status.upper()


def response_kind(content_type: str) -> str:
    """Classify a response media type by how generated code decodes it."""
    media_type = content_type.split(";", maxsplit=1)[0].strip().lower()
    if media_type == "application/json" or media_type.endswith("+json"):
        return "json"
    if media_type in _YAML_MEDIA_TYPES:
        return "yaml"
    if media_type in ("application/xml", "text/xml") or media_type.endswith("+xml"):
        return "xml"
    if media_type == "text/plain":
        return "text"
    return "other"


class OperationBinder:
    """Build the parameter, body and response contract of each operation."""

    def __init__(self, graph: SchemaGraph, *, response_type_suffix: str = "Response") -> None:
        self._graph = graph
        self._response_type_suffix = response_type_suffix

    def bind(self, operations: Iterable[OperationSpec]) -> list[OperationBinding]:
        return [self.bind_operation(operation) for operation in operations]

    def bind_operation(self, operation: OperationSpec) -> OperationBinding:
        try:
            parameters = self._merged_parameters(operation)
            path_params = self._order_path_params(operation, parameters.get("path", []))
        except ResolveError as exc:
            raise BindError(f"{operation.operation_id}: {exc}") from exc

        grouped_used: set[str] = set()
        grouped: dict[str, tuple[ParameterBinding, ...]] = {}
        for location in ("query", "header", "cookie"):
            grouped[location] = tuple(
                self._bind_parameter(operation, position, param, used=grouped_used, grouped=True)
                for position, param in parameters.get(location, [])
            )

        path_used: set[str] = set()
        bound_path = tuple(
            self._bind_parameter(operation, position, param, used=path_used, grouped=False)
            for position, param in path_params
        )

        has_grouped = any(grouped.values())
        return OperationBinding(
            operation_id=operation.operation_id,
            method_name=to_snake_case(operation.operation_id),
            method=operation.method.upper(),
            path=operation.path,
            summary=string_or_none(operation.operation.get("summary")),
            description=string_or_none(operation.operation.get("description")),
            tags=operation.tags,
            path_params=bound_path,
            query_params=grouped["query"],
            header_params=grouped["header"],
            cookie_params=grouped["cookie"],
            bodies=self._bind_bodies(operation),
            responses=self._bind_responses(operation),
            params_type_name=f"{operation.operation_id}Params" if has_grouped else None,
            response_type_name=f"{operation.operation_id}{self._response_type_suffix}",
        )

    def _merged_parameters(
        self, operation: OperationSpec
    ) -> dict[str, list[tuple[SchemaPosition, JSONObject]]]:
        merged: dict[tuple[str, str], tuple[SchemaPosition, JSONObject]] = {}
        for position in _parameter_positions(operation):
            owner, param = follow_component(self._graph, position)
            name = param.get("name")
            location = param.get("in")
            if not isinstance(name, str) or location not in _LOCATIONS:
                raise BindError(
                    f"{operation.operation_id}: parameter at {position} needs a name and a valid location"
                )
            # Operation level parameters come later and replace path level ones.
            merged[(name, location)] = (owner, param)

        by_location: dict[str, list[tuple[SchemaPosition, JSONObject]]] = {}
        for (_, location), entry in merged.items():
            by_location.setdefault(location, []).append(entry)
        return by_location

    def _order_path_params(
        self,
        operation: OperationSpec,
        declared: list[tuple[SchemaPosition, JSONObject]],
    ) -> list[tuple[SchemaPosition, JSONObject]]:
        template_names = _TEMPLATE_PARAM_RE.findall(operation.path)
        by_name = {param["name"]: (position, param) for position, param in declared}
        missing = [name for name in template_names if name not in by_name]
        if missing:
            raise BindError(
                f"{operation.operation_id}: path parameters {', '.join(missing)} "
                f"are not declared for {operation.path}"
            )
        unused = sorted(set(by_name) - set(template_names))
        if unused:
            raise BindError(
                f"{operation.operation_id}: path parameters {', '.join(unused)} "
                f"do not appear in {operation.path}"
            )
        return [by_name[name] for name in dict.fromkeys(template_names)]

    def _bind_parameter(
        self,
        operation: OperationSpec,
        position: SchemaPosition,
        param: JSONObject,
        *,
        used: set[str],
        grouped: bool,
    ) -> ParameterBinding:
        name = param["name"]
        location = param["in"]
        style = param.get("style", _DEFAULT_STYLES[location])
        if style not in _ALLOWED_STYLES[location]:
            raise BindError(
                f"{operation.operation_id}: style {style!r} is not supported for {location} "
                f"parameter {name!r}"
            )
        explode = param.get("explode", style == "form")
        if not isinstance(explode, bool):
            raise BindError(f"{operation.operation_id}: explode of {name!r} must be a boolean")

        type_position: Optional[SchemaPosition] = None
        json_encoded = False
        if "schema" in param:
            type_position = position.child("schema")
        else:
            content = param.get("content")
            if isinstance(content, Mapping) and content:
                content_type = sorted(content)[0]
                if response_kind(content_type) != "json":
                    raise BindError(
                        f"{operation.operation_id}: parameter {name!r} uses unsupported "
                        f"content type {content_type}"
                    )
                type_position = position.child("content", content_type, "schema")
                json_encoded = True

        if grouped:
            python_name = python_field_name(name, used)
        else:
            python_name = to_snake_case(name)
            if python_name in _RESERVED_ARGUMENTS:
                python_name = f"{python_name}_param"
            while python_name in used:
                python_name = f"{python_name}_"
            used.add(python_name)

        return ParameterBinding(
            name=name,
            python_name=python_name,
            location=location,
            required=location == "path" or param.get("required") is True,
            style=style,
            explode=explode,
            type_position=type_position,
            json_encoded=json_encoded,
            description=string_or_none(param.get("description")),
        )

    def _bind_bodies(self, operation: OperationSpec) -> tuple[RequestBodyBinding, ...]:
        if "requestBody" not in operation.operation:
            return ()
        owner, body = follow_component(self._graph, operation.position.child("requestBody"))
        content = body.get("content")
        if not isinstance(content, Mapping):
            return ()
        bindings: list[RequestBodyBinding] = []
        for content_type in sorted(content):
            media = content[content_type]
            has_schema = isinstance(media, Mapping) and "schema" in media
            label = content_type_label(content_type)
            bindings.append(
                RequestBodyBinding(
                    content_type=content_type,
                    label=label,
                    type_name=f"{operation.operation_id}{label}RequestBody",
                    type_position=owner.child("content", content_type, "schema") if has_schema else None,
                    required=body.get("required") is True,
                )
            )
        return tuple(bindings)

    def _bind_responses(self, operation: OperationSpec) -> tuple[ResponseBinding, ...]:
        responses = operation.operation.get("responses")
        if not isinstance(responses, Mapping):
            return ()
        bindings: list[ResponseBinding] = []
        used: set[str] = set()
        for status in sorted(responses, key=_status_sort_key):
            owner, response = follow_component(
                self._graph, operation.position.child("responses", status)
            )
            content = response.get("content")
            if not isinstance(content, Mapping):
                continue
            for content_type in sorted(content):
                media = content[content_type]
                has_schema = isinstance(media, Mapping) and "schema" in media
                label = content_type_label(content_type)
                field_name = to_snake_case(f"{label}{status.capitalize()}")
                while field_name in used:
                    field_name = f"{field_name}_"
                used.add(field_name)
                bindings.append(
                    ResponseBinding(
                        status=_normalize_status(status),
                        content_type=content_type,
                        label=label,
                        field_name=field_name,
                        kind=response_kind(content_type),
                        type_position=owner.child("content", content_type, "schema") if has_schema else None,
                    )
                )
        return tuple(bindings)


def bind_operations(
    graph: SchemaGraph,
    operations: Iterable[OperationSpec],
    *,
    response_type_suffix: str = "Response",
) -> list[OperationBinding]:
    """Bind every operation; see :class:`OperationBinder`."""
    bindings = OperationBinder(graph, response_type_suffix=response_type_suffix).bind(operations)
    logger.debug("Bound %d operations", len(bindings))
    return bindings
