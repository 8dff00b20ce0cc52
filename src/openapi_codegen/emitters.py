"""Target emitters: render module bodies from the type model and operation bindings."""

from __future__ import annotations

import base64
import gzip
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Optional, Protocol

from .codegen_ast import TypeRenderer, build_import_block, python_literal
from .configuration import (
    AIOHTTP_SERVER,
    CLIENT,
    EMBEDDED_SPEC,
    FLASK_SERVER,
    MODELS,
    STARLETTE_SERVER,
    Configuration,
)
from .loader import SpecDocument
from .model_types import (
    AliasType,
    EnumType,
    GenerateTarget,
    ObjectType,
    OperationBinding,
    ParameterBinding,
    PythonImport,
    TypeDescriptor,
    TypeModel,
    UnionType,
)
from .naming import to_snake_case
from .refs import ImportMap
from .rendering import TemplateError, TemplateRenderer

_TEMPLATE_PARAM_RE = re.compile(r"\{([^{}]+)\}")
_SPEC_CHUNK_SIZE = 80

_ENUM_BASES: Mapping[str, str] = {
    "string": "str, Enum",
    "integer": "int, Enum",
    "number": "float, Enum",
    "boolean": "Enum",
}

_BODY_ENCODERS: Mapping[str, str] = {
    "json": "json.dumps(to_json_value(body)).encode()",
    "form": "encode_form(body).encode()",
    "text": "str(body).encode()",
}

_RESPONSE_DECODERS: Mapping[str, str] = {"json": "decode_json", "yaml": "decode_yaml"}


class EmissionError(RuntimeError):
    """Raised when a target cannot be emitted."""

    def __init__(self, target: str, message: str) -> None:
        super().__init__(f"{target}: {message}")
        self.target = target


@dataclass(frozen=True)
class EmitContext:
    """Everything emitters read; shared by all targets of one run."""

    document: SpecDocument
    model: TypeModel
    operations: tuple[OperationBinding, ...]
    config: Configuration
    renderer: TemplateRenderer
    import_map: ImportMap
    model_names: frozenset[str] = frozenset()

    @property
    def types(self) -> TypeRenderer:
        return TypeRenderer(self.model)


@dataclass(frozen=True)
class Emission:
    """Header with imports, and module body, of one target."""

    imports: str
    code: str


class Emitter(Protocol):
    kind: str

    def emit(
        self, context: EmitContext, target: GenerateTarget, *, models_module: Optional[str]
    ) -> Emission: ...


def _finish(
    context: EmitContext,
    target: GenerateTarget,
    code: str,
    *,
    models_module: Optional[str],
) -> Emission:
    extra_imports: list[PythonImport] = list(context.model.python_imports)
    for source in sorted(context.import_map.modules):
        mapped = context.import_map.import_for(source)
        if mapped is not None:
            extra_imports.append(mapped)
    always = [
        PythonImport(item.package, item.name, item.alias)
        for item in context.config.additional_imports
    ]
    try:
        imports = build_import_block(
            code,
            extra_imports=extra_imports,
            always_imports=always,
            model_names=context.model_names,
            models_module=models_module,
        )
    except SyntaxError as exc:
        raise EmissionError(target.target, f"rendered code is not valid python: {exc}") from exc
    header = context.renderer.render("header", imports=imports)
    return Emission(imports=header, code=code)


@dataclass(frozen=True)
class FieldView:
    name: str
    line: str
    description: Optional[str] = None


@dataclass(frozen=True)
class DeclarationView:
    """One top-level declaration of the models module."""

    template: str
    name: str
    description: Optional[str] = None
    bases: tuple[str, ...] = ()
    config: Optional[str] = None
    extra_annotation: Optional[str] = None
    fields: tuple[FieldView, ...] = ()
    annotation: str = ""
    members: tuple[Mapping[str, object], ...] = ()
    discriminator: Optional[str] = None
    value_annotation: str = ""
    depends: tuple[str, ...] = ()


def _field_line(
    name: str,
    wire_name: str,
    annotation: str,
    *,
    default: Optional[str],
) -> str:
    keywords: list[str] = []
    if default is not None and name != wire_name:
        keywords.append(f"default={default}")
    if name != wire_name:
        keywords.append(f"alias={python_literal(wire_name)}")
    if keywords:
        return f"{name}: {annotation} = Field({', '.join(keywords)})"
    if default is not None:
        return f"{name}: {annotation} = {default}"
    return f"{name}: {annotation}"


class ModelsEmitter:
    """Models, enums, unions and aliases, then per-operation params and bodies."""

    kind = MODELS

    def emit(
        self, context: EmitContext, target: GenerateTarget, *, models_module: Optional[str] = None
    ) -> Emission:
        code = render_models_code(context)
        return _finish(context, target, code, models_module=None)


def render_models_code(context: EmitContext) -> str:
    """Render the models module body."""
    views = _ModelViews(context).build()
    return context.renderer.render("models", declarations=views)


class _ModelViews:
    def __init__(self, context: EmitContext) -> None:
        self._context = context
        self._model = context.model
        self._types = context.types
        self._compat = context.config.compatibility

    def build(self) -> list[DeclarationView]:
        views = [self._declaration(descriptor) for descriptor in self._model.declarations]
        ordered = _dependency_order(views)
        ordered.extend(self._params_models())
        ordered.extend(self._request_bodies())
        return ordered

    def _declaration(self, descriptor: TypeDescriptor) -> DeclarationView:
        name = descriptor.name or ""
        if isinstance(descriptor, ObjectType):
            return self._object(name, descriptor)
        if isinstance(descriptor, EnumType):
            return self._enum(name, descriptor)
        if isinstance(descriptor, UnionType):
            return self._union(name, descriptor)
        if isinstance(descriptor, AliasType) and self._compat.old_aliasing:
            return self._distinct_alias(name, descriptor)
        return DeclarationView(
            template="typedef.py.j2",
            name=name,
            description=descriptor.description,
            annotation=self._types.definition(descriptor.position),
        )

    def _object(self, name: str, descriptor: ObjectType) -> DeclarationView:
        bases = tuple(self._types.base_annotation(base) for base in descriptor.bases)
        config = "populate_by_name=True"
        if descriptor.extra is not None:
            config += f", extra={python_literal(descriptor.extra)}"
        extra_annotation = None
        if descriptor.extra_values is not None:
            extra_annotation = self._types.annotation(descriptor.extra_values)

        fields: list[FieldView] = []
        for item in descriptor.fields:
            optional = not item.required and not item.skip_optional
            if item.has_default and item.default is not None:
                optional = False
            annotation = self._types.annotation(item.type_position, optional=optional)
            if item.required:
                default = None
            elif item.has_default:
                default = python_literal(item.default)
            else:
                default = "None"
            fields.append(
                FieldView(
                    name=item.name,
                    line=_field_line(item.name, item.wire_name, annotation, default=default),
                    description=item.description,
                )
            )
        return DeclarationView(
            template="object.py.j2",
            name=name,
            description=descriptor.description,
            bases=bases or ("BaseModel",),
            config=config,
            extra_annotation=extra_annotation,
            fields=tuple(fields),
            depends=bases,
        )

    def _enum(self, name: str, descriptor: EnumType) -> DeclarationView:
        members = tuple(
            {"name": member.name, "value": self._enum_value(descriptor.kind, member.value)}
            for member in descriptor.members
        )
        return DeclarationView(
            template="enum.py.j2",
            name=name,
            description=descriptor.description,
            bases=(_ENUM_BASES.get(descriptor.kind, "Enum"),),
            members=members,
        )

    @staticmethod
    def _enum_value(kind: str, value: object) -> str:
        if kind == "string" and not isinstance(value, str):
            return python_literal(str(value))
        return python_literal(value)

    def _union(self, name: str, descriptor: UnionType) -> DeclarationView:
        members: list[Mapping[str, object]] = []
        annotations: list[str] = []
        for member in descriptor.members:
            annotation = self._types.annotation(member.position)
            annotations.append(annotation)
            members.append(
                {
                    "accessor": member.accessor,
                    "annotation": annotation,
                    "discriminator_values": member.discriminator_values,
                    "discriminator_value": (
                        member.discriminator_values[0] if member.discriminator_values else None
                    ),
                }
            )
        unique = list(dict.fromkeys(annotations))
        value_annotation = unique[0] if len(unique) == 1 else f"Union[{', '.join(unique)}]"
        return DeclarationView(
            template="union.py.j2",
            name=name,
            description=descriptor.description,
            members=tuple(members),
            discriminator=descriptor.discriminator,
            annotation=", ".join(annotations),
            value_annotation=value_annotation,
        )

    def _distinct_alias(self, name: str, descriptor: AliasType) -> DeclarationView:
        target = self._model.follow(descriptor.position)
        target_name = self._types.base_annotation(descriptor.target)
        if isinstance(target, (ObjectType, UnionType)) and target.declared:
            return DeclarationView(
                template="object.py.j2",
                name=name,
                description=descriptor.description,
                bases=(target_name,),
                depends=(target_name,),
            )
        if isinstance(target, EnumType):
            return DeclarationView(
                template="typedef.py.j2",
                name=name,
                description=descriptor.description,
                annotation=self._types.definition(descriptor.position),
            )
        return DeclarationView(
            template="object.py.j2",
            name=name,
            description=descriptor.description,
            bases=(f"RootModel[{self._types.definition(descriptor.position)}]",),
            depends=(target_name,),
        )

    def _params_models(self) -> list[DeclarationView]:
        views: list[DeclarationView] = []
        for operation in self._context.operations:
            if operation.params_type_name is None:
                continue
            fields = []
            for param in operation.grouped_params:
                annotation = self._types.annotation(param.type_position, optional=not param.required)
                fields.append(
                    FieldView(
                        name=param.python_name,
                        line=_field_line(
                            param.python_name,
                            param.name,
                            annotation,
                            default=None if param.required else "None",
                        ),
                        description=param.description,
                    )
                )
            views.append(
                DeclarationView(
                    template="object.py.j2",
                    name=operation.params_type_name,
                    description=f"Parameters for {operation.operation_id}.",
                    bases=("BaseModel",),
                    config="populate_by_name=True",
                    fields=tuple(fields),
                )
            )
        return views

    def _request_bodies(self) -> list[DeclarationView]:
        views: list[DeclarationView] = []
        for operation in self._context.operations:
            for body in operation.bodies:
                if body.type_position is None:
                    continue
                views.append(
                    DeclarationView(
                        template="typedef.py.j2",
                        name=body.type_name,
                        description=f"{operation.operation_id} body for {body.content_type}",
                        annotation=self._types.annotation(body.type_position),
                    )
                )
        return views


def _dependency_order(views: list[DeclarationView]) -> list[DeclarationView]:
    """Order views by name, moving eagerly evaluated dependencies first."""
    by_name = {view.name: view for view in views}
    ordered: list[DeclarationView] = []
    done: set[str] = set()
    visiting: set[str] = set()

    def _visit(view: DeclarationView) -> None:
        if view.name in done or view.name in visiting:
            return
        visiting.add(view.name)
        for dependency in view.depends:
            for name in re.findall(r"[A-Za-z_][A-Za-z0-9_]*", dependency):
                if name in by_name:
                    _visit(by_name[name])
        visiting.discard(view.name)
        done.add(view.name)
        ordered.append(view)

    for view in views:
        _visit(view)
    return ordered


def _path_expression(operation: OperationBinding, arguments: Mapping[str, str]) -> str:
    by_name = {param.name: param for param in operation.path_params}
    parts: list[str] = []
    position = 0
    for match in _TEMPLATE_PARAM_RE.finditer(operation.path):
        literal = operation.path[position:match.start()]
        if literal:
            parts.append(python_literal(literal))
        param = by_name[match.group(1)]
        parts.append(_encode_param(param, arguments[param.name], "PATH"))
        position = match.end()
    if position < len(operation.path) or not parts:
        parts.append(python_literal(operation.path[position:]))
    return " + ".join(parts)


def _encode_param(param: ParameterBinding, value: str, location: str) -> str:
    name = python_literal(param.name)
    if param.json_encoded:
        encoded = f"style_json_param({name}, {value})"
        if location == "HEADER":
            return encoded
        style = "simple" if location == "PATH" else "form"
        return f'style_param("{style}", False, {name}, {encoded}, ParamLocation.{location})'
    return (
        f"style_param({python_literal(param.style)}, {param.explode}, {name}, {value}, "
        f"ParamLocation.{location})"
    )


@dataclass(frozen=True)
class RequestVariant:
    """One request builder (and client method) of an operation."""

    suffix: str
    kind: str
    content_type: str = ""
    builder_signature: str = ""
    builder_call: str = ""
    method_signature: str = ""
    method_call: str = ""
    delegate_call: str = ""
    encode_body: str = ""


@dataclass(frozen=True)
class ResponseView:
    field_name: str
    field_annotation: str
    annotation: str
    media_type: str = ""
    condition: str = ""
    decoder: Optional[str] = None


@dataclass(frozen=True)
class EncodedParam:
    """A grouped parameter and the expression serializing it."""

    attribute: str
    wire_name: str
    encode: str


@dataclass(frozen=True)
class ClientOperation:
    method_name: str
    http_method: str
    doc: Optional[str]
    path_expression: str
    has_params: bool
    query: tuple[EncodedParam, ...]
    headers: tuple[EncodedParam, ...]
    cookies: tuple[EncodedParam, ...]
    variants: tuple[RequestVariant, ...]
    response_type: str
    responses: tuple[ResponseView, ...]

    @property
    def decodable(self) -> tuple[ResponseView, ...]:
        return tuple(response for response in self.responses if response.decoder is not None)

    @property
    def checks_status(self) -> bool:
        return any(response.condition for response in self.decodable)


def _status_condition(status: str) -> str:
    if status.isdigit():
        return f" and status == {int(status)}"
    if len(status) == 3 and status[0].isdigit() and status[1:] == "XX":
        low = int(status[0]) * 100
        return f" and {low} <= status < {low + 100}"
    return ""


class ClientEmitter:
    """httpx request builders, ``Client``, typed responses and ``ClientWithResponses``."""

    kind = CLIENT

    def emit(
        self, context: EmitContext, target: GenerateTarget, *, models_module: Optional[str] = None
    ) -> Emission:
        operations = [self._operation(context, operation) for operation in context.operations]
        client_name = context.config.output_options.client_type_name
        code = context.renderer.render(
            "client",
            operations=operations,
            client_name=client_name,
            client_with_responses_name=f"{client_name}WithResponses",
        )
        return _finish(context, target, code, models_module=models_module)

    def _operation(self, context: EmitContext, operation: OperationBinding) -> ClientOperation:
        types = context.types
        path_args = {param.name: param.python_name for param in operation.path_params}
        path_decls = [
            f"{param.python_name}: {types.annotation(param.type_position)}"
            for param in operation.path_params
        ]
        path_names = [param.python_name for param in operation.path_params]

        keyword_decls: list[str] = []
        keyword_calls: list[str] = []
        if operation.params_type_name is not None:
            if operation.params_required:
                keyword_decls.append(f"params: {operation.params_type_name}")
            else:
                keyword_decls.append(f"params: Optional[{operation.params_type_name}] = None")
            keyword_calls.append("params=params")

        variants: list[RequestVariant] = []

        def _variant(
            suffix: str,
            kind: str,
            body_decls: list[str],
            body_names: list[str],
            **extra: str,
        ) -> RequestVariant:
            positional = [*path_decls, *body_decls]
            call_names = [*path_names, *body_names]
            builder_signature = ", ".join(["server: str", *positional])
            method_signature = ", ".join(["self", *positional])
            if keyword_decls:
                builder_signature += ", *, " + ", ".join(keyword_decls)
            method_signature += ", *, " + ", ".join(
                [*keyword_decls, "request_editors: Sequence[RequestEditor] = ()"]
            )
            calls = [*call_names, *keyword_calls]
            return RequestVariant(
                suffix=suffix,
                kind=kind,
                builder_signature=builder_signature,
                builder_call=", ".join(["self.server", *calls]),
                method_signature=method_signature,
                method_call=", ".join([*calls, "request_editors=request_editors"]),
                **extra,
            )

        if not operation.bodies:
            variants.append(_variant("", "plain", [], []))
        else:
            variants.append(
                _variant("_with_body", "raw", ["content_type: str", "body: bytes"], ["content_type", "body"])
            )
            for body in operation.bodies:
                if not body.typed:
                    continue
                suffix = "" if body.label == "JSON" else f"_with_{to_snake_case(body.label)}_body"
                delegate = ", ".join(
                    ["server", *path_names, python_literal(body.content_type), "content", *keyword_calls]
                )
                variants.append(
                    _variant(
                        suffix,
                        body.encoding,
                        [f"body: {body.type_name}"],
                        ["body"],
                        content_type=body.content_type,
                        delegate_call=delegate,
                        encode_body=_BODY_ENCODERS[body.encoding],
                    )
                )

        responses = tuple(
            ResponseView(
                field_name=response.field_name,
                field_annotation=types.annotation(response.type_position, optional=True),
                annotation=types.annotation(response.type_position),
                media_type=response.content_type.split(";", maxsplit=1)[0].strip().lower(),
                condition=_status_condition(response.status),
                decoder=_RESPONSE_DECODERS.get(response.kind),
            )
            for response in operation.responses
        )

        def _encoded(params: Iterable[ParameterBinding], location: str) -> tuple[EncodedParam, ...]:
            return tuple(
                EncodedParam(
                    attribute=param.python_name,
                    wire_name=param.name,
                    encode=_encode_param(param, f"params.{param.python_name}", location),
                )
                for param in params
            )

        return ClientOperation(
            method_name=operation.method_name,
            http_method=operation.method,
            doc=operation.summary or operation.description,
            path_expression=_path_expression(operation, path_args),
            has_params=operation.params_type_name is not None,
            query=_encoded(operation.query_params, "QUERY"),
            headers=_encoded(operation.header_params, "HEADER"),
            cookies=_encoded(operation.cookie_params, "COOKIE"),
            variants=tuple(variants),
            response_type=operation.response_type_name,
            responses=responses,
        )


@dataclass(frozen=True)
class Framework:
    """How one web framework exposes request data to the generated wrapper."""

    kind: str
    template: str
    route_param: str
    path_source: str
    raw_path: str
    query_pairs: str
    query_get: str
    header_get: str
    cookie_get: str
    passes_request: bool
    request_annotation: str
    response_annotation: str
    middleware_first_to_last: Optional[str] = None


FLASK = Framework(
    kind=FLASK_SERVER,
    template="flask_server",
    route_param="<{}>",
    path_source="{}",
    raw_path='flask.request.environ.get("RAW_URI") or flask.request.environ.get("REQUEST_URI", "")',
    query_pairs="flask.request.args.items(multi=True)",
    query_get="flask.request.args.get({})",
    header_get="flask.request.headers.get({})",
    cookie_get="flask.request.cookies.get({})",
    passes_request=False,
    request_annotation="",
    response_annotation="flask.typing.ResponseReturnValue",
    middleware_first_to_last="apply_flask_middleware_first_to_last",
)

STARLETTE = Framework(
    kind=STARLETTE_SERVER,
    template="starlette_server",
    route_param="{{{}}}",
    path_source='request.path_params["{}"]',
    raw_path='request.scope.get("raw_path", b"").decode("latin-1")',
    query_pairs="request.query_params.multi_items()",
    query_get="request.query_params.get({})",
    header_get="request.headers.get({})",
    cookie_get="request.cookies.get({})",
    passes_request=True,
    request_annotation="starlette.requests.Request",
    response_annotation="starlette.responses.Response",
)

AIOHTTP = Framework(
    kind=AIOHTTP_SERVER,
    template="aiohttp_server",
    route_param="{{{}}}",
    path_source='request.match_info["{}"]',
    raw_path="request.raw_path",
    query_pairs="request.query.items()",
    query_get="request.query.get({})",
    header_get="request.headers.get({})",
    cookie_get="request.cookies.get({})",
    passes_request=True,
    request_annotation="aiohttp.web.Request",
    response_annotation="aiohttp.web.StreamResponse",
    middleware_first_to_last="apply_aiohttp_middleware_first_to_last",
)


@dataclass(frozen=True)
class BoundParam:
    python_name: str
    bind: str


@dataclass(frozen=True)
class ServerOperation:
    method_name: str
    http_method: str
    doc: Optional[str]
    route: str
    path_template: str
    raw_path: str
    path_params: tuple[BoundParam, ...]
    params_type: Optional[str]
    grouped: tuple[BoundParam, ...]
    handler_signature: str
    handler_call: str
    wrapper_signature: str


class ServerEmitter:
    """``ServerInterface``, ``ServerInterfaceWrapper`` and route registration."""

    def __init__(self, framework: Framework) -> None:
        self.framework = framework
        self.kind = framework.kind

    def emit(
        self, context: EmitContext, target: GenerateTarget, *, models_module: Optional[str] = None
    ) -> Emission:
        operations = [self._operation(context, operation) for operation in context.operations]
        first_to_last = True
        if self.framework.middleware_first_to_last is not None:
            first_to_last = getattr(context.config.compatibility, self.framework.middleware_first_to_last)
        code = context.renderer.render(
            self.framework.template,
            operations=operations,
            middleware_first_to_last=first_to_last,
            request_annotation=self.framework.request_annotation,
            response_annotation=self.framework.response_annotation,
        )
        return _finish(context, target, code, models_module=models_module)

    def _operation(self, context: EmitContext, operation: OperationBinding) -> ServerOperation:
        framework = self.framework
        types = context.types
        route = operation.path
        for param in operation.path_params:
            route = route.replace(
                "{" + param.name + "}", framework.route_param.format(param.python_name)
            )

        path_params = tuple(
            BoundParam(param.python_name, self._bind_path(param, types.annotation(param.type_position)))
            for param in operation.path_params
        )
        query_names = tuple(param.name for param in operation.query_params)
        grouped = tuple(
            BoundParam(
                param.python_name,
                self._bind_grouped(
                    param,
                    types.annotation(param.type_position),
                    siblings=tuple(name for name in query_names if name != param.name),
                ),
            )
            for param in operation.grouped_params
        )

        handler_params = ["self"]
        handler_args: list[str] = []
        wrapper_params = ["self"]
        if framework.passes_request:
            handler_params.append(f"request: {framework.request_annotation}")
            handler_args.append("request")
            wrapper_params.append(f"request: {framework.request_annotation}")
        for param in operation.path_params:
            handler_params.append(f"{param.python_name}: {types.annotation(param.type_position)}")
            handler_args.append(param.python_name)
            if not framework.passes_request:
                wrapper_params.append(f"{param.python_name}: str")
        if operation.params_type_name is not None:
            handler_params.append(f"params: {operation.params_type_name}")
            handler_args.append("params")

        return ServerOperation(
            method_name=operation.method_name,
            http_method=operation.method,
            doc=operation.summary or operation.description,
            route=route,
            path_template=operation.path,
            raw_path=(
                framework.raw_path
                if any(not param.json_encoded for param in operation.path_params)
                else ""
            ),
            path_params=path_params,
            params_type=operation.params_type_name,
            grouped=grouped,
            handler_signature=", ".join(handler_params),
            handler_call=", ".join(handler_args),
            wrapper_signature=", ".join(wrapper_params),
        )

    def _bind_path(self, param: ParameterBinding, annotation: str) -> str:
        source = self.framework.path_source.format(param.python_name)
        name = python_literal(param.name)
        if param.json_encoded:
            return f"bind_json_parameter({name}, {source}, {annotation})"
        return (
            f"bind_path_parameter({python_literal(param.style)}, {param.explode}, "
            f"{name}, {source}, {annotation}, raw=raw_path_values)"
        )

    def _bind_grouped(
        self, param: ParameterBinding, annotation: str, *, siblings: tuple[str, ...]
    ) -> str:
        framework = self.framework
        name = python_literal(param.name)
        getter = {
            "query": framework.query_get,
            "header": framework.header_get,
            "cookie": framework.cookie_get,
        }[param.location].format(name)
        if param.json_encoded:
            return f"bind_json_parameter({name}, {getter}, {annotation}, required={param.required})"
        if param.location == "query":
            return (
                f"bind_query_parameter({python_literal(param.style)}, {param.explode}, "
                f"{param.required}, {name}, {framework.query_pairs}, {annotation}, "
                f"siblings={python_literal(list(siblings))})"
            )
        return (
            f"bind_optional_parameter({python_literal(param.style)}, {param.explode}, "
            f"{param.required}, {name}, {getter}, {annotation})"
        )


class EmbeddedSpecEmitter:
    """Compressed copy of the document with ``SpecSource`` accessors."""

    kind = EMBEDDED_SPEC

    def emit(
        self, context: EmitContext, target: GenerateTarget, *, models_module: Optional[str] = None
    ) -> Emission:
        code = context.renderer.render(
            "embedded_spec",
            chunks=encode_spec_chunks(context.document.to_json()),
            external_specs=self._external_specs(context.import_map),
        )
        return _finish(context, target, code, models_module=None)

    @staticmethod
    def _external_specs(import_map: ImportMap) -> list[Mapping[str, str]]:
        specs: list[Mapping[str, str]] = []
        for source in sorted(import_map.modules):
            mapped = import_map.import_for(source)
            if mapped is not None and mapped.alias is not None:
                specs.append({"alias": mapped.alias, "source": source})
        return specs


def encode_spec_chunks(text: str, *, size: int = _SPEC_CHUNK_SIZE) -> list[str]:
    """Gzip and base64 encode ``text``, split into fixed-size chunks."""
    payload = gzip.compress(text.encode("utf-8"), mtime=0)
    encoded = base64.b64encode(payload).decode("ascii")
    return [encoded[index:index + size] for index in range(0, len(encoded), size)]


EMITTERS: Mapping[str, Emitter] = {
    MODELS: ModelsEmitter(),
    CLIENT: ClientEmitter(),
    FLASK_SERVER: ServerEmitter(FLASK),
    STARLETTE_SERVER: ServerEmitter(STARLETTE),
    AIOHTTP_SERVER: ServerEmitter(AIOHTTP),
    EMBEDDED_SPEC: EmbeddedSpecEmitter(),
}


def emit_target(
    context: EmitContext,
    target: GenerateTarget,
    *,
    models_module: Optional[str] = None,
) -> GenerateTarget:
    """Emit ``target`` and store the result on it."""
    emitter = EMITTERS.get(target.target)
    if emitter is None:
        raise EmissionError(target.target, "no emitter registered")
    try:
        emission = emitter.emit(context, target, models_module=models_module)
    except TemplateError as exc:
        raise EmissionError(target.target, str(exc)) from exc
    target.imports = emission.imports
    target.code = emission.code
    return target
