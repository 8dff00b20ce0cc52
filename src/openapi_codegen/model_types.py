"""Internal datatypes shared by resolution, binding and emission."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Optional, Union

from .json_types import JSONObject, JSONValue


def escape_pointer_token(token: str) -> str:
    """Escape one JSON pointer reference token."""
    return token.replace("~", "~0").replace("/", "~1")


def unescape_pointer_token(token: str) -> str:
    """Undo JSON pointer escaping for one reference token."""
    return token.replace("~1", "/").replace("~0", "~")


@dataclass(frozen=True, order=True)
class SchemaPosition:
    """A node address in the schema graph.

    ``source`` is ``""`` for the root document, otherwise the identifier of the
    external document the node lives in. ``pointer`` is a JSON pointer into it.
    """

    source: str
    pointer: str

    def child(self, *tokens: Union[str, int]) -> SchemaPosition:
        """Return the position of a descendant node."""
        suffix = "".join(f"/{escape_pointer_token(str(token))}" for token in tokens)
        return SchemaPosition(self.source, f"{self.pointer}{suffix}")

    def tokens(self) -> tuple[str, ...]:
        """Return the unescaped pointer tokens."""
        if not self.pointer:
            return ()
        return tuple(unescape_pointer_token(token) for token in self.pointer[1:].split("/"))

    def is_component_schema(self) -> bool:
        """Whether the position is a top-level ``components/schemas`` entry."""
        tokens = self.tokens()
        return len(tokens) == 3 and tokens[0] == "components" and tokens[1] == "schemas"

    def __str__(self) -> str:
        return f"{self.source}#{self.pointer}"


@dataclass(frozen=True)
class PythonImport:
    """One import statement needed by generated code."""

    module: str
    name: Optional[str] = None
    alias: Optional[str] = None

    @property
    def bound_name(self) -> str:
        """Name the import binds in the importing module."""
        if self.alias:
            return self.alias
        if self.name:
            return self.name
        return self.module.split(".", maxsplit=1)[0]


@dataclass(frozen=True)
class PrimitiveType:
    """A scalar, a literal, or a user supplied python type."""

    position: SchemaPosition
    kinds: tuple[str, ...]
    python_type: Optional[str] = None
    literal_values: tuple[JSONValue, ...] = ()
    name: Optional[str] = None
    declared: bool = False
    nullable: bool = False
    description: Optional[str] = None


@dataclass(frozen=True)
class FieldDescriptor:
    """One property of an object type."""

    name: str
    wire_name: str
    type_position: SchemaPosition
    required: bool
    read_only: bool = False
    description: Optional[str] = None
    has_default: bool = False
    default: Optional[JSONValue] = None
    skip_optional: bool = False


@dataclass(frozen=True)
class ObjectType:
    """An object with named properties."""

    position: SchemaPosition
    fields: tuple[FieldDescriptor, ...]
    bases: tuple[SchemaPosition, ...] = ()
    extra: Optional[str] = None
    extra_values: Optional[SchemaPosition] = None
    merged_from: tuple[SchemaPosition, ...] = ()
    name: Optional[str] = None
    declared: bool = True
    nullable: bool = False
    description: Optional[str] = None


@dataclass(frozen=True)
class MapType:
    """An object that only declares additional properties."""

    position: SchemaPosition
    values: Optional[SchemaPosition]
    name: Optional[str] = None
    declared: bool = False
    nullable: bool = False
    description: Optional[str] = None


@dataclass(frozen=True)
class ArrayType:
    """A homogeneous list; ``items`` is ``None`` when the schema declares none."""

    position: SchemaPosition
    items: Optional[SchemaPosition]
    name: Optional[str] = None
    declared: bool = False
    nullable: bool = False
    description: Optional[str] = None


@dataclass(frozen=True)
class EnumMember:
    """A sanitized enum member."""

    name: str
    value: JSONValue


@dataclass(frozen=True)
class EnumType:
    """An enumeration; members are named once every type name is known."""

    position: SchemaPosition
    kind: str
    values: tuple[JSONValue, ...]
    var_names: tuple[str, ...] = ()
    members: tuple[EnumMember, ...] = ()
    name: Optional[str] = None
    declared: bool = True
    nullable: bool = False
    description: Optional[str] = None


@dataclass(frozen=True)
class UnionMember:
    """One alternative of a union type."""

    position: SchemaPosition
    discriminator_values: tuple[str, ...] = ()
    accessor: str = ""


@dataclass(frozen=True)
class UnionType:
    """A ``oneOf``/``anyOf`` composition."""

    position: SchemaPosition
    members: tuple[UnionMember, ...]
    composition: str
    discriminator: Optional[str] = None
    name: Optional[str] = None
    declared: bool = True
    nullable: bool = False
    description: Optional[str] = None


@dataclass(frozen=True)
class AliasType:
    """A reference to another descriptor."""

    position: SchemaPosition
    target: SchemaPosition
    name: Optional[str] = None
    declared: bool = False
    nullable: bool = False
    description: Optional[str] = None


@dataclass(frozen=True)
class ExternalRefType:
    """A type generated elsewhere and imported (or supplied) by the user."""

    position: SchemaPosition
    type_name: str
    module: Optional[str] = None
    import_alias: Optional[str] = None
    name: Optional[str] = None
    declared: bool = False
    nullable: bool = False
    description: Optional[str] = None


type TypeDescriptor = Union[
    PrimitiveType,
    ObjectType,
    MapType,
    ArrayType,
    EnumType,
    UnionType,
    AliasType,
    ExternalRefType,
]


class TypeModel(Mapping[SchemaPosition, TypeDescriptor]):
    """Read-only result of type resolution."""

    def __init__(
        self,
        descriptors: Mapping[SchemaPosition, TypeDescriptor],
        *,
        python_imports: Iterable[PythonImport] = (),
        excluded: Iterable[SchemaPosition] = (),
        warnings: Iterable[str] = (),
    ) -> None:
        self._descriptors = MappingProxyType(dict(descriptors))
        self.python_imports: tuple[PythonImport, ...] = tuple(python_imports)
        self.excluded: frozenset[SchemaPosition] = frozenset(excluded)
        self.warnings: tuple[str, ...] = tuple(warnings)

    def __getitem__(self, position: SchemaPosition) -> TypeDescriptor:
        return self._descriptors[position]

    def __iter__(self) -> Iterator[SchemaPosition]:
        return iter(self._descriptors)

    def __len__(self) -> int:
        return len(self._descriptors)

    @property
    def declarations(self) -> tuple[TypeDescriptor, ...]:
        """Declared descriptors ordered by generated name."""
        declared = [
            descriptor
            for position, descriptor in self._descriptors.items()
            if descriptor.declared and position not in self.excluded
        ]
        return tuple(sorted(declared, key=lambda item: (item.name or "", item.position)))

    def name_of(self, position: SchemaPosition) -> Optional[str]:
        """Return the generated name of a declared position."""
        descriptor = self._descriptors.get(position)
        if descriptor is None or not descriptor.declared:
            return None
        return descriptor.name

    def follow(self, position: SchemaPosition) -> TypeDescriptor:
        """Follow undeclared aliases to the descriptor that gives a position its shape."""
        descriptor = self._descriptors[position]
        seen: set[SchemaPosition] = set()
        while isinstance(descriptor, AliasType) and descriptor.target not in seen:
            seen.add(descriptor.target)
            descriptor = self._descriptors[descriptor.target]
        return descriptor

    def is_nullable(self, position: SchemaPosition) -> bool:
        """Whether a position, or anything it aliases, accepts null."""
        descriptor = self._descriptors[position]
        seen: set[SchemaPosition] = set()
        while True:
            if descriptor.nullable:
                return True
            if not isinstance(descriptor, AliasType) or descriptor.target in seen:
                return False
            seen.add(descriptor.target)
            descriptor = self._descriptors[descriptor.target]

    def dependencies(self, position: SchemaPosition) -> tuple[SchemaPosition, ...]:
        """Positions a descriptor refers to directly."""
        descriptor = self._descriptors[position]
        refs: list[SchemaPosition] = []
        if isinstance(descriptor, ObjectType):
            refs.extend(descriptor.bases)
            refs.extend(descriptor.merged_from)
            refs.extend(item.type_position for item in descriptor.fields)
            if descriptor.extra_values is not None:
                refs.append(descriptor.extra_values)
        elif isinstance(descriptor, MapType) and descriptor.values is not None:
            refs.append(descriptor.values)
        elif isinstance(descriptor, ArrayType) and descriptor.items is not None:
            refs.append(descriptor.items)
        elif isinstance(descriptor, UnionType):
            refs.extend(member.position for member in descriptor.members)
        elif isinstance(descriptor, AliasType):
            refs.append(descriptor.target)
        return tuple(refs)

    def reachable(self, roots: Iterable[SchemaPosition]) -> set[SchemaPosition]:
        """Return every position reachable from ``roots``."""
        seen: set[SchemaPosition] = set()
        pending = [root for root in roots if root in self._descriptors]
        while pending:
            current = pending.pop()
            if current in seen:
                continue
            seen.add(current)
            pending.extend(dep for dep in self.dependencies(current) if dep not in seen)
        return seen

    def pruned(self, roots: Iterable[SchemaPosition]) -> TypeModel:
        """Return the sub-model reachable from ``roots``."""
        keep = self.reachable(roots)
        return TypeModel(
            {position: item for position, item in self._descriptors.items() if position in keep},
            python_imports=self.python_imports,
            excluded=self.excluded & keep,
            warnings=self.warnings,
        )


@dataclass(frozen=True)
class OperationSpec:
    """Operation metadata extracted from OpenAPI paths."""

    path: str
    method: str
    operation_id: str
    position: SchemaPosition
    operation: JSONObject
    path_item: JSONObject

    @property
    def tags(self) -> tuple[str, ...]:
        raw = self.operation.get("tags")
        if not isinstance(raw, list):
            return ()
        return tuple(tag for tag in raw if isinstance(tag, str))


@dataclass(frozen=True)
class ParameterBinding:
    """One bound operation parameter."""

    name: str
    python_name: str
    location: str
    required: bool
    style: str
    explode: bool
    type_position: Optional[SchemaPosition]
    json_encoded: bool = False
    description: Optional[str] = None


@dataclass(frozen=True)
class RequestBodyBinding:
    """One request body content type."""

    content_type: str
    label: str
    type_name: str
    type_position: Optional[SchemaPosition]
    required: bool

    @property
    def typed(self) -> bool:
        """Whether typed client helpers are generated for the body."""
        return self.type_position is not None and self.encoding in ("json", "form", "text")

    @property
    def encoding(self) -> str:
        media_type = self.content_type.split(";", maxsplit=1)[0].strip().lower()
        if media_type == "application/json" or media_type.endswith("+json"):
            return "json"
        if media_type == "application/x-www-form-urlencoded":
            return "form"
        if media_type == "text/plain":
            return "text"
        return "raw"


@dataclass(frozen=True)
class ResponseBinding:
    """One (status, content type) response entry."""

    status: str
    content_type: str
    label: str
    field_name: str
    kind: str
    type_position: Optional[SchemaPosition]


@dataclass(frozen=True)
class OperationBinding:
    """Parameter, request and response contract for one operation."""

    operation_id: str
    method_name: str
    method: str
    path: str
    summary: Optional[str]
    description: Optional[str]
    tags: tuple[str, ...]
    path_params: tuple[ParameterBinding, ...]
    query_params: tuple[ParameterBinding, ...]
    header_params: tuple[ParameterBinding, ...]
    cookie_params: tuple[ParameterBinding, ...]
    bodies: tuple[RequestBodyBinding, ...]
    responses: tuple[ResponseBinding, ...]
    params_type_name: Optional[str]
    response_type_name: str

    @property
    def grouped_params(self) -> tuple[ParameterBinding, ...]:
        """Parameters carried by the ``<Op>Params`` model."""
        return (*self.query_params, *self.header_params, *self.cookie_params)

    @property
    def params_required(self) -> bool:
        return any(param.required for param in self.grouped_params)


@dataclass
class GenerateTarget:
    """One output unit; emitters assign ``imports`` and ``code`` in place."""

    target: str
    package: str
    file_name: str
    imports: str = ""
    code: str = ""

    @property
    def python_package(self) -> str:
        return self.package.strip("/").replace("/", ".")

    @property
    def module_name(self) -> str:
        if self.file_name:
            return self.file_name.removesuffix(".py")
        return self.target.replace("-", "_")

    @property
    def module_path(self) -> str:
        """Dotted import path of the module this target is written to."""
        return f"{self.python_package}.{self.module_name}"

    @property
    def destination(self) -> tuple[str, str]:
        return (self.package, self.file_name)


@dataclass(frozen=True)
class CodeOutput:
    """A merged artifact for one (package, file name) destination."""

    package: str
    file_name: str
    code: str
    targets: tuple[str, ...]
    warnings: tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class GenerationResult:
    """Generation output metadata."""

    targets: tuple[GenerateTarget, ...]
    outputs: tuple[CodeOutput, ...]
    warnings: tuple[str, ...]

    def output_for(self, target: str) -> str:
        """Return the merged source that contains ``target``."""
        for output in self.outputs:
            if target in output.targets:
                return output.code
        raise KeyError(target)
