"""Resolve the schema graph into a flat model of named type descriptors."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from typing import Optional

from .configuration import CompatibilityOptions
from .json_types import JSONObject, JSONValue
from .loader import SchemaGraph
from .model_types import (
    AliasType,
    ArrayType,
    EnumMember,
    EnumType,
    ExternalRefType,
    FieldDescriptor,
    MapType,
    ObjectType,
    OperationSpec,
    PrimitiveType,
    PythonImport,
    SchemaPosition,
    TypeDescriptor,
    TypeModel,
    UnionMember,
    UnionType,
)
from .naming import (
    _HTTP_METHODS,
    NameRegistry,
    content_type_label,
    path_to_endpoint_name,
    python_field_name,
    sanitize_enum_names,
    sanitize_identifier,
    to_pascal_case,
    to_snake_case,
)
from .operations import follow_component, operation_schema_positions
from .refs import ImportMap, ResolveError, parse_ref
from .schema_utils import (
    enum_kind,
    is_constraint_only,
    is_object_schema,
    primitive_kind,
    schema_types,
    string_or_none,
)

logger = logging.getLogger(__name__)

_ROOT = SchemaPosition("", "")
_COMPONENT_SCHEMAS = _ROOT.child("components", "schemas")


@dataclass
class _AllOfParts:
    fields: dict[str, SchemaPosition] = field(default_factory=dict)
    required: set[str] = field(default_factory=set)
    opaque: list[SchemaPosition] = field(default_factory=list)
    merged_from: list[SchemaPosition] = field(default_factory=list)
    extra: Optional[str] = None
    extra_values: Optional[SchemaPosition] = None


class TypeResolver:
    """Walk components and operation schemas and build a :class:`TypeModel`.

    Every reachable schema position is visited once. References become
    aliases to a declared descriptor, so recursive schemas are expressed
    through names instead of being expanded.
    """

    def __init__(
        self,
        graph: SchemaGraph,
        *,
        operations: Iterable[OperationSpec] = (),
        compatibility: Optional[CompatibilityOptions] = None,
        import_map: Optional[ImportMap] = None,
        exclude_schemas: Iterable[str] = (),
        reserved_names: Iterable[str] = (),
    ) -> None:
        self._graph = graph
        self._operations = list(operations)
        self._compat = compatibility or CompatibilityOptions()
        self._imports = import_map or ImportMap.from_mapping({})
        self._exclude = set(exclude_schemas)
        self._reserved = set(reserved_names)
        self._operation_ids = {op.position.tokens(): op.operation_id for op in self._operations}

        self._descriptors: dict[SchemaPosition, TypeDescriptor] = {}
        self._pending: set[SchemaPosition] = set()
        self._declare_later: set[SchemaPosition] = set()
        self._excluded: set[SchemaPosition] = set()
        self._python_imports: list[PythonImport] = []
        self._warnings: list[str] = []

    def resolve(self) -> TypeModel:
        """Resolve every component schema and every operation schema."""
        for name in self._graph.component_schemas():
            position = _COMPONENT_SCHEMAS.child(name)
            if name in self._exclude:
                self._exclude_component(position, name)
                continue
            self._visit(position, declare=True)

        for operation in self._operations:
            for position in operation_schema_positions(self._graph, operation):
                self._visit(position)

        return self._finalize()

    def _exclude_component(self, position: SchemaPosition, name: str) -> None:
        logger.debug("Excluding component schema %s", name)
        self._descriptors[position] = PrimitiveType(position, kinds=("any",))
        self._excluded.add(position)

    def _visit(self, position: SchemaPosition, *, declare: bool = False) -> SchemaPosition:
        existing = self._descriptors.get(position)
        if existing is not None:
            if declare and not existing.declared and position not in self._excluded:
                self._descriptors[position] = replace(existing, declared=True)
            return position
        if position in self._pending:
            if declare:
                self._declare_later.add(position)
            return position

        self._pending.add(position)
        try:
            node = self._graph.node_at(position)
            if not isinstance(node, Mapping):
                raise ResolveError(f"Schema at {position} must be an object, got {type(node)!r}")
            descriptor = self._build(position, node)
        finally:
            self._pending.discard(position)

        if declare or position in self._declare_later:
            descriptor = replace(descriptor, declared=True)
        self._descriptors[position] = descriptor
        return position

    def _build(self, position: SchemaPosition, node: JSONObject) -> TypeDescriptor:
        description = string_or_none(node.get("description"))
        types, nullable = schema_types(node)

        python_type = node.get("x-python-type")
        if isinstance(python_type, str) and python_type.strip():
            self._record_python_import(position, node.get("x-python-type-import"))
            return PrimitiveType(
                position,
                kinds=("custom",),
                python_type=python_type.strip(),
                nullable=nullable,
                description=description,
            )

        ref = node.get("$ref")
        if isinstance(ref, str):
            return self._build_ref(position, ref, nullable=nullable, description=description)

        if "allOf" in node:
            return self._build_all_of(position, node, nullable=nullable, description=description)

        for composition in ("oneOf", "anyOf"):
            if composition in node:
                return self._build_union(
                    position, node, composition, nullable=nullable, description=description
                )

        if "enum" in node:
            return self._build_enum(position, node, nullable=nullable, description=description)

        if "const" in node:
            return PrimitiveType(
                position,
                kinds=("literal",),
                literal_values=(node["const"],),
                nullable=nullable,
                description=description,
            )

        fmt = node.get("format")
        if len(types) > 1:
            kinds = tuple(dict.fromkeys(primitive_kind(item, fmt) for item in types))
            return PrimitiveType(position, kinds=kinds, nullable=nullable, description=description)

        type_name = types[0] if types else None
        if type_name == "array" or (type_name is None and "items" in node):
            return self._build_array(position, node, nullable=nullable, description=description)
        if type_name == "object" or (type_name is None and is_object_schema(node)):
            return self._build_object(position, node, nullable=nullable, description=description)
        if type_name is None:
            return PrimitiveType(position, kinds=("any",), nullable=nullable, description=description)
        return PrimitiveType(
            position,
            kinds=(primitive_kind(type_name, fmt),),
            nullable=nullable,
            description=description,
        )

    def _build_ref(
        self,
        position: SchemaPosition,
        ref: str,
        *,
        nullable: bool,
        description: Optional[str],
    ) -> TypeDescriptor:
        target = parse_ref(ref, base=position.source)
        if not self._imports.is_local(target.source):
            python_import = self._imports.import_for(target.source)
            if python_import is None:
                raise ResolveError(
                    f"Unresolved external reference {ref!r} at {position}: "
                    f"no import mapping for {target.source}"
                )
            if python_import not in self._python_imports:
                self._python_imports.append(python_import)
            return ExternalRefType(
                position,
                type_name=_external_type_name(target),
                module=python_import.module,
                import_alias=python_import.alias,
                nullable=nullable,
                description=description,
            )

        try:
            self._visit(target, declare=True)
        except ResolveError as exc:
            raise ResolveError(f"Failed to resolve {ref!r} at {position}: {exc}") from exc
        return AliasType(position, target=target, nullable=nullable, description=description)

    def _build_array(
        self,
        position: SchemaPosition,
        node: JSONObject,
        *,
        nullable: bool,
        description: Optional[str],
    ) -> ArrayType:
        items = node.get("items")
        if not isinstance(items, Mapping):
            self._warnings.append(f"Array schema at {position} has no items; using untyped elements")
            return ArrayType(position, items=None, nullable=nullable, description=description)
        items_position = self._visit(position.child("items"))
        return ArrayType(position, items=items_position, nullable=nullable, description=description)

    def _build_object(
        self,
        position: SchemaPosition,
        node: JSONObject,
        *,
        nullable: bool,
        description: Optional[str],
    ) -> TypeDescriptor:
        properties = node.get("properties")
        extra, extra_values = self._additional_properties(position, node)
        if not isinstance(properties, Mapping) or not properties:
            flatten = not self._compat.disable_flatten_additional_properties
            if "additionalProperties" not in node or (flatten and extra == "allow"):
                return MapType(
                    position, values=extra_values, nullable=nullable, description=description
                )
            return ObjectType(
                position,
                fields=(),
                extra=extra,
                extra_values=extra_values,
                nullable=nullable,
                description=description,
            )

        required = _required_names(node)
        entries = [(name, position.child("properties", name)) for name in properties]
        return ObjectType(
            position,
            fields=self._build_fields(entries, required),
            extra=extra,
            extra_values=extra_values,
            nullable=nullable,
            description=description,
        )

    def _additional_properties(
        self, position: SchemaPosition, node: JSONObject
    ) -> tuple[Optional[str], Optional[SchemaPosition]]:
        if "additionalProperties" not in node:
            return None, None
        value = node["additionalProperties"]
        if value is False:
            return "forbid", None
        if not isinstance(value, Mapping) or not value:
            return "allow", None
        return "allow", self._visit(position.child("additionalProperties"))

    def _build_fields(
        self,
        entries: list[tuple[str, SchemaPosition]],
        required: set[str],
    ) -> tuple[FieldDescriptor, ...]:
        used: set[str] = set()
        fields: list[FieldDescriptor] = []
        for wire_name, prop_position in entries:
            self._visit(prop_position)
            prop_node = self._graph.node_at(prop_position)
            if not isinstance(prop_node, Mapping):
                raise ResolveError(f"Property schema at {prop_position} must be an object")
            target_node = self._ref_target(prop_position, prop_node)

            explicit_name = prop_node.get("x-python-name")
            if isinstance(explicit_name, str) and explicit_name.isidentifier():
                name = explicit_name
                used.add(name)
            else:
                name = python_field_name(wire_name, used)

            read_only = prop_node.get("readOnly") is True or target_node.get("readOnly") is True
            is_required = wire_name in required
            if read_only and is_required and self._compat.old_required_read_only:
                is_required = False

            fields.append(
                FieldDescriptor(
                    name=name,
                    wire_name=wire_name,
                    type_position=prop_position,
                    required=is_required,
                    read_only=read_only,
                    description=string_or_none(prop_node.get("description"))
                    or string_or_none(target_node.get("description")),
                    has_default="default" in prop_node,
                    default=prop_node.get("default"),
                    skip_optional=prop_node.get("x-python-type-skip-optional") is True,
                )
            )
        return tuple(fields)

    def _ref_target(self, position: SchemaPosition, node: JSONObject) -> JSONObject:
        ref = node.get("$ref")
        if not isinstance(ref, str):
            return node
        target = parse_ref(ref, base=position.source)
        if not self._imports.is_local(target.source):
            return {}
        target_node = self._graph.node_at(target)
        return target_node if isinstance(target_node, Mapping) else {}

    def _build_all_of(
        self,
        position: SchemaPosition,
        node: JSONObject,
        *,
        nullable: bool,
        description: Optional[str],
    ) -> TypeDescriptor:
        if not isinstance(node.get("allOf"), list):
            raise ResolveError(f"allOf at {position} must be a list")
        if self._compat.old_merge_schemas:
            return self._build_all_of_with_bases(
                position, node, nullable=nullable, description=description
            )

        parts = _AllOfParts()
        self._collect_all_of(position, node, parts, seen=frozenset({position}))
        opaque = self._opaque_all_of(position, parts, has_bases=False)
        if opaque is not None:
            return replace(opaque, nullable=nullable or opaque.nullable, description=description)

        entries = list(parts.fields.items())
        return ObjectType(
            position,
            fields=self._build_fields(entries, parts.required),
            extra=parts.extra,
            extra_values=parts.extra_values,
            merged_from=tuple(parts.merged_from),
            nullable=nullable,
            description=description,
        )

    def _build_all_of_with_bases(
        self,
        position: SchemaPosition,
        node: JSONObject,
        *,
        nullable: bool,
        description: Optional[str],
    ) -> TypeDescriptor:
        bases: list[SchemaPosition] = []
        parts = _AllOfParts()
        members = node["allOf"]
        for index, member in enumerate(members):
            member_position = position.child("allOf", index)
            if not isinstance(member, Mapping):
                raise ResolveError(f"allOf member at {member_position} must be an object")
            base = self._base_class_target(member_position, member)
            if base is not None:
                bases.append(base)
                continue
            self._collect_member(member_position, member, parts, seen=frozenset({position}))
        self._collect_own_properties(position, node, parts)

        opaque = self._opaque_all_of(position, parts, has_bases=bool(bases))
        if opaque is not None:
            return replace(opaque, nullable=nullable or opaque.nullable, description=description)

        entries = list(parts.fields.items())
        return ObjectType(
            position,
            fields=self._build_fields(entries, parts.required),
            bases=tuple(bases),
            extra=parts.extra,
            extra_values=parts.extra_values,
            merged_from=tuple(parts.merged_from),
            nullable=nullable,
            description=description,
        )

    def _base_class_target(
        self, position: SchemaPosition, member: JSONObject
    ) -> Optional[SchemaPosition]:
        ref = member.get("$ref")
        if not isinstance(ref, str):
            return None
        target = parse_ref(ref, base=position.source)
        if not self._imports.is_local(target.source):
            return None
        target_node = self._graph.node_at(target)
        if not isinstance(target_node, Mapping) or not is_object_schema(target_node):
            return None
        self._visit(target, declare=True)
        if isinstance(self._descriptors.get(target), ObjectType) or target in self._pending:
            return target
        return None

    def _opaque_all_of(
        self,
        position: SchemaPosition,
        parts: _AllOfParts,
        *,
        has_bases: bool,
    ) -> Optional[AliasType]:
        if not parts.opaque:
            return None
        if len(parts.opaque) == 1 and not parts.fields and not has_bases:
            target = self._visit(parts.opaque[0])
            return AliasType(position, target=target)
        joined = ", ".join(str(item) for item in parts.opaque)
        raise ResolveError(f"allOf at {position} combines non-object schemas: {joined}")

    def _collect_all_of(
        self,
        position: SchemaPosition,
        node: JSONObject,
        parts: _AllOfParts,
        *,
        seen: frozenset[SchemaPosition],
    ) -> None:
        for index, member in enumerate(node.get("allOf") or ()):
            member_position = position.child("allOf", index)
            if not isinstance(member, Mapping):
                raise ResolveError(f"allOf member at {member_position} must be an object")
            self._collect_member(member_position, member, parts, seen=seen)
        self._collect_own_properties(position, node, parts)

    def _collect_member(
        self,
        position: SchemaPosition,
        member: JSONObject,
        parts: _AllOfParts,
        *,
        seen: frozenset[SchemaPosition],
    ) -> None:
        ref = member.get("$ref")
        if isinstance(ref, str):
            target = parse_ref(ref, base=position.source)
            if not self._imports.is_local(target.source):
                parts.opaque.append(position)
                return
            if target in seen:
                raise ResolveError(f"Circular allOf reference {ref!r} at {position}")
            target_node = self._graph.node_at(target)
            if not isinstance(target_node, Mapping) or not _is_mergeable(target_node):
                parts.opaque.append(position)
                return
            # Merged components stay declared, and reachable for pruning.
            self._visit(target, declare=True)
            if target not in parts.merged_from:
                parts.merged_from.append(target)
            self._collect_all_of(target, target_node, parts, seen=seen | {target})
            return
        if not _is_mergeable(member):
            parts.opaque.append(position)
            return
        self._collect_all_of(position, member, parts, seen=seen)

    def _collect_own_properties(
        self, position: SchemaPosition, node: JSONObject, parts: _AllOfParts
    ) -> None:
        properties = node.get("properties")
        if isinstance(properties, Mapping):
            for name in properties:
                parts.fields.pop(name, None)
                parts.fields[name] = position.child("properties", name)
        parts.required.update(_required_names(node))
        if "additionalProperties" in node:
            parts.extra, parts.extra_values = self._additional_properties(position, node)

    def _build_union(
        self,
        position: SchemaPosition,
        node: JSONObject,
        composition: str,
        *,
        nullable: bool,
        description: Optional[str],
    ) -> TypeDescriptor:
        raw_members = node.get(composition)
        if not isinstance(raw_members, list) or not raw_members:
            raise ResolveError(f"{composition} at {position} must be a non-empty list")
        if isinstance(node.get("properties"), Mapping):
            self._warnings.append(
                f"Schema at {position} declares properties alongside {composition}; "
                "the properties are ignored"
            )

        property_name, mapping = _discriminator(node)
        mapped_values: dict[SchemaPosition, list[str]] = {}
        for value, ref in mapping.items():
            mapped_values.setdefault(parse_ref(ref, base=position.source), []).append(value)

        members: list[UnionMember] = []
        for index, member in enumerate(raw_members):
            member_position = position.child(composition, index)
            if not isinstance(member, Mapping):
                raise ResolveError(f"{composition} member at {member_position} must be an object")
            if _is_null_schema(member):
                nullable = True
                continue
            self._visit(member_position)
            values: tuple[str, ...] = ()
            ref = member.get("$ref")
            if property_name and isinstance(ref, str):
                target = parse_ref(ref, base=position.source)
                values = tuple(mapped_values.get(target, ()))
                if not values:
                    values = (target.tokens()[-1],) if target.tokens() else ()
            members.append(UnionMember(member_position, discriminator_values=values))

        if len(members) == 1 and not property_name:
            return AliasType(
                position, target=members[0].position, nullable=nullable, description=description
            )
        return UnionType(
            position,
            members=tuple(members),
            composition=composition,
            discriminator=property_name,
            nullable=nullable,
            description=description,
        )

    def _build_enum(
        self,
        position: SchemaPosition,
        node: JSONObject,
        *,
        nullable: bool,
        description: Optional[str],
    ) -> EnumType:
        raw_values = node.get("enum")
        if not isinstance(raw_values, list) or not raw_values:
            raise ResolveError(f"enum at {position} must be a non-empty list")
        if any(value is None for value in raw_values):
            nullable = True
        values = tuple(dict.fromkeys(value for value in raw_values if value is not None))

        var_names: tuple[str, ...] = ()
        for key in ("x-enum-varnames", "x-enumNames"):
            raw_names = node.get(key)
            if isinstance(raw_names, list) and len(raw_names) == len(values):
                var_names = tuple(str(item) for item in raw_names)
                break

        return EnumType(
            position,
            kind=enum_kind(node, values),
            values=values,
            var_names=var_names,
            nullable=nullable,
            description=description,
        )

    def _record_python_import(self, position: SchemaPosition, raw: JSONValue) -> None:
        if raw is None:
            return
        if isinstance(raw, str):
            python_import = PythonImport(module=raw)
        elif isinstance(raw, Mapping) and isinstance(raw.get("module"), str):
            name = raw.get("name")
            alias = raw.get("alias")
            python_import = PythonImport(
                module=raw["module"],
                name=name if isinstance(name, str) else None,
                alias=alias if isinstance(alias, str) else None,
            )
        else:
            raise ResolveError(f"Invalid x-python-type-import at {position}")
        if python_import not in self._python_imports:
            self._python_imports.append(python_import)

    def _finalize(self) -> TypeModel:
        registry = NameRegistry(reserved=self._reserved)
        for position, descriptor in self._descriptors.items():
            if not descriptor.declared or position in self._excluded:
                continue
            candidate, priority = self._candidate_name(position, descriptor)
            registry.request(position, candidate, priority=priority, order=str(position))

        for position, name in registry.assign().items():
            self._descriptors[position] = replace(self._descriptors[position], name=name)

        type_names = {
            descriptor.name
            for descriptor in self._descriptors.values()
            if descriptor.name is not None
        }
        for position, descriptor in list(self._descriptors.items()):
            if isinstance(descriptor, EnumType):
                self._descriptors[position] = replace(
                    descriptor, members=self._enum_members(descriptor, type_names)
                )
            elif isinstance(descriptor, UnionType):
                self._descriptors[position] = replace(
                    descriptor, members=self._union_accessors(descriptor)
                )

        self._check_alias_cycles()
        return TypeModel(
            self._descriptors,
            python_imports=self._python_imports,
            excluded=self._excluded,
            warnings=self._warnings,
        )

    def _enum_members(self, descriptor: EnumType, type_names: set[str]) -> tuple[EnumMember, ...]:
        if descriptor.var_names:
            names = [sanitize_identifier(item, lowercase=False) for item in descriptor.var_names]
        else:
            names = sanitize_enum_names(descriptor.values)
        prefix = self._compat.always_prefix_enum_values or any(
            name in type_names for name in names
        )
        if prefix and descriptor.name:
            names = [f"{descriptor.name}{name}" for name in names]
        return tuple(
            EnumMember(name=name, value=value)
            for name, value in zip(names, descriptor.values, strict=True)
        )

    def _union_accessors(self, descriptor: UnionType) -> tuple[UnionMember, ...]:
        used: set[str] = set()
        members: list[UnionMember] = []
        for index, member in enumerate(descriptor.members):
            accessor = to_snake_case(self._member_label(member.position) or f"member{index}")
            if accessor in used:
                accessor = f"{accessor}{index}"
            used.add(accessor)
            members.append(replace(member, accessor=accessor))
        return tuple(members)

    def _member_label(self, position: SchemaPosition) -> Optional[str]:
        descriptor = self._descriptors[position]
        seen: set[SchemaPosition] = set()
        while True:
            if descriptor.declared and descriptor.name:
                return descriptor.name
            if isinstance(descriptor, ExternalRefType):
                return descriptor.type_name
            if isinstance(descriptor, AliasType) and descriptor.target not in seen:
                seen.add(descriptor.target)
                descriptor = self._descriptors[descriptor.target]
                continue
            if isinstance(descriptor, PrimitiveType):
                return "_".join(descriptor.kinds)
            if isinstance(descriptor, ArrayType):
                return "list"
            if isinstance(descriptor, MapType):
                return "map"
            return None

    def _check_alias_cycles(self) -> None:
        for position, descriptor in self._descriptors.items():
            seen = {position}
            while isinstance(descriptor, AliasType):
                if descriptor.target in seen:
                    raise ResolveError(f"Circular type alias at {position}")
                seen.add(descriptor.target)
                descriptor = self._descriptors[descriptor.target]

    def _candidate_name(
        self, position: SchemaPosition, descriptor: TypeDescriptor
    ) -> tuple[str, int]:
        tokens = position.tokens()
        base, rest, priority = self._candidate_root(tokens)
        name = to_pascal_case(base + _suffix(rest)) or "Model"
        if self._compat.old_enum_conflicts and rest:
            if isinstance(descriptor, EnumType):
                name = f"{name}Enum"
            elif isinstance(descriptor, UnionType):
                name = f"{name}Union"
        return name, priority

    def _candidate_root(self, tokens: tuple[str, ...]) -> tuple[str, tuple[str, ...], int]:
        if len(tokens) >= 3 and tokens[0] == "components":
            priority = 0 if tokens[1] == "schemas" else 1
            return to_pascal_case(tokens[2]), tokens[3:], priority

        if len(tokens) >= 3 and tokens[0] == "paths" and tokens[2] in _HTTP_METHODS:
            operation_id = self._operation_ids.get(tokens[:3])
            if operation_id is None:
                operation_id = to_pascal_case(
                    f"{tokens[2]}_{path_to_endpoint_name(tokens[1])}"
                )
            return operation_id + self._operation_part(tokens[:3], tokens[3:]), (), 2

        if len(tokens) >= 4 and tokens[0] == "paths" and tokens[2] == "parameters":
            prefix = to_pascal_case(path_to_endpoint_name(tokens[1]))
            return prefix + self._operation_part(tokens[:2], tokens[2:]), (), 2

        last = next((token for token in reversed(tokens) if not token.isdigit()), "Model")
        return to_pascal_case(last), (), 3

    def _operation_part(self, prefix: tuple[str, ...], tokens: tuple[str, ...]) -> str:
        if len(tokens) >= 2 and tokens[0] == "parameters":
            param_position = _ROOT.child(*prefix, "parameters", tokens[1])
            _, param = follow_component(self._graph, param_position)
            name = param.get("name") if isinstance(param, Mapping) else None
            label = to_pascal_case(name) if isinstance(name, str) else tokens[1]
            return "Params" + label + _suffix(tokens[2:])
        if len(tokens) >= 4 and tokens[0] == "requestBody" and tokens[1] == "content":
            return content_type_label(tokens[2]) + "Body" + _suffix(tokens[3:])
        if len(tokens) >= 5 and tokens[0] == "responses" and tokens[2] == "content":
            status = to_pascal_case(tokens[1]).removeprefix("N")
            label = content_type_label(tokens[3])
            return status + label + "Response" + _suffix(tokens[4:])
        return _suffix(tokens)


def _suffix(tokens: tuple[str, ...]) -> str:
    parts: list[str] = []
    index = 0
    while index < len(tokens):
        token = tokens[index]
        following = tokens[index + 1] if index + 1 < len(tokens) else None
        if token == "properties" and following is not None:
            parts.append(to_pascal_case(following))
            index += 2
        elif token == "items":
            parts.append("Item")
            index += 1
        elif token == "allOf":
            index += 2
        elif token in ("oneOf", "anyOf") and following is not None:
            parts.append(f"{to_pascal_case(token)}{following}")
            index += 2
        elif token == "content":
            index += 2
        elif token == "schema":
            index += 1
        else:
            parts.append(to_pascal_case(token))
            index += 1
    return "".join(parts)


def _external_type_name(target: SchemaPosition) -> str:
    tokens = target.tokens()
    if not tokens:
        raise ResolveError(f"External reference {target} must point at a schema")
    return to_pascal_case(tokens[-1])


def _required_names(node: JSONObject) -> set[str]:
    required = node.get("required")
    if not isinstance(required, list):
        return set()
    return {item for item in required if isinstance(item, str)}


def _is_mergeable(node: JSONObject) -> bool:
    return "$ref" in node or is_object_schema(node) or is_constraint_only(node)


def _is_null_schema(node: JSONObject) -> bool:
    return node.get("type") == "null" and len(node) == 1


def _discriminator(node: JSONObject) -> tuple[Optional[str], Mapping[str, str]]:
    raw = node.get("discriminator")
    if not isinstance(raw, Mapping):
        return None, {}
    property_name = raw.get("propertyName")
    mapping = raw.get("mapping")
    return (
        property_name if isinstance(property_name, str) else None,
        {
            key: value
            for key, value in (mapping.items() if isinstance(mapping, Mapping) else ())
            if isinstance(value, str)
        },
    )


def resolve_types(
    graph: SchemaGraph,
    *,
    operations: Iterable[OperationSpec] = (),
    compatibility: Optional[CompatibilityOptions] = None,
    import_map: Optional[ImportMap] = None,
    exclude_schemas: Iterable[str] = (),
    reserved_names: Iterable[str] = (),
) -> TypeModel:
    """Resolve ``graph`` into a :class:`TypeModel`.

    Args:
        graph (SchemaGraph): Loaded documents.
        operations (Iterable[OperationSpec]): Operations whose schemas are resolved.
        compatibility (Optional[CompatibilityOptions]): Legacy behavior switches.
        import_map (Optional[ImportMap]): External source to module mapping.
        exclude_schemas (Iterable[str]): Component schemas that are not generated.
        reserved_names (Iterable[str]): Names generated types must not take.

    Returns:
        TypeModel: Descriptors keyed by schema position.
    """
    return TypeResolver(
        graph,
        operations=operations,
        compatibility=compatibility,
        import_map=import_map,
        exclude_schemas=exclude_schemas,
        reserved_names=reserved_names,
    ).resolve()
