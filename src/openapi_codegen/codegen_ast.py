"""Type annotation rendering and AST-based import blocks for generated modules."""

from __future__ import annotations

import ast
from collections.abc import Iterable, Mapping
from typing import Optional

from .json_types import JSONValue
from .model_types import (
    AliasType,
    ArrayType,
    EnumType,
    ExternalRefType,
    MapType,
    ObjectType,
    PrimitiveType,
    PythonImport,
    SchemaPosition,
    TypeModel,
    UnionType,
)

RUNTIME_MODULE = "openapi_codegen.runtime"

_RUNTIME_NAMES: tuple[str, ...] = (
    "Int32",
    "Int64",
    "ParamLocation",
    "ParameterBindingError",
    "as_member",
    "bind_json_parameter",
    "bind_optional_parameter",
    "bind_path_parameter",
    "bind_query_parameter",
    "bind_styled_parameter",
    "decode_json",
    "decode_union",
    "decode_yaml",
    "encode_form",
    "join_url",
    "media_type",
    "merge_json",
    "raw_path_params",
    "style_json_param",
    "style_param",
    "to_json_value",
)

_TYPING_NAMES = ("Annotated", "Any", "ClassVar", "Literal", "Optional", "Protocol", "Union")
_ABC_NAMES = ("Awaitable", "Callable", "Iterable", "Mapping", "Sequence")
_PYDANTIC_NAMES = (
    "Base64Bytes",
    "BaseModel",
    "ConfigDict",
    "Field",
    "RootModel",
    "TypeAdapter",
    "ValidationError",
)
_MODULE_NAMES = ("base64", "datetime", "functools", "gzip", "json", "posixpath", "uuid", "httpx")

KNOWN_IMPORTS: Mapping[str, PythonImport] = {
    **{name: PythonImport("typing", name) for name in _TYPING_NAMES},
    **{name: PythonImport("collections.abc", name) for name in _ABC_NAMES},
    **{name: PythonImport("pydantic", name) for name in _PYDANTIC_NAMES},
    **{name: PythonImport(RUNTIME_MODULE, name) for name in _RUNTIME_NAMES},
    **{name: PythonImport(name) for name in _MODULE_NAMES},
    "Enum": PythonImport("enum", "Enum"),
    "dataclass": PythonImport("dataclasses", "dataclass"),
}

# Roots of ``package.module.attribute`` chains that are imported by module.
_QUALIFIED_ROOTS = frozenset({"flask", "starlette", "aiohttp"})
# Submodules that are not imported by their package; other chains import the root.
_QUALIFIED_MODULES = frozenset(
    {
        "flask.typing",
        "starlette.exceptions",
        "starlette.requests",
        "starlette.responses",
        "starlette.routing",
        "aiohttp.web",
    }
)

RESERVED_TYPE_NAMES = frozenset(
    name for name in KNOWN_IMPORTS if name[:1].isupper()
) | frozenset(
    {
        "Endpoint",
        "Handler",
        "Middleware",
        "RequestEditor",
        "ServerInterface",
        "ServerInterfaceWrapper",
        "SpecSource",
    }
)

_PRIMITIVE_ANNOTATIONS: Mapping[str, str] = {
    "integer": "int",
    "int32": "Int32",
    "int64": "Int64",
    "number": "float",
    "float": "float",
    "double": "float",
    "string": "str",
    "date": "datetime.date",
    "date-time": "datetime.datetime",
    "uuid": "uuid.UUID",
    "binary": "bytes",
    "byte": "Base64Bytes",
    "boolean": "bool",
    "any": "Any",
}


class TypeRenderer:
    """Render python annotations for positions of a :class:`TypeModel`."""

    def __init__(self, model: TypeModel) -> None:
        self._model = model

    def annotation(self, position: Optional[SchemaPosition], *, optional: bool = False) -> str:
        """Return the annotation for ``position``.

        Args:
            position (Optional[SchemaPosition]): Position to render; ``None`` is ``Any``.
            optional (bool): Wrap the result in ``Optional`` even if not nullable.

        Returns:
            str: Python annotation source.
        """
        if position is None:
            return "Any"
        text = self.base_annotation(position)
        if (optional or self._model.is_nullable(position)) and text != "Any":
            return f"Optional[{text}]"
        return text

    def base_annotation(self, position: SchemaPosition) -> str:
        """Return the annotation for ``position`` without nullability."""
        descriptor = self._model[position]
        if descriptor.declared and descriptor.name and position not in self._model.excluded:
            return descriptor.name
        return self._structure(position)

    def definition(self, position: SchemaPosition) -> str:
        """Return the right-hand side declaring the type at ``position``."""
        text = self._structure(position)
        if self._model.is_nullable(position) and text != "Any":
            return f"Optional[{text}]"
        return text

    def _structure(self, position: SchemaPosition) -> str:
        descriptor = self._model[position]
        if isinstance(descriptor, AliasType):
            return self.base_annotation(descriptor.target)
        if isinstance(descriptor, ExternalRefType):
            if descriptor.import_alias:
                return f"{descriptor.import_alias}.{descriptor.type_name}"
            return descriptor.type_name
        if isinstance(descriptor, PrimitiveType):
            return self._primitive(descriptor)
        if isinstance(descriptor, ArrayType):
            return f"list[{self.annotation(descriptor.items)}]"
        if isinstance(descriptor, MapType):
            return f"dict[str, {self.annotation(descriptor.values)}]"
        if isinstance(descriptor, (ObjectType, EnumType, UnionType)):
            # Undeclared composites only occur when a model was built by hand.
            return "dict[str, Any]" if isinstance(descriptor, ObjectType) else "Any"
        raise TypeError(f"Unsupported descriptor at {position}: {descriptor!r}")

    def _primitive(self, descriptor: PrimitiveType) -> str:
        if descriptor.python_type:
            return descriptor.python_type
        if descriptor.literal_values:
            values = ", ".join(python_literal(value) for value in descriptor.literal_values)
            return f"Literal[{values}]"
        rendered = [_PRIMITIVE_ANNOTATIONS.get(kind, "Any") for kind in descriptor.kinds]
        unique = list(dict.fromkeys(rendered))
        if "Any" in unique:
            return "Any"
        if len(unique) == 1:
            return unique[0]
        return f"Union[{', '.join(unique)}]"


def python_literal(value: JSONValue) -> str:
    """Render a JSON value as python source."""
    return ast.unparse(ast.parse(repr(value), mode="eval").body)


def _extract_loaded_names(tree: ast.AST) -> set[str]:
    loaded_names: set[str] = set()
    for node in ast.walk(tree):
        if isinstance(node, ast.Name) and isinstance(node.ctx, ast.Load):
            loaded_names.add(node.id)
    return loaded_names


def _extract_qualified_modules(tree: ast.AST) -> set[str]:
    inner = {
        id(node.value)
        for node in ast.walk(tree)
        if isinstance(node, ast.Attribute) and isinstance(node.value, ast.Attribute)
    }
    modules: set[str] = set()
    for node in ast.walk(tree):
        if not isinstance(node, ast.Attribute) or id(node) in inner:
            continue
        chain: list[str] = []
        current: ast.expr = node
        while isinstance(current, ast.Attribute):
            chain.append(current.attr)
            current = current.value
        if not isinstance(current, ast.Name) or current.id not in _QUALIFIED_ROOTS:
            continue
        chain.append(current.id)
        chain.reverse()
        module = chain[0]
        for end in range(len(chain) - 1, 1, -1):
            candidate = ".".join(chain[:end])
            if candidate in _QUALIFIED_MODULES:
                module = candidate
                break
        modules.add(module)
    return modules


def _defined_names(tree: ast.Module) -> set[str]:
    names: set[str] = set()
    for node in tree.body:
        if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef)):
            names.add(node.name)
        elif isinstance(node, ast.TypeAlias) and isinstance(node.name, ast.Name):
            names.add(node.name.id)
        elif isinstance(node, ast.Assign):
            names.update(
                target.id for target in node.targets if isinstance(target, ast.Name)
            )
        elif isinstance(node, ast.AnnAssign) and isinstance(node.target, ast.Name):
            names.add(node.target.id)
    return names


def defined_names(code: str) -> set[str]:
    """Return the top-level names a module body defines."""
    return _defined_names(ast.parse(code))


def build_import_block(
    code: str,
    *,
    extra_imports: Iterable[PythonImport] = (),
    always_imports: Iterable[PythonImport] = (),
    model_names: Iterable[str] = (),
    models_module: Optional[str] = None,
) -> str:
    """Compute the import statements ``code`` needs.

    Names the code loads but does not define are looked up in the known import
    table, in ``extra_imports`` (by bound name) and, when the models target is
    written to another module, in ``model_names``.

    Args:
        code (str): Module body to analyze.
        extra_imports (Iterable[PythonImport]): Imports added when their bound name is used.
        always_imports (Iterable[PythonImport]): Imports added unconditionally.
        model_names (Iterable[str]): Names defined by the models module.
        models_module (Optional[str]): Dotted path of the models module.

    Returns:
        str: Import statements, one per line.
    """
    tree = ast.parse(code)
    used = _extract_loaded_names(tree) - _defined_names(tree)
    extra_by_name = {item.bound_name: item for item in extra_imports}
    external_models = set(model_names) if models_module else set()

    imports: list[PythonImport] = []
    for name in sorted(used):
        if name in extra_by_name:
            imports.append(extra_by_name[name])
        elif name in external_models:
            imports.append(PythonImport(models_module or "", name))
        elif name in KNOWN_IMPORTS:
            imports.append(KNOWN_IMPORTS[name])
    imports.extend(PythonImport(module) for module in sorted(_extract_qualified_modules(tree)))
    imports.extend(always_imports)
    return render_imports(imports)


def render_imports(imports: Iterable[PythonImport]) -> str:
    """Render imports as statements, grouping ``from`` imports per module."""
    plain: list[ast.stmt] = []
    grouped: dict[str, list[ast.alias]] = {}
    seen: set[PythonImport] = set()
    for item in imports:
        if item in seen:
            continue
        seen.add(item)
        if item.name is None:
            plain.append(ast.Import(names=[ast.alias(name=item.module, asname=item.alias)]))
        else:
            grouped.setdefault(item.module, []).append(ast.alias(name=item.name, asname=item.alias))

    body: list[ast.stmt] = list(plain)
    for module in sorted(grouped):
        body.append(ast.ImportFrom(module=module, names=grouped[module], level=0))
    return _unparse(body)


def merge_import_blocks(existing: str, addition: str) -> str:
    """Merge the import statements of ``addition`` into ``existing``.

    Non-import statements of ``existing`` (the module docstring) are kept in
    place; ``from`` imports of a module already imported gain the new names.
    """
    base = ast.parse(existing).body
    merged: list[ast.stmt] = []
    from_imports: dict[tuple[Optional[str], int], ast.ImportFrom] = {}
    plain_imports: set[tuple[str, Optional[str]]] = set()

    def _add(statement: ast.stmt) -> None:
        if isinstance(statement, ast.ImportFrom):
            key = (statement.module, statement.level)
            target = from_imports.get(key)
            if target is None:
                target = ast.ImportFrom(module=statement.module, names=[], level=statement.level)
                from_imports[key] = target
                merged.append(target)
            present = {(alias.name, alias.asname) for alias in target.names}
            for alias in statement.names:
                if (alias.name, alias.asname) not in present:
                    target.names.append(ast.alias(name=alias.name, asname=alias.asname))
                    present.add((alias.name, alias.asname))
        elif isinstance(statement, ast.Import):
            for alias in statement.names:
                key = (alias.name, alias.asname)
                if key not in plain_imports:
                    plain_imports.add(key)
                    merged.append(ast.Import(names=[ast.alias(name=alias.name, asname=alias.asname)]))
        else:
            merged.append(statement)

    for statement in base:
        _add(statement)
    for statement in ast.parse(addition).body:
        if isinstance(statement, (ast.Import, ast.ImportFrom)):
            _add(statement)
    return _unparse(merged)


def _unparse(body: list[ast.stmt]) -> str:
    if not body:
        return ""
    module = ast.Module(body=body, type_ignores=[])
    ast.fix_missing_locations(module)
    return ast.unparse(module) + "\n"
