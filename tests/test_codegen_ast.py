"""Tests for annotation rendering and import block construction."""

from __future__ import annotations

from openapi_codegen.codegen_ast import (
    TypeRenderer,
    build_import_block,
    defined_names,
    merge_import_blocks,
    python_literal,
)
from openapi_codegen.loader import load_openapi_document
from openapi_codegen.model_types import PythonImport, SchemaPosition
from openapi_codegen.operations import collect_operations
from openapi_codegen.type_resolver import resolve_types
from .fixture_helpers import fixture_path

_OWNER = SchemaPosition("", "/components/schemas/Owner")


def _renderer() -> TypeRenderer:
    document = load_openapi_document(fixture_path("compositions.yaml"))
    operations, _ = collect_operations(document.graph)
    return TypeRenderer(resolve_types(document.graph, operations=operations))


def test_annotations_for_properties() -> None:
    """Declared types render by name, the rest structurally."""
    renderer = _renderer()
    properties = _OWNER.child("properties")
    assert renderer.annotation(properties.child("id")) == "uuid.UUID"
    assert renderer.annotation(properties.child("nickname")) == "Optional[str]"
    assert renderer.annotation(properties.child("status"), optional=True) == "Optional[OwnerStatus]"
    assert renderer.annotation(properties.child("labels")) == "dict[str, str]"
    assert renderer.annotation(properties.child("joined")) == "datetime.datetime"
    assert renderer.annotation(properties.child("contact")) == "OwnerContact"
    assert renderer.annotation(None) == "Any"


def test_definition_renders_structure_of_declared_types() -> None:
    """Definitions expand a declared alias to its target."""
    renderer = _renderer()
    items = SchemaPosition("", "/paths/~1pets/get/responses/200/content/application~1json/schema")
    assert renderer.annotation(items) == "list[Pet]"
    assert renderer.definition(_OWNER.child("properties", "status")) == "OwnerStatus"


def test_python_literal() -> None:
    """JSON values render as python source."""
    assert python_literal("it's") == '"it\'s"'
    assert python_literal({"a": [1, None, True]}) == "{'a': [1, None, True]}"


def test_build_import_block_from_loaded_names() -> None:
    """Only names the code loads and does not define are imported."""
    code = "\n".join(
        [
            "class Pet(BaseModel):",
            "    born: Optional[datetime.date] = None",
            "    owner: Owner",
            "def view() -> flask.typing.ResponseReturnValue:",
            "    return flask.request.args.get('x')",
            "x = external_ref0.Address",
        ]
    )
    block = build_import_block(
        code,
        extra_imports=[PythonImport("shared.models", alias="external_ref0"), PythonImport("unused")],
        always_imports=[PythonImport("decimal", "Decimal")],
        model_names={"Owner", "Pet"},
        models_module="api.models",
    )
    lines = block.splitlines()
    assert "import datetime" in lines
    assert "import shared.models as external_ref0" in lines
    assert "import flask" in lines
    assert "import flask.typing" in lines
    assert "from api.models import Owner" in lines
    assert "from decimal import Decimal" in lines
    assert "from pydantic import BaseModel" in lines
    assert "from typing import Optional" in lines
    assert not any("unused" in line or "flask.request" in line for line in lines)


def test_model_names_are_not_imported_into_the_models_module() -> None:
    """Without a separate models module, model names are local."""
    block = build_import_block("x: Owner", model_names={"Owner"}, models_module=None)
    assert block == ""


def test_merge_import_blocks() -> None:
    """Merged blocks keep the docstring and combine from-imports."""
    existing = '"""Doc."""\nfrom __future__ import annotations\nimport json\nfrom typing import Any\n'
    addition = '"""Other."""\nfrom __future__ import annotations\nimport json\nfrom typing import Optional\nimport httpx\n'
    merged = merge_import_blocks(existing, addition)
    assert merged.splitlines() == [
        "\"\"\"Doc.\"\"\"",
        "from __future__ import annotations",
        "import json",
        "from typing import Any, Optional",
        "import httpx",
    ]


def test_defined_names() -> None:
    """Classes, functions, assignments and type aliases are collected."""
    code = "class A: pass\ndef b(): pass\nc = 1\nd: int = 2\ntype E = int\nif True:\n    f = 3\n"
    assert defined_names(code) == {"A", "b", "c", "d", "E"}
