"""Tests for document loading and reference handling."""

from __future__ import annotations

from pathlib import Path

import pytest

from openapi_codegen.loader import OpenAPILoadError, SpecDocument, load_openapi_document
from openapi_codegen.model_types import SchemaPosition
from openapi_codegen.refs import ImportMap, ResolveError, join_source, parse_ref
from .fixture_helpers import fixture_dir

_MINIMAL = """
openapi: 3.0.3
info:
  title: Minimal
  version: 1.0.0
paths: {}
"""


def test_load_document_stringifies_status_keys() -> None:
    """Unquoted status codes are read as strings."""
    document = load_openapi_document(fixture_dir() / "parameters.yaml")
    operation = document.root["paths"]["/items/{itemId}/labels/{label}"]["get"]
    assert set(operation["responses"]) == {"200", "404", "5XX"}
    assert document.version == "3.0.3"


def test_load_document_collects_external_documents() -> None:
    """Relative references are loaded next to the root document."""
    document = load_openapi_document(fixture_dir().parent / "external_refs" / "root.yaml")
    assert document.graph.has_source("common.yaml")
    address = document.graph.node_at(
        SchemaPosition("common.yaml", "/components/schemas/Address")
    )
    assert "street" in address["properties"]


def test_from_text_uses_fetcher_for_external_documents() -> None:
    """A custom fetcher replaces filesystem and network access."""
    text = _MINIMAL.replace(
        "paths: {}",
        "paths: {}\ncomponents:\n  schemas:\n    Thing:\n      $ref: 'https://example.test/s.yaml#/Thing'",
    )
    requested: list[str] = []

    def _fetch(source: str) -> str:
        requested.append(source)
        return "Thing:\n  type: string\n"

    document = SpecDocument.from_text(text, fetch=_fetch)
    assert requested == ["https://example.test/s.yaml"]
    assert document.graph.node_at(SchemaPosition("https://example.test/s.yaml", "/Thing")) == {
        "type": "string"
    }


@pytest.mark.parametrize(
    ("text", "message"),
    [
        ("openapi: '2.0'\ninfo: {title: x, version: '1'}\npaths: {}\n", "Unsupported OpenAPI version"),
        ("info: {title: x, version: '1'}\n", "Missing or invalid 'openapi'"),
        ("- a\n- b\n", "must deserialize to a mapping"),
        ("openapi: [", "Failed to parse YAML"),
        ("openapi: 3.0.3\ninfo: {title: x}\npaths: {}\n", "schema validation failed"),
    ],
)
def test_invalid_documents_are_rejected(text: str, message: str) -> None:
    """Loading errors name the problem."""
    with pytest.raises(OpenAPILoadError, match=message):
        SpecDocument.from_text(text)


def test_to_json_is_compact() -> None:
    """The embedded form of the document is compact JSON."""
    document = SpecDocument.from_text(_MINIMAL)
    assert document.to_json().startswith('{"openapi":"3.0.3"')


def test_parse_ref_and_join_source() -> None:
    """Reference sources are relative to the referring document."""
    assert parse_ref("#/components/schemas/Pet", base="") == SchemaPosition(
        "", "/components/schemas/Pet"
    )
    assert join_source("", "common.yaml") == "common.yaml"
    assert join_source("specs/common.yaml", "../shared/types.yaml") == "shared/types.yaml"
    assert join_source("https://example.test/a/b.yaml", "c.yaml") == "https://example.test/a/c.yaml"
    with pytest.raises(ResolveError):
        parse_ref("common.yaml#Pet", base="")


def test_import_map_aliases_are_stable() -> None:
    """Aliases follow sorted source order and skip local sources."""
    import_map = ImportMap.from_mapping(
        {"z.yaml": "pkg.z", "a.yaml": "pkg.a", "local.yaml": "-"}
    )
    assert import_map.import_for("a.yaml").alias == "external_ref0"
    assert import_map.import_for("z.yaml").alias == "external_ref1"
    assert import_map.import_for("local.yaml") is None
    assert import_map.is_local("local.yaml")
    assert import_map.is_local("")
    assert not import_map.is_local("z.yaml")
