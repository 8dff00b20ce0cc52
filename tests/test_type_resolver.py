"""Tests for schema to type descriptor resolution."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest

from openapi_codegen.codegen_ast import TypeRenderer
from openapi_codegen.configuration import CompatibilityOptions
from openapi_codegen.loader import SpecDocument, load_openapi_document
from openapi_codegen.model_types import (
    AliasType,
    ArrayType,
    EnumType,
    ExternalRefType,
    MapType,
    ObjectType,
    PrimitiveType,
    PythonImport,
    SchemaPosition,
    TypeDescriptor,
    TypeModel,
    UnionType,
)
from openapi_codegen.operations import collect_operations
from openapi_codegen.refs import ImportMap, ResolveError
from openapi_codegen.type_resolver import resolve_types
from .fixture_helpers import fixture_dir, fixture_path

_COMPONENTS = SchemaPosition("", "/components/schemas")


def _resolve(path: Path, **kwargs: Any) -> TypeModel:
    document = load_openapi_document(path)
    operations, _ = collect_operations(document.graph)
    return resolve_types(document.graph, operations=operations, **kwargs)


def _resolve_text(text: str, **kwargs: Any) -> TypeModel:
    document = SpecDocument.from_text(text)
    operations, _ = collect_operations(document.graph)
    return resolve_types(document.graph, operations=operations, **kwargs)


def _named(model: TypeModel) -> dict[str, TypeDescriptor]:
    return {descriptor.name or "": descriptor for descriptor in model.declarations}


def _document(schemas: str) -> str:
    return (
        "openapi: 3.0.3\ninfo:\n  title: Inline\n  version: 1.0.0\npaths: {}\n"
        "components:\n  schemas:\n" + schemas
    )


def test_component_and_inline_names() -> None:
    """Components keep their names and inline declarations are named by location."""
    model = _resolve(fixture_path("compositions.yaml"))
    assert sorted(_named(model)) == [
        "BasePet",
        "Cat",
        "CatHuntingSkill",
        "Dog",
        "Owner",
        "OwnerContact",
        "OwnerStatus",
        "Pet",
        "Unused",
    ]


def test_all_of_merges_member_fields() -> None:
    """allOf members are merged into one object by default."""
    model = _resolve(fixture_path("compositions.yaml"))
    cat = _named(model)["Cat"]
    assert isinstance(cat, ObjectType)
    assert [item.name for item in cat.fields] == ["name", "pet_type", "hunting_skill"]
    assert [item.wire_name for item in cat.fields if item.required] == ["name", "petType"]
    assert cat.bases == ()
    assert cat.merged_from == (_COMPONENTS.child("BasePet"),)


def test_all_of_later_member_wins_field_collisions() -> None:
    """A property declared again by a later member takes that member's type."""
    model = _resolve_text(
        _document(
            "    Base:\n      type: object\n      required: [size]\n      properties:\n"
            "        size: {type: string}\n        name: {type: string}\n"
            "    Sized:\n      allOf:\n"
            "        - $ref: '#/components/schemas/Base'\n"
            "        - type: object\n          properties:\n            size: {type: integer}\n"
        )
    )
    sized = _named(model)["Sized"]
    assert isinstance(sized, ObjectType)
    fields = {item.wire_name: item for item in sized.fields}
    assert list(fields) == ["name", "size"]
    assert fields["size"].type_position == _COMPONENTS.child("Sized", "allOf", 1, "properties", "size")
    assert fields["size"].required is True
    assert TypeRenderer(model).annotation(fields["size"].type_position) == "int"


def test_all_of_with_old_merge_schemas_uses_base_classes() -> None:
    """With old-merge-schemas, component members become base classes."""
    model = _resolve(
        fixture_path("compositions.yaml"),
        compatibility=CompatibilityOptions(old_merge_schemas=True),
    )
    dog = _named(model)["Dog"]
    assert isinstance(dog, ObjectType)
    assert dog.bases == (_COMPONENTS.child("BasePet"),)
    assert [item.name for item in dog.fields] == ["pack_size"]


def test_discriminated_union() -> None:
    """Mapping entries give each member its discriminator values."""
    model = _resolve(fixture_path("compositions.yaml"))
    pet = _named(model)["Pet"]
    assert isinstance(pet, UnionType)
    assert pet.discriminator == "petType"
    assert [member.discriminator_values for member in pet.members] == [("cat",), ("dog",)]
    assert [member.accessor for member in pet.members] == ["cat", "dog"]


def test_union_without_mapping_uses_schema_names() -> None:
    """Without a mapping the referenced schema name is the discriminator value."""
    model = _resolve_text(
        _document(
            "    Shape:\n"
            "      oneOf:\n"
            "        - $ref: '#/components/schemas/Circle'\n"
            "        - $ref: '#/components/schemas/Square'\n"
            "      discriminator:\n"
            "        propertyName: kind\n"
            "    Circle:\n      type: object\n      properties:\n        r: {type: number}\n"
            "    Square:\n      type: object\n      properties:\n        side: {type: number}\n"
        )
    )
    shape = _named(model)["Shape"]
    assert isinstance(shape, UnionType)
    assert [member.discriminator_values for member in shape.members] == [("Circle",), ("Square",)]


def test_single_member_union_collapses_to_alias() -> None:
    """A nullable single reference is an alias, not a union."""
    model = _resolve_text(
        _document(
            "    Box:\n      type: object\n      properties:\n"
            "        item:\n          oneOf:\n"
            "            - $ref: '#/components/schemas/Item'\n"
            "            - type: 'null'\n"
            "    Item:\n      type: string\n"
        )
    )
    position = _COMPONENTS.child("Box", "properties", "item")
    assert isinstance(model[position], AliasType)
    assert model.is_nullable(position)


def test_enum_and_property_types() -> None:
    """Enums, formats, maps and nullability are resolved per property."""
    model = _resolve(fixture_path("compositions.yaml"))
    status = _named(model)["OwnerStatus"]
    assert isinstance(status, EnumType)
    assert [member.name for member in status.members] == ["Active", "Inactive", "Empty"]

    owner = _COMPONENTS.child("Owner", "properties")
    assert model[owner.child("id")] == PrimitiveType(owner.child("id"), kinds=("uuid",))
    assert isinstance(model[owner.child("labels")], MapType)
    assert model.is_nullable(owner.child("nickname"))
    assert isinstance(model[owner.child("status")], AliasType)


def test_nullable_enum_and_custom_python_type() -> None:
    """A null enum value makes the enum nullable; x-python-type is used verbatim."""
    model = _resolve_text(
        _document(
            "    Level:\n      type: string\n      enum: [low, high, null]\n"
            "    Price:\n      type: string\n"
            "      x-python-type: decimal.Decimal\n"
            "      x-python-type-import: decimal\n"
        )
    )
    level = _named(model)["Level"]
    assert isinstance(level, EnumType)
    assert level.nullable is True
    assert level.values == ("low", "high")
    price = _named(model)["Price"]
    assert isinstance(price, PrimitiveType)
    assert price.python_type == "decimal.Decimal"
    assert model.python_imports == (PythonImport("decimal"),)


def test_old_enum_conflicts_suffixes_inline_types() -> None:
    """old-enum-conflicts marks inline enums and unions by kind."""
    model = _resolve(
        fixture_path("compositions.yaml"),
        compatibility=CompatibilityOptions(old_enum_conflicts=True),
    )
    names = set(_named(model))
    assert {"CatHuntingSkillEnum", "OwnerContactUnion", "OwnerStatus"} <= names


def test_illegal_enum_values_get_distinct_prefixed_members() -> None:
    """Members colliding with a type name are prefixed with the enum's own name."""
    model = _resolve_text(
        _document(
            "    Bar:\n      type: string\n"
            "      enum: ['', Bar, Foo, 'Foo Bar', Foo-Bar, 1Foo, ' Foo', ' Foo ', _Foo_, '1']\n"
        )
    )
    bar = _named(model)["Bar"]
    assert isinstance(bar, EnumType)
    assert [(member.name, member.value) for member in bar.members] == [
        ("BarEmpty", ""),
        ("BarBar", "Bar"),
        ("BarFoo", "Foo"),
        ("BarFooBar", "Foo Bar"),
        ("BarFooBar1", "Foo-Bar"),
        ("BarN1Foo", "1Foo"),
        ("BarFoo1", " Foo"),
        ("BarFoo2", " Foo "),
        ("BarFoo3", "_Foo_"),
        ("BarN1", "1"),
    ]


_COLOR_DOCUMENT = _document("    Color:\n      type: string\n      enum: [red, green]\n")


@pytest.mark.parametrize(
    ("always_prefix", "expected"),
    [(False, ["Red", "Green"]), (True, ["ColorRed", "ColorGreen"])],
)
def test_always_prefix_enum_values(always_prefix: bool, expected: list[str]) -> None:
    model = _resolve_text(
        _COLOR_DOCUMENT,
        compatibility=CompatibilityOptions(always_prefix_enum_values=always_prefix),
    )
    color = _named(model)["Color"]
    assert isinstance(color, EnumType)
    assert [member.name for member in color.members] == expected


_READ_ONLY_DOCUMENT = _document(
    "    Record:\n      type: object\n      required: [id, label]\n      properties:\n"
    "        id: {type: integer, readOnly: true}\n        label: {type: string}\n"
)


@pytest.mark.parametrize(("old_required_read_only", "id_required"), [(False, True), (True, False)])
def test_old_required_read_only(old_required_read_only: bool, id_required: bool) -> None:
    """The legacy flag makes required readOnly properties optional."""
    model = _resolve_text(
        _READ_ONLY_DOCUMENT,
        compatibility=CompatibilityOptions(old_required_read_only=old_required_read_only),
    )
    record = _named(model)["Record"]
    assert isinstance(record, ObjectType)
    fields = {item.wire_name: item for item in record.fields}
    assert fields["id"].read_only is True
    assert fields["id"].required is id_required
    assert fields["label"].required is True


_LABELS_DOCUMENT = _document(
    "    Labels:\n      type: object\n      additionalProperties: {type: string}\n"
)


def test_additional_properties_only_object_flattens_to_map() -> None:
    model = _resolve_text(_LABELS_DOCUMENT)
    labels = _named(model)["Labels"]
    assert isinstance(labels, MapType)
    assert labels.values == _COMPONENTS.child("Labels", "additionalProperties")


def test_disable_flatten_additional_properties_keeps_object() -> None:
    """With flattening disabled the object is kept and allows extra values."""
    model = _resolve_text(
        _LABELS_DOCUMENT,
        compatibility=CompatibilityOptions(disable_flatten_additional_properties=True),
    )
    labels = _named(model)["Labels"]
    assert isinstance(labels, ObjectType)
    assert labels.fields == ()
    assert labels.extra == "allow"
    assert labels.extra_values == _COMPONENTS.child("Labels", "additionalProperties")


def test_resolving_twice_gives_identical_names() -> None:
    """Name assignment does not depend on earlier runs."""
    first = _resolve(fixture_path("compositions.yaml"))
    second = _resolve(fixture_path("compositions.yaml"))
    assert [(item.position, item.name) for item in first.declarations] == [
        (item.position, item.name) for item in second.declarations
    ]
    first_enums = {
        item.name: item.members for item in first.declarations if isinstance(item, EnumType)
    }
    second_enums = {
        item.name: item.members for item in second.declarations if isinstance(item, EnumType)
    }
    assert first_enums == second_enums


def test_reserved_names_are_not_taken() -> None:
    """Generated names avoid reserved identifiers."""
    model = _resolve(fixture_path("compositions.yaml"), reserved_names={"Pet"})
    assert "Pet1" in _named(model)
    assert "Pet" not in _named(model)


def test_excluded_schemas_are_any() -> None:
    """Excluded components are not declared and render as Any."""
    model = _resolve(fixture_path("compositions.yaml"), exclude_schemas=["Owner"])
    position = _COMPONENTS.child("Owner")
    assert "Owner" not in _named(model)
    assert position in model.excluded
    assert model[position] == PrimitiveType(position, kinds=("any",))


def test_pruned_model_keeps_reachable_positions() -> None:
    """Pruning keeps what the roots reach, including merged allOf components."""
    model = _resolve(fixture_path("compositions.yaml"))
    pruned = model.pruned([_COMPONENTS.child("Pet")])
    names = set(_named(pruned))
    assert {"Pet", "Cat", "Dog", "BasePet", "CatHuntingSkill"} <= names
    assert "Owner" not in names
    assert "Unused" not in names


def test_recursive_schema_resolves_through_names() -> None:
    """Self references become aliases of the declared type."""
    model = _resolve_text(
        _document(
            "    Node:\n      type: object\n      properties:\n"
            "        children:\n          type: array\n"
            "          items:\n            $ref: '#/components/schemas/Node'\n"
        )
    )
    items = model[_COMPONENTS.child("Node", "properties", "children", "items")]
    assert isinstance(items, AliasType)
    assert items.target == _COMPONENTS.child("Node")


def test_circular_aliases_are_rejected() -> None:
    """Aliases that only refer to each other cannot be generated."""
    with pytest.raises(ResolveError, match="Circular type alias"):
        _resolve_text(
            _document(
                "    A:\n      $ref: '#/components/schemas/B'\n"
                "    B:\n      $ref: '#/components/schemas/A'\n"
            )
        )


def test_resolution_warnings() -> None:
    """Untyped arrays and ignored properties are reported, not fatal."""
    model = _resolve_text(
        _document(
            "    Bag:\n      type: array\n"
            "    Mixed:\n      type: object\n"
            "      properties:\n        extra: {type: string}\n"
            "      oneOf:\n        - type: string\n        - type: integer\n"
        )
    )
    bag = _named(model)["Bag"]
    assert isinstance(bag, ArrayType)
    assert bag.items is None
    assert any("has no items" in warning for warning in model.warnings)
    assert any("properties are ignored" in warning for warning in model.warnings)


def test_external_references_follow_import_mapping() -> None:
    """Mapped sources become imports; ``-`` keeps the types local."""
    path = fixture_dir().parent / "external_refs" / "root.yaml"
    address = _COMPONENTS.child("User", "properties", "address")

    with pytest.raises(ResolveError, match="no import mapping for common.yaml"):
        _resolve(path)

    mapped = _resolve(path, import_map=ImportMap.from_mapping({"common.yaml": "shared.models"}))
    descriptor = mapped[address]
    assert isinstance(descriptor, ExternalRefType)
    assert descriptor.type_name == "Address"
    assert descriptor.import_alias == "external_ref0"

    local = _resolve(path, import_map=ImportMap.from_mapping({"common.yaml": "-"}))
    assert "Address" in _named(local)
