"""Tests for the template renderer and user template overrides."""

from __future__ import annotations

from pathlib import Path

import pytest

from openapi_codegen.rendering import (
    TemplateError,
    TemplateRenderer,
    load_template_directory,
    resolve_user_templates,
    template_name,
)


def test_template_name_adds_suffix() -> None:
    assert template_name("client") == "client.py.j2"
    assert template_name("client.py.j2") == "client.py.j2"


def test_overrides_take_precedence_over_builtin_templates() -> None:
    """A user template replaces the built-in template of the same name."""
    renderer = TemplateRenderer({"typedef.py.j2": "# custom {{ name }}\n"})
    assert renderer.render("typedef", name="Pet") == "# custom Pet\n"


def test_filters() -> None:
    """Templates can render literals, docstrings and comments."""
    renderer = TemplateRenderer(
        {"filters.py.j2": "{{ value | pyrepr }}|{{ text | docstring }}|{{ text | comment }}"}
    )
    rendered = renderer.render("filters", value={"a": None}, text='Say """hi"""')
    assert rendered == "{'a': None}|\"\"\"Say \\\"\\\"\\\"hi\\\"\\\"\\\"\"\"\"|Say \"\"\"hi\"\"\""


def test_undefined_variables_fail_rendering() -> None:
    """Templates are strict about missing context."""
    renderer = TemplateRenderer({"broken.py.j2": "{{ missing }}"})
    with pytest.raises(TemplateError, match="Failed to render template broken"):
        renderer.render("broken")


def test_resolve_user_templates_reads_files_relative_to_base_dir(tmp_path: Path) -> None:
    """Values naming files are read; other values are template text."""
    (tmp_path / "typedef.txt").write_text("from file\n", encoding="utf-8")
    resolved = resolve_user_templates(
        {"typedef": "typedef.txt", "enum.py.j2": "inline {{ name }}"},
        base_dir=tmp_path,
    )
    assert resolved == {"typedef.py.j2": "from file\n", "enum.py.j2": "inline {{ name }}"}


def test_load_template_directory(tmp_path: Path) -> None:
    """Only template files are loaded from a directory."""
    (tmp_path / "client.py.j2").write_text("client\n", encoding="utf-8")
    (tmp_path / "notes.txt").write_text("ignored\n", encoding="utf-8")
    assert load_template_directory(tmp_path) == {"client.py.j2": "client\n"}
    with pytest.raises(TemplateError, match="Template directory does not exist"):
        load_template_directory(tmp_path / "missing")
