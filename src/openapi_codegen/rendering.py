"""Jinja2 template set with user overrides given as text, file paths or URLs."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Optional

import httpx
from jinja2 import (
    ChoiceLoader,
    DictLoader,
    Environment,
    FileSystemLoader,
    StrictUndefined,
    TemplateError as JinjaTemplateError,
)

from .codegen_ast import python_literal
from .refs import is_url

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).parent / "templates"
TEMPLATE_SUFFIX = ".py.j2"


class TemplateError(RuntimeError):
    """Raised when a template cannot be loaded or rendered."""


def template_name(name: str) -> str:
    """Normalize a user supplied template name to its file name."""
    return name if name.endswith(".j2") else f"{name}{TEMPLATE_SUFFIX}"


def resolve_user_templates(
    overrides: Mapping[str, str],
    *,
    base_dir: Optional[Path] = None,
) -> dict[str, str]:
    """Turn override values into template text.

    A value that is an http(s) URL is fetched, a value naming an existing file
    is read, anything else is used as the template text itself.

    Args:
        overrides (Mapping[str, str]): Template name to text, path or URL.
        base_dir (Optional[Path]): Directory relative paths are resolved against.

    Returns:
        dict[str, str]: Template file name to template text.
    """
    resolved: dict[str, str] = {}
    for name, value in overrides.items():
        resolved[template_name(name)] = _load_override(name, value, base_dir=base_dir)
    return resolved


def load_template_directory(directory: Path) -> dict[str, str]:
    """Read every template file in ``directory`` as an override."""
    if not directory.is_dir():
        raise TemplateError(f"Template directory does not exist: {directory}")
    templates: dict[str, str] = {}
    for path in sorted(directory.iterdir()):
        if path.is_file() and path.name.endswith(".j2"):
            templates[path.name] = _read_template_file(path)
    return templates


def _load_override(name: str, value: str, *, base_dir: Optional[Path]) -> str:
    if is_url(value):
        logger.debug("Fetching template %s from %s", name, value)
        try:
            response = httpx.get(value, follow_redirects=True)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise TemplateError(f"Failed to fetch template {name} from {value}: {exc}") from exc
        return response.text

    if "\n" not in value and len(value) < 4096:
        path = Path(value)
        if not path.is_absolute() and base_dir is not None:
            path = base_dir / path
        if path.is_file():
            return _read_template_file(path)
    return value


def _read_template_file(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except OSError as exc:
        raise TemplateError(f"Failed to read template {path}: {exc}") from exc


def _docstring(text: str, indent: int = 4) -> str:
    body = text.replace("\\", "\\\\").replace('"""', '\\"\\"\\"').strip()
    if "\n" not in body:
        return f'"""{body}"""'
    padding = " " * indent
    lines = "\n".join(f"{padding}{line}" if line.strip() else "" for line in body.splitlines())
    return f'"""\n{lines}\n{padding}"""'


def _comment(text: str, indent: int = 0) -> str:
    padding = " " * indent
    return f"\n{padding}# ".join(line.rstrip() for line in text.strip().splitlines())


class TemplateRenderer:
    """Render the built-in templates, preferring user overrides by name."""

    def __init__(self, overrides: Optional[Mapping[str, str]] = None) -> None:
        self._env = Environment(
            loader=ChoiceLoader(
                [
                    DictLoader(dict(overrides or {})),
                    FileSystemLoader(TEMPLATE_DIR),
                ]
            ),
            autoescape=False,
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
            undefined=StrictUndefined,
        )
        self._env.filters["pyrepr"] = python_literal
        self._env.filters["docstring"] = _docstring
        self._env.filters["comment"] = _comment

    def render(self, name: str, **context: Any) -> str:
        """Render template ``name`` with ``context``."""
        try:
            template = self._env.get_template(template_name(name))
            return template.render(**context)
        except JinjaTemplateError as exc:
            raise TemplateError(f"Failed to render template {name}: {exc}") from exc
