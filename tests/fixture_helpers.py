"""Shared helpers for fixture-driven tests."""

from __future__ import annotations

import importlib.util
import itertools
import sys
from collections.abc import Callable, Mapping, Sequence
from pathlib import Path
from types import ModuleType
from typing import Optional, ParamSpec, TypeVar

import pytest

from openapi_codegen.configuration import parse_configuration
from openapi_codegen.generator import generate
from openapi_codegen.loader import load_openapi_document

_FIXTURE_DIR = Path(__file__).resolve().parent / "fixtures" / "openapi_specs"
_P = ParamSpec("_P")
_R = TypeVar("_R")
_COUNTER = itertools.count()


def fixture_dir() -> Path:
    """Return the OpenAPI fixtures directory."""
    return _FIXTURE_DIR


def fixture_path(name: str) -> Path:
    """Return the path of a named fixture document."""
    return _FIXTURE_DIR / name


def iter_fixture_paths() -> list[Path]:
    """Return all top-level YAML fixture paths sorted by name."""
    paths = sorted(_FIXTURE_DIR.glob("*.yaml")) + sorted(_FIXTURE_DIR.glob("*.yml"))
    return [path for path in paths if path.is_file()]


def parametrize_fixtures() -> Callable[[Callable[_P, _R]], Callable[_P, _R]]:
    """Parametrize a test over all fixture paths."""

    def _decorator(func: Callable[_P, _R]) -> Callable[_P, _R]:
        decorator: Callable[[Callable[_P, _R]], Callable[_P, _R]]
        decorator = pytest.mark.parametrize(
            "fixture_path",
            iter_fixture_paths(),
            ids=lambda path: path.name,
        )
        return decorator(func)

    return _decorator


def load_module_from_path(module_path: Path) -> ModuleType:
    """Import a generated module under a unique name and register it in ``sys.modules``."""
    module_name = f"generated_{module_path.stem}_{next(_COUNTER)}"
    spec = importlib.util.spec_from_file_location(module_name, module_path)
    if spec is None or spec.loader is None:
        raise RuntimeError(f"Unable to import module from: {module_path}")

    module = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = module
    try:
        spec.loader.exec_module(module)
    except Exception:
        sys.modules.pop(module_name, None)
        raise
    return module


def generate_module(
    spec_path: Path,
    output_dir: Path,
    *,
    targets: Sequence[str],
    compatibility: Optional[Mapping[str, bool]] = None,
    **options: object,
) -> ModuleType:
    """Generate ``targets`` of ``spec_path`` into a single module and import it."""
    config = parse_configuration(
        {
            "package": "api",
            "output": "generated.py",
            "generate": {target: True for target in targets},
            "compatibility": dict(compatibility or {}),
            "output-options": {"skip-fmt": True, **options},
        }
    )
    result = generate(load_openapi_document(spec_path), config)
    (output,) = result.outputs
    stem = "_".join([spec_path.stem, *targets]).replace("-", "_")
    module_path = output_dir / f"{stem}.py"
    module_path.write_text(output.code, encoding="utf-8")
    return load_module_from_path(module_path)
