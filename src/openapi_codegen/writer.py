"""Filesystem writers for merged generated modules."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path
from typing import TextIO

from .model_types import CodeOutput

logger = logging.getLogger(__name__)

_PACKAGE_INIT = '"""Generated package."""\n'


class WriteError(RuntimeError):
    """Raised when output files cannot be written."""


def package_dir(output_dir: Path, package: str) -> Path:
    """Return the directory of a dotted or slash separated package below ``output_dir``."""
    parts = [part for part in package.replace(".", "/").split("/") if part]
    return output_dir.joinpath(*parts)


def write_outputs(
    outputs: Iterable[CodeOutput],
    *,
    output_dir: Path,
    stdout: TextIO,
) -> list[Path]:
    """Write merged artifacts below ``output_dir``.

    Artifacts without a file name are written to ``stdout``. Missing package
    directories are created together with an ``__init__.py``.

    Args:
        outputs (Iterable[CodeOutput]): Artifacts to write.
        output_dir (Path): Root directory packages are created in.
        stdout (TextIO): Stream for artifacts without a file name.

    Returns:
        list[Path]: Paths of the written module files.
    """
    written: list[Path] = []
    for output in outputs:
        if not output.file_name:
            stdout.write(output.code)
            continue
        directory = package_dir(output_dir, output.package)
        ensure_package(output_dir, directory)
        path = directory / output.file_name
        _write_file(path, output.code)
        logger.info("Wrote %s (%s)", path, ", ".join(output.targets))
        written.append(path)
    return written


def ensure_package(output_dir: Path, directory: Path) -> None:
    """Create ``directory`` and an ``__init__.py`` in it and every parent below ``output_dir``."""
    try:
        directory.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise WriteError(f"Failed to create directory {directory}: {exc}") from exc

    current = directory
    while current != output_dir and output_dir in current.parents:
        init_path = current / "__init__.py"
        if not init_path.exists():
            _write_file(init_path, _PACKAGE_INIT)
        current = current.parent


def _write_file(path: Path, content: str) -> None:
    try:
        path.write_text(content, encoding="utf-8")
    except OSError as exc:
        raise WriteError(f"Failed to write file {path}: {exc}") from exc
