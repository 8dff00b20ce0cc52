"""Merge emitted targets per destination and format the result with Ruff."""

from __future__ import annotations

import logging
import subprocess
import sys
from collections.abc import Iterable

from .codegen_ast import merge_import_blocks
from .model_types import CodeOutput, GenerateTarget

logger = logging.getLogger(__name__)

# Unused imports and import order only; generated code is otherwise left as rendered.
_RUFF_FIX_CODES: tuple[str, ...] = ("F401", "I")


class FormatError(RuntimeError):
    """Raised when Ruff cannot format a merged artifact."""


def merge_targets(
    targets: Iterable[GenerateTarget],
    *,
    format_code: bool = True,
    require_format: bool = False,
) -> list[CodeOutput]:
    """Combine targets that share a destination into one artifact each.

    The first target of a destination contributes its header and imports;
    later targets only add import statements that are not present yet. Code
    is appended in configured target order.

    Args:
        targets (Iterable[GenerateTarget]): Emitted targets in configured order.
        format_code (bool): Run the Ruff pass over each artifact.
        require_format (bool): Raise instead of warning when formatting fails.

    Returns:
        list[CodeOutput]: Artifacts in order of first appearance.
    """
    grouped: dict[tuple[str, str], list[GenerateTarget]] = {}
    for target in targets:
        grouped.setdefault(target.destination, []).append(target)

    outputs: list[CodeOutput] = []
    for (package, file_name), members in grouped.items():
        imports = members[0].imports
        for member in members[1:]:
            imports = merge_import_blocks(imports, member.imports)
        code = imports + "".join(member.code for member in members)

        warnings: list[str] = []
        if format_code:
            try:
                code = format_source(code, stdin_filename=file_name or "stdout.py")
            except FormatError as exc:
                if require_format:
                    raise
                label = file_name or "<stdout>"
                logger.warning("Formatting %s failed: %s", label, exc)
                warnings.append(f"Formatting {package}/{label} failed: {exc}")

        outputs.append(
            CodeOutput(
                package=package,
                file_name=file_name,
                code=code,
                targets=tuple(member.target for member in members),
                warnings=tuple(warnings),
            )
        )
    return outputs


def format_source(source: str, *, stdin_filename: str = "generated.py") -> str:
    """Remove unused imports, sort imports and format ``source`` with Ruff."""
    fixed = _run_ruff(
        (
            "check",
            "--fix-only",
            "--exit-zero",
            "--isolated",
            "--select",
            ",".join(_RUFF_FIX_CODES),
            "--stdin-filename",
            stdin_filename,
            "-",
        ),
        source,
    )
    return _run_ruff(
        ("format", "--isolated", "--stdin-filename", stdin_filename, "-"),
        fixed,
    )


def _run_ruff(args: tuple[str, ...], source: str) -> str:
    command = [sys.executable, "-m", "ruff", *args]
    command_desc = args[0]
    try:
        completed = subprocess.run(
            command,
            check=True,
            capture_output=True,
            input=source,
            text=True,
        )
    except OSError as exc:
        raise FormatError(f"Failed to execute ruff {command_desc}: {exc}") from exc
    except subprocess.CalledProcessError as exc:
        error_text = exc.stderr.strip() or exc.stdout.strip() or str(exc)
        raise FormatError(f"ruff {command_desc} failed: {error_text}") from exc
    return completed.stdout
