"""Command line interface for OpenAPI code generation."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

from .configuration import (
    Configuration,
    ConfigurationError,
    default_configuration,
    enable_target,
    load_configuration,
)
from .generator import GenerationError, run_generation
from .loader import OpenAPILoadError
from .operations import BindError
from .output import FormatError
from .refs import ResolveError
from .rendering import TemplateError, load_template_directory
from .writer import WriteError


def build_parser() -> argparse.ArgumentParser:
    """Build the CLI parser."""
    parser = argparse.ArgumentParser(
        prog="openapi-codegen",
        description=(
            "Generate pydantic models, an httpx client, server glue and an embedded "
            "document from an OpenAPI 3 file"
        ),
    )
    parser.add_argument("spec", help="Path to an OpenAPI YAML or JSON file")
    parser.add_argument("--config", help="YAML configuration file")
    parser.add_argument(
        "--package",
        help="Destination packages, e.g. 'api' or 'models=api.models,api'",
    )
    parser.add_argument(
        "--generate",
        help="Comma separated targets: models, client, flask-server, starlette-server, "
        "aiohttp-server, embedded-spec",
    )
    parser.add_argument(
        "--output",
        help="Destination files, e.g. 'models=models.py,api.py'; targets without a file "
        "are printed",
    )
    parser.add_argument("--include-tags", help="Only generate operations with these tags")
    parser.add_argument("--exclude-tags", help="Skip operations with these tags")
    parser.add_argument(
        "--import-mapping",
        action="append",
        default=[],
        metavar="SOURCE:MODULE",
        help="Python module for types of an external reference source; '-' keeps them local",
    )
    parser.add_argument("--templates", help="Directory with template overrides")
    parser.add_argument("--output-dir", default=".", help="Root directory for generated packages")
    parser.add_argument("--skip-fmt", action="store_true", help="Do not run ruff on the output")
    parser.add_argument(
        "--skip-prune", action="store_true", help="Keep schemas no operation refers to"
    )
    parser.add_argument("--verbose", action="store_true", help="Log debug output")
    return parser


def build_configuration(args: argparse.Namespace) -> Configuration:
    """Combine the configuration file (if any) with command line overrides."""
    config = load_configuration(Path(args.config)) if args.config else default_configuration()
    update: dict[str, object] = {}
    if args.package is not None:
        update["package"] = args.package
    if args.output is not None:
        update["output"] = args.output
    if args.import_mapping:
        mapping = dict(config.import_mapping)
        for entry in args.import_mapping:
            source, sep, module = entry.rpartition(":")
            if not sep or not source or not module:
                raise ConfigurationError(f"Invalid import mapping: {entry}")
            mapping[source] = module
        update["import_mapping"] = mapping

    options_update: dict[str, object] = {}
    if args.include_tags is not None:
        options_update["include_tags"] = _split_list(args.include_tags)
    if args.exclude_tags is not None:
        options_update["exclude_tags"] = _split_list(args.exclude_tags)
    if args.skip_fmt:
        options_update["skip_fmt"] = True
    if args.skip_prune:
        options_update["skip_prune"] = True
    if options_update:
        update["output_options"] = config.output_options.model_copy(update=options_update)
    config = config.model_copy(update=update)
    if args.generate is not None:
        config = config.model_copy(update={"generate": {}})
        for alias in _split_list(args.generate):
            config = enable_target(config, alias)
    return config


def _split_list(text: str) -> list[str]:
    return [item.strip() for item in text.split(",") if item.strip()]


def main(argv: Optional[list[str]] = None) -> int:
    """Run CLI and return process exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        config = build_configuration(args)
        templates = load_template_directory(Path(args.templates)) if args.templates else None
        result = run_generation(
            input_path=Path(args.spec),
            config=config,
            output_dir=Path(args.output_dir),
            templates=templates,
        )
    except (
        ConfigurationError,
        OpenAPILoadError,
        ResolveError,
        BindError,
        TemplateError,
        GenerationError,
        FormatError,
        WriteError,
    ) as exc:
        parser.error(str(exc))
        return 2

    for warning in result.warnings:
        print(f"Warning: {warning}", file=sys.stderr)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
