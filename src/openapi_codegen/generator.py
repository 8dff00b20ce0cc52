"""High-level generator orchestration."""

from __future__ import annotations

import logging
import sys
from collections.abc import Mapping
from dataclasses import replace
from pathlib import Path
from typing import Optional, TextIO

from .codegen_ast import RESERVED_TYPE_NAMES, defined_names
from .configuration import MODELS, Configuration, target_for, validate_configuration
from .emitters import EmissionError, EmitContext, emit_target, render_models_code
from .loader import SpecDocument, load_openapi_document
from .model_types import GenerateTarget, GenerationResult, OperationBinding, SchemaPosition
from .operations import (
    bind_operations,
    collect_operations,
    filter_operations,
    reserved_operation_names,
)
from .output import merge_targets
from .refs import ImportMap
from .rendering import TemplateError, TemplateRenderer, resolve_user_templates
from .type_resolver import resolve_types
from .writer import write_outputs

logger = logging.getLogger(__name__)


class GenerationError(RuntimeError):
    """Raised when one or more targets could not be emitted."""

    def __init__(self, errors: Mapping[str, Exception], succeeded: tuple[str, ...]) -> None:
        details = "; ".join(f"{target}: {error}" for target, error in errors.items())
        super().__init__(f"Generation failed for {len(errors)} target(s): {details}")
        self.errors = dict(errors)
        self.succeeded = succeeded


def generate(
    document: SpecDocument,
    config: Configuration,
    *,
    templates: Optional[Mapping[str, str]] = None,
) -> GenerationResult:
    """Generate every configured target for ``document``.

    Args:
        document (SpecDocument): Loaded OpenAPI document.
        config (Configuration): Generation configuration.
        templates (Optional[Mapping[str, str]]): Template texts by file name, applied
            before the configured user templates.

    Returns:
        GenerationResult: Emitted targets, merged outputs and warnings.
    """
    targets = validate_configuration(config)
    options = config.output_options
    import_map = ImportMap.from_mapping(config.import_mapping)

    operations, warnings = collect_operations(document.graph)
    operations = filter_operations(
        operations,
        include_tags=options.include_tags,
        exclude_tags=options.exclude_tags,
    )
    logger.debug("Generating %d operations into %d targets", len(operations), len(targets))

    reserved = set(RESERVED_TYPE_NAMES)
    reserved |= reserved_operation_names(
        document.graph, operations, response_type_suffix=options.response_type_suffix
    )
    reserved |= {options.client_type_name, f"{options.client_type_name}WithResponses"}

    model = resolve_types(
        document.graph,
        operations=operations,
        compatibility=config.compatibility,
        import_map=import_map,
        exclude_schemas=options.exclude_schemas,
        reserved_names=reserved,
    )
    bindings = bind_operations(
        document.graph, operations, response_type_suffix=options.response_type_suffix
    )
    if not options.skip_prune:
        model = model.pruned(_operation_roots(bindings))
    warnings.extend(model.warnings)

    overrides = dict(templates or {})
    base_dir = document.path.parent if document.path is not None else None
    overrides.update(resolve_user_templates(options.user_templates, base_dir=base_dir))
    renderer = TemplateRenderer(overrides)

    context = EmitContext(
        document=document,
        model=model,
        operations=tuple(bindings),
        config=config,
        renderer=renderer,
        import_map=import_map,
    )
    context = replace(context, model_names=_model_names(context))
    models_target = _models_target(config, targets)

    errors: dict[str, Exception] = {}
    for target in targets:
        try:
            emit_target(
                context,
                target,
                models_module=_models_module(target, models_target),
            )
        except EmissionError as exc:
            logger.error("Failed to emit %s: %s", target.target, exc)
            errors[target.target] = exc
    if errors:
        succeeded = tuple(target.target for target in targets if target.target not in errors)
        raise GenerationError(errors, succeeded)

    outputs = merge_targets(
        targets,
        format_code=not options.skip_fmt,
        require_format=options.require_fmt,
    )
    for output in outputs:
        warnings.extend(output.warnings)

    return GenerationResult(
        targets=tuple(targets),
        outputs=tuple(outputs),
        warnings=tuple(warnings),
    )


def run_generation(
    *,
    input_path: Path,
    config: Configuration,
    output_dir: Path,
    templates: Optional[Mapping[str, str]] = None,
    stdout: Optional[TextIO] = None,
) -> GenerationResult:
    """Load ``input_path``, generate and write the configured targets.

    Args:
        input_path (Path): Path to the input OpenAPI document.
        config (Configuration): Generation configuration.
        output_dir (Path): Root directory packages are written to.
        templates (Optional[Mapping[str, str]]): Template overrides by file name.
        stdout (Optional[TextIO]): Stream for targets without an output file.

    Returns:
        GenerationResult: Emitted targets, merged outputs and warnings.
    """
    document = load_openapi_document(input_path)
    result = generate(document, config, templates=templates)
    write_outputs(result.outputs, output_dir=output_dir, stdout=stdout or sys.stdout)
    return result


def _operation_roots(bindings: list[OperationBinding]) -> list[SchemaPosition]:
    roots: list[SchemaPosition] = []
    for binding in bindings:
        for param in (*binding.path_params, *binding.grouped_params):
            if param.type_position is not None:
                roots.append(param.type_position)
        roots.extend(body.type_position for body in binding.bodies if body.type_position)
        roots.extend(
            response.type_position for response in binding.responses if response.type_position
        )
    return roots


def _model_names(context: EmitContext) -> frozenset[str]:
    try:
        return frozenset(defined_names(render_models_code(context)))
    except (TemplateError, SyntaxError) as exc:
        # The models target reports the same failure when it is emitted.
        logger.debug("Could not collect model names: %s", exc)
        return frozenset()


def _models_target(config: Configuration, targets: list[GenerateTarget]) -> GenerateTarget:
    for target in targets:
        if target.target == MODELS:
            return target
    return target_for(config, MODELS)


def _models_module(target: GenerateTarget, models_target: GenerateTarget) -> Optional[str]:
    if target.target == MODELS or target.destination == models_target.destination:
        return None
    return models_target.module_path
