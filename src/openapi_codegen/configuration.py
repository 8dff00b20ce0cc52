"""Generation configuration, target table and destination mapping grammar."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .model_types import GenerateTarget

MODELS = "models"
CLIENT = "client"
FLASK_SERVER = "flask-server"
STARLETTE_SERVER = "starlette-server"
AIOHTTP_SERVER = "aiohttp-server"
EMBEDDED_SPEC = "embedded-spec"

SERVER_TARGETS: tuple[str, ...] = (FLASK_SERVER, STARLETTE_SERVER, AIOHTTP_SERVER)

TARGET_ALIASES: Mapping[str, str] = {
    MODELS: MODELS,
    "types": MODELS,
    CLIENT: CLIENT,
    FLASK_SERVER: FLASK_SERVER,
    "flask": FLASK_SERVER,
    "server": FLASK_SERVER,
    STARLETTE_SERVER: STARLETTE_SERVER,
    "starlette": STARLETTE_SERVER,
    AIOHTTP_SERVER: AIOHTTP_SERVER,
    "aiohttp": AIOHTTP_SERVER,
    EMBEDDED_SPEC: EMBEDDED_SPEC,
    "spec": EMBEDDED_SPEC,
}

_DEFAULT_TARGETS: tuple[str, ...] = (MODELS, CLIENT, FLASK_SERVER, EMBEDDED_SPEC)


class ConfigurationError(RuntimeError):
    """Raised when a configuration is invalid; generation does not start."""


class CompatibilityOptions(BaseModel):
    """Switches that reproduce earlier generator behavior."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    old_merge_schemas: bool = Field(default=False, alias="old-merge-schemas")
    """allOf members that are component references become base classes
    instead of having their fields merged into one model."""

    old_enum_conflicts: bool = Field(default=False, alias="old-enum-conflicts")
    """Inline enums and unions always carry an ``Enum``/``Union`` name suffix."""

    old_aliasing: bool = Field(default=False, alias="old-aliasing")
    """Every component ``$ref`` becomes a distinct class rather than a type alias."""

    disable_flatten_additional_properties: bool = Field(
        default=False, alias="disable-flatten-additional-properties"
    )
    """Objects declaring only additionalProperties stay models instead of dicts."""

    old_required_read_only: bool = Field(default=False, alias="old-required-read-only")
    """Required read-only properties become ``Optional[T] = None``."""

    always_prefix_enum_values: bool = Field(default=False, alias="always-prefix-enum-values")
    """Prefix enum members with their type name even without a conflict."""

    apply_flask_middleware_first_to_last: bool = Field(
        default=False, alias="apply-flask-middleware-first-to-last"
    )
    """Run Flask view middlewares in the order they were given."""

    apply_aiohttp_middleware_first_to_last: bool = Field(
        default=False, alias="apply-aiohttp-middleware-first-to-last"
    )
    """Run aiohttp handler middlewares in the order they were given."""


class OutputOptions(BaseModel):
    """Filters and tweaks applied to generated output."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    skip_fmt: bool = Field(default=False, alias="skip-fmt")
    require_fmt: bool = Field(default=False, alias="require-fmt")
    skip_prune: bool = Field(default=False, alias="skip-prune")
    include_tags: list[str] = Field(default_factory=list, alias="include-tags")
    exclude_tags: list[str] = Field(default_factory=list, alias="exclude-tags")
    user_templates: dict[str, str] = Field(default_factory=dict, alias="user-templates")
    exclude_schemas: list[str] = Field(default_factory=list, alias="exclude-schemas")
    response_type_suffix: str = Field(default="Response", alias="response-type-suffix")
    client_type_name: str = Field(default="Client", alias="client-type-name")


class AdditionalImport(BaseModel):
    """An import statement added to every generated module."""

    model_config = ConfigDict(extra="forbid")

    package: str
    alias: Optional[str] = None
    name: Optional[str] = None


class Configuration(BaseModel):
    """Everything a generation run needs besides the document itself."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    package: str = ""
    output: str = ""
    generate: dict[str, bool] = Field(default_factory=dict)
    compatibility: CompatibilityOptions = Field(default_factory=CompatibilityOptions)
    output_options: OutputOptions = Field(default_factory=OutputOptions, alias="output-options")
    import_mapping: dict[str, str] = Field(default_factory=dict, alias="import-mapping")
    additional_imports: list[AdditionalImport] = Field(
        default_factory=list, alias="additional-imports"
    )


@dataclass(frozen=True)
class TargetMapping:
    """Parsed ``target=value`` mapping with an optional bare default."""

    default: Optional[str]
    targets: Mapping[str, str]

    def value_for(self, target: str) -> Optional[str]:
        return self.targets.get(target, self.default)


def default_configuration(package: Optional[str] = None) -> Configuration:
    """Return a configuration enabling models, client, a Flask server and the embedded spec."""
    return Configuration(
        package=package or "",
        generate={target: True for target in _DEFAULT_TARGETS},
    )


def enable_target(config: Configuration, alias: str) -> Configuration:
    """Return a copy of ``config`` with one more enabled target."""
    canonical = canonical_target(alias)
    generate = dict(config.generate)
    generate[canonical] = True
    return config.model_copy(update={"generate": generate})


def canonical_target(alias: str) -> str:
    """Map a target alias to its canonical name."""
    try:
        return TARGET_ALIASES[alias.strip()]
    except KeyError as exc:
        raise ConfigurationError(f"Invalid alias: {alias}") from exc


def load_configuration(path: Path) -> Configuration:
    """Load a YAML configuration file."""
    try:
        with path.open("r", encoding="utf-8") as handle:
            payload = yaml.safe_load(handle)
    except OSError as exc:
        raise ConfigurationError(f"Failed to read configuration file {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Failed to parse YAML in {path}: {exc}") from exc
    return parse_configuration(payload or {}, source=str(path))


def parse_configuration(payload: object, *, source: str = "<config>") -> Configuration:
    """Validate a decoded configuration mapping."""
    try:
        return Configuration.model_validate(payload)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid configuration in {source}: {exc}") from exc


def parse_package_mappings(text: str) -> TargetMapping:
    """Parse the package destination grammar, e.g. ``client=api.client,api``."""
    return _parse_target_mappings(text)


def parse_output_mappings(text: str) -> TargetMapping:
    """Parse the output file grammar, e.g. ``models=models.py,api.py``."""
    return _parse_target_mappings(text)


def _parse_target_mappings(text: str) -> TargetMapping:
    default: Optional[str] = None
    targets: dict[str, str] = {}
    for raw_entry in text.split(","):
        entry = raw_entry.strip()
        if not entry:
            continue
        parts = entry.split("=")
        if len(parts) == 1:
            if default is not None:
                raise ConfigurationError(
                    f"A mapping without target was specified more than once: {parts[0]}"
                )
            default = parts[0]
            continue
        if len(parts) != 2 or not parts[0].strip() or not parts[1].strip():
            raise ConfigurationError(f"Invalid target mapping: {entry}")
        target = canonical_target(parts[0])
        if target in targets:
            raise ConfigurationError(f"A target mapping already exists: {target}")
        targets[target] = parts[1].strip()
    return TargetMapping(default=default, targets=targets)


def enabled_targets(config: Configuration) -> list[str]:
    """Return the enabled canonical targets in configured order."""
    targets: list[str] = []
    for alias, enabled in config.generate.items():
        target = canonical_target(alias)
        if enabled and target not in targets:
            targets.append(target)
    return targets


def validate_configuration(config: Configuration) -> list[GenerateTarget]:
    """Validate ``config`` and create its generate targets.

    Args:
        config (Configuration): Configuration to validate.

    Returns:
        list[GenerateTarget]: Targets in configured order with destinations applied.
    """
    packages = parse_package_mappings(config.package)
    outputs = parse_output_mappings(config.output)
    targets = enabled_targets(config)
    if not targets:
        raise ConfigurationError("No generate targets are enabled")

    options = config.output_options
    if options.response_type_suffix and not options.response_type_suffix.isidentifier():
        raise ConfigurationError(
            f"Invalid response type suffix: {options.response_type_suffix!r}"
        )
    if not options.client_type_name.isidentifier():
        raise ConfigurationError(f"Invalid client type name: {options.client_type_name!r}")

    generate_targets: list[GenerateTarget] = []
    for target in targets:
        package = packages.value_for(target)
        if not package:
            raise ConfigurationError(f"Missing package name for target: {target}")
        _ensure_python_package(package)
        file_name = outputs.value_for(target) or ""
        if file_name and not file_name.removesuffix(".py").isidentifier():
            raise ConfigurationError(
                f"Output file for target {target} is not an importable module name: {file_name}"
            )
        generate_targets.append(GenerateTarget(target=target, package=package, file_name=file_name))
    return generate_targets


def _ensure_python_package(package: str) -> None:
    parts = package.strip("/").replace("/", ".").split(".")
    if not all(part.isidentifier() for part in parts):
        raise ConfigurationError(f"Package name is not a valid python package path: {package}")


def target_for(config: Configuration, target: str) -> GenerateTarget:
    """Return the destination ``target`` would have, whether or not it is enabled."""
    canonical = canonical_target(target)
    package = parse_package_mappings(config.package).value_for(canonical) or ""
    file_name = parse_output_mappings(config.output).value_for(canonical) or ""
    return GenerateTarget(target=canonical, package=package, file_name=file_name)
