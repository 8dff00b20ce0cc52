"""OpenAPI code generator for pydantic models, httpx clients and server glue."""

from __future__ import annotations

from .cli import main
from .configuration import Configuration, default_configuration, load_configuration
from .generator import GenerationError, generate, run_generation
from .loader import SpecDocument, load_openapi_document

__all__ = [
    "Configuration",
    "GenerationError",
    "SpecDocument",
    "default_configuration",
    "generate",
    "load_configuration",
    "load_openapi_document",
    "main",
    "run_generation",
]
