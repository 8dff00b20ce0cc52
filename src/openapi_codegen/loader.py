"""OpenAPI document loading, validation and external reference collection."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import httpx
import yaml
from openapi_python_client.schema import OpenAPI
from pydantic import ValidationError

from .json_types import DocumentSet, JSONObject, JSONValue
from .model_types import SchemaPosition
from .refs import ResolveError, is_url, iter_refs, parse_ref, walk_pointer

logger = logging.getLogger(__name__)

ROOT_SOURCE = ""

type DocumentFetcher = Callable[[str], str]


class OpenAPILoadError(RuntimeError):
    """Raised when a source OpenAPI document cannot be loaded."""


class SchemaGraph:
    """Loaded documents keyed by source identifier; the root is ``""``."""

    def __init__(self, documents: Mapping[str, JSONObject]) -> None:
        if ROOT_SOURCE not in documents:
            raise OpenAPILoadError("Schema graph requires a root document")
        self._documents = dict(documents)

    @property
    def root(self) -> JSONObject:
        return self._documents[ROOT_SOURCE]

    @property
    def documents(self) -> Mapping[str, JSONObject]:
        return dict(self._documents)

    def has_source(self, source: str) -> bool:
        return source in self._documents

    def node_at(self, position: SchemaPosition) -> JSONValue:
        """Return the raw node at ``position``."""
        document = self._documents.get(position.source)
        if document is None:
            raise ResolveError(f"Unresolvable reference: document not loaded for {position}")
        return walk_pointer(document, position)

    def component_schemas(self) -> list[str]:
        components = self.root.get("components")
        if not isinstance(components, Mapping):
            return []
        schemas = components.get("schemas")
        if not isinstance(schemas, Mapping):
            return []
        return sorted(schemas)


@dataclass(frozen=True)
class SpecDocument:
    """A loaded OpenAPI document, passed explicitly through every generation step."""

    graph: SchemaGraph
    version: str
    path: Optional[Path] = None

    @property
    def root(self) -> JSONObject:
        return self.graph.root

    def to_json(self) -> str:
        """Serialize the root document for embedding."""
        return json.dumps(self.root, separators=(",", ":"), default=str)

    @classmethod
    def from_path(cls, path: Path, *, fetch: Optional[DocumentFetcher] = None) -> SpecDocument:
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise OpenAPILoadError(f"Failed to read OpenAPI file {path}: {exc}") from exc
        return cls.from_text(text, base_dir=path.parent, name=str(path), fetch=fetch, path=path)

    @classmethod
    def from_text(
        cls,
        text: str,
        *,
        base_dir: Optional[Path] = None,
        name: str = "<text>",
        fetch: Optional[DocumentFetcher] = None,
        path: Optional[Path] = None,
    ) -> SpecDocument:
        root = _parse_document(text, name=name)
        return cls.from_mapping(root, base_dir=base_dir, fetch=fetch, path=path)

    @classmethod
    def from_mapping(
        cls,
        root: JSONObject,
        *,
        base_dir: Optional[Path] = None,
        fetch: Optional[DocumentFetcher] = None,
        path: Optional[Path] = None,
    ) -> SpecDocument:
        version = get_openapi_version(root)
        ensure_supported_version(version)
        try:
            OpenAPI.model_validate(root)
        except ValidationError as exc:
            raise OpenAPILoadError(f"OpenAPI schema validation failed: {exc}") from exc

        loader = fetch or _default_fetcher(base_dir)
        documents = load_external_documents(root, fetch=loader)
        return cls(graph=SchemaGraph(documents), version=version, path=path)


def load_openapi_document(path: Path) -> SpecDocument:
    """Load, validate and collect external references for an OpenAPI document."""
    return SpecDocument.from_path(path)


def load_external_documents(root: JSONObject, *, fetch: DocumentFetcher) -> DocumentSet:
    """Load every document reachable through ``$ref`` sources, keyed by source id."""
    documents: DocumentSet = {ROOT_SOURCE: root}
    pending = [ROOT_SOURCE]
    while pending:
        source = pending.pop()
        for ref in iter_refs(documents[source]):
            try:
                target = parse_ref(ref, base=source).source
            except ResolveError as exc:
                raise OpenAPILoadError(f"Invalid reference in {source or 'root'}: {exc}") from exc
            if target == ROOT_SOURCE or target in documents:
                continue
            logger.debug("Loading external document %s", target)
            documents[target] = _parse_document(fetch(target), name=target)
            pending.append(target)
    return documents


def get_openapi_version(document: JSONObject) -> str:
    """Return the declared OpenAPI version string."""
    version = document.get("openapi")
    if not isinstance(version, str) or not version.strip():
        raise OpenAPILoadError("Missing or invalid 'openapi' version field")
    return version.strip()


def ensure_supported_version(version: str) -> None:
    """Validate that the input version is OpenAPI v3+."""
    major_text = version.split(".", maxsplit=1)[0]
    try:
        major = int(major_text)
    except ValueError as exc:
        raise OpenAPILoadError(f"Unable to parse OpenAPI version: {version}") from exc
    if major < 3:
        raise OpenAPILoadError(f"Unsupported OpenAPI version {version}; only v3+ is supported")


def _parse_document(text: str, *, name: str) -> JSONObject:
    try:
        payload = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise OpenAPILoadError(f"Failed to parse YAML in {name}: {exc}") from exc
    payload_value = _stringify_keys(payload)
    if not isinstance(payload_value, dict):
        raise OpenAPILoadError(
            f"OpenAPI document must deserialize to a mapping, got {type(payload_value)!r}"
        )
    return payload_value


def _stringify_keys(value: Any) -> JSONValue:
    # YAML turns unquoted status codes into integers.
    if isinstance(value, Mapping):
        return {str(key): _stringify_keys(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_stringify_keys(item) for item in value]
    return value


def _default_fetcher(base_dir: Optional[Path]) -> DocumentFetcher:
    def _fetch(source: str) -> str:
        if is_url(source):
            return fetch_url(source)
        path = Path(source)
        if not path.is_absolute():
            path = (base_dir or Path.cwd()) / path
        try:
            return path.read_text(encoding="utf-8")
        except OSError as exc:
            raise OpenAPILoadError(f"Failed to read external document {source}: {exc}") from exc

    return _fetch


def fetch_url(url: str) -> str:
    """Fetch a remote document with httpx."""
    try:
        response = httpx.get(url, follow_redirects=True)
        response.raise_for_status()
    except httpx.HTTPError as exc:
        raise OpenAPILoadError(f"Failed to fetch {url}: {exc}") from exc
    return response.text
