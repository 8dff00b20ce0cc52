"""JSON reference parsing and pointer resolution across documents."""

from __future__ import annotations

import posixpath
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urljoin, urlsplit

from .json_types import JSONValue
from .model_types import PythonImport, SchemaPosition

SAME_PACKAGE = "-"


class ResolveError(RuntimeError):
    """Raised when a reference or schema cannot be resolved."""


def is_url(source: str) -> bool:
    """Whether a reference source is an http(s) URL."""
    return urlsplit(source).scheme in ("http", "https")


def join_source(base: str, ref_source: str) -> str:
    """Identify the document ``ref_source`` names when written inside ``base``.

    References from the root document keep their spelling so they match the
    import mapping as written; nested references are made relative to the
    root document's directory.
    """
    if not ref_source or is_url(ref_source):
        return ref_source
    if not base:
        return ref_source
    if is_url(base):
        return urljoin(base, ref_source)
    if posixpath.isabs(ref_source):
        return ref_source
    return posixpath.normpath(posixpath.join(posixpath.dirname(base), ref_source))


def parse_ref(ref: str, *, base: str) -> SchemaPosition:
    """Split ``source#/pointer`` into a position relative to document ``base``."""
    source, _, pointer = ref.partition("#")
    if pointer and not pointer.startswith("/"):
        raise ResolveError(f"Unsupported reference fragment in {ref!r}")
    if not source:
        return SchemaPosition(base, pointer)
    return SchemaPosition(join_source(base, source), pointer)


def walk_pointer(document: JSONValue, position: SchemaPosition) -> JSONValue:
    """Return the node ``position.pointer`` selects inside ``document``."""
    current = document
    for token in position.tokens():
        if isinstance(current, Mapping) and token in current:
            current = current[token]
        elif isinstance(current, list) and token.isdigit() and int(token) < len(current):
            current = current[int(token)]
        else:
            raise ResolveError(f"Unresolvable reference: {position}")
    return current


def iter_refs(node: JSONValue) -> Iterator[str]:
    """Yield every ``$ref`` string found under ``node``."""
    if isinstance(node, Mapping):
        ref = node.get("$ref")
        if isinstance(ref, str):
            yield ref
        for key, value in node.items():
            if key != "$ref":
                yield from iter_refs(value)
    elif isinstance(node, list):
        for item in node:
            yield from iter_refs(item)


@dataclass(frozen=True)
class ImportMap:
    """Maps external reference sources to python modules.

    Mapped modules get stable aliases ``external_ref0``, ``external_ref1``, ...
    in sorted source order. A source mapped to ``-`` is generated in place.
    """

    modules: Mapping[str, str]

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, str]) -> ImportMap:
        return cls(modules=dict(mapping))

    def is_local(self, source: str) -> bool:
        return source == "" or self.modules.get(source) == SAME_PACKAGE

    def import_for(self, source: str) -> Optional[PythonImport]:
        """Return the aliased import for an external source, or ``None`` if unmapped."""
        module = self.modules.get(source)
        if module is None or module == SAME_PACKAGE:
            return None
        return PythonImport(module=module, alias=self._aliases()[source])

    def _aliases(self) -> dict[str, str]:
        mapped = [source for source in sorted(self.modules) if self.modules[source] != SAME_PACKAGE]
        return {source: f"external_ref{index}" for index, source in enumerate(mapped)}
