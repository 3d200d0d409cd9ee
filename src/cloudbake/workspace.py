"""A read-only, typed collection of parsed build definitions."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, Mapping
from typing import Any, overload

from .builder import Builder, _builder_registry
from .hcl import interpolate_attrs

logger = logging.getLogger(__name__)


def _build_builder(name: str, type_name: str, attrs: dict[str, Any]) -> Builder:
    """Construct and prepare a single builder from parsed data."""
    if type_name not in _builder_registry:
        raise ValueError(f"Unknown builder type: '{type_name}'")
    builder_cls = _builder_registry[type_name]
    logger.debug("Preparing build '%s' as %s", name, builder_cls.__name__)
    builder = builder_cls(name)
    builder.prepare(interpolate_attrs(attrs))
    return builder


class Workspace(Mapping[str, Builder]):
    """Accumulates parsed templates and prepares builders on access.

    A build is declared as a block named after its builder type::

        cloudstack "base" {
            zone_id = "..."
        }
    """

    def __init__(self) -> None:
        self._pending: dict[str, tuple[str, dict[str, Any]]] = {}

    def load(self, data: dict[str, Any]) -> None:
        """Extract build blocks from a parsed data dict.

        Raises ValueError if a build name is already loaded.
        """
        for type_name in _builder_registry:
            for block in data.get(type_name, []):
                for build_name, attrs in block.items():
                    if build_name.startswith("__"):
                        continue
                    if build_name in self._pending:
                        raise ValueError(f"Duplicate build: '{build_name}'")
                    logger.debug("Found %s build '%s'", type_name, build_name)
                    self._pending[build_name] = (type_name, dict(attrs))

    def __getitem__(self, name: str) -> Builder:
        type_name, attrs = self._pending[name]
        return _build_builder(name, type_name, attrs)

    def __contains__(self, name: object) -> bool:
        return name in self._pending

    def __iter__(self) -> Iterator[str]:
        return iter(self._pending)

    def __len__(self) -> int:
        return len(self._pending)

    @overload
    def get(self, name: str) -> Builder | None: ...
    @overload
    def get(self, name: str, default: Builder) -> Builder: ...
    @overload
    def get(self, name: str, default: None) -> Builder | None: ...
    def get(self, name: str, default: Any = None) -> Builder | None:
        if name not in self._pending:
            return default
        return self[name]

    def filter(self, names: Iterable[str]) -> list[Builder]:
        """Return builders matching the given names, preserving input order."""
        return [self[n] for n in names if n in self._pending]

    def __repr__(self) -> str:
        return f"Workspace(builds={len(self._pending)})"
