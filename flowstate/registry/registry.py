"""Read-only module registry.

Discovery and loading of modules from disk or the network happen elsewhere;
the resolver and the merge engine only need a lookup service.  ``ModuleRegistry``
is that contract, and ``InMemoryRegistry`` is an immutable snapshot
implementing it, built from descriptors or plain records.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any, Optional, Protocol, runtime_checkable

from flowstate.errors import UnknownModuleError
from flowstate.registry.models import ModuleDescriptor

logger = logging.getLogger(__name__)


@runtime_checkable
class ModuleRegistry(Protocol):
    """Lookup interface the resolver depends on."""

    def get_module(self, name: str) -> Optional[ModuleDescriptor]: ...

    def get_all_modules(self) -> list[ModuleDescriptor]: ...

    def get_modules_by_category(self, category: str) -> list[ModuleDescriptor]: ...

    def search(self, query: str) -> list[ModuleDescriptor]: ...


class InMemoryRegistry:
    """Immutable snapshot of a module set.

    Modules are returned in a stable order: descending priority, then name.
    Registering two modules under the same name is a programmer error.
    """

    def __init__(self, modules: Iterable[ModuleDescriptor] = ()) -> None:
        by_name: dict[str, ModuleDescriptor] = {}
        for module in modules:
            if module.name in by_name:
                raise ValueError(f"duplicate module name in registry: {module.name!r}")
            by_name[module.name] = module
        self._modules = by_name
        self._ordered = tuple(sorted(by_name.values(), key=lambda m: (-m.priority, m.name)))
        logger.debug("Registry snapshot created with %d modules", len(by_name))

    @classmethod
    def from_records(cls, records: Iterable[Mapping[str, Any]]) -> "InMemoryRegistry":
        """Build a registry from plain dicts (e.g. parsed JSON or YAML)."""
        return cls(ModuleDescriptor.model_validate(dict(record)) for record in records)

    # -- ModuleRegistry ----------------------------------------------------

    def get_module(self, name: str) -> Optional[ModuleDescriptor]:
        return self._modules.get(name)

    def get_all_modules(self) -> list[ModuleDescriptor]:
        return list(self._ordered)

    def get_modules_by_category(self, category: str) -> list[ModuleDescriptor]:
        return [m for m in self._ordered if m.category == category]

    def search(self, query: str) -> list[ModuleDescriptor]:
        """Case-insensitive substring search over name, description, category and tags."""
        needle = query.strip().lower()
        if not needle:
            return []
        results = []
        for module in self._ordered:
            haystack = [module.name, module.description, module.category, *module.tags]
            if any(needle in field.lower() for field in haystack):
                results.append(module)
        return results

    # -- Convenience -------------------------------------------------------

    def require(self, name: str) -> ModuleDescriptor:
        """Like :meth:`get_module` but raises ``UnknownModuleError``."""
        module = self._modules.get(name)
        if module is None:
            raise UnknownModuleError(name)
        return module

    def names(self) -> list[str]:
        return [m.name for m in self._ordered]

    def __contains__(self, name: object) -> bool:
        return name in self._modules

    def __len__(self) -> int:
        return len(self._modules)

    def __iter__(self):
        return iter(self._ordered)
