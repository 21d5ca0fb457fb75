"""Capability index: which modules of a set provide which capability."""

from __future__ import annotations

from collections.abc import Iterable

from flowstate.registry.models import ModuleDescriptor


class CapabilityIndex:
    """Derived mapping ``capability -> names of modules providing it``.

    The index is a read-only view over one module set.  Build a new index
    whenever the set changes; never edit one in place.
    """

    def __init__(self, modules: Iterable[ModuleDescriptor]) -> None:
        self._modules: dict[str, ModuleDescriptor] = {}
        self._providers: dict[str, set[str]] = {}
        for module in modules:
            self._modules[module.name] = module
            for capability in module.provides:
                self._providers.setdefault(capability, set()).add(module.name)

    def providers(self, capability: str) -> frozenset[str]:
        """Names of modules in the set that provide *capability*."""
        return frozenset(self._providers.get(capability, ()))

    def provider_modules(self, capability: str) -> list[ModuleDescriptor]:
        """Providers of *capability*, highest priority first then by name."""
        found = [self._modules[name] for name in self._providers.get(capability, ())]
        return sorted(found, key=lambda m: (-m.priority, m.name))

    def is_satisfied(self, capability: str) -> bool:
        return bool(self._providers.get(capability))

    def matching(self, token: str) -> frozenset[str]:
        """Modules named *token* or providing a capability called *token*."""
        names = set(self._providers.get(token, ()))
        if token in self._modules:
            names.add(token)
        return frozenset(names)

    def capabilities(self) -> list[str]:
        return sorted(self._providers)

    def module(self, name: str) -> ModuleDescriptor:
        return self._modules[name]

    @property
    def module_names(self) -> frozenset[str]:
        return frozenset(self._modules)

    def __contains__(self, capability: object) -> bool:
        return capability in self._providers

    def __len__(self) -> int:
        return len(self._providers)
