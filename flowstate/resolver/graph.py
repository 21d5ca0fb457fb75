"""Dependency graph over a resolved module set.

An edge ``A -> B`` exists when module ``A`` requires a capability that module
``B`` provides.  The graph lives only for the duration of one resolution.
"""

from __future__ import annotations

import heapq
from collections.abc import Iterable

from flowstate.registry.models import ModuleDescriptor
from flowstate.resolver.capabilities import CapabilityIndex

_WHITE, _GREY, _BLACK = 0, 1, 2


def order_key(module: ModuleDescriptor) -> tuple[int, str]:
    """Tie-break key: descending priority, then ascending name."""
    return (-module.priority, module.name)


class DependencyGraph:
    """Directed requires->provides graph with cycle detection and ordering."""

    def __init__(
        self,
        modules: Iterable[ModuleDescriptor],
        index: CapabilityIndex | None = None,
    ) -> None:
        self.modules: dict[str, ModuleDescriptor] = {m.name: m for m in modules}
        index = index or CapabilityIndex(self.modules.values())
        self.edges: dict[str, list[str]] = {}
        for name, module in self.modules.items():
            targets: set[str] = set()
            for capability in module.requires:
                targets.update(p for p in index.providers(capability) if p in self.modules)
            targets.discard(name)
            self.edges[name] = sorted(targets, key=lambda n: order_key(self.modules[n]))

    def dependencies(self, name: str) -> list[str]:
        return list(self.edges.get(name, ()))

    def dependents(self, name: str) -> list[str]:
        return sorted(n for n, deps in self.edges.items() if name in deps)

    # -- Cycle detection ---------------------------------------------------

    def find_cycles(self) -> list[list[str]]:
        """Find cycles with a three-colour depth-first search.

        Each cycle is returned as a closed path (``["a", "b", "a"]``) rotated
        to start at its smallest name, so the same cycle found from different
        entry points is reported once.
        """
        colour = {name: _WHITE for name in self.modules}
        cycles: list[list[str]] = []
        seen: set[tuple[str, ...]] = set()

        for root in sorted(self.modules):
            if colour[root] != _WHITE:
                continue
            path: list[str] = [root]
            stack: list[tuple[str, int]] = [(root, 0)]
            colour[root] = _GREY
            while stack:
                node, position = stack[-1]
                children = self.edges[node]
                if position >= len(children):
                    stack.pop()
                    path.pop()
                    colour[node] = _BLACK
                    continue
                stack[-1] = (node, position + 1)
                child = children[position]
                if colour[child] == _GREY:
                    cycle = path[path.index(child):]
                    canonical = _canonical(cycle)
                    if canonical not in seen:
                        seen.add(canonical)
                        cycles.append([*canonical, canonical[0]])
                elif colour[child] == _WHITE:
                    colour[child] = _GREY
                    path.append(child)
                    stack.append((child, 0))
        return cycles

    # -- Ordering ----------------------------------------------------------

    def topological_order(self) -> list[ModuleDescriptor]:
        """Dependencies first; ties broken by descending priority then name.

        Kahn's algorithm with a heap as the ready set, so identical input
        always yields the identical order.  Modules stuck in a cycle are
        appended at the end in tie-break order.
        """
        pending = {name: len(deps) for name, deps in self.edges.items()}
        dependents: dict[str, list[str]] = {name: [] for name in self.modules}
        for name, deps in self.edges.items():
            for dep in deps:
                dependents[dep].append(name)

        ready = [(order_key(self.modules[n]), n) for n, count in pending.items() if count == 0]
        heapq.heapify(ready)
        ordered: list[ModuleDescriptor] = []
        while ready:
            _, name = heapq.heappop(ready)
            ordered.append(self.modules[name])
            for dependent in dependents[name]:
                pending[dependent] -= 1
                if pending[dependent] == 0:
                    heapq.heappush(ready, (order_key(self.modules[dependent]), dependent))

        if len(ordered) != len(self.modules):
            placed = {m.name for m in ordered}
            leftovers = [m for n, m in self.modules.items() if n not in placed]
            ordered.extend(sorted(leftovers, key=order_key))
        return ordered


def _canonical(cycle: list[str]) -> tuple[str, ...]:
    start = cycle.index(min(cycle))
    return tuple(cycle[start:] + cycle[:start])
