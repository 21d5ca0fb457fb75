"""flowstate resolver -- expands a module selection into an ordered, conflict-checked set.

Quick usage::

    from flowstate.registry import InMemoryRegistry
    from flowstate.resolver import DependencyResolver, ResolveOptions

    resolver = DependencyResolver(InMemoryRegistry(modules))
    resolution = resolver.resolve(["vuetify"], ResolveOptions(auto_resolve=True))
    if resolution.success:
        print(resolution.module_names)
"""

from flowstate.resolver.cache import NullCache, ResolutionCache
from flowstate.resolver.capabilities import CapabilityIndex
from flowstate.resolver.conflicts import ConflictDetector
from flowstate.resolver.graph import DependencyGraph
from flowstate.resolver.models import (
    Conflict,
    ConflictType,
    IssueCode,
    PresetMatch,
    Resolution,
    ResolutionIssue,
    ResolveOptions,
    StackPreset,
    Suggestion,
)
from flowstate.resolver.resolver import DependencyResolver
from flowstate.resolver.suggestions import DEFAULT_PRESETS, SuggestionEngine

__all__ = [
    "DEFAULT_PRESETS",
    "CapabilityIndex",
    "Conflict",
    "ConflictDetector",
    "ConflictType",
    "DependencyGraph",
    "DependencyResolver",
    "IssueCode",
    "NullCache",
    "PresetMatch",
    "Resolution",
    "ResolutionCache",
    "ResolutionIssue",
    "ResolveOptions",
    "StackPreset",
    "Suggestion",
    "SuggestionEngine",
]
