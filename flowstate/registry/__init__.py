"""Module descriptors and the read-only registry the resolver reads from."""

from flowstate.registry.models import (
    CustomMerge,
    FileTemplate,
    MergeShape,
    MergeStrategy,
    ModuleDescriptor,
    ModuleType,
)
from flowstate.registry.registry import InMemoryRegistry, ModuleRegistry

__all__ = [
    "CustomMerge",
    "FileTemplate",
    "InMemoryRegistry",
    "MergeShape",
    "MergeStrategy",
    "ModuleDescriptor",
    "ModuleRegistry",
    "ModuleType",
]
