"""Exception hierarchy for flowstate.

Resolver-level problems (unknown modules, unsatisfiable capabilities,
conflicts) are normally reported as data on a ``Resolution``; the matching
exception classes exist so callers that prefer exceptions can opt in via
``Resolution.raise_for_status()``.  Merge and commit problems are always
raised, after the target directory has been rolled back.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any


class FlowStateError(Exception):
    """Base class for every error raised by flowstate."""


# ---------------------------------------------------------------------------
# Resolver errors (surfaced as data, raised only on request)
# ---------------------------------------------------------------------------


class UnknownModuleError(FlowStateError, LookupError):
    """A requested module name is not known to the registry."""

    def __init__(self, name: str, suggestions: list[str] | None = None) -> None:
        self.name = name
        self.suggestions = list(suggestions or [])
        message = f"Module '{name}' not found in registry"
        if self.suggestions:
            message += f" (did you mean: {', '.join(self.suggestions)}?)"
        super().__init__(message)


class MissingDependencyError(FlowStateError):
    """A required capability could not be satisfied, even after auto-resolution."""

    def __init__(self, missing: list[tuple[str, str]]) -> None:
        self.missing = list(missing)
        details = ", ".join(f"{module} requires '{cap}'" for module, cap in self.missing)
        super().__init__(f"Unsatisfied dependencies: {details}")


class ConflictError(FlowStateError):
    """The resolved module set contains one or more conflicts."""

    def __init__(self, conflicts: list[Any]) -> None:
        self.conflicts = list(conflicts)
        details = "; ".join(getattr(c, "message", str(c)) for c in self.conflicts)
        super().__init__(f"{len(self.conflicts)} conflict(s): {details}")


# ---------------------------------------------------------------------------
# Generation errors (always raised)
# ---------------------------------------------------------------------------


class MergeError(FlowStateError):
    """A file could not be rendered or merged.

    Raised for malformed templates, failing custom merge functions and
    unsupported structured-data shapes.  Nothing has been written to the
    target directory when this propagates out of ``generate()``.
    """

    def __init__(self, path: str, message: str, module: str | None = None) -> None:
        self.path = path
        self.module = module
        self.reason = message
        origin = f" (module '{module}')" if module else ""
        super().__init__(f"{path}{origin}: {message}")


class FileSystemError(FlowStateError):
    """An I/O failure while staging or committing generated files."""

    def __init__(self, path: str | Path, message: str) -> None:
        self.path = str(path)
        self.reason = message
        super().__init__(f"{self.path}: {message}")


__all__ = [
    "ConflictError",
    "FileSystemError",
    "FlowStateError",
    "MergeError",
    "MissingDependencyError",
    "UnknownModuleError",
]
