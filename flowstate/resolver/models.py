"""Value types produced by the dependency resolver.

A ``Resolution`` is created fresh by each ``resolve()`` call (or handed back
by reference from the resolution cache) and never mutated afterwards, so all
models here are frozen and use tuples for their collections.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from flowstate.errors import ConflictError, MissingDependencyError
from flowstate.registry.models import ModuleDescriptor


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class ConflictType(str, Enum):
    """Classes of conflict the resolver detects."""
    DIRECT = "direct"
    EXCLUSIVE = "exclusive"
    CIRCULAR = "circular"
    VERSION = "version"


class IssueCode(str, Enum):
    """Non-conflict problems recorded while resolving."""
    MODULE_NOT_FOUND = "module-not-found"
    MISSING_DEPENDENCY = "missing-dependency"


# ---------------------------------------------------------------------------
# Options
# ---------------------------------------------------------------------------

class ResolveOptions(BaseModel):
    """Caller-controlled switches for ``resolve()``."""

    model_config = ConfigDict(frozen=True)

    auto_resolve: bool = Field(
        default=False, description="Add providers for unsatisfied capabilities automatically"
    )
    allow_conflicts: bool = Field(
        default=False, description="Order and return the module set even when conflicts exist"
    )


# ---------------------------------------------------------------------------
# Result parts
# ---------------------------------------------------------------------------

class Conflict(BaseModel):
    """A conflict between two or more modules of the working set."""

    model_config = ConfigDict(frozen=True)

    type: ConflictType
    modules: tuple[str, ...]
    message: str

    @property
    def key(self) -> tuple[ConflictType, frozenset[str]]:
        """Identity used for de-duplication: type plus unordered module set."""
        return (self.type, frozenset(self.modules))


class ResolutionIssue(BaseModel):
    """An unknown module or an unsatisfiable capability."""

    model_config = ConfigDict(frozen=True)

    code: IssueCode
    module: str
    capability: Optional[str] = None
    message: str


class Suggestion(BaseModel):
    """A module proposed to fix a problem, with a ranking score."""

    model_config = ConfigDict(frozen=True)

    module: str
    reason: str
    score: float


class StackPreset(BaseModel):
    """A well-known module combination offered as a starting point."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str = ""
    modules: tuple[str, ...]
    popularity: int = Field(default=0, ge=0, le=100)
    tags: tuple[str, ...] = ()


class PresetMatch(BaseModel):
    """How far a selection already goes towards a ``StackPreset``."""

    model_config = ConfigDict(frozen=True)

    preset: StackPreset
    matched: tuple[str, ...]
    missing: tuple[str, ...]

    @property
    def match_count(self) -> int:
        return len(self.matched)


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------

class Resolution(BaseModel):
    """The resolver's complete answer for one requested module set."""

    model_config = ConfigDict(frozen=True)

    success: bool
    modules: tuple[ModuleDescriptor, ...] = ()
    conflicts: tuple[Conflict, ...] = ()
    issues: tuple[ResolutionIssue, ...] = ()
    warnings: tuple[str, ...] = ()
    suggestions: tuple[Suggestion, ...] = ()

    @property
    def module_names(self) -> list[str]:
        """Names of the ordered modules."""
        return [m.name for m in self.modules]

    def conflicts_of(self, conflict_type: ConflictType | str) -> list[Conflict]:
        wanted = ConflictType(conflict_type)
        return [c for c in self.conflicts if c.type is wanted]

    def issues_of(self, code: IssueCode | str) -> list[ResolutionIssue]:
        wanted = IssueCode(code)
        return [i for i in self.issues if i.code is wanted]

    def raise_for_status(self) -> None:
        """Raise the matching exception if the resolution failed.

        Conflicts take precedence over missing dependencies.  Unknown module
        names never raise here; they are reported as warnings.
        """
        if self.success:
            return
        if self.conflicts:
            raise ConflictError(list(self.conflicts))
        missing = self.issues_of(IssueCode.MISSING_DEPENDENCY)
        if missing:
            raise MissingDependencyError([(i.module, i.capability or "") for i in missing])

    def to_summary(self) -> dict[str, Any]:
        """JSON-ready summary for CLI reporting."""
        return {
            "success": self.success,
            "modules": self.module_names,
            "conflicts": [c.model_dump(mode="json") for c in self.conflicts],
            "issues": [i.model_dump(mode="json") for i in self.issues],
            "warnings": list(self.warnings),
            "suggestions": [s.model_dump(mode="json") for s in self.suggestions],
        }


__all__ = [
    "Conflict",
    "ConflictType",
    "IssueCode",
    "PresetMatch",
    "Resolution",
    "ResolutionIssue",
    "ResolveOptions",
    "StackPreset",
    "Suggestion",
]
