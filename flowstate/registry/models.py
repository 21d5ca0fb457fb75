"""Pydantic v2 models describing scaffold modules.

A module is a named, versioned building block (a frontend framework, a UI
library, an auth provider...) that declares the capabilities it provides and
requires, who it gets along with, and the files it contributes to a generated
project.  Descriptors are immutable once loaded by the registry.
"""

from __future__ import annotations

from enum import Enum
from pathlib import PurePosixPath
from typing import Any, Callable, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from flowstate.versions import parse_range, parse_version


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class ModuleType(str, Enum):
    """Kind of building block a module represents."""
    FRONTEND_FRAMEWORK = "frontend-framework"
    UI_LIBRARY = "ui-library"
    BACKEND_SERVICE = "backend-service"
    BACKEND_FRAMEWORK = "backend-framework"
    AUTH_PROVIDER = "auth-provider"
    DEPLOYMENT = "deployment"
    BUILD_TOOL = "build-tool"
    PACKAGE_MANAGER = "package-manager"
    TOOLING = "tooling"


class MergeStrategy(str, Enum):
    """How contributions from several modules to one path are combined."""
    REPLACE = "replace"
    MERGE_JSON = "merge-json"
    MERGE_YAML = "merge-yaml"
    APPEND = "append"
    PREPEND = "prepend"
    APPEND_UNIQUE = "append-unique"
    MERGE_ENV = "merge-env"
    MERGE_PACKAGE = "merge-package"
    MERGE_CONFIG = "merge-config"
    CUSTOM = "custom"


class MergeShape(str, Enum):
    """Value shape a custom merge function accepts and returns."""
    TEXT = "text"
    STRUCTURED = "structured"


# ---------------------------------------------------------------------------
# File contributions
# ---------------------------------------------------------------------------

class CustomMerge(BaseModel):
    """Explicit contract for a module-supplied merge function.

    ``fn(accumulated, contribution)`` receives the value merged so far and the
    next contribution, both of the declared ``shape``: ``str`` for text,
    ``dict``/``list`` for structured data.  It must return a value of the same
    shape; the engine checks this before continuing.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    fn: Callable[[Any, Any], Any] = Field(..., description="Merge function")
    shape: MergeShape = Field(default=MergeShape.TEXT, description="Value shape handled by fn")

    def accepts(self, value: Any) -> bool:
        """Return ``True`` if *value* matches the declared shape."""
        if self.shape is MergeShape.TEXT:
            return isinstance(value, str)
        return isinstance(value, (dict, list))


class FileTemplate(BaseModel):
    """A single file a module contributes to the generated project.

    Exactly one body source must be given: ``content`` (static, used as-is),
    ``template`` (an inline Jinja2 body) or ``source`` (a file on disk holding
    the body, rendered unless ``render`` is false).
    """

    model_config = ConfigDict(frozen=True)

    path: str = Field(..., description="Output path relative to the project root")
    content: Optional[str] = Field(default=None, description="Static body")
    template: Optional[str] = Field(default=None, description="Inline Jinja2 body")
    source: Optional[str] = Field(default=None, description="Path to a template file")
    render: bool = Field(default=True, description="Render a source file as a template")
    merge: MergeStrategy = Field(default=MergeStrategy.REPLACE)
    custom_merge: Optional[CustomMerge] = Field(default=None)

    @field_validator("path")
    @classmethod
    def _relative_path(cls, value: str) -> str:
        posix = PurePosixPath(value.replace("\\", "/"))
        if not value.strip() or posix.is_absolute() or ".." in posix.parts:
            raise ValueError(f"template path must be relative and stay inside the project: {value!r}")
        return posix.as_posix()

    @model_validator(mode="after")
    def _one_body(self) -> "FileTemplate":
        bodies = [b for b in (self.content, self.template, self.source) if b is not None]
        if len(bodies) != 1:
            raise ValueError(
                f"{self.path}: exactly one of content, template or source is required"
            )
        if self.merge is MergeStrategy.CUSTOM and self.custom_merge is None:
            raise ValueError(f"{self.path}: merge strategy 'custom' needs a custom_merge function")
        return self

    @property
    def is_templated(self) -> bool:
        """Whether the body goes through variable substitution."""
        if self.template is not None:
            return True
        return self.source is not None and self.render


# ---------------------------------------------------------------------------
# Module descriptor
# ---------------------------------------------------------------------------

class ModuleDescriptor(BaseModel):
    """Immutable description of one scaffold module."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1, description="Unique module key")
    version: str = Field(default="1.0.0", description="Semantic version")
    module_type: ModuleType = Field(..., description="Kind of building block")
    category: str = Field(default="", description="Free-form grouping tag")
    priority: int = Field(default=0, description="Higher is resolved and applied first on ties")
    description: str = Field(default="")
    tags: frozenset[str] = Field(default_factory=frozenset, description="Search keywords")
    provides: frozenset[str] = Field(default_factory=frozenset)
    requires: frozenset[str] = Field(default_factory=frozenset)
    version_constraints: dict[str, str] = Field(
        default_factory=dict,
        description="Capability -> semver range its provider must satisfy",
    )
    compatible_with: frozenset[str] = Field(default_factory=frozenset)
    incompatible_with: frozenset[str] = Field(default_factory=frozenset)
    file_templates: tuple[FileTemplate, ...] = Field(default_factory=tuple)

    @field_validator("version")
    @classmethod
    def _valid_version(cls, value: str) -> str:
        parse_version(value)
        return value

    @field_validator("version_constraints")
    @classmethod
    def _valid_ranges(cls, value: dict[str, str]) -> dict[str, str]:
        for spec in value.values():
            parse_range(spec)
        return value

    @model_validator(mode="after")
    def _no_self_requirement(self) -> "ModuleDescriptor":
        overlap = self.provides & self.requires
        if overlap:
            raise ValueError(
                f"module '{self.name}' requires capabilities it provides itself: "
                f"{', '.join(sorted(overlap))}"
            )
        unknown = set(self.version_constraints) - set(self.requires)
        if unknown:
            raise ValueError(
                f"module '{self.name}' constrains capabilities it does not require: "
                f"{', '.join(sorted(unknown))}"
            )
        return self

    def provides_any(self, tokens: frozenset[str] | set[str]) -> bool:
        """Return ``True`` if the module's name or a capability is in *tokens*."""
        return self.name in tokens or bool(self.provides & tokens)

    def declares_incompatible(self, other: "ModuleDescriptor") -> bool:
        """Whether this module lists *other* (by name or capability) as incompatible."""
        return other.name != self.name and other.provides_any(self.incompatible_with)


__all__ = [
    "CustomMerge",
    "FileTemplate",
    "MergeShape",
    "MergeStrategy",
    "ModuleDescriptor",
    "ModuleType",
]
