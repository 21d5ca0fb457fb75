"""flowstate configuration.

Centralised, typed configuration for the resolver and the template merge
engine. All settings use Pydantic v2 models so they can be validated at
construction time and serialised to/from JSON or environment variables
without boiler-plate.
"""

from __future__ import annotations

import os
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field

from flowstate.registry.models import MergeStrategy

# Most information-preserving first; append and prepend share a rank.
STRATEGY_PRECEDENCE: tuple[tuple[MergeStrategy, ...], ...] = (
    (MergeStrategy.CUSTOM,),
    (MergeStrategy.MERGE_PACKAGE,),
    (MergeStrategy.MERGE_CONFIG,),
    (MergeStrategy.MERGE_JSON,),
    (MergeStrategy.MERGE_YAML,),
    (MergeStrategy.MERGE_ENV,),
    (MergeStrategy.APPEND_UNIQUE,),
    (MergeStrategy.APPEND, MergeStrategy.PREPEND),
    (MergeStrategy.REPLACE,),
)


class ArrayStrategy(str, Enum):
    """How ``merge-config`` combines two arrays found under the same key."""
    CONCAT = "concat"
    REPLACE = "replace"
    UNIQUE = "unique"


class ResolverConfig(BaseModel):
    """Tuning knobs for dependency resolution."""

    cache_capacity: int = Field(default=50, ge=1, description="Maximum cached resolutions")
    cache_ttl: Optional[float] = Field(
        default=None, gt=0, description="Cached resolution lifetime in seconds (None = forever)"
    )
    exclusive_types: list[str] = Field(
        default=["frontend-framework", "backend-framework", "build-tool", "package-manager"],
        description="Module types of which at most one may be selected",
    )
    recommended_types: list[str] = Field(
        default=["frontend-framework", "ui-library", "backend-service"],
        description="Module types whose absence produces a warning",
    )
    suggestion_limit: int = Field(default=3, ge=0, description="Top-K suggestions returned")
    similarity_threshold: float = Field(
        default=60.0, ge=0, le=100, description="Minimum fuzzy ratio for name suggestions"
    )


class MergeConfig(BaseModel):
    """Settings for the template merge engine."""

    json_indent: int = Field(default=2, ge=0, description="Indent for merged JSON output")
    staging_prefix: str = Field(
        default=".flowstate-staging-", description="Prefix of the temporary staging directory"
    )
    strict_undefined: bool = Field(
        default=True, description="Fail rendering when a template references an unknown variable"
    )
    config_array_strategy: ArrayStrategy = Field(
        default=ArrayStrategy.CONCAT, description="Array handling for merge-config files"
    )
    env_section_headers: bool = Field(
        default=False, description="Start each module's .env block with a '# <MODULE> Configuration' header"
    )

    @property
    def strategy_precedence(self) -> tuple[tuple[MergeStrategy, ...], ...]:
        """Fixed strategy precedence, highest first."""
        return STRATEGY_PRECEDENCE


class Config(BaseModel):
    """Global flowstate configuration.

    Instances are typically created once by ``ScaffoldPipeline`` or by the
    CLI entry point and then passed through the rest of the system.
    """

    resolver: ResolverConfig = Field(default_factory=ResolverConfig)
    merge: MergeConfig = Field(default_factory=MergeConfig)
    output_dir: Path = Field(default=Path("./output"))
    report_name: str = Field(default=".flowstate-report.json")

    @property
    def report_path(self) -> Path:
        """Where the machine-readable scaffold report is written."""
        return self.output_dir / self.report_name

    # ------------------------------------------------------------------
    # Serialisation helpers
    # ------------------------------------------------------------------

    def save(self, path: Path) -> Path:
        """Persist the configuration to a JSON file and return its path."""
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(self.model_dump_json(indent=2), encoding="utf-8")
        return target

    @classmethod
    def load(cls, path: Path) -> "Config":
        """Load a previously-saved configuration from JSON."""
        raw = Path(path).read_text(encoding="utf-8")
        return cls.model_validate_json(raw)

    @classmethod
    def from_env(cls) -> "Config":
        """Build a ``Config`` from environment variables.

        Recognised variables (all optional):
            FLOWSTATE_OUTPUT_DIR, FLOWSTATE_CACHE_CAPACITY, FLOWSTATE_CACHE_TTL,
            FLOWSTATE_SUGGESTION_LIMIT, FLOWSTATE_JSON_INDENT.
        """
        resolver_kwargs: dict[str, Any] = {}
        if os.environ.get("FLOWSTATE_CACHE_CAPACITY"):
            resolver_kwargs["cache_capacity"] = int(os.environ["FLOWSTATE_CACHE_CAPACITY"])
        if os.environ.get("FLOWSTATE_CACHE_TTL"):
            resolver_kwargs["cache_ttl"] = float(os.environ["FLOWSTATE_CACHE_TTL"])
        if os.environ.get("FLOWSTATE_SUGGESTION_LIMIT"):
            resolver_kwargs["suggestion_limit"] = int(os.environ["FLOWSTATE_SUGGESTION_LIMIT"])

        merge_kwargs: dict[str, Any] = {}
        if os.environ.get("FLOWSTATE_JSON_INDENT"):
            merge_kwargs["json_indent"] = int(os.environ["FLOWSTATE_JSON_INDENT"])

        return cls(
            resolver=ResolverConfig(**resolver_kwargs),
            merge=MergeConfig(**merge_kwargs),
            output_dir=Path(os.environ.get("FLOWSTATE_OUTPUT_DIR", "./output")),
        )
