"""Shared pytest fixtures for the flowstate test suite.

Provides reusable fixtures for:
- A ``make_module`` factory for terse module descriptors
- A small sample registry (Vue, React, Vuetify, Tailwind, Supabase, ...)
- Project contexts
- Directory snapshots for byte-identical comparisons
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Callable

import pytest

from flowstate.registry.models import FileTemplate, MergeStrategy, ModuleDescriptor
from flowstate.registry.registry import InMemoryRegistry
from flowstate.scaffolder.context import ProjectContext


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def build_module(name: str, module_type: str = "tooling", **fields: Any) -> ModuleDescriptor:
    """Build a descriptor; set-like fields may be given as lists or sets."""
    return ModuleDescriptor(name=name, module_type=module_type, **fields)


def snapshot_tree(root: Path) -> dict[str, bytes | None]:
    """Map every path under *root* to its bytes (``None`` for directories)."""
    if not root.exists():
        return {}
    return {
        path.relative_to(root).as_posix(): (None if path.is_dir() else path.read_bytes())
        for path in sorted(root.rglob("*"))
    }


# ---------------------------------------------------------------------------
# Modules & registry
# ---------------------------------------------------------------------------

@pytest.fixture
def make_module() -> Callable[..., ModuleDescriptor]:
    """Factory fixture: ``make_module("name", "ui-library", requires=["x"])``."""
    return build_module


@pytest.fixture
def sample_modules() -> list[ModuleDescriptor]:
    """A small, realistic module catalogue."""
    return [
        build_module(
            "vue-base",
            "frontend-framework",
            version="3.4.0",
            category="frontend",
            priority=100,
            description="Vue 3 application skeleton with Vite",
            tags=["vue", "vite", "spa"],
            provides=["frontend", "vue"],
            file_templates=[
                FileTemplate(
                    path="package.json",
                    template='{"name": "{{ project_slug }}", "dependencies": {"vue": "^3.4.0"}}',
                    merge=MergeStrategy.MERGE_JSON,
                ),
                FileTemplate(
                    path=".gitignore",
                    content="node_modules/\n.env",
                    merge=MergeStrategy.APPEND_UNIQUE,
                ),
                FileTemplate(path="src/main.js", content="import { createApp } from 'vue'\n"),
            ],
        ),
        build_module(
            "vuetify",
            "ui-library",
            version="3.5.0",
            category="ui",
            priority=50,
            description="Material Design component framework for Vue",
            tags=["material", "components"],
            provides=["ui", "material-design"],
            requires=["vue"],
            version_constraints={"vue": "^3.0.0"},
            compatible_with=["vue-base"],
            incompatible_with=["react"],
            file_templates=[
                FileTemplate(
                    path="package.json",
                    content='{"dependencies": {"vuetify": "^3.5.0"}, "scripts": {"dev": "vite"}}',
                    merge=MergeStrategy.MERGE_JSON,
                ),
                FileTemplate(
                    path=".gitignore",
                    content=".env\ndist/",
                    merge=MergeStrategy.APPEND_UNIQUE,
                ),
            ],
        ),
        build_module(
            "react",
            "frontend-framework",
            version="18.2.0",
            category="frontend",
            priority=90,
            description="React single page application",
            tags=["react", "jsx"],
            provides=["frontend", "react"],
        ),
        build_module(
            "tailwind",
            "ui-library",
            version="3.4.1",
            category="ui",
            priority=40,
            description="Utility-first CSS framework",
            tags=["css", "utility"],
            provides=["css-framework"],
            requires=["frontend"],
        ),
        build_module(
            "supabase",
            "backend-service",
            version="2.39.0",
            category="backend",
            priority=80,
            description="Postgres database with auth and storage",
            tags=["postgres", "database"],
            provides=["database", "auth-backend"],
            file_templates=[
                FileTemplate(
                    path=".env",
                    template="SUPABASE_URL={{ supabase_url }}\nSUPABASE_ANON_KEY=",
                    merge=MergeStrategy.MERGE_ENV,
                ),
            ],
        ),
        build_module(
            "better-auth",
            "auth-provider",
            version="1.0.0",
            category="auth",
            priority=30,
            description="Framework-agnostic authentication",
            tags=["auth", "sessions"],
            provides=["auth"],
            requires=["database"],
        ),
        build_module(
            "vercel",
            "deployment",
            version="1.0.0",
            category="deployment",
            priority=20,
            description="Deploy to Vercel",
            tags=["hosting"],
            provides=["hosting"],
        ),
    ]


@pytest.fixture
def registry(sample_modules: list[ModuleDescriptor]) -> InMemoryRegistry:
    """In-memory registry over ``sample_modules``."""
    return InMemoryRegistry(sample_modules)


@pytest.fixture
def registry_json(tmp_path: Path, sample_modules: list[ModuleDescriptor]) -> Path:
    """The sample catalogue written as a JSON registry file."""
    path = tmp_path / "modules.json"
    records = [m.model_dump(mode="json") for m in sample_modules]
    path.write_text(json.dumps(records, indent=2), encoding="utf-8")
    return path


# ---------------------------------------------------------------------------
# Project context & directories
# ---------------------------------------------------------------------------

@pytest.fixture
def project_context() -> ProjectContext:
    return ProjectContext(
        project_name="Demo App",
        variables={"supabase_url": "http://localhost:54321"},
        selected_modules=["vue-base", "vuetify"],
        module_config={"vuetify": {"theme": "dark"}},
    )


@pytest.fixture
def tmp_project_dir(tmp_path: Path) -> Path:
    """Temporary (existing) directory for generated projects."""
    project_dir = tmp_path / "demo-app"
    project_dir.mkdir()
    return project_dir


@pytest.fixture
def snapshot() -> Callable[[Path], dict[str, bytes | None]]:
    """Fixture form of ``snapshot_tree``."""
    return snapshot_tree
