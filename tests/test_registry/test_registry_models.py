"""Tests for module descriptor models (flowstate.registry.models).

Covers:
- FileTemplate path and body validation
- CustomMerge shape checks
- ModuleDescriptor validation (versions, ranges, self-requirements)
- Incompatibility matching by name and by capability
- Immutability
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from flowstate.registry.models import (
    CustomMerge,
    FileTemplate,
    MergeShape,
    MergeStrategy,
    ModuleDescriptor,
    ModuleType,
)

pytestmark = pytest.mark.unit


# ---------------------------------------------------------------------------
# FileTemplate
# ---------------------------------------------------------------------------


class TestFileTemplate:
    def test_defaults(self):
        template = FileTemplate(path="README.md", content="# hi\n")
        assert template.merge is MergeStrategy.REPLACE
        assert template.render is True
        assert template.is_templated is False

    def test_inline_template_is_templated(self):
        assert FileTemplate(path="a.txt", template="{{ x }}").is_templated

    def test_source_render_flag(self):
        assert FileTemplate(path="a.txt", source="/tmp/a.j2").is_templated
        assert not FileTemplate(path="a.txt", source="/tmp/a.j2", render=False).is_templated

    def test_windows_separators_normalised(self):
        assert FileTemplate(path="src\\main.js", content="").path == "src/main.js"

    @pytest.mark.parametrize("path", ["/etc/passwd", "../outside.txt", "src/../../x", "  "])
    def test_rejects_paths_outside_project(self, path: str):
        with pytest.raises(ValidationError):
            FileTemplate(path=path, content="x")

    def test_requires_exactly_one_body(self):
        with pytest.raises(ValidationError, match="exactly one"):
            FileTemplate(path="a.txt")
        with pytest.raises(ValidationError, match="exactly one"):
            FileTemplate(path="a.txt", content="x", template="y")

    def test_custom_strategy_needs_function(self):
        with pytest.raises(ValidationError, match="custom_merge"):
            FileTemplate(path="a.txt", content="x", merge=MergeStrategy.CUSTOM)

    def test_merge_strategy_from_string(self):
        template = FileTemplate(path="package.json", content="{}", merge="merge-json")
        assert template.merge is MergeStrategy.MERGE_JSON


class TestCustomMerge:
    def test_text_shape(self):
        contract = CustomMerge(fn=lambda a, b: a + b)
        assert contract.shape is MergeShape.TEXT
        assert contract.accepts("text")
        assert not contract.accepts({"a": 1})

    def test_structured_shape(self):
        contract = CustomMerge(fn=lambda a, b: a, shape="structured")
        assert contract.accepts({"a": 1})
        assert contract.accepts([1, 2])
        assert not contract.accepts("text")


# ---------------------------------------------------------------------------
# ModuleDescriptor
# ---------------------------------------------------------------------------


class TestModuleDescriptor:
    def test_minimal(self):
        module = ModuleDescriptor(name="vite", module_type="build-tool")
        assert module.version == "1.0.0"
        assert module.module_type is ModuleType.BUILD_TOOL
        assert module.provides == frozenset()
        assert module.file_templates == ()

    def test_lists_become_frozensets(self, make_module):
        module = make_module("x", provides=["a", "b", "a"])
        assert module.provides == frozenset({"a", "b"})

    def test_invalid_version(self):
        with pytest.raises(ValidationError, match="invalid version"):
            ModuleDescriptor(name="x", module_type="tooling", version="not-a-version")

    def test_invalid_range(self):
        with pytest.raises(ValidationError):
            ModuleDescriptor(
                name="x", module_type="tooling", requires=["vue"],
                version_constraints={"vue": "^three"},
            )

    def test_cannot_require_own_capability(self):
        with pytest.raises(ValidationError, match="requires capabilities it provides"):
            ModuleDescriptor(name="x", module_type="tooling", provides=["a"], requires=["a"])

    def test_constraint_must_target_a_requirement(self):
        with pytest.raises(ValidationError, match="does not require"):
            ModuleDescriptor(
                name="x", module_type="tooling", version_constraints={"vue": "^3.0.0"}
            )

    def test_unknown_module_type(self):
        with pytest.raises(ValidationError):
            ModuleDescriptor(name="x", module_type="mainframe")

    def test_frozen(self, make_module):
        module = make_module("x")
        with pytest.raises(ValidationError):
            module.priority = 10

    def test_provides_any(self, make_module):
        module = make_module("vue-base", provides=["frontend", "vue"])
        assert module.provides_any({"vue-base"})
        assert module.provides_any({"frontend"})
        assert not module.provides_any({"react"})

    def test_declares_incompatible_by_name_and_capability(self, make_module):
        vuetify = make_module("vuetify", incompatible_with=["react", "database"])
        react = make_module("react", provides=["frontend"])
        supabase = make_module("supabase", provides=["database"])
        vue = make_module("vue-base", provides=["frontend"])
        assert vuetify.declares_incompatible(react)
        assert vuetify.declares_incompatible(supabase)
        assert not vuetify.declares_incompatible(vue)
        # declared on one side only
        assert not react.declares_incompatible(vuetify)

    def test_never_incompatible_with_itself(self, make_module):
        module = make_module("solo", provides=["x"], incompatible_with=["x"])
        assert not module.declares_incompatible(module)
