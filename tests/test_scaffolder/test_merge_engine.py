"""Tests for the template merge engine (flowstate.scaffolder.generator).

Covers:
- End-to-end generation of merged files in resolver order
- Template rendering with project context and per-module config
- Source-file templates read concurrently but merged in order
- Atomicity: merge failures write nothing, commit failures roll back
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import pytest

from flowstate.config import MergeConfig
from flowstate.errors import FileSystemError, MergeError
from flowstate.registry.models import FileTemplate, MergeStrategy
from flowstate.scaffolder.context import ProjectContext
from flowstate.scaffolder.generator import GenerationResult, TemplateMergeEngine
from flowstate.scaffolder.templates import TemplateRenderer

pytestmark = pytest.mark.unit


@pytest.fixture
def engine() -> TemplateMergeEngine:
    return TemplateMergeEngine()


@pytest.fixture
def vue_stack(registry):
    return [registry.get_module("vue-base"), registry.get_module("vuetify")]


# ---------------------------------------------------------------------------
# Generation
# ---------------------------------------------------------------------------


class TestGenerate:
    async def test_merges_contributions(self, engine, vue_stack, project_context, tmp_path: Path):
        target = tmp_path / "demo-app"
        result = await engine.generate(vue_stack, project_context, target)

        assert isinstance(result, GenerationResult)
        assert result.files_written == [".gitignore", "package.json", "src/main.js"]
        assert json.loads((target / "package.json").read_text()) == {
            "name": "demo-app",
            "dependencies": {"vue": "^3.4.0", "vuetify": "^3.5.0"},
            "scripts": {"dev": "vite"},
        }
        assert (target / ".gitignore").read_text() == "node_modules/\n.env\ndist/\n"
        assert ".gitignore: discarded 1 duplicate line(s)" in result.warnings

    async def test_mapping_context(self, engine, vue_stack, tmp_path: Path):
        result = await engine.generate(vue_stack, {"project_name": "Shop Front"}, tmp_path / "shop")
        assert json.loads((tmp_path / "shop" / "package.json").read_text())["name"] == "shop-front"
        assert result.target_dir == tmp_path / "shop"

    async def test_variables_and_module_config(self, engine, make_module, tmp_path: Path):
        module = make_module(
            "theme",
            file_templates=[
                FileTemplate(
                    path="theme.txt",
                    template="{{ module.name }}={{ module.config.mode }} api={{ api_url }}",
                )
            ],
        )
        context = ProjectContext(
            project_name="x",
            variables={"api_url": "http://localhost:3000"},
            module_config={"theme": {"mode": "dark"}},
        )
        await engine.generate([module], context, tmp_path / "x")
        assert (tmp_path / "x" / "theme.txt").read_text() == "theme=dark api=http://localhost:3000"

    async def test_static_content_not_rendered(self, engine, make_module, tmp_path: Path):
        module = make_module("raw", file_templates=[FileTemplate(path="a.txt", content="{{ literal }}")])
        await engine.generate([module], {"project_name": "x"}, tmp_path / "x")
        assert (tmp_path / "x" / "a.txt").read_text() == "{{ literal }}"

    async def test_source_files_merge_in_module_order(self, make_module, tmp_path: Path):
        sources = tmp_path / "templates"
        sources.mkdir()
        for name in ("first", "second", "third"):
            (sources / f"{name}.j2").write_text(f"{name}={{{{ project_slug }}}}\n")

        class SlowFirstRenderer(TemplateRenderer):
            async def read_source(self, source, *, path, module=None):
                if module == "first":
                    await asyncio.sleep(0.05)
                return await super().read_source(source, path=path, module=module)

        modules = [
            make_module(
                name,
                file_templates=[
                    FileTemplate(path="NOTES", source=str(sources / f"{name}.j2"), merge=MergeStrategy.APPEND)
                ],
            )
            for name in ("first", "second", "third")
        ]
        engine = TemplateMergeEngine(renderer=SlowFirstRenderer())
        await engine.generate(modules, {"project_name": "Demo"}, tmp_path / "out")
        assert (tmp_path / "out" / "NOTES").read_text() == "first=demo\nsecond=demo\nthird=demo\n"

    async def test_source_without_rendering(self, engine, make_module, tmp_path: Path):
        source = tmp_path / "Makefile.tpl"
        source.write_text("run:\n\t{{ not_a_variable }}\n")
        module = make_module(
            "make", file_templates=[FileTemplate(path="Makefile", source=str(source), render=False)]
        )
        await engine.generate([module], {"project_name": "x"}, tmp_path / "x")
        assert (tmp_path / "x" / "Makefile").read_text() == "run:\n\t{{ not_a_variable }}\n"

    async def test_no_modules(self, engine, tmp_path: Path):
        result = await engine.generate([], {"project_name": "empty"}, tmp_path / "empty")
        assert result.files_written == []
        assert (tmp_path / "empty").is_dir()

    async def test_json_indent_from_config(self, registry, project_context, tmp_path: Path):
        engine = TemplateMergeEngine(config=MergeConfig(json_indent=4))
        await engine.generate([registry.get_module("vue-base")], project_context, tmp_path / "a")
        assert '\n    "name"' in (tmp_path / "a" / "package.json").read_text()

    async def test_package_and_env_settings_reach_handlers(self, make_module, tmp_path: Path):
        web = make_module(
            "web",
            file_templates=[
                FileTemplate(path="package.json", content='{"scripts": {"dev": "vite"}}', merge="merge-package"),
                FileTemplate(path=".env", content="PORT=3000", merge="merge-env"),
            ],
        )
        api = make_module(
            "api",
            file_templates=[
                FileTemplate(path="package.json", content='{"scripts": {"dev": "node api.js"}}', merge="merge-package"),
                FileTemplate(path=".env", content="PORT=8080", merge="merge-env"),
            ],
        )
        engine = TemplateMergeEngine(config=MergeConfig(env_section_headers=True))
        await engine.generate([web, api], {"project_name": "mono"}, tmp_path / "m")

        scripts = json.loads((tmp_path / "m" / "package.json").read_text())["scripts"]
        assert scripts["dev:all"] == "vite && npm run api:dev"
        env = (tmp_path / "m" / ".env").read_text()
        assert env.startswith("# WEB Configuration\n")
        assert "\n# API Configuration\n" in env

    async def test_summary(self, engine, vue_stack, project_context, tmp_path: Path):
        summary = (await engine.generate(vue_stack, project_context, tmp_path / "s")).to_summary()
        assert summary["target_dir"] == str(tmp_path / "s")
        assert summary["files_written"] == [".gitignore", "package.json", "src/main.js"]


# ---------------------------------------------------------------------------
# Atomicity
# ---------------------------------------------------------------------------


class TestAtomicity:
    async def test_merge_error_writes_nothing(self, engine, make_module, tmp_path: Path):
        good = make_module("good", file_templates=[FileTemplate(path="a.json", content="{}", merge="merge-json")])
        bad = make_module("bad", file_templates=[FileTemplate(path="a.json", content="{oops", merge="merge-json")])
        target = tmp_path / "never"
        with pytest.raises(MergeError) as exc_info:
            await engine.generate([good, bad], {"project_name": "x"}, target)
        assert exc_info.value.module == "bad"
        assert not target.exists()

    async def test_undefined_variable_writes_nothing(self, engine, make_module, tmp_project_dir, snapshot):
        (tmp_project_dir / "keep.txt").write_text("keep")
        before = snapshot(tmp_project_dir)
        module = make_module("m", file_templates=[FileTemplate(path="a.txt", template="{{ nope }}")])
        with pytest.raises(MergeError, match="nope"):
            await engine.generate([module], {"project_name": "x"}, tmp_project_dir)
        assert snapshot(tmp_project_dir) == before

    async def test_commit_failure_leaves_target_byte_identical(
        self, engine, vue_stack, project_context, tmp_project_dir, snapshot
    ):
        (tmp_project_dir / "package.json").write_text('{"name": "existing"}\n')
        (tmp_project_dir / ".gitignore").write_text("*.log\n")
        # a directory occupies the path of a generated file
        (tmp_project_dir / "src" / "main.js").mkdir(parents=True)
        before = snapshot(tmp_project_dir)

        with pytest.raises(FileSystemError):
            await engine.generate(vue_stack, project_context, tmp_project_dir)

        assert snapshot(tmp_project_dir) == before
        assert not list(tmp_project_dir.parent.glob(".flowstate-staging-*"))


# ---------------------------------------------------------------------------
# ProjectContext
# ---------------------------------------------------------------------------


class TestProjectContext:
    def test_slug(self):
        assert ProjectContext(project_name="  My Cool App! ").project_slug == "my-cool-app"

    def test_template_context(self, project_context, registry):
        context = project_context.as_template_context(registry.get_module("vuetify"))
        assert context["project_name"] == "Demo App"
        assert context["project_slug"] == "demo-app"
        assert context["supabase_url"] == "http://localhost:54321"
        assert context["variables"] == {"supabase_url": "http://localhost:54321"}
        assert context["module"] == {
            "name": "vuetify", "version": "3.5.0", "type": "ui-library", "config": {"theme": "dark"},
        }
        assert context["modules"] == {"vuetify": {"theme": "dark"}}

    def test_reserved_keys_win(self):
        context = ProjectContext(project_name="Real", variables={"project_name": "fake"})
        assert context.as_template_context()["project_name"] == "Real"
        assert "module" not in context.as_template_context()

    def test_name_required(self):
        with pytest.raises(ValueError):
            ProjectContext(project_name="")
