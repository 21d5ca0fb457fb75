"""Template merge engine.

Takes the resolver's ordered module list and a ``ProjectContext`` and writes
the merged project tree:

1. Collect  -- gather every module's file templates per output path; source
               files are read concurrently, then put back in resolver order.
2. Render   -- substitute context variables into templated bodies.
3. Merge    -- combine each path's contributions with the winning strategy.
4. Commit   -- stage everything, then flush transactionally; any failure
               leaves the target directory untouched.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field

from flowstate.config import MergeConfig
from flowstate.errors import MergeError
from flowstate.registry.models import FileTemplate, ModuleDescriptor
from flowstate.scaffolder.context import ProjectContext
from flowstate.scaffolder.plan import Contribution, MergePlan
from flowstate.scaffolder.staging import StagedWriter
from flowstate.scaffolder.strategies import MergedFile, merge_entry
from flowstate.scaffolder.templates import TemplateRenderer

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Result model
# ---------------------------------------------------------------------------


class GenerationResult(BaseModel):
    """Machine-readable outcome of one ``generate()`` call."""

    target_dir: Path
    files_written: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    def to_summary(self) -> dict[str, Any]:
        return {
            "target_dir": str(self.target_dir),
            "files_written": list(self.files_written),
            "warnings": list(self.warnings),
        }


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class TemplateMergeEngine:
    """Merges per-module file contributions into one project tree."""

    def __init__(
        self,
        renderer: Optional[TemplateRenderer] = None,
        config: Optional[MergeConfig] = None,
    ) -> None:
        self.config = config or MergeConfig()
        self.renderer = renderer or TemplateRenderer(strict=self.config.strict_undefined)

    # -- Public API --------------------------------------------------------

    async def generate(
        self,
        ordered_modules: Iterable[ModuleDescriptor],
        context: ProjectContext | Mapping[str, Any],
        target_dir: str | Path,
    ) -> GenerationResult:
        """Render, merge and write every module's files under *target_dir*.

        Args:
            ordered_modules: Modules in resolver order.
            context: Project context (or a plain mapping accepted by
                ``ProjectContext``).
            target_dir: Project root; created if missing.

        Returns:
            Written paths and every warning raised while merging.

        Raises:
            MergeError: A template or merge failed; nothing was written.
            FileSystemError: Writing failed; the target was rolled back.
        """
        project = context if isinstance(context, ProjectContext) else ProjectContext(**context)
        modules = list(ordered_modules)
        target = Path(target_dir)

        plan = await self.collect(modules, project)
        merged = self.merge(plan)

        writer = StagedWriter(target, prefix=self.config.staging_prefix)
        try:
            await asyncio.to_thread(writer.stage, {m.path: m.content for m in merged})
            written = await asyncio.to_thread(writer.commit)
        finally:
            await asyncio.to_thread(writer.cleanup)

        warnings = [w for m in merged for w in m.warnings]
        logger.info("Generated %d file(s) in %s (%d warning(s))", len(written), target, len(warnings))
        return GenerationResult(target_dir=target, files_written=written, warnings=warnings)

    async def collect(
        self, modules: list[ModuleDescriptor], project: ProjectContext
    ) -> MergePlan:
        """Build the merge plan in resolver order.

        Source-file reads run concurrently; their results are keyed by
        position so contributions are added in the original order no matter
        when each read completes.
        """
        jobs: list[tuple[int, int, ModuleDescriptor, FileTemplate]] = [
            (m_idx, t_idx, module, template)
            for m_idx, module in enumerate(modules)
            for t_idx, template in enumerate(module.file_templates)
        ]
        reads = [
            (m_idx, t_idx, module, template)
            for m_idx, t_idx, module, template in jobs
            if template.source is not None
        ]
        bodies = await asyncio.gather(
            *(
                self.renderer.read_source(template.source, path=template.path, module=module.name)
                for _, _, module, template in reads
            )
        )
        sources = {(m_idx, t_idx): body for (m_idx, t_idx, _, _), body in zip(reads, bodies)}

        plan = MergePlan()
        for m_idx, t_idx, module, template in sorted(jobs, key=lambda job: (job[0], job[1])):
            raw = sources.get((m_idx, t_idx))
            plan.add(
                Contribution(
                    module=module.name,
                    path=template.path,
                    body=self._render(template, module, project, raw),
                    strategy=template.merge,
                    custom=template.custom_merge,
                )
            )
        logger.debug("Merge plan: %d path(s) from %d module(s)", len(plan), len(modules))
        return plan

    def merge(self, plan: MergePlan) -> list[MergedFile]:
        """Merge every path of *plan* in memory; raises before anything is written."""
        return [merge_entry(entry, self.config) for entry in plan]

    # -- Helpers -----------------------------------------------------------

    def _render(
        self,
        template: FileTemplate,
        module: ModuleDescriptor,
        project: ProjectContext,
        source_body: Optional[str],
    ) -> str:
        if template.content is not None:
            return template.content
        body = template.template if template.template is not None else source_body
        if body is None:
            raise MergeError(template.path, "template has no body", module.name)
        if not template.is_templated:
            return body
        return self.renderer.render_string(
            body,
            project.as_template_context(module),
            path=template.path,
            module=module.name,
        )
