"""flowstate scaffolder -- merges per-module file templates into a project tree.

Takes the resolver's ordered module list plus a ``ProjectContext`` and writes
the merged files transactionally: either every file lands or the target
directory is left exactly as it was.

Quick usage::

    from flowstate.scaffolder import ProjectContext, TemplateMergeEngine

    context = ProjectContext(project_name="my-app", selected_modules=["vuetify"])
    engine = TemplateMergeEngine()
    result = await engine.generate(resolution.modules, context, "/tmp/my-app")
"""

from flowstate.scaffolder.context import ProjectContext
from flowstate.scaffolder.generator import GenerationResult, TemplateMergeEngine
from flowstate.scaffolder.plan import Contribution, FileEntry, MergePlan
from flowstate.scaffolder.staging import StagedWriter
from flowstate.scaffolder.strategies import MergedFile, deep_merge, merge_entry, select_strategy
from flowstate.scaffolder.templates import TemplateRenderer

__all__ = [
    "Contribution",
    "FileEntry",
    "GenerationResult",
    "MergePlan",
    "MergedFile",
    "ProjectContext",
    "StagedWriter",
    "TemplateMergeEngine",
    "TemplateRenderer",
    "deep_merge",
    "merge_entry",
    "select_strategy",
]
