"""flowstate scaffold pipeline.

Runs the two stages end to end:

Stage 1: RESOLVE  -- expand the selected modules into an ordered, conflict-checked set.
Stage 2: GENERATE -- render and merge every module's files into the target directory.

A failed resolution stops the run before anything touches the disk.

Usage::

    python -m flowstate.pipeline --registry modules.json --select vuetify,supabase \\
        --project-name my-app --output ./my-app --auto-resolve
"""

from __future__ import annotations

import asyncio
import logging
import sys
import time
from collections.abc import Mapping
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field
from rich.logging import RichHandler
from rich.panel import Panel

from flowstate.config import Config
from flowstate.errors import FlowStateError
from flowstate.registry.registry import InMemoryRegistry, ModuleRegistry
from flowstate.resolver.cache import ResolutionCache
from flowstate.resolver.models import Resolution, ResolveOptions
from flowstate.resolver.resolver import DependencyResolver
from flowstate.scaffolder.context import ProjectContext
from flowstate.scaffolder.generator import GenerationResult, TemplateMergeEngine
from flowstate.utils import (
    console,
    format_duration,
    load_json_list,
    print_error,
    print_resolution,
    print_stage_header,
    print_success,
    print_warning,
    save_json,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Report
# ---------------------------------------------------------------------------


class ScaffoldReport(BaseModel):
    """Outcome of one pipeline run, ready to be saved as JSON."""

    project_name: str
    target_dir: str
    success: bool = False
    resolution: dict[str, Any] = Field(default_factory=dict)
    generation: Optional[dict[str, Any]] = None
    error: Optional[str] = None
    started_at: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    finished_at: Optional[str] = None
    duration: Optional[str] = None

    def to_summary(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------


class ScaffoldPipeline:
    """Resolve a module selection, then generate the project it describes.

    Attributes:
        config: Global configuration.
        resolver: Dependency resolver bound to the registry snapshot.
        engine: Template merge engine.
    """

    def __init__(
        self,
        registry: ModuleRegistry,
        config: Optional[Config] = None,
        cache: Optional[ResolutionCache] = None,
    ) -> None:
        self.config = config or Config()
        self.resolver = DependencyResolver(registry, cache=cache, config=self.config.resolver)
        self.engine = TemplateMergeEngine(config=self.config.merge)

    async def run(
        self,
        context: ProjectContext | Mapping[str, Any],
        target_dir: str | Path | None = None,
        save_report: bool = False,
    ) -> ScaffoldReport:
        """Resolve and generate one project.

        Args:
            context: What to build.
            target_dir: Project root; defaults to ``config.output_dir``.
            save_report: Also write the report as JSON.  A successful run
                writes it into the target; a failed one writes it beside the
                target as ``<target><report_name>`` so the target stays as it was.

        Returns:
            The run report.  ``success`` is ``False`` when resolution failed
            (nothing generated) or generation raised (target rolled back).
        """
        project = context if isinstance(context, ProjectContext) else ProjectContext(**context)
        target = self.config.output_dir if target_dir is None else Path(target_dir)

        start = time.monotonic()
        report = ScaffoldReport(project_name=project.project_name, target_dir=str(target))
        console.print(
            Panel(
                f"[bold bright_cyan]flowstate[/bold bright_cyan]\n"
                f"Project : {project.project_name}\n"
                f"Modules : {', '.join(project.selected_modules) or '(none)'}\n"
                f"Output  : {target.resolve()}",
                title="[bold]Scaffold Start[/bold]",
                border_style="bright_cyan",
            )
        )

        print_stage_header("resolve")
        resolution = self.resolver.resolve(project.selected_modules, project.options)
        report.resolution = resolution.to_summary()
        print_resolution(resolution)

        if not resolution.success:
            report.error = _failure_reason(resolution)
            print_error(f"Resolution failed: {report.error}")
        else:
            print_stage_header("generate", color="bright_green")
            try:
                generation = await self.engine.generate(resolution.modules, project, target)
            except FlowStateError as exc:
                report.error = str(exc)
                print_error(f"Generation failed, target left unchanged: {exc}")
            else:
                report.generation = generation.to_summary()
                report.success = True
                self._print_generation(generation)

        elapsed = time.monotonic() - start
        report.finished_at = datetime.now(timezone.utc).isoformat()
        report.duration = format_duration(elapsed)

        if save_report:
            report_path = _report_path(target, self.config.report_name, report.success)
            await save_json(report.to_summary(), report_path)
            logger.info("Report saved to %s", report_path)

        self._print_final_summary(report)
        return report

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    @staticmethod
    def _print_generation(generation: GenerationResult) -> None:
        for path in generation.files_written:
            console.print(f"  [green]+[/green] {path}")
        for warning in generation.warnings:
            print_warning(f"  {warning}")
        print_success(f"Wrote {len(generation.files_written)} file(s)")

    @staticmethod
    def _print_final_summary(report: ScaffoldReport) -> None:
        if report.success:
            border_style = "bold green"
            status_text = "[bold green]SCAFFOLD SUCCEEDED[/bold green]"
        else:
            border_style = "bold red"
            status_text = "[bold red]SCAFFOLD FAILED[/bold red]"

        files = len(report.generation["files_written"]) if report.generation else 0
        detail_lines = [
            status_text,
            "",
            f"Duration : {report.duration}",
            f"Modules  : {', '.join(report.resolution.get('modules', [])) or 'none'}",
            f"Files    : {files}",
            f"Output   : {report.target_dir}",
        ]
        if report.error:
            detail_lines.append(f"Error    : {report.error}")

        console.print()
        console.print(
            Panel("\n".join(detail_lines), title="[bold]Scaffold Complete[/bold]", border_style=border_style)
        )


def _failure_reason(resolution: Resolution) -> str:
    if resolution.conflicts:
        return "; ".join(c.message for c in resolution.conflicts)
    return "; ".join(i.message for i in resolution.issues) or "unknown failure"


def _report_path(target: Path, report_name: str, success: bool) -> Path:
    if success:
        return target / report_name
    return target.parent / f"{target.name}{report_name}"


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------


def _parse_variables(pairs: list[str]) -> dict[str, str]:
    variables: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            raise ValueError(f"expected KEY=VALUE, got {pair!r}")
        variables[key.strip()] = value
    return variables


def main() -> None:
    """CLI entry point for ``python -m flowstate.pipeline``."""
    import argparse

    parser = argparse.ArgumentParser(
        description="flowstate -- resolve modules and scaffold a project",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  python -m flowstate.pipeline --registry modules.json --select vue-base,vuetify\n"
            "  python -m flowstate.pipeline --registry modules.json --select vuetify --auto-resolve\n"
            "  python -m flowstate.pipeline --registry modules.json --select react -o ./app "
            "--var api_url=http://localhost:3000\n"
        ),
    )
    parser.add_argument("--registry", "-r", required=True, help="JSON file with module descriptors")
    parser.add_argument(
        "--select", "-s", default="", help="Comma-separated module names to include"
    )
    parser.add_argument("--project-name", "-n", default=None, help="Project name (default: output dir name)")
    parser.add_argument("--output", "-o", default=None, help="Output directory (default: FLOWSTATE_OUTPUT_DIR or ./output)")
    parser.add_argument("--var", action="append", default=[], help="Template variable KEY=VALUE (repeatable)")
    parser.add_argument("--auto-resolve", action="store_true", help="Add providers for missing capabilities")
    parser.add_argument("--allow-conflicts", action="store_true", help="Generate even when conflicts are found")
    parser.add_argument("--save-report", action="store_true", help="Write a JSON report (beside the output directory on failure)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Show debug logging")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )

    registry_path = Path(args.registry)
    if not registry_path.exists():
        console.print(f"[bold red]Error:[/bold red] Registry file not found: {registry_path}")
        sys.exit(1)

    try:
        registry = InMemoryRegistry.from_records(load_json_list(registry_path))
        variables = _parse_variables(args.var)
    except ValueError as exc:
        console.print(f"[bold red]Error:[/bold red] {exc}")
        sys.exit(1)

    config = Config.from_env()
    if args.output:
        config.output_dir = Path(args.output)

    context = ProjectContext(
        project_name=args.project_name or config.output_dir.resolve().name,
        variables=variables,
        selected_modules=[name.strip() for name in args.select.split(",") if name.strip()],
        options=ResolveOptions(auto_resolve=args.auto_resolve, allow_conflicts=args.allow_conflicts),
    )

    pipeline = ScaffoldPipeline(registry, config)
    report = asyncio.run(pipeline.run(context, save_report=args.save_report))

    if not report.success:
        sys.exit(1)


if __name__ == "__main__":
    main()
