"""Shared utility functions for flowstate.

Name slugging, registry/report JSON I/O, and the Rich console helpers used by
the pipeline to show resolutions and generation results.
"""

from __future__ import annotations

import asyncio
import json
import re
from pathlib import Path
from typing import TYPE_CHECKING, Any

from rich.console import Console
from rich.rule import Rule
from rich.table import Table

if TYPE_CHECKING:
    from flowstate.resolver.models import Resolution

console = Console()

# ---------------------------------------------------------------------------
# Names
# ---------------------------------------------------------------------------


def sanitize_name(name: str) -> str:
    """Turn a display name into a slug usable as a directory or package name.

    Anything other than ASCII letters, digits, ``-`` and ``_`` becomes a
    hyphen; runs of hyphens collapse and the ends are trimmed::

        sanitize_name("My Cool App") -> "my-cool-app"
        sanitize_name("  Shop (v2)  ") -> "shop-v2"
    """
    slug = re.sub(r"[^a-z0-9_-]+", "-", name.strip().lower())
    return re.sub(r"-{2,}", "-", slug).strip("-")


# ---------------------------------------------------------------------------
# JSON I/O
# ---------------------------------------------------------------------------


def load_json_list(path: str | Path) -> list[Any]:
    """Read registry records from *path*.

    Accepts a bare array, an object with a ``modules`` array, or a single
    record object.  A missing file yields no records.

    Raises:
        json.JSONDecodeError: The file is not JSON.
    """
    registry_file = Path(path)
    if not registry_file.exists():
        return []
    document = json.loads(registry_file.read_text(encoding="utf-8"))
    if isinstance(document, list):
        return document
    if isinstance(document, dict) and isinstance(document.get("modules"), list):
        return document["modules"]
    return [document]


async def save_json(data: dict[str, Any] | list[Any], path: str | Path) -> None:
    """Write *data* as indented JSON off the event loop, creating parent dirs."""
    report_file = Path(path)
    report_file.parent.mkdir(parents=True, exist_ok=True)
    content = json.dumps(data, indent=2, ensure_ascii=False, default=str)
    await asyncio.to_thread(report_file.write_text, content, "utf-8")


# ---------------------------------------------------------------------------
# Formatting
# ---------------------------------------------------------------------------


def format_duration(seconds: float) -> str:
    """``3.7`` -> ``"3.7s"``, ``65.2`` -> ``"1m 5s"``, ``3661`` -> ``"1h 1m 1s"``."""
    if seconds < 0:
        return "0.0s"
    if seconds < 60:
        return f"{seconds:.1f}s"

    hours, remainder = divmod(int(seconds), 3600)
    minutes, secs = divmod(remainder, 60)
    units = [(hours, "h"), (minutes, "m")]
    parts = [f"{value}{unit}" for value, unit in units if value]
    parts.append(f"{secs}s")
    return " ".join(parts)


# ---------------------------------------------------------------------------
# Rich output
# ---------------------------------------------------------------------------


def print_stage_header(name: str, color: str = "bright_cyan") -> None:
    console.print()
    console.print(Rule(f"[bold {color}] {name.upper()} [/bold {color}]", style=color))
    console.print()


def print_resolution(resolution: Resolution) -> None:
    """Render a resolution: ordered modules, then any problems and fixes."""
    modules = Table(title="Resolved modules", show_header=True, header_style="bold cyan")
    modules.add_column("#", style="dim", justify="right")
    modules.add_column("Module")
    modules.add_column("Type")
    modules.add_column("Version", style="dim")
    for position, module in enumerate(resolution.modules, start=1):
        modules.add_row(str(position), module.name, module.module_type.value, module.version)
    console.print(modules)

    if resolution.conflicts or resolution.issues:
        problems = Table(title="Problems", show_header=True, header_style="bold red")
        problems.add_column("Kind", no_wrap=True)
        problems.add_column("Modules")
        problems.add_column("Detail")
        for conflict in resolution.conflicts:
            problems.add_row(conflict.type.value, ", ".join(conflict.modules), conflict.message)
        for issue in resolution.issues:
            problems.add_row(issue.code.value, issue.module, issue.message)
        console.print(problems)

    if resolution.suggestions:
        suggestions = Table(title="Suggestions", show_header=True, header_style="bold yellow")
        suggestions.add_column("Module")
        suggestions.add_column("Reason")
        suggestions.add_column("Score", justify="right")
        for suggestion in resolution.suggestions:
            suggestions.add_row(suggestion.module, suggestion.reason, f"{suggestion.score:.2f}")
        console.print(suggestions)

    for warning in resolution.warnings:
        print_warning(warning)
    console.print()


def print_success(message: str) -> None:
    console.print(f"[bold green]{message}[/bold green]")


def print_error(message: str) -> None:
    console.print(f"[bold red]{message}[/bold red]")


def print_warning(message: str) -> None:
    console.print(f"[bold yellow]{message}[/bold yellow]")
