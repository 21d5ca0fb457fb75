"""Jinja2 rendering for module file templates.

Module templates are opaque bodies: inline strings or files on disk.  The
``TemplateRenderer`` substitutes project variables into them before the merge
engine combines contributions.  Static ``content`` bodies never pass through
here.
"""

from __future__ import annotations

import asyncio
import re
from pathlib import Path
from typing import Any

from jinja2 import (
    Environment,
    StrictUndefined,
    TemplateError,
    Undefined,
)

from flowstate.errors import MergeError


# ---------------------------------------------------------------------------
# TemplateRenderer
# ---------------------------------------------------------------------------


class TemplateRenderer:
    """Renders module template bodies with a project context.

    With ``strict`` enabled (the default) a reference to an unknown variable
    is an error rather than an empty string, so a typo in a module template
    cannot silently produce a broken file.
    """

    def __init__(self, strict: bool = True) -> None:
        self.env = Environment(
            autoescape=False,
            keep_trailing_newline=True,
            trim_blocks=True,
            lstrip_blocks=True,
            undefined=StrictUndefined if strict else Undefined,
        )
        # Register custom filters
        self.env.filters["slugify"] = _slugify_filter
        self.env.filters["pascal_case"] = _pascal_case_filter
        self.env.filters["snake_case"] = _snake_case_filter
        self.env.filters["camel_case"] = _camel_case_filter
        self.env.filters["env_key"] = _env_key_filter

    def render_string(
        self,
        template_string: str,
        context: dict[str, Any],
        *,
        path: str = "<string>",
        module: str | None = None,
    ) -> str:
        """Render an inline template body.

        Raises:
            MergeError: If the body is malformed or references an unknown
                variable.  *path* and *module* identify the offender.
        """
        try:
            return self.env.from_string(template_string).render(**context)
        except TemplateError as exc:
            raise MergeError(path, f"template rendering failed: {exc}", module) from exc

    async def read_source(self, source: str | Path, *, path: str, module: str | None = None) -> str:
        """Read a template body from disk without blocking the event loop."""
        try:
            return await asyncio.to_thread(Path(source).read_text, encoding="utf-8")
        except OSError as exc:
            raise MergeError(path, f"cannot read template source {source}: {exc}", module) from exc


# ---------------------------------------------------------------------------
# Jinja2 custom filters
# ---------------------------------------------------------------------------

def _slugify_filter(value: str) -> str:
    """``My Project`` -> ``my-project``."""
    slug = re.sub(r"[^a-z0-9]+", "-", str(value).lower().strip())
    return slug.strip("-")


def _pascal_case_filter(value: str) -> str:
    """``some-thing`` -> ``SomeThing``."""
    parts = re.split(r"[-_\s]+", str(value))
    return "".join(word[:1].upper() + word[1:] for word in parts if word)


def _snake_case_filter(value: str) -> str:
    s1 = re.sub(r"(.)([A-Z][a-z]+)", r"\1_\2", str(value))
    s2 = re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", s1)
    return re.sub(r"[-\s]+", "_", s2).lower()


def _camel_case_filter(value: str) -> str:
    pascal = _pascal_case_filter(value)
    return pascal[:1].lower() + pascal[1:]


def _env_key_filter(value: str) -> str:
    """``my-project`` -> ``MY_PROJECT`` (for ``.env`` keys)."""
    return re.sub(r"[^A-Za-z0-9]+", "_", str(value)).strip("_").upper()
