"""Project context supplied by the CLI or onboarding flow."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from flowstate.registry.models import ModuleDescriptor
from flowstate.resolver.models import ResolveOptions
from flowstate.utils import sanitize_name


class ProjectContext(BaseModel):
    """What the user asked for: project name, variables and module selection."""

    project_name: str = Field(..., min_length=1, description="Project name")
    variables: dict[str, str] = Field(
        default_factory=dict, description="Template variables available to every module"
    )
    selected_modules: list[str] = Field(default_factory=list, description="Requested module names")
    module_config: dict[str, dict[str, Any]] = Field(
        default_factory=dict, description="Per-module configuration, keyed by module name"
    )
    options: ResolveOptions = Field(default_factory=ResolveOptions)

    @property
    def project_slug(self) -> str:
        return sanitize_name(self.project_name)

    def as_template_context(self, module: ModuleDescriptor | None = None) -> dict[str, Any]:
        """Variables visible to a template body.

        Free-form ``variables`` are exposed both at the top level and under
        ``variables``; the reserved keys (``project_name``, ``project_slug``,
        ``modules``, ``module``) always win over a variable of the same name.
        """
        context: dict[str, Any] = dict(self.variables)
        context.update(
            {
                "project_name": self.project_name,
                "project_slug": self.project_slug,
                "variables": dict(self.variables),
                "modules": {name: dict(cfg) for name, cfg in self.module_config.items()},
            }
        )
        if module is not None:
            context["module"] = {
                "name": module.name,
                "version": module.version,
                "type": module.module_type.value,
                "config": dict(self.module_config.get(module.name, {})),
            }
        return context
