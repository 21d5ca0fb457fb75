"""Merge strategies for files contributed by several modules.

Each strategy turns the ordered contributions for one path into the final
file body.  Contributions arrive in resolver order (dependencies first,
priority/name tie-break), so "later" always means "resolved later".

When contributors ask for different strategies the most
information-preserving one wins::

    custom > merge-package > merge-config > merge-json > merge-yaml
           > merge-env > append-unique > append/prepend > replace
"""

from __future__ import annotations

import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

import yaml

from flowstate.config import STRATEGY_PRECEDENCE, ArrayStrategy, MergeConfig
from flowstate.errors import MergeError
from flowstate.registry.models import CustomMerge, MergeShape, MergeStrategy
from flowstate.scaffolder.plan import Contribution, FileEntry

logger = logging.getLogger(__name__)

_RANK: dict[MergeStrategy, int] = {
    strategy: len(STRATEGY_PRECEDENCE) - position
    for position, group in enumerate(STRATEGY_PRECEDENCE)
    for strategy in group
}
_ENV_KEY = re.compile(r"^\s*(?:export\s+)?([A-Za-z_][A-Za-z0-9_]*)\s*=")
_DEPENDENCY_SECTIONS = ("dependencies", "devDependencies", "peerDependencies", "optionalDependencies")
_CHAINED_SCRIPTS = frozenset({"build", "test", "dev", "start"})


@dataclass
class MergedFile:
    """Final body for one path plus what happened on the way."""

    path: str
    content: str
    strategy: MergeStrategy
    modules: list[str]
    warnings: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Strategy selection
# ---------------------------------------------------------------------------

def select_strategy(entry: FileEntry) -> tuple[MergeStrategy, list[str]]:
    """Pick the winning strategy for *entry* and describe what was discarded.

    Strategies of equal rank (append/prepend) are decided by the earliest
    contributor.
    """
    best = max(_RANK[c.strategy] for c in entry.contributions)
    winner = next(c.strategy for c in entry.contributions if _RANK[c.strategy] == best)

    warnings = []
    for strategy in entry.strategies:
        if strategy is winner:
            continue
        modules = ", ".join(c.module for c in entry.by_strategy(strategy))
        warnings.append(
            f"{entry.path}: strategy '{winner.value}' overrides '{strategy.value}' "
            f"requested by {modules}"
        )
    return winner, warnings


# ---------------------------------------------------------------------------
# Structured-data helpers
# ---------------------------------------------------------------------------

def deep_merge(base: Any, override: Any) -> Any:
    """Recursively merge *override* into *base* without mutating either.

    Objects merge key by key, arrays are unioned in first-seen order with
    duplicates removed, and any other value from *override* wins.
    """
    if isinstance(base, dict) and isinstance(override, dict):
        result = dict(base)
        for key, value in override.items():
            result[key] = deep_merge(result[key], value) if key in result else value
        return result
    if isinstance(base, list) and isinstance(override, list):
        return union(base, override)
    return override


def union(first: list[Any], second: list[Any]) -> list[Any]:
    """Concatenate two lists dropping duplicates, keeping first occurrences."""
    result: list[Any] = []
    for item in [*first, *second]:
        if item not in result:
            result.append(item)
    return result


def _is_yaml(path: str) -> bool:
    return path.lower().endswith((".yaml", ".yml"))


def _load(contribution: Contribution, as_yaml: bool) -> Any:
    try:
        if as_yaml:
            data = yaml.safe_load(contribution.body)
            return {} if data is None else data
        return json.loads(contribution.body)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        kind = "YAML" if as_yaml else "JSON"
        raise MergeError(contribution.path, f"invalid {kind}: {exc}", contribution.module) from exc


def _dump(data: Any, as_yaml: bool, indent: int) -> str:
    if as_yaml:
        return yaml.safe_dump(data, sort_keys=False, default_flow_style=False, allow_unicode=True)
    return json.dumps(data, indent=indent, ensure_ascii=False) + "\n"


def _join(pieces: list[str]) -> str:
    kept = [p.rstrip("\n") for p in pieces if p.strip("\n")]
    return "\n".join(kept) + "\n" if kept else ""


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------

class MergeHandler(ABC):
    """Combines the contributions of one path into a single body."""

    strategy: MergeStrategy

    def __init__(self, config: MergeConfig | None = None) -> None:
        self.config = config or MergeConfig()

    @abstractmethod
    def merge(self, entry: FileEntry) -> tuple[str, list[str]]:
        """Return ``(content, warnings)`` for *entry*."""
        ...


class ReplaceHandler(MergeHandler):
    """Last contribution wins."""

    strategy = MergeStrategy.REPLACE

    def merge(self, entry: FileEntry) -> tuple[str, list[str]]:
        last = entry.contributions[-1]
        warnings = []
        replacers = [c.module for c in entry.by_strategy(MergeStrategy.REPLACE)]
        if len(replacers) > 1:
            discarded = ", ".join(m for m in replacers[:-1])
            warnings.append(
                f"{entry.path}: {len(replacers)} modules replace this file; "
                f"keeping {last.module}, discarding {discarded}"
            )
        return last.body, warnings


class StructuredHandler(MergeHandler):
    """Deep merge of JSON (or YAML) documents."""

    strategy = MergeStrategy.MERGE_JSON
    as_yaml = False

    def merge(self, entry: FileEntry) -> tuple[str, list[str]]:
        merged: Any = None
        for contribution in entry.contributions:
            data = _load(contribution, self.as_yaml)
            if not isinstance(data, (dict, list)):
                raise MergeError(
                    entry.path,
                    f"unsupported structured-data shape: top level is {type(data).__name__}",
                    contribution.module,
                )
            if merged is not None and type(data) is not type(merged):
                raise MergeError(
                    entry.path,
                    f"cannot merge a {type(data).__name__} into a {type(merged).__name__}",
                    contribution.module,
                )
            merged = data if merged is None else deep_merge(merged, data)
        return _dump(merged, self.as_yaml, self.config.json_indent), []


class YamlHandler(StructuredHandler):
    strategy = MergeStrategy.MERGE_YAML
    as_yaml = True


class AppendHandler(MergeHandler):
    """Concatenate bodies in order, separated by a line break."""

    strategy = MergeStrategy.APPEND

    def merge(self, entry: FileEntry) -> tuple[str, list[str]]:
        return _join([c.body for c in entry.contributions]), []


class PrependHandler(MergeHandler):
    """Like append, but later contributions go first."""

    strategy = MergeStrategy.PREPEND

    def merge(self, entry: FileEntry) -> tuple[str, list[str]]:
        return _join([c.body for c in reversed(entry.contributions)]), []


class AppendUniqueHandler(MergeHandler):
    """Line-by-line concatenation dropping exact duplicate lines.

    Blank lines are dropped; the output is one entry per line in
    first-seen order.
    """

    strategy = MergeStrategy.APPEND_UNIQUE

    def merge(self, entry: FileEntry) -> tuple[str, list[str]]:
        seen: set[str] = set()
        lines: list[str] = []
        dropped = 0
        for contribution in entry.contributions:
            for line in contribution.body.splitlines():
                if not line.strip():
                    continue
                if line in seen:
                    dropped += 1
                    continue
                seen.add(line)
                lines.append(line)
        warnings = []
        if dropped:
            warnings.append(f"{entry.path}: discarded {dropped} duplicate line(s)")
        return _join(["\n".join(lines)]), warnings


class EnvHandler(MergeHandler):
    """``.env`` merge: the first definition of a key wins.

    Later definitions are kept as comments naming the module they came
    from, so nothing a module contributed is lost.  With
    ``MergeConfig.env_section_headers`` each module's block starts with a
    ``# <MODULE> Configuration`` banner.
    """

    strategy = MergeStrategy.MERGE_ENV

    def merge(self, entry: FileEntry) -> tuple[str, list[str]]:
        defined: dict[str, str] = {}
        lines: list[str] = []
        warnings = []
        for index, contribution in enumerate(entry.contributions):
            if self.config.env_section_headers:
                if index:
                    lines.append("")
                lines.append(f"# {contribution.module.upper()} Configuration")
                lines.append("# " + "=" * 30)
            for line in contribution.body.splitlines():
                match = _ENV_KEY.match(line)
                if not match:
                    lines.append(line)
                    continue
                key = match.group(1)
                if key in defined:
                    lines.append(f"# {line.strip()}  # duplicate from {contribution.module}")
                    warnings.append(
                        f"{entry.path}: {key} from {contribution.module} shadowed by {defined[key]}"
                    )
                    continue
                defined[key] = contribution.module
                lines.append(line)
        return _join(["\n".join(lines)]), warnings


class PackageJsonHandler(MergeHandler):
    """``package.json`` merge that follows npm's field semantics.

    The first contribution is the base.  Fields of later contributions fold
    in as follows:

    - dependency sections: the later version wins, with a warning when it
      changes an existing one
    - scripts: a name already bound to a different command is added as
      ``<module>:<name>``; for build/test/dev/start a ``<name>:all`` script
      chains the original and every module variant
    - ``keywords`` and ``files`` are unioned, ``engines`` merged
    - any other top-level field is only set when the base lacks it

    Dependency sections and scripts are written sorted by name.
    """

    strategy = MergeStrategy.MERGE_PACKAGE

    def merge(self, entry: FileEntry) -> tuple[str, list[str]]:
        package: dict[str, Any] | None = None
        warnings: list[str] = []
        for contribution in entry.contributions:
            data = _load(contribution, as_yaml=False)
            if not isinstance(data, dict):
                raise MergeError(
                    entry.path,
                    f"package manifest must be an object, got {type(data).__name__}",
                    contribution.module,
                )
            if package is None:
                package = dict(data)
                for section in ("dependencies", "devDependencies", "scripts"):
                    package.setdefault(section, {})
                continue
            warnings.extend(self._fold(entry.path, package, data, contribution.module))

        for section in (*_DEPENDENCY_SECTIONS, "scripts"):
            if isinstance(package.get(section), dict):
                package[section] = dict(sorted(package[section].items()))
        return _dump(package, False, self.config.json_indent), warnings

    @staticmethod
    def _fold(path: str, package: dict[str, Any], data: dict[str, Any], module: str) -> list[str]:
        warnings = []
        for key, value in data.items():
            if key in _DEPENDENCY_SECTIONS:
                section = package.setdefault(key, {})
                for name, version in _expect(dict, value, path, key, module).items():
                    if name in section and section[name] != version:
                        warnings.append(
                            f"{path}: {module} changes {name} from {section[name]} to {version}"
                        )
                    section[name] = version
            elif key == "scripts":
                scripts = package.setdefault("scripts", {})
                for name, command in _expect(dict, value, path, key, module).items():
                    warnings.extend(_add_script(path, scripts, name, command, module))
            elif key in ("keywords", "files"):
                package[key] = union(package.get(key, []), _expect(list, value, path, key, module))
            elif key == "engines":
                package[key] = {**package.get(key, {}), **_expect(dict, value, path, key, module)}
            elif key not in package:
                package[key] = value
        return warnings


def _expect(kind: type, value: Any, path: str, key: str, module: str) -> Any:
    if not isinstance(value, kind):
        raise MergeError(path, f"'{key}' must be a {'list' if kind is list else 'object'}", module)
    return value


def _add_script(path: str, scripts: dict[str, str], name: str, command: str, module: str) -> list[str]:
    existing = scripts.get(name)
    if existing is None or existing == command:
        scripts[name] = command
        return []
    variant = f"{module}:{name}"
    scripts[variant] = command
    if name in _CHAINED_SCRIPTS:
        chained = f"{name}:all"
        scripts[chained] = f"{scripts.get(chained, existing)} && npm run {variant}"
    return [f"{path}: script '{name}' from {module} kept as '{variant}'"]


class ConfigFileHandler(MergeHandler):
    """Deep merge of JSON or YAML config files with a configurable array rule.

    Objects merge key by key and later scalars win.  Arrays under the same
    key follow ``MergeConfig.config_array_strategy``.
    """

    strategy = MergeStrategy.MERGE_CONFIG

    def merge(self, entry: FileEntry) -> tuple[str, list[str]]:
        as_yaml = _is_yaml(entry.path)
        merged: Any = None
        for index, contribution in enumerate(entry.contributions):
            data = _load(contribution, as_yaml)
            merged = data if index == 0 else self._combine(merged, data)
        return _dump(merged, as_yaml, self.config.json_indent), []

    def _combine(self, base: Any, override: Any) -> Any:
        if isinstance(base, dict) and isinstance(override, dict):
            result = dict(base)
            for key, value in override.items():
                result[key] = self._combine(result[key], value) if key in result else value
            return result
        if isinstance(base, list) and isinstance(override, list):
            rule = self.config.config_array_strategy
            if rule is ArrayStrategy.REPLACE:
                return list(override)
            if rule is ArrayStrategy.UNIQUE:
                return union(base, override)
            return [*base, *override]
        return override


class CustomHandler(MergeHandler):
    """Fold contributions through module-supplied merge functions.

    A contribution carrying its own function is merged with it; the rest
    use the function of the first custom contributor.  Every result is
    checked against the function's declared shape.
    """

    strategy = MergeStrategy.CUSTOM

    def merge(self, entry: FileEntry) -> tuple[str, list[str]]:
        default = next(c.custom for c in entry.contributions if c.custom is not None)
        structured = default.shape is MergeShape.STRUCTURED
        as_yaml = _is_yaml(entry.path)

        def value_of(contribution: Contribution) -> Any:
            return _load(contribution, as_yaml) if structured else contribution.body

        first, *rest = entry.contributions
        accumulated = value_of(first)
        self._check(default, accumulated, first)
        for contribution in rest:
            contract: CustomMerge = contribution.custom or default
            try:
                accumulated = contract.fn(accumulated, value_of(contribution))
            except MergeError:
                raise
            except Exception as exc:
                raise MergeError(
                    entry.path, f"custom merge function failed: {exc}", contribution.module
                ) from exc
            self._check(contract, accumulated, contribution)

        if structured:
            return _dump(accumulated, as_yaml, self.config.json_indent), []
        return accumulated, []

    @staticmethod
    def _check(contract: CustomMerge, value: Any, contribution: Contribution) -> None:
        if not contract.accepts(value):
            raise MergeError(
                contribution.path,
                f"custom merge returned {type(value).__name__}, expected {contract.shape.value}",
                contribution.module,
            )


HANDLERS: dict[MergeStrategy, type[MergeHandler]] = {
    MergeStrategy.REPLACE: ReplaceHandler,
    MergeStrategy.MERGE_JSON: StructuredHandler,
    MergeStrategy.MERGE_YAML: YamlHandler,
    MergeStrategy.APPEND: AppendHandler,
    MergeStrategy.PREPEND: PrependHandler,
    MergeStrategy.APPEND_UNIQUE: AppendUniqueHandler,
    MergeStrategy.MERGE_ENV: EnvHandler,
    MergeStrategy.MERGE_PACKAGE: PackageJsonHandler,
    MergeStrategy.MERGE_CONFIG: ConfigFileHandler,
    MergeStrategy.CUSTOM: CustomHandler,
}


def merge_entry(entry: FileEntry, config: MergeConfig | None = None) -> MergedFile:
    """Merge every contribution of *entry* with the winning strategy."""
    strategy, warnings = select_strategy(entry)
    handler = HANDLERS[strategy](config)
    content, merge_warnings = handler.merge(entry)
    warnings.extend(merge_warnings)
    for warning in warnings:
        logger.debug(warning)
    return MergedFile(
        path=entry.path,
        content=content,
        strategy=strategy,
        modules=entry.modules,
        warnings=warnings,
    )
