"""Semantic-version ranges on top of ``packaging``.

Modules declare npm-style ranges (``^3.4.0``, ``~1.2``, ``>=1 <2``, ``1.x``,
``1.2.3 - 2.0.0``, alternatives joined with ``||``).  They are translated into
``packaging`` specifier sets so that containment and range intersection can
be decided without hand-written comparison logic.

Intersection is decided by testing candidate versions taken from every bound
of the ranges involved.  Closed and upper bounds are exact; an exclusive
lower bound (``>1.2.3``) is tested at the next patch release, which is the
smallest release that can satisfy it.

Prerelease tags (``^3.4.0-beta.1``) lower a range's floor to that
prerelease.  Unlike npm, prereleases of later versions inside the range are
accepted too.
"""

from __future__ import annotations

import itertools
import re
from dataclasses import dataclass
from functools import lru_cache

from packaging.specifiers import InvalidSpecifier, SpecifierSet
from packaging.version import InvalidVersion, Version

_WILDCARDS = {"", "*", "x", "X", "latest"}
_COMPARATOR = re.compile(r"^(>=|<=|>|<|=|==)?\s*v?(.+)$")
_HYPHEN = re.compile(r"^\s*(\S+)\s+-\s+(\S+)\s*$")


# ---------------------------------------------------------------------------
# Versions
# ---------------------------------------------------------------------------

def parse_version(value: str) -> Version:
    """Parse a semantic version string (a leading ``v`` or ``=`` is ignored).

    Raises:
        ValueError: If *value* is not a valid version.
    """
    cleaned = str(value).strip().lstrip("=v").strip()
    try:
        return Version(cleaned)
    except InvalidVersion as exc:
        raise ValueError(f"invalid version: {value!r}") from exc


def _split_prerelease(text: str) -> tuple[str, str]:
    """``3.4.0-beta.1+build`` -> ``("3.4.0", "beta.1")``; build metadata is dropped."""
    core, _, _build = text.partition("+")
    core, _, prerelease = core.partition("-")
    return core, prerelease


def _lower_bound(text: str) -> tuple[list[int | None], str]:
    """Parse the version part of a caret/tilde/x-range and its inclusive floor.

    A prerelease tag is only meaningful on a full ``major.minor.patch``
    version; it lowers the floor to that prerelease.
    """
    core, prerelease = _split_prerelease(text)
    major, minor, patch = parts = _partial(core)
    if major is None:
        return parts, ""
    lower = _fmt(major, minor or 0, patch or 0)
    if prerelease:
        if patch is None:
            raise ValueError(f"prerelease tag needs a full version in {text!r}")
        lower = str(parse_version(f"{lower}-{prerelease}"))
    return parts, lower


def _partial(text: str) -> list[int | None]:
    """Split ``1.2.x`` into ``[1, 2, None]`` (missing parts are ``None``)."""
    parts: list[int | None] = []
    for piece in text.split(".")[:3]:
        if piece in _WILDCARDS:
            parts.append(None)
        elif piece.isdigit():
            parts.append(int(piece))
        else:
            raise ValueError(f"invalid version component {piece!r} in {text!r}")
    while len(parts) < 3:
        parts.append(None)
    return parts


def _fmt(major: int, minor: int = 0, patch: int = 0) -> str:
    return f"{major}.{minor}.{patch}"


# ---------------------------------------------------------------------------
# Range translation
# ---------------------------------------------------------------------------

def _caret(text: str) -> list[str]:
    (major, minor, patch), lower = _lower_bound(text)
    if major is None:
        return []
    if major > 0 or minor is None:
        upper = _fmt(major + 1)
    elif minor > 0 or patch is None:
        upper = _fmt(0, minor + 1)
    else:
        upper = _fmt(0, 0, patch + 1)
    return [f">={lower}", f"<{upper}"]


def _tilde(text: str) -> list[str]:
    (major, minor, _patch), lower = _lower_bound(text)
    if major is None:
        return []
    upper = _fmt(major + 1) if minor is None else _fmt(major, minor + 1)
    return [f">={lower}", f"<{upper}"]


def _x_range(text: str) -> list[str]:
    (major, minor, patch), lower = _lower_bound(text)
    if major is None:
        return []
    if minor is None:
        return [f">={lower}", f"<{_fmt(major + 1)}"]
    if patch is None:
        return [f">={lower}", f"<{_fmt(major, minor + 1)}"]
    return [f"=={lower}"]


def _comparator(token: str) -> list[str]:
    if token.startswith("^"):
        return _caret(token[1:].lstrip("v"))
    if token.startswith("~"):
        return _tilde(token[1:].lstrip(">").lstrip("v"))
    match = _COMPARATOR.match(token)
    if not match:
        raise ValueError(f"invalid range comparator: {token!r}")
    op, version = match.group(1) or "", match.group(2)
    if op in ("", "=", "=="):
        if version in _WILDCARDS or re.search(r"(^|\.)[xX*]($|\.)", version) or version.count(".") < 2:
            return _x_range(version)
        return [f"=={parse_version(version)}"]
    return [f"{op}{parse_version(version)}"]


def _translate(alternative: str) -> SpecifierSet:
    text = alternative.strip()
    if text in _WILDCARDS:
        return SpecifierSet("")
    hyphen = _HYPHEN.match(text)
    if hyphen:
        clauses = [f">={parse_version(hyphen.group(1))}", f"<={parse_version(hyphen.group(2))}"]
    else:
        # ">= 1.2" is a single comparator with a space after the operator
        text = re.sub(r"(>=|<=|>|<|=)\s+", r"\1", text)
        clauses = []
        for token in text.split():
            clauses.extend(_comparator(token))
    try:
        return SpecifierSet(",".join(clauses))
    except InvalidSpecifier as exc:
        raise ValueError(f"invalid version range: {alternative!r}") from exc


# ---------------------------------------------------------------------------
# VersionRange
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class VersionRange:
    """A parsed range: a union of ``packaging`` specifier sets."""

    raw: str
    alternatives: tuple[SpecifierSet, ...]

    def contains(self, version: str | Version) -> bool:
        """Return ``True`` if *version* satisfies at least one alternative."""
        parsed = version if isinstance(version, Version) else parse_version(version)
        return any(spec.contains(parsed, prereleases=True) for spec in self.alternatives)

    def intersects(self, *others: "VersionRange") -> bool:
        """Return ``True`` if some version satisfies this range and all *others*."""
        return ranges_intersect([self, *others])

    def __str__(self) -> str:
        return self.raw


@lru_cache(maxsize=512)
def parse_range(value: str) -> VersionRange:
    """Parse an npm-style version range.

    Raises:
        ValueError: If the range cannot be parsed.
    """
    alternatives = tuple(_translate(part) for part in str(value).split("||"))
    return VersionRange(raw=str(value).strip(), alternatives=alternatives)


def _candidates(specs: tuple[SpecifierSet, ...]) -> list[Version]:
    found = {Version("0.0.0")}
    for spec_set in specs:
        for spec in spec_set:
            try:
                version = Version(spec.version.rstrip(".*"))
            except InvalidVersion:
                continue
            found.add(version)
            if spec.operator == ">":
                release = list(version.release) + [0, 0]
                found.add(Version(_fmt(release[0], release[1], release[2] + 1)))
    return sorted(found)


def ranges_intersect(ranges: list[VersionRange]) -> bool:
    """Return ``True`` if at least one version satisfies every range in *ranges*."""
    if len(ranges) < 2:
        return True
    for combo in itertools.product(*(r.alternatives for r in ranges)):
        merged = SpecifierSet("")
        for spec in combo:
            merged &= spec
        if any(merged.contains(v, prereleases=True) for v in _candidates(combo)):
            return True
    return False


def satisfies(version: str, spec: str) -> bool:
    """Convenience wrapper: does *version* fall inside range *spec*?"""
    return parse_range(spec).contains(version)


__all__ = [
    "VersionRange",
    "parse_range",
    "parse_version",
    "ranges_intersect",
    "satisfies",
]
