"""Translate version requirement expressions into semantic_version specs.

Accepted forms:

* Elixir/Hex style: ``~> 1.2``, ``>= 1.0.0 and < 2.0.0``, ``== 1.0.0``,
  ``1.0.0 or 2.0.0`` (a bare version means ``==``).
* npm style, parsed by ``semantic_version.NpmSpec``: ``^1.2.0``,
  ``~1.2``, ``1.x``, ``1.2.3 - 1.4.0``, ``>=1.0.0 <2.0.0 || 3.x``.
* Comma separated comparators: ``>=1.0,<2.0``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Optional, Sequence, Union

import semantic_version

from common.errors import InvalidRequirementError

_CLAUSE = re.compile(r"^(~>|==|!=|>=|<=|>|<)?\s*v?([0-9][0-9A-Za-z.\-+]*)$")
_NPM_MARKERS = ("^", "||", "*")
_NPM_TILDE = re.compile(r"~(?!>)")
_NPM_XRANGE = re.compile(r"(^|[\s.])[xX](?=$|[\s.])")
_NPM_HYPHEN = re.compile(r"\S\s+-\s+\S")
_OR_SPLIT = re.compile(r"\s+or\s+")
_AND_SPLIT = re.compile(r"\s+and\s+|\s*,\s*")

AnySpec = Union[semantic_version.SimpleSpec, semantic_version.NpmSpec]


def _version_from_str(raw: str) -> semantic_version.Version:
    """Parse a full or partial (``1.2``) version."""
    try:
        return semantic_version.Version(raw)
    except ValueError:
        return semantic_version.Version.coerce(raw)


def _pessimistic_bounds(raw: str) -> List[str]:
    """Expand ``~> raw`` into lower/upper comparators.

    ``~> 1.2`` allows ``>= 1.2.0 and < 2.0.0``; ``~> 1.2.3`` allows
    ``>= 1.2.3 and < 1.3.0``.
    """
    core = raw.split("-", 1)[0].split("+", 1)[0]
    parts = core.split(".")
    if len(parts) not in (2, 3) or not all(p.isdigit() for p in parts):
        raise ValueError(f"`~>` needs a MAJOR.MINOR or MAJOR.MINOR.PATCH version, got '{raw}'")
    lower = _version_from_str(raw)
    major, minor = int(parts[0]), int(parts[1])
    if len(parts) == 2:
        upper = semantic_version.Version(major=major + 1, minor=0, patch=0)
    else:
        upper = semantic_version.Version(major=major, minor=minor + 1, patch=0)
    return [f">={lower}", f"<{upper}"]


def _translate_clause(clause: str) -> List[str]:
    match = _CLAUSE.match(clause.strip())
    if not match:
        raise ValueError(f"cannot parse '{clause.strip()}'")
    operator = match.group(1) or "=="
    raw_version = match.group(2)
    if operator == "~>":
        return _pessimistic_bounds(raw_version)
    return [f"{operator}{_version_from_str(raw_version)}"]


def _looks_like_npm(expression: str) -> bool:
    if any(marker in expression for marker in _NPM_MARKERS):
        return True
    return bool(
        _NPM_TILDE.search(expression)
        or _NPM_XRANGE.search(expression)
        or _NPM_HYPHEN.search(expression)
    )


@dataclass
class VersionRequirement:
    """A parsed requirement: matches if any alternative spec matches."""
    raw: str
    specs: Sequence[AnySpec]
    include_prerelease: bool
    pinned: Optional[str] = None

    def match(self, version: Union[str, semantic_version.Version]) -> bool:
        if isinstance(version, str):
            try:
                version = semantic_version.Version(version)
            except ValueError:
                return False
        if version.prerelease and not self.include_prerelease:
            return False
        return any(spec.match(version) for spec in self.specs)

    def __str__(self) -> str:
        return self.raw


def parse_requirement(package: str, raw: str) -> VersionRequirement:
    """Parse ``raw`` for ``package``.

    Raises:
        InvalidRequirementError: the expression is not understood.
    """
    expression = (raw or "").strip()
    include_prerelease = bool(re.search(r"\d-[0-9A-Za-z]", expression))
    if expression == "" or expression.lower() == "latest":
        return VersionRequirement(raw=raw, specs=[semantic_version.NpmSpec("*")],
                                  include_prerelease=False)

    try:
        if _looks_like_npm(expression):
            specs: List[AnySpec] = [semantic_version.NpmSpec(expression)]
            return VersionRequirement(raw=raw, specs=specs, include_prerelease=include_prerelease)

        specs = []
        pinned: Optional[str] = None
        alternatives = _OR_SPLIT.split(expression)
        for alternative in alternatives:
            comparators: List[str] = []
            for clause in _AND_SPLIT.split(alternative.strip()):
                if clause:
                    comparators.extend(_translate_clause(clause))
            if not comparators:
                raise ValueError("empty alternative")
            specs.append(semantic_version.SimpleSpec(",".join(comparators)))
            if len(alternatives) == 1 and len(comparators) == 1 and comparators[0].startswith("=="):
                pinned = comparators[0][2:]
    except ValueError as exc:
        raise InvalidRequirementError(package, raw, str(exc)) from exc

    return VersionRequirement(raw=raw, specs=specs, include_prerelease=include_prerelease,
                              pinned=pinned)
