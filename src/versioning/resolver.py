"""Version resolution through the resolvelib backtracking solver.

The solver stays synchronous and side-effect free: everything it knows
about packages comes from a ``PackageFetcher`` whose only job is
``fetch(name) -> PackageMetadata``. ``RegistryPackageFetcher`` satisfies
that capability from the async registry client by blocking on the
command's runtime, one lookup at a time.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Protocol

import semantic_version
from resolvelib import AbstractProvider, BaseReporter, Resolver
from resolvelib import ResolutionImpossible, ResolutionTooDeep

from common.errors import InvalidRequirementError, RegistryResponseError, ResolutionError
from common.runtime import Runtime
from constants import Constants
from registry.client import RegistryClient
from registry.models import PackageMetadata
from versioning.requirements import VersionRequirement, parse_requirement

logger = logging.getLogger(__name__)


class PackageFetcher(Protocol):
    """Narrow capability the solver uses to learn about a package."""

    def fetch(self, name: str) -> PackageMetadata:
        ...


class RegistryPackageFetcher:
    """Synchronous ``fetch`` bridged onto the async registry client.

    Metadata is memoised per package name for the lifetime of the fetcher,
    so backtracking never repeats a registry lookup.
    """

    def __init__(self, runtime: Runtime, client: RegistryClient):
        self._runtime = runtime
        self._client = client
        self._cache: Dict[str, PackageMetadata] = {}
        self.lookups = 0

    def fetch(self, name: str) -> PackageMetadata:
        cached = self._cache.get(name)
        if cached is not None:
            return cached
        logger.info("Looking up package %s in registry", name)
        self.lookups += 1
        metadata = self._runtime.block_on(self._client.get_package(name))
        self._cache[name] = metadata
        return metadata


@dataclass(frozen=True)
class Requirement:
    """A named constraint, either from the project or from a release."""
    name: str
    spec: VersionRequirement = field(compare=False)
    raw: str = ""

    def __str__(self) -> str:
        return f"{self.name} {self.raw}".strip()


@dataclass(frozen=True)
class Candidate:
    """One concrete release considered by the solver."""
    name: str
    version: semantic_version.Version
    raw_version: str
    requirements: Mapping[str, str] = field(compare=False, hash=False, default_factory=dict)

    def __str__(self) -> str:
        return f"{self.name} {self.raw_version}"


class RegistryProvider(AbstractProvider):
    """resolvelib provider backed by a ``PackageFetcher``."""

    def __init__(self, fetcher: PackageFetcher):
        self._fetcher = fetcher

    def identify(self, requirement_or_candidate):
        return requirement_or_candidate.name

    def get_preference(self, identifier, resolutions, candidates, information, backtrack_causes):
        # Most constrained first: fewer remaining candidates resolve sooner.
        return sum(1 for _ in candidates[identifier])

    def find_matches(self, identifier, requirements, incompatibilities) -> List[Candidate]:
        reqs = list(requirements[identifier])
        bad_versions = {c.raw_version for c in incompatibilities[identifier]}
        pinned = {r.spec.pinned for r in reqs if r.spec.pinned}
        metadata = self._fetcher.fetch(identifier)

        matches: List[Candidate] = []
        for release in metadata.releases:
            if release.version in bad_versions:
                continue
            if release.retired and release.version not in pinned:
                continue
            try:
                version = semantic_version.Version(release.version)
            except ValueError:
                logger.debug("Skipping %s %s: not a semantic version", identifier, release.version)
                continue
            if all(r.spec.match(version) for r in reqs):
                matches.append(
                    Candidate(identifier, version, release.version, dict(release.requirements))
                )
        matches.sort(key=lambda c: c.version, reverse=True)
        return matches

    def is_satisfied_by(self, requirement, candidate) -> bool:
        return requirement.spec.match(candidate.version)

    def get_dependencies(self, candidate) -> List[Requirement]:
        dependencies = []
        for name, raw in sorted(candidate.requirements.items()):
            try:
                spec = parse_requirement(name, raw)
            except InvalidRequirementError as exc:
                raise RegistryResponseError(f"{candidate} declares an invalid requirement: {exc}") from exc
            dependencies.append(Requirement(name, spec, raw))
        return dependencies


class _LoggingReporter(BaseReporter):
    def pinning(self, candidate):
        logger.debug("Pinning %s", candidate)


def _describe_conflict(exc: ResolutionImpossible) -> str:
    lines = []
    for cause in exc.causes:
        parent = cause.parent
        who = str(parent) if parent is not None else "project"
        lines.append(f"{who} requires {cause.requirement}")
    return "; ".join(lines) if lines else str(exc)


def build_requirements(requirements: Mapping[str, str]) -> List[Requirement]:
    """Translate a requirement set into solver input.

    Raises:
        InvalidRequirementError: a constraint cannot be parsed.
    """
    return [Requirement(name, parse_requirement(name, raw), raw)
            for name, raw in sorted(requirements.items())]


def resolve_versions(
    requirements: Mapping[str, str],
    fetcher: PackageFetcher,
    max_rounds: int = Constants.MAX_RESOLUTION_ROUNDS,
) -> Dict[str, str]:
    """Pick one exact version for every direct and transitive dependency.

    Returns:
        Flat ``name -> version`` mapping.

    Raises:
        InvalidRequirementError: a project constraint cannot be parsed.
        ResolutionError: no version set satisfies the requirements.
        RegistryError: a registry lookup failed (propagated unchanged).
    """
    root = build_requirements(requirements)
    if not root:
        return {}
    resolver = Resolver(RegistryProvider(fetcher), _LoggingReporter())
    try:
        result = resolver.resolve(root, max_rounds=max_rounds)
    except ResolutionImpossible as exc:
        raise ResolutionError(f"Unable to find compatible versions: {_describe_conflict(exc)}") from exc
    except ResolutionTooDeep as exc:
        raise ResolutionError(
            f"Version resolution did not finish within {max_rounds} rounds"
        ) from exc
    return {name: candidate.raw_version for name, candidate in sorted(result.mapping.items())}
