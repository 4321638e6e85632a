"""Data models for the resolved manifest and the local package ledger."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Tuple

# Type aliases; both maps are keyed by package name.
RequirementSet = Dict[str, str]
PackageVersions = Dict[str, str]


@dataclass
class Manifest:
    """Exact versions selected for a project plus the requirements that produced them."""
    requirements: RequirementSet = field(default_factory=dict)
    packages: PackageVersions = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Dict[str, str]]:
        return {
            "requirements": dict(sorted(self.requirements.items())),
            "packages": dict(sorted(self.packages.items())),
        }


@dataclass
class LocalPackages:
    """Packages currently unpacked in the package directory."""
    packages: PackageVersions = field(default_factory=dict)

    @classmethod
    def from_manifest(cls, manifest: Manifest) -> "LocalPackages":
        return cls(packages=dict(manifest.packages))

    def extra_local_packages(self, manifest: Manifest) -> List[Tuple[str, str]]:
        """Return local (name, version) pairs the manifest no longer selects.

        A package counts as extra when it is missing from the manifest or the
        manifest selects a different version of it.
        """
        extra = []
        for name, version in self.packages.items():
            if manifest.packages.get(name) != version:
                extra.append((name, version))
        return extra

    def to_dict(self) -> Dict[str, Dict[str, str]]:
        return {"packages": dict(sorted(self.packages.items()))}
