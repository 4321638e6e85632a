"""Data models for registry package metadata."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class Release:
    """One published version of a package and its own requirements."""
    version: str
    requirements: Dict[str, str] = field(default_factory=dict)
    retired: bool = False


@dataclass
class PackageMetadata:
    """Everything the solver needs to know about a package."""
    name: str
    releases: List[Release] = field(default_factory=list)

    def release(self, version: str) -> Optional[Release]:
        for release in self.releases:
            if release.version == version:
                return release
        return None

    @classmethod
    def from_payload(cls, data: Any) -> "PackageMetadata":
        """Build metadata from a decoded registry payload.

        Raises:
            ValueError: the payload does not have the expected shape.
        """
        if not isinstance(data, dict):
            raise ValueError("package payload must be an object")
        name = data.get("name")
        if not isinstance(name, str) or not name:
            raise ValueError("package payload is missing `name`")
        raw_releases = data.get("releases", [])
        if not isinstance(raw_releases, list):
            raise ValueError("`releases` must be a list")

        releases: List[Release] = []
        for entry in raw_releases:
            if not isinstance(entry, dict) or not isinstance(entry.get("version"), str):
                raise ValueError("every release needs a string `version`")
            requirements = entry.get("requirements") or {}
            if not isinstance(requirements, dict) or not all(
                isinstance(k, str) and isinstance(v, str) for k, v in requirements.items()
            ):
                raise ValueError(
                    f"`requirements` of {name} {entry['version']} must map names to strings"
                )
            releases.append(
                Release(
                    version=entry["version"],
                    requirements=dict(requirements),
                    retired=bool(entry.get("retired", False)),
                )
            )
        return cls(name=name, releases=releases)
