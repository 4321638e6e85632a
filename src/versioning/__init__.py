"""Requirement parsing and version resolution."""

from .requirements import VersionRequirement, parse_requirement
from .resolver import PackageFetcher, RegistryPackageFetcher, resolve_versions

__all__ = [
    "VersionRequirement",
    "parse_requirement",
    "PackageFetcher",
    "RegistryPackageFetcher",
    "resolve_versions",
]
