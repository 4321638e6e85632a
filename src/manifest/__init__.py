"""Resolved manifest and local package ledger: models and persistence."""

from .models import LocalPackages, Manifest, PackageVersions, RequirementSet
from .store import FileStore, MemoryStore

__all__ = [
    "LocalPackages",
    "Manifest",
    "PackageVersions",
    "RequirementSet",
    "FileStore",
    "MemoryStore",
]
