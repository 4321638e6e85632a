"""Decide whether the stored manifest can be reused or versions must be resolved."""

from __future__ import annotations

import logging
from typing import Callable

from manifest.models import Manifest, PackageVersions, RequirementSet

logger = logging.getLogger(__name__)

Resolve = Callable[[RequirementSet], PackageVersions]


def get_manifest(store, requirements: RequirementSet, resolve: Resolve) -> Manifest:
    """Return the manifest the project should build against.

    The stored manifest is reused verbatim when it was produced from exactly
    the current requirement set; otherwise versions are resolved from
    scratch. Locked versions of an outdated manifest are not used as hints.
    Nothing is written here.

    Args:
        store: Manifest store (``FileStore`` or ``MemoryStore``).
        requirements: Current project requirement set.
        resolve: Callable returning ``name -> version`` for a requirement set.

    Raises:
        FileIoError: a stored manifest exists but cannot be read or parsed.
    """
    if not store.manifest_exists():
        logger.info("manifest_not_present")
        return _resolve_manifest(requirements, resolve)

    manifest = store.read_manifest()
    if manifest.requirements == requirements:
        logger.info("manifest_up_to_date")
        return manifest

    logger.info("manifest_outdated")
    return _resolve_manifest(requirements, resolve)


def _resolve_manifest(requirements: RequirementSet, resolve: Resolve) -> Manifest:
    packages = resolve(dict(requirements))
    return Manifest(requirements=dict(requirements), packages=dict(packages))
