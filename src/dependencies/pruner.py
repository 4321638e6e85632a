"""Remove unpacked packages the new manifest no longer selects."""

from __future__ import annotations

import logging
from typing import Set, Tuple

from common.errors import ConfigError
from dependencies.cache import PackageCache
from manifest.models import Manifest

logger = logging.getLogger(__name__)


def remove_extra_packages(store, cache: PackageCache, manifest: Manifest) -> Set[Tuple[str, str]]:
    """Delete every ledger entry whose version the manifest does not select.

    Deletion failures are logged and skipped; the remaining packages are
    still processed.

    Returns:
        The stale (name, version) pairs that are now gone from the cache,
        whether deleted here or already absent.

    Raises:
        FileIoError: the ledger exists but cannot be read or parsed.
    """
    local = store.read_local_packages()
    if local is None:
        return set()

    removed: Set[Tuple[str, str]] = set()
    for name, version in local.extra_local_packages(manifest):
        try:
            if cache.remove(name, version):
                logger.info("removing_unneeded_package %s %s", name, version)
        except (OSError, ConfigError) as exc:
            logger.warning("Failed to remove unneeded package %s %s: %s", name, version, exc)
            continue
        removed.add((name, version))
    return removed
