"""On-disk package storage.

Two levels are kept:

* ``ArchiveCache`` - verified registry archives shared by every project of
  the user, ``<root>/<name>-<version>.tar``. Entries are never pruned.
* ``PackageCache`` - the unpacked packages of one project,
  ``<root>/<name>-<version>``, pruned against the project's ledger.

Entries of both only ever appear through an atomic rename of a complete
staging file or tree, so their presence means they are complete.
"""

from __future__ import annotations

import logging
import os
import re
import shutil
import tempfile
from pathlib import Path

from common.errors import ConfigError
from constants import Constants

logger = logging.getLogger(__name__)

_SAFE_COMPONENT = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9_.+\-]*$")


def _check_component(value: str, what: str) -> str:
    if not _SAFE_COMPONENT.match(value) or ".." in value:
        raise ConfigError(f"Invalid package {what} for a cache path: '{value}'")
    return value


def _entry_name(name: str, version: str) -> str:
    return f"{_check_component(name, 'name')}-{_check_component(version, 'version')}"


class PackageCache:
    """Directory of unpacked packages keyed by (name, version)."""

    def __init__(self, root: Path):
        self.root = Path(root)

    def package_path(self, name: str, version: str) -> Path:
        return self.root / _entry_name(name, version)

    def is_unpacked(self, name: str, version: str) -> bool:
        return self.package_path(name, version).is_dir()

    def make_staging_dir(self, name: str, version: str) -> Path:
        """Create a private staging directory on the same filesystem as the cache."""
        staging_root = self.root / Constants.TMP_DIR_NAME
        staging_root.mkdir(parents=True, exist_ok=True)
        return Path(tempfile.mkdtemp(prefix=f"{name}-{version}.", dir=staging_root))

    def remove(self, name: str, version: str) -> bool:
        """Delete an unpacked package. Returns False if it was not present.

        Raises:
            OSError: the directory exists but could not be deleted.
        """
        path = self.package_path(name, version)
        if not path.exists():
            return False
        shutil.rmtree(path)
        return True


class ArchiveCache:
    """Directory of verified package archives shared across projects."""

    def __init__(self, root: Path):
        self.root = Path(root)

    def archive_path(self, name: str, version: str) -> Path:
        return self.root / f"{_entry_name(name, version)}.tar"

    def has_archive(self, name: str, version: str) -> bool:
        return self.archive_path(name, version).is_file()

    def make_staging_file(self, name: str, version: str) -> Path:
        """Create an empty download target next to the cached archives."""
        staging_root = self.root / Constants.TMP_DIR_NAME
        staging_root.mkdir(parents=True, exist_ok=True)
        fd, path = tempfile.mkstemp(prefix=f"{name}-{version}.", suffix=".tar", dir=staging_root)
        os.close(fd)
        return Path(path)

    def store(self, name: str, version: str, staged: Path) -> Path:
        """Move a verified archive into the cache and return its final path.

        Raises:
            OSError: the archive could not be moved into place.
        """
        target = self.archive_path(name, version)
        os.replace(staged, target)
        logger.debug("Cached archive %s", target.name)
        return target

    def discard(self, name: str, version: str) -> None:
        """Forget a cached archive that turned out to be unusable."""
        try:
            self.archive_path(name, version).unlink(missing_ok=True)
        except OSError as exc:
            logger.warning("Could not remove cached archive for %s %s: %s", name, version, exc)
