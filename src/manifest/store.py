"""Persistence for the manifest and the local package ledger.

Two interchangeable stores are provided: ``FileStore`` backs the real
command with TOML files, ``MemoryStore`` keeps records in memory for tests
and embedding. Both replace whole records on write; nothing is edited in
place.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import tomli_w

from common.errors import FileIoError
from constants import Constants, FileIoAction
from manifest.models import LocalPackages, Manifest

try:
    import tomllib as toml  # type: ignore
except ImportError:  # Python < 3.11
    import tomli as toml  # type: ignore

logger = logging.getLogger(__name__)


def _string_table(data: Mapping[str, Any], key: str) -> Dict[str, str]:
    """Extract a ``name = "value"`` table, rejecting anything else."""
    if key not in data:
        raise ValueError(f"missing field `{key}`")
    table = data[key]
    if not isinstance(table, dict):
        raise ValueError(f"field `{key}` must be a table")
    result: Dict[str, str] = {}
    for name, value in table.items():
        if not isinstance(value, str):
            raise ValueError(f"`{key}.{name}` must be a string, got {type(value).__name__}")
        result[name] = value
    return result


def manifest_from_toml(text: str) -> Manifest:
    """Parse manifest TOML. Raises ``ValueError`` (or a TOML decode error) on bad input."""
    data = toml.loads(text)
    return Manifest(
        requirements=_string_table(data, "requirements"),
        packages=_string_table(data, "packages"),
    )


def manifest_to_toml(manifest: Manifest) -> str:
    """Serialize a manifest, including the generated-file header."""
    return Constants.MANIFEST_HEADER + tomli_w.dumps(manifest.to_dict())


def local_packages_from_toml(text: str) -> LocalPackages:
    data = toml.loads(text)
    return LocalPackages(packages=_string_table(data, "packages"))


def local_packages_to_toml(local: LocalPackages) -> str:
    return tomli_w.dumps(local.to_dict())


def _atomic_write(path: Path, content: str) -> None:
    """Write ``content`` to a temp file beside ``path`` then rename over it."""
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=str(path.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as handle:
                handle.write(content)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
    except OSError as exc:
        raise FileIoError(path, FileIoAction.WRITE, str(exc)) from exc


def _read_text(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise FileIoError(path, FileIoAction.READ, str(exc)) from exc


class FileStore:
    """TOML-file backed store for the manifest and the ledger."""

    def __init__(self, manifest_path: Path, packages_toml_path: Path):
        self.manifest_path = Path(manifest_path)
        self.packages_toml_path = Path(packages_toml_path)

    def manifest_exists(self) -> bool:
        return self.manifest_path.exists()

    def read_manifest(self) -> Manifest:
        logger.info("Reading %s", self.manifest_path.name)
        text = _read_text(self.manifest_path)
        try:
            return manifest_from_toml(text)
        except (toml.TOMLDecodeError, ValueError) as exc:
            raise FileIoError(self.manifest_path, FileIoAction.PARSE, str(exc)) from exc

    def write_manifest(self, manifest: Manifest) -> None:
        _atomic_write(self.manifest_path, manifest_to_toml(manifest))
        logger.debug("Wrote %s", self.manifest_path)

    def read_local_packages(self) -> Optional[LocalPackages]:
        """Return the ledger, or None when no packages were ever unpacked."""
        if not self.packages_toml_path.exists():
            return None
        text = _read_text(self.packages_toml_path)
        try:
            return local_packages_from_toml(text)
        except (toml.TOMLDecodeError, ValueError) as exc:
            raise FileIoError(self.packages_toml_path, FileIoAction.PARSE, str(exc)) from exc

    def write_local_packages(self, local: LocalPackages) -> None:
        _atomic_write(self.packages_toml_path, local_packages_to_toml(local))
        logger.debug("Wrote %s", self.packages_toml_path)


class MemoryStore:
    """In-memory store with the same interface as ``FileStore``.

    Records are copied on the way in and out so callers cannot mutate the
    stored state by accident.
    """

    def __init__(
        self,
        manifest: Optional[Manifest] = None,
        local_packages: Optional[LocalPackages] = None,
    ):
        self._manifest = self._copy_manifest(manifest) if manifest else None
        self._local = LocalPackages(dict(local_packages.packages)) if local_packages else None
        self.manifest_writes = 0
        self.local_packages_writes = 0

    @staticmethod
    def _copy_manifest(manifest: Manifest) -> Manifest:
        return Manifest(dict(manifest.requirements), dict(manifest.packages))

    def manifest_exists(self) -> bool:
        return self._manifest is not None

    def read_manifest(self) -> Manifest:
        if self._manifest is None:
            raise FileIoError(Constants.MANIFEST_FILE, FileIoAction.READ, "no manifest stored")
        return self._copy_manifest(self._manifest)

    def write_manifest(self, manifest: Manifest) -> None:
        self._manifest = self._copy_manifest(manifest)
        self.manifest_writes += 1

    def read_local_packages(self) -> Optional[LocalPackages]:
        if self._local is None:
            return None
        return LocalPackages(dict(self._local.packages))

    def write_local_packages(self, local: LocalPackages) -> None:
        self._local = LocalPackages(dict(local.packages))
        self.local_packages_writes += 1
