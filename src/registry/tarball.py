"""Package archive unpacking.

A package archive is an uncompressed tar holding four members:

* ``VERSION`` - archive format version
* ``CHECKSUM`` - hex SHA-256 of VERSION + metadata.config + contents.tar.gz
* ``metadata.config`` - package metadata (not interpreted here)
* ``contents.tar.gz`` - the package source tree

Only ``contents.tar.gz`` is unpacked, after the inner checksum matched.
"""

from __future__ import annotations

import hashlib
import logging
import tarfile
from pathlib import Path
from typing import Dict

from common.errors import ArchiveError

logger = logging.getLogger(__name__)

CHECKSUMMED_MEMBERS = ("VERSION", "metadata.config", "contents.tar.gz")
REQUIRED_MEMBERS = ("VERSION", "CHECKSUM", "metadata.config", "contents.tar.gz")
_CHUNK_SIZE = 64 * 1024


def _members(outer: tarfile.TarFile) -> Dict[str, tarfile.TarInfo]:
    members = {m.name: m for m in outer.getmembers() if m.isfile()}
    missing = [name for name in REQUIRED_MEMBERS if name not in members]
    if missing:
        raise ArchiveError(f"archive is missing {', '.join(missing)}")
    return members


def _read_member(outer: tarfile.TarFile, member: tarfile.TarInfo) -> bytes:
    handle = outer.extractfile(member)
    if handle is None:
        raise ArchiveError(f"cannot read {member.name}")
    with handle:
        return handle.read()


def _checksum(outer: tarfile.TarFile, members: Dict[str, tarfile.TarInfo]) -> str:
    sha = hashlib.sha256()
    for name in CHECKSUMMED_MEMBERS:
        handle = outer.extractfile(members[name])
        if handle is None:
            raise ArchiveError(f"cannot read {name}")
        with handle:
            for chunk in iter(lambda: handle.read(_CHUNK_SIZE), b""):
                sha.update(chunk)
    return sha.hexdigest()


def unpack_archive(archive_path: Path, dest: Path) -> None:
    """Validate ``archive_path`` and extract its contents into ``dest``.

    ``dest`` must already exist and should be a private staging directory;
    on failure it may hold a partial tree that the caller discards.

    Raises:
        ArchiveError: the archive is malformed, fails its checksum or holds
            unsafe paths.
    """
    if not hasattr(tarfile, "data_filter"):
        raise ArchiveError(
            f"cannot unpack {archive_path.name}: this Python has no tarfile extraction filters, "
            "upgrade to 3.10.12, 3.11.4 or newer"
        )
    try:
        with tarfile.open(archive_path, mode="r:") as outer:
            members = _members(outer)
            expected = _read_member(outer, members["CHECKSUM"]).decode("ascii").strip().lower()
            actual = _checksum(outer, members)
            if expected != actual:
                raise ArchiveError(f"checksum mismatch: expected {expected}, got {actual}")

            contents = outer.extractfile(members["contents.tar.gz"])
            if contents is None:
                raise ArchiveError("cannot read contents.tar.gz")
            with contents, tarfile.open(fileobj=contents, mode="r|gz") as inner:
                inner.extractall(dest, filter="data")
    except (tarfile.TarError, EOFError, OSError, UnicodeDecodeError) as exc:
        raise ArchiveError(f"cannot unpack {archive_path.name}: {exc}") from exc
    logger.debug("Unpacked %s into %s", archive_path.name, dest)
