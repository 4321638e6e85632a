"""Tests for package archive unpacking."""

import io
import tarfile

import pytest

from common.errors import ArchiveError
from registry.tarball import unpack_archive

from support import build_archive


def _write(tmp_path, data):
    archive = tmp_path / "pkg.tar"
    archive.write_bytes(data)
    dest = tmp_path / "out"
    dest.mkdir()
    return archive, dest


def test_unpacks_contents_only(tmp_path):
    archive, dest = _write(tmp_path, build_archive({"src/pkg.gleam": b"pub fn main() {}", "gleam.toml": b"name = 'pkg'"}))

    unpack_archive(archive, dest)

    assert (dest / "src" / "pkg.gleam").read_bytes() == b"pub fn main() {}"
    assert (dest / "gleam.toml").exists()
    assert not (dest / "VERSION").exists()
    assert not (dest / "CHECKSUM").exists()


def test_checksum_mismatch_is_rejected(tmp_path):
    archive, dest = _write(tmp_path, build_archive(checksum="00" * 32))

    with pytest.raises(ArchiveError, match="checksum"):
        unpack_archive(archive, dest)

    assert list(dest.iterdir()) == []


def test_missing_member_is_rejected(tmp_path):
    archive, dest = _write(tmp_path, build_archive(omit=("CHECKSUM",)))

    with pytest.raises(ArchiveError, match="CHECKSUM"):
        unpack_archive(archive, dest)


def test_not_a_tar_is_rejected(tmp_path):
    archive, dest = _write(tmp_path, b"definitely not a tarball")

    with pytest.raises(ArchiveError):
        unpack_archive(archive, dest)


def test_path_traversal_in_contents_is_rejected(tmp_path):
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as tar:
        info = tarfile.TarInfo("../escaped.txt")
        info.size = 4
        tar.addfile(info, io.BytesIO(b"evil"))
    archive, dest = _write(tmp_path, build_archive(contents=buffer.getvalue()))

    with pytest.raises(ArchiveError):
        unpack_archive(archive, dest)

    assert not (tmp_path / "escaped.txt").exists()


def test_refuses_to_extract_without_filters(tmp_path, monkeypatch):
    archive, dest = _write(tmp_path, build_archive())
    monkeypatch.delattr(tarfile, "data_filter")

    with pytest.raises(ArchiveError, match="extraction filters"):
        unpack_archive(archive, dest)

    assert list(dest.iterdir()) == []
