"""Shared helpers for building signed registry data and fake collaborators."""

import asyncio
import base64
import hashlib
import io
import json
import tarfile
from typing import Dict, Optional, Tuple

from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from common.errors import PackageNotFoundError
from registry.models import PackageMetadata, Release


def generate_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


def public_pem(private_key: rsa.RSAPrivateKey) -> str:
    return private_key.public_key().public_bytes(
        serialization.Encoding.PEM,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode("ascii")


def sign(private_key: rsa.RSAPrivateKey, data: bytes) -> bytes:
    return private_key.sign(data, padding.PKCS1v15(), hashes.SHA512())


def signed_envelope(private_key: rsa.RSAPrivateKey, payload: dict) -> bytes:
    raw = json.dumps(payload).encode("utf-8")
    return json.dumps({
        "payload": base64.b64encode(raw).decode("ascii"),
        "signature": base64.b64encode(sign(private_key, raw)).decode("ascii"),
    }).encode("utf-8")


def _add_bytes(tar: tarfile.TarFile, name: str, data: bytes) -> None:
    info = tarfile.TarInfo(name)
    info.size = len(data)
    tar.addfile(info, io.BytesIO(data))


def build_contents(files: Dict[str, bytes]) -> bytes:
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as tar:
        for name, data in files.items():
            _add_bytes(tar, name, data)
    return buffer.getvalue()


def build_archive(
    files: Optional[Dict[str, bytes]] = None,
    checksum: Optional[str] = None,
    omit: Tuple[str, ...] = (),
    contents: Optional[bytes] = None,
) -> bytes:
    """Build an outer package tar around a gzipped contents tree."""
    if contents is None:
        contents = build_contents(files or {"src/lib.txt": b"hello"})
    members = {
        "VERSION": b"3",
        "metadata.config": b'{<<"name">>,<<"pkg">>}.\n',
        "contents.tar.gz": contents,
    }
    if checksum is None:
        sha = hashlib.sha256()
        for name in ("VERSION", "metadata.config", "contents.tar.gz"):
            sha.update(members[name])
        checksum = sha.hexdigest().upper()
    members["CHECKSUM"] = checksum.encode("ascii")

    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w") as tar:
        for name in ("VERSION", "CHECKSUM", "metadata.config", "contents.tar.gz"):
            if name not in omit:
                _add_bytes(tar, name, members[name])
    return buffer.getvalue()


class FakeFetcher:
    """In-memory package index for the solver."""

    def __init__(self, index: Dict[str, Dict[str, Dict[str, str]]], retired=()):
        self._index = index
        self._retired = set(retired)
        self.lookups = []

    def fetch(self, name: str) -> PackageMetadata:
        self.lookups.append(name)
        if name not in self._index:
            raise PackageNotFoundError(name)
        releases = [
            Release(version, dict(reqs), (name, version) in self._retired)
            for version, reqs in self._index[name].items()
        ]
        return PackageMetadata(name, releases)


class FakeRegistryClient:
    """Stands in for ``RegistryClient.download_archive``."""

    def __init__(self, archives=None, failures=None, delays=None):
        self.archives = archives or {}
        self.failures = failures or {}
        self.delays = delays or {}
        self.downloads = []
        self.cancelled = []

    async def download_archive(self, name, version, dest):
        key = (name, version)
        self.downloads.append(key)
        try:
            if key in self.delays:
                await asyncio.sleep(self.delays[key])
        except asyncio.CancelledError:
            self.cancelled.append(key)
            raise
        if key in self.failures:
            raise self.failures[key]
        dest.write_bytes(self.archives.get(key) or build_archive({f"{name}.txt": version.encode()}))
        return dest

    async def stop(self):
        return None
