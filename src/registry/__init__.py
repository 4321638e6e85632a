"""Package registry access: signed metadata, archives and unpacking."""

from .client import RegistryClient
from .models import PackageMetadata, Release
from .signing import load_public_key
from .tarball import unpack_archive

__all__ = [
    "RegistryClient",
    "PackageMetadata",
    "Release",
    "load_public_key",
    "unpack_archive",
]
