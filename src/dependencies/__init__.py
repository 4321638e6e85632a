"""Reconciling the manifest with the project and the local package cache."""

from .acquisition import Downloader
from .cache import ArchiveCache, PackageCache
from .decision import get_manifest
from .pipeline import DownloadReport, download_dependencies, run
from .pruner import remove_extra_packages

__all__ = [
    "Downloader",
    "ArchiveCache",
    "PackageCache",
    "get_manifest",
    "DownloadReport",
    "download_dependencies",
    "run",
    "remove_extra_packages",
]
