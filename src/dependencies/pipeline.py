"""One reconciliation cycle: decide, resolve, prune, acquire, persist."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Mapping, Optional, Set, Tuple

from common.logging_utils import Timer, extra_context, is_debug_enabled, safe_url
from common.runtime import Runtime
from constants import Constants
from dependencies.acquisition import Downloader
from dependencies.cache import ArchiveCache, PackageCache
from dependencies.decision import get_manifest
from dependencies.pruner import remove_extra_packages
from manifest.models import LocalPackages, Manifest, PackageVersions, RequirementSet
from manifest.store import FileStore
from project.config import ProjectConfig
from registry.client import RegistryClient
from versioning.resolver import PackageFetcher, RegistryPackageFetcher, resolve_versions

logger = logging.getLogger(__name__)

Progress = Callable[[str], None]


def _silent(_message: str) -> None:
    return None


@dataclass
class DownloadReport:
    """Outcome of a successful cycle."""
    manifest: Manifest
    downloaded: int = 0
    removed: Set[Tuple[str, str]] = field(default_factory=set)
    resolved: bool = False
    duration: float = 0.0


def download_dependencies(
    requirements: RequirementSet,
    store,
    cache: PackageCache,
    runtime: Runtime,
    client: RegistryClient,
    progress: Optional[Progress] = None,
    max_concurrency: int = Constants.MAX_CONCURRENCY,
    fetcher: Optional[PackageFetcher] = None,
    archives: Optional[ArchiveCache] = None,
) -> DownloadReport:
    """Bring the manifest, ledger and package cache in line with ``requirements``.

    The manifest and the ledger are only written once every package of the
    manifest is unpacked; any failure before that leaves both untouched.

    Args:
        requirements: Merged project requirement set.
        store: Manifest/ledger store.
        cache: Local package directory.
        runtime: Event loop owner used for all network work.
        client: Registry client (metadata and archives).
        progress: Callback receiving user-facing progress lines.
        max_concurrency: Upper bound on simultaneous downloads.
        fetcher: Metadata source for the solver; defaults to the registry.
        archives: Archive cache shared between projects, if any.

    Returns:
        DownloadReport describing what happened.
    """
    say = progress or _silent
    metadata_source = fetcher or RegistryPackageFetcher(runtime, client)
    report = DownloadReport(manifest=Manifest())

    def resolve(reqs: Mapping[str, str]) -> PackageVersions:
        say("Resolving versions")
        report.resolved = True
        return resolve_versions(reqs, metadata_source)

    with Timer() as t:
        manifest = get_manifest(store, requirements, resolve)
        report.manifest = manifest
        report.removed = remove_extra_packages(store, cache, manifest)

        say("Downloading packages")
        downloader = Downloader(client, cache, archives=archives, max_concurrency=max_concurrency)
        report.downloaded = runtime.block_on(downloader.download_packages(manifest.packages))

        store.write_manifest(manifest)
        store.write_local_packages(LocalPackages.from_manifest(manifest))
    report.duration = t.duration()

    if is_debug_enabled(logger):
        logger.debug(
            "Dependencies synchronised",
            extra=extra_context(
                event="cycle_complete",
                component="pipeline",
                resolved=report.resolved,
                downloaded=report.downloaded,
                removed=len(report.removed),
                duration_ms=t.duration_ms(),
            ),
        )
    return report


def run(settings, progress: Optional[Progress] = None) -> DownloadReport:
    """Run a full cycle for the project described by ``settings``.

    Args:
        settings: ``cli_config.Settings`` instance.
        progress: Callback receiving user-facing progress lines.
    """
    project = ProjectConfig.load(settings.project_dir)
    requirements = project.all_dependencies()
    public_key = settings.load_public_key()

    store = FileStore(settings.manifest_path, settings.packages_toml_path)
    cache = PackageCache(settings.packages_dir)
    archives = ArchiveCache(settings.cache_dir) if settings.cache_dir else None

    with Runtime() as runtime:
        client = RegistryClient(
            settings.registry_url,
            public_key,
            timeout=settings.request_timeout,
            max_connections=settings.max_concurrency,
        )
        runtime.on_close(client.stop)
        logger.debug("Project %s: registry %s, packages in %s, archive cache %s",
                     project.name, safe_url(client.base_url), cache.root,
                     archives.root if archives else "disabled")
        return download_dependencies(
            requirements,
            store,
            cache,
            runtime,
            client,
            progress=progress,
            max_concurrency=settings.max_concurrency,
            archives=archives,
        )
