"""Concurrent download, verification and unpacking of manifest packages."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import shutil
from pathlib import Path
from typing import List, Mapping, Optional, Tuple

from common.errors import (
    AcquisitionError,
    ArchiveError,
    ConfigError,
    RegistryError,
    RegistryResponseError,
    SignatureError,
)
from common.logging_utils import Timer, extra_context, is_debug_enabled
from constants import AcquisitionStage, Constants
from dependencies.cache import ArchiveCache, PackageCache
from registry.client import RegistryClient
from registry.tarball import unpack_archive

logger = logging.getLogger(__name__)


async def _unpack_in_thread(archive: Path, dest: Path) -> None:
    """Run ``unpack_archive`` in the default executor.

    If the awaiting task is cancelled, the worker thread is still allowed
    to finish before the cancellation propagates, so no thread keeps
    writing into ``dest`` after the caller has cleaned it up.
    """
    loop = asyncio.get_running_loop()
    work = loop.run_in_executor(None, unpack_archive, archive, dest)
    try:
        await asyncio.shield(work)
    except asyncio.CancelledError:
        # The outcome no longer matters, only that the thread is done.
        with contextlib.suppress(Exception):
            await work
        raise


class Downloader:
    """Makes sure every package of a manifest is unpacked in the project cache.

    Archives are looked up in the shared ``archives`` cache first and only
    fetched from the registry on a miss. Without an archive cache every
    missing package is fetched.
    """

    def __init__(
        self,
        client: RegistryClient,
        cache: PackageCache,
        archives: Optional[ArchiveCache] = None,
        max_concurrency: int = Constants.MAX_CONCURRENCY,
    ):
        self._client = client
        self._cache = cache
        self._archives = archives
        self._max_concurrency = max(1, max_concurrency)

    async def download_packages(self, packages: Mapping[str, str]) -> int:
        """Acquire every ``name -> version`` in ``packages``.

        Packages already unpacked are skipped. Work runs concurrently;
        the first failure cancels the rest and is raised.

        Returns:
            Number of archives fetched from the registry by this call.

        Raises:
            AcquisitionError: a package could not be downloaded, verified or
                unpacked.
        """
        semaphore = asyncio.Semaphore(self._max_concurrency)
        tasks: List[asyncio.Task] = [
            asyncio.ensure_future(self._ensure_package(name, version, semaphore))
            for name, version in sorted(packages.items())
        ]
        if not tasks:
            return 0

        try:
            await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

        count = 0
        for task in tasks:
            if task.cancelled():
                continue
            error = task.exception()
            if error is not None:
                raise error
            if task.result():
                count += 1
        return count

    async def _ensure_package(self, name: str, version: str, semaphore: asyncio.Semaphore) -> bool:
        if self._cache.is_unpacked(name, version):
            logger.debug("Package %s %s already unpacked", name, version)
            return False
        async with semaphore:
            if self._cache.is_unpacked(name, version):
                return False
            with Timer() as t:
                downloaded = await self._fetch_and_unpack(name, version)
            if is_debug_enabled(logger):
                logger.debug(
                    "Package acquired",
                    extra=extra_context(
                        event="acquire",
                        component="downloader",
                        package=name,
                        version=version,
                        outcome="downloaded" if downloaded else "archive_cache",
                        duration_ms=t.duration_ms(),
                    ),
                )
            return downloaded

    async def _download(self, name: str, version: str, dest: Path) -> None:
        try:
            await self._client.download_archive(name, version, dest)
        except (SignatureError, RegistryResponseError) as exc:
            raise AcquisitionError(name, version, AcquisitionStage.SIGNATURE, str(exc)) from exc
        except RegistryError as exc:
            raise AcquisitionError(name, version, AcquisitionStage.NETWORK, str(exc)) from exc
        except OSError as exc:
            raise AcquisitionError(name, version, AcquisitionStage.NETWORK, str(exc)) from exc

    async def _obtain_archive(self, name: str, version: str, staging: Path) -> Tuple[Path, bool]:
        """Return a verified archive path and whether it came from the registry."""
        archives = self._archives
        if archives is None:
            archive = staging / "package.tar"
            await self._download(name, version, archive)
            return archive, True

        if archives.has_archive(name, version):
            logger.debug("Using cached archive for %s %s", name, version)
            return archives.archive_path(name, version), False

        try:
            partial = archives.make_staging_file(name, version)
        except (OSError, ConfigError) as exc:
            raise AcquisitionError(name, version, AcquisitionStage.EXTRACTION, str(exc)) from exc
        try:
            await self._download(name, version, partial)
            try:
                return archives.store(name, version, partial), True
            except OSError as exc:
                raise AcquisitionError(name, version, AcquisitionStage.EXTRACTION, str(exc)) from exc
        finally:
            partial.unlink(missing_ok=True)

    async def _fetch_and_unpack(self, name: str, version: str) -> bool:
        try:
            staging = self._cache.make_staging_dir(name, version)
        except (OSError, ConfigError) as exc:
            raise AcquisitionError(name, version, AcquisitionStage.EXTRACTION, str(exc)) from exc

        try:
            archive, downloaded = await self._obtain_archive(name, version, staging)

            contents = staging / "contents"
            try:
                contents.mkdir()
                await _unpack_in_thread(archive, contents)
            except (ArchiveError, OSError) as exc:
                if not downloaded and self._archives is not None:
                    # Damaged cached archives are fetched again on the next run.
                    self._archives.discard(name, version)
                raise AcquisitionError(name, version, AcquisitionStage.EXTRACTION, str(exc)) from exc

            final = self._cache.package_path(name, version)
            try:
                os.replace(contents, final)
            except OSError as exc:
                if final.is_dir():
                    # Another invocation unpacked the same version first.
                    logger.debug("Package %s %s appeared concurrently", name, version)
                    return downloaded
                raise AcquisitionError(name, version, AcquisitionStage.EXTRACTION, str(exc)) from exc
        finally:
            shutil.rmtree(staging, ignore_errors=True)

        if downloaded:
            logger.info("Downloaded %s %s", name, version)
        else:
            logger.info("Unpacked %s %s from the archive cache", name, version)
        return downloaded
