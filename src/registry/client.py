"""Async client for the package registry."""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import urllib.parse
from pathlib import Path
from typing import Optional

import aiohttp
from cryptography.hazmat.primitives.asymmetric import rsa

from common.errors import (
    PackageNotFoundError,
    RegistryConnectionError,
    RegistryResponseError,
    SignatureError,
)
from common.logging_utils import Timer, extra_context, is_debug_enabled, safe_url
from constants import Constants
from registry.models import PackageMetadata
from registry.signing import decode_base64, decode_signed_envelope, verify_digest

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 64 * 1024


class RegistryClient:
    """Fetches signed package metadata and archives from the registry."""

    def __init__(
        self,
        base_url: str,
        public_key: rsa.RSAPublicKey,
        timeout: int = Constants.REQUEST_TIMEOUT,
        max_connections: int = Constants.MAX_CONCURRENCY,
    ):
        """Initialize the registry client.

        Args:
            base_url: Registry root URL.
            public_key: Trusted key every response must be signed with.
            timeout: Request timeout in seconds.
            max_connections: Connection pool size.
        """
        self._base_url = base_url.rstrip("/")
        self._public_key = public_key
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._max_connections = max_connections
        self._session: Optional[aiohttp.ClientSession] = None

    @property
    def base_url(self) -> str:
        return self._base_url

    async def start(self) -> aiohttp.ClientSession:
        """Start the HTTP session if needed and return it."""
        session = self._session
        if session is None:
            connector = aiohttp.TCPConnector(limit=self._max_connections)
            session = aiohttp.ClientSession(
                timeout=self._timeout,
                connector=connector,
                headers={"User-Agent": Constants.USER_AGENT},
            )
            self._session = session
        return session

    async def stop(self) -> None:
        """Stop the HTTP session."""
        if self._session:
            await self._session.close()
            self._session = None

    def package_url(self, name: str) -> str:
        return f"{self._base_url}/packages/{urllib.parse.quote(name, safe='')}"

    def tarball_url(self, name: str, version: str) -> str:
        filename = urllib.parse.quote(f"{name}-{version}.tar", safe="")
        return f"{self._base_url}/tarballs/{filename}"

    @staticmethod
    def _check_status(response: aiohttp.ClientResponse, name: str, url: str) -> None:
        if response.status == 404:
            raise PackageNotFoundError(name)
        if response.status != 200:
            raise RegistryConnectionError(
                f"Registry returned HTTP {response.status} for {safe_url(url)}"
            )

    async def get_package(self, name: str) -> PackageMetadata:
        """Look up a package and return its verified metadata.

        Raises:
            PackageNotFoundError: the registry has no such package.
            RegistryConnectionError: network failure or unexpected status.
            SignatureError: the response is unsigned or the signature is wrong.
            RegistryResponseError: the verified payload is malformed.
        """
        url = self.package_url(name)
        session = await self.start()
        with Timer() as t:
            try:
                async with session.get(url) as response:
                    self._check_status(response, name, url)
                    body = await response.read()
            except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
                raise RegistryConnectionError(
                    f"Failed to look up {name} at {safe_url(url)}: {exc or type(exc).__name__}"
                ) from exc
        if is_debug_enabled(logger):
            logger.debug(
                "Registry lookup",
                extra=extra_context(
                    event="http_response",
                    component="registry_client",
                    action="get_package",
                    package=name,
                    duration_ms=t.duration_ms(),
                    target=safe_url(url),
                ),
            )

        payload = decode_signed_envelope(body, self._public_key)
        try:
            return PackageMetadata.from_payload(json.loads(payload))
        except (json.JSONDecodeError, UnicodeDecodeError, ValueError) as exc:
            raise RegistryResponseError(f"Malformed metadata for package {name}: {exc}") from exc

    async def download_archive(self, name: str, version: str, dest: Path) -> Path:
        """Stream the archive of ``name`` ``version`` into ``dest`` and verify it.

        The SHA-512 digest is computed while streaming; the detached
        signature header is checked once the body is complete. ``dest`` is
        removed if anything fails.
        """
        url = self.tarball_url(name, version)
        session = await self.start()
        digest = hashlib.sha512()
        try:
            async with session.get(url) as response:
                self._check_status(response, name, url)
                signature_b64 = response.headers.get(Constants.SIGNATURE_HEADER)
                with open(dest, "wb") as handle:
                    async for chunk in response.content.iter_chunked(_CHUNK_SIZE):
                        digest.update(chunk)
                        handle.write(chunk)
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            dest.unlink(missing_ok=True)
            raise RegistryConnectionError(
                f"Failed to download {name} {version} from {safe_url(url)}: "
                f"{exc or type(exc).__name__}"
            ) from exc
        except BaseException:
            dest.unlink(missing_ok=True)
            raise

        try:
            if not signature_b64:
                raise SignatureError(f"Archive for {name} {version} is not signed")
            signature = decode_base64(signature_b64, "archive signature")
            verify_digest(self._public_key, digest.digest(), signature)
        except (SignatureError, RegistryResponseError):
            dest.unlink(missing_ok=True)
            raise
        logger.debug("Downloaded and verified %s %s", name, version)
        return dest
