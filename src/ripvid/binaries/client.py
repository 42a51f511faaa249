"""
Async HTTP client for release metadata, checksum manifests and binary assets.

Uses aiohttp with a pooled session. Transport failures are mapped to
NetworkError and non-success responses to HTTPError so the backoff helper
can tell transient failures from permanent ones.
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

import aiohttp
from aiohttp import ClientSession, ClientTimeout, TCPConnector

from ripvid.constants import (
    BYTES_PER_MEGABYTE,
    DEFAULT_CHUNK_SIZE,
    DEFAULT_CONNECT_TIMEOUT,
    DEFAULT_REQUEST_TIMEOUT,
    GITHUB_ACCEPT_HEADER,
    GITHUB_API_VERSION,
    HTTP_STATUS_ERROR_THRESHOLD,
    HTTP_STATUS_RETRY_THRESHOLD,
    HTTP_STATUS_TOO_MANY_REQUESTS,
)
from ripvid.exceptions import APIError, AssetNotFoundError, HTTPError, NetworkError
from ripvid.log_utils import logger
from ripvid.utils import get_user_agent

ProgressCallback = Callable[[int, Optional[int]], None]


@dataclass
class ReleaseAsset:
    name: str
    browser_download_url: str


@dataclass
class Release:
    """Parsed GitHub release metadata."""

    tag_name: str
    assets: List[ReleaseAsset] = field(default_factory=list)

    def find_asset(self, asset_name: str) -> ReleaseAsset:
        """
        Return the asset named exactly `asset_name`.

        Raises:
            AssetNotFoundError: If the release has no such asset.
        """
        for asset in self.assets:
            if asset.name == asset_name:
                return asset
        raise AssetNotFoundError(
            f"Could not find {asset_name} in release {self.tag_name}"
        )

    @classmethod
    def from_json(cls, data: Any, endpoint: Optional[str] = None) -> "Release":
        """
        Build a Release from the GitHub JSON payload, skipping malformed assets.

        Raises:
            APIError: If the payload is not an object or has no usable tag.
        """
        if not isinstance(data, dict):
            raise APIError(
                "Unexpected release payload",
                endpoint=endpoint,
                details=f"expected object, got {type(data).__name__}",
            )

        tag_name = data.get("tag_name")
        if not isinstance(tag_name, str) or not tag_name.strip():
            raise APIError("Release has no tag_name", endpoint=endpoint)

        assets_data = data.get("assets", [])
        if not isinstance(assets_data, list):
            logger.warning(
                "Ignoring assets of release %s due to invalid type %s",
                tag_name,
                type(assets_data).__name__,
            )
            assets_data = []

        assets: List[ReleaseAsset] = []
        for asset in assets_data:
            if not isinstance(asset, dict):
                continue
            name = asset.get("name")
            url = asset.get("browser_download_url")
            if isinstance(name, str) and isinstance(url, str) and url:
                assets.append(ReleaseAsset(name=name, browser_download_url=url))
            else:
                logger.debug(f"Skipping malformed asset in release {tag_name}")

        return cls(tag_name=tag_name.strip(), assets=assets)


def _is_retryable_status(status: int) -> bool:
    return status >= HTTP_STATUS_RETRY_THRESHOLD or status == HTTP_STATUS_TOO_MANY_REQUESTS


class AsyncReleaseClient:
    """
    Asynchronous HTTP client using aiohttp.

    Example:
        async with AsyncReleaseClient() as client:
            release = await client.get_release(YTDLP_LATEST_RELEASE_URL)
            data = await client.get_bytes(release.assets[0].browser_download_url)
    """

    def __init__(
        self,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
        connector_limit: int = 10,
    ) -> None:
        self.timeout = ClientTimeout(total=timeout, connect=connect_timeout)
        self.connector_limit = connector_limit
        self._session: Optional[ClientSession] = None

    async def __aenter__(self) -> "AsyncReleaseClient":
        await self._ensure_session()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def _ensure_session(self) -> ClientSession:
        """
        Ensure a session exists, creating one if needed.

        Returns:
            ClientSession: The active aiohttp session.
        """
        if self._session is None or self._session.closed:
            connector = TCPConnector(
                limit=self.connector_limit, enable_cleanup_closed=True
            )
            self._session = ClientSession(
                connector=connector,
                timeout=self.timeout,
                headers=self._get_default_headers(),
            )
        return self._session

    def _get_default_headers(self) -> Dict[str, str]:
        return {
            "Accept": GITHUB_ACCEPT_HEADER,
            "X-GitHub-Api-Version": GITHUB_API_VERSION,
            "User-Agent": get_user_agent(),
        }

    async def close(self) -> None:
        """Close the client session and release resources."""
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def get_bytes(
        self,
        url: str,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> bytes:
        """
        Download `url` fully into memory.

        Parameters:
            url (str): Source URL.
            chunk_size (int): Bytes read per chunk.
            progress_callback (Optional[ProgressCallback]): Called with (downloaded, total or None)
                after each chunk; errors raised by the callback are logged and ignored.

        Returns:
            bytes: The response body.

        Raises:
            HTTPError: On a status >= 400 (retryable for 5xx and 429).
            NetworkError: On connection, DNS, or timeout failures.
        """
        session = await self._ensure_session()
        start_time = time.time()
        chunks: List[bytes] = []
        downloaded = 0

        try:
            async with session.get(url) as response:
                if response.status >= HTTP_STATUS_ERROR_THRESHOLD:
                    raise HTTPError(
                        f"HTTP error {response.status}",
                        status_code=response.status,
                        url=url,
                        is_retryable=_is_retryable_status(response.status),
                    )

                raw_content_length = response.headers.get("Content-Length")
                try:
                    total_size = int(raw_content_length) if raw_content_length else 0
                except (TypeError, ValueError):
                    total_size = 0

                async for chunk in response.content.iter_chunked(chunk_size):
                    chunks.append(chunk)
                    downloaded += len(chunk)
                    if progress_callback:
                        try:
                            progress_callback(downloaded, total_size or None)
                        except Exception as cb_err:
                            logger.debug(f"Progress callback error: {cb_err}")
        except aiohttp.ClientError as e:
            logger.debug(f"Download failed for {url}: {e}")
            raise NetworkError(f"Download failed: {e}", url=url) from e
        except asyncio.TimeoutError as e:
            raise NetworkError("Request timed out", url=url) from e

        elapsed = time.time() - start_time
        logger.debug(
            f"Downloaded {url} in {elapsed:.2f}s "
            f"({downloaded / BYTES_PER_MEGABYTE:.2f} MB)"
        )
        return b"".join(chunks)

    async def get_text(self, url: str) -> str:
        """Download `url` and decode it as UTF-8 (invalid bytes replaced)."""
        data = await self.get_bytes(url)
        return data.decode("utf-8", errors="replace")

    async def get_json(self, url: str) -> Any:
        """
        Fetch and parse a JSON document.

        Raises:
            APIError: If the body is not valid JSON.
        """
        session = await self._ensure_session()
        try:
            async with session.get(url) as response:
                if response.status >= HTTP_STATUS_ERROR_THRESHOLD:
                    raise HTTPError(
                        f"HTTP error {response.status}",
                        status_code=response.status,
                        url=url,
                        is_retryable=_is_retryable_status(response.status),
                    )
                return await response.json(content_type=None)
        except aiohttp.ContentTypeError as e:
            raise APIError("Invalid JSON response", endpoint=url, details=str(e)) from e
        except ValueError as e:
            raise APIError("Invalid JSON response", endpoint=url, details=str(e)) from e
        except aiohttp.ClientError as e:
            logger.debug(f"Request failed for {url}: {e}")
            raise NetworkError(f"Request failed: {e}", url=url) from e
        except asyncio.TimeoutError as e:
            raise NetworkError("Request timed out", url=url) from e

    async def get_release(self, url: str) -> Release:
        """Fetch and parse a GitHub release object (e.g. a `releases/latest` endpoint)."""
        data = await self.get_json(url)
        release = Release.from_json(data, endpoint=url)
        logger.debug(
            f"Fetched release {release.tag_name} ({len(release.assets)} assets) from {url}"
        )
        return release
