"""
Download, verify, extract and install one managed binary from one source.
"""

import asyncio
import os
import shutil
import sys
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import aiofiles  # type: ignore[import-untyped]

from ripvid.binaries.archive import extract_member
from ripvid.binaries.catalog import DownloadSource, SourceCatalog, archive_format_for
from ripvid.binaries.checksum import parse_manifest, verify_digest
from ripvid.binaries.client import AsyncReleaseClient
from ripvid.binaries.metadata import BinaryRecord, MetadataStore
from ripvid.constants import (
    BACKUP_SUFFIX,
    DEFAULT_BACKOFF_ATTEMPTS,
    DEFAULT_BACKOFF_FACTOR,
    DEFAULT_INITIAL_BACKOFF_DELAY,
    EVENT_BINARY_PROGRESS,
    EXECUTABLE_PERMISSIONS,
)
from ripvid.download.retry import run_with_backoff
from ripvid.exceptions import ExecutablePermissionError, InstallWriteError
from ripvid.log_utils import logger
from ripvid.notifications import Notifier, safe_emit


@dataclass(frozen=True)
class ResolvedSource:
    """A DownloadSource with its concrete asset URL and version."""

    source: DownloadSource
    url: str
    version: str
    asset_name: str
    checksum_manifest: Optional[str] = None


def _url_basename(url: str) -> str:
    return url.split("?", 1)[0].rstrip("/").rsplit("/", 1)[-1]


class Fetcher:
    """
    Installs binaries into `metadata.data_dir`.

    Parameters:
        client (AsyncReleaseClient): HTTP client used for metadata, manifests and assets.
        metadata (MetadataStore): Where install records are written.
        catalog (SourceCatalog): Provides executable names for the current platform.
        notifier (Optional[Notifier]): Receives `binary-download-progress` events.
        max_attempts, initial_delay, backoff_factor: Backoff for transient network failures.
    """

    def __init__(
        self,
        client: AsyncReleaseClient,
        metadata: MetadataStore,
        catalog: SourceCatalog,
        notifier: Optional[Notifier] = None,
        max_attempts: int = DEFAULT_BACKOFF_ATTEMPTS,
        initial_delay: float = DEFAULT_INITIAL_BACKOFF_DELAY,
        backoff_factor: float = DEFAULT_BACKOFF_FACTOR,
    ) -> None:
        self.client = client
        self.metadata = metadata
        self.catalog = catalog
        self.notifier = notifier
        self.max_attempts = max_attempts
        self.initial_delay = initial_delay
        self.backoff_factor = backoff_factor

    @property
    def data_dir(self) -> Path:
        return self.metadata.data_dir

    def install_path(self, binary_name: str) -> Path:
        return self.data_dir / self.catalog.executable_name(binary_name)

    def emit_progress(self, binary_name: str, progress: float, status: str) -> None:
        safe_emit(
            self.notifier,
            EVENT_BINARY_PROGRESS,
            {"binary": binary_name, "progress": progress, "status": status},
        )

    async def _with_backoff(self, operation, description: str):
        return await run_with_backoff(
            operation,
            max_attempts=self.max_attempts,
            initial_delay=self.initial_delay,
            backoff_factor=self.backoff_factor,
            description=description,
        )

    async def resolve(self, source: DownloadSource) -> ResolvedSource:
        """
        Turn a catalog entry into a concrete download.

        Release sources are looked up through the GitHub API; their version becomes
        the release tag and `{tag}` in the checksum manifest URL is filled in.

        Raises:
            AssetNotFoundError: If the release lacks `source.asset_name`.
            NetworkError, HTTPError, APIError: If the metadata cannot be fetched.
        """
        if not source.from_release:
            return ResolvedSource(
                source=source,
                url=source.url,
                version=source.version,
                asset_name=source.asset_name or _url_basename(source.url),
                checksum_manifest=source.checksum_manifest,
            )

        release = await self._with_backoff(
            lambda: self.client.get_release(source.url),
            f"Fetching release metadata from {source.name}",
        )
        asset_name = source.asset_name or ""
        asset = release.find_asset(asset_name)
        manifest = (
            source.checksum_manifest.format(tag=release.tag_name)
            if source.checksum_manifest
            else None
        )
        return ResolvedSource(
            source=source,
            url=asset.browser_download_url,
            version=release.tag_name,
            asset_name=asset.name,
            checksum_manifest=manifest,
        )

    async def install(
        self,
        binary_name: str,
        source: DownloadSource,
        resolved: Optional[ResolvedSource] = None,
    ) -> BinaryRecord:
        """
        Download, verify, extract (if packaged) and atomically install a binary.

        Parameters:
            binary_name (str): Managed binary name, e.g. `yt-dlp`.
            source (DownloadSource): Where to get it from.
            resolved (Optional[ResolvedSource]): Pre-resolved source, to avoid a second
                metadata lookup when the caller already resolved it.

        Returns:
            BinaryRecord: The record written after the install.

        Raises:
            RipvidError subclasses describing the failed stage. The previous install,
            if any, is left in place.
        """
        self.emit_progress(binary_name, 0.0, f"Downloading {binary_name}...")
        if resolved is None:
            resolved = await self.resolve(source)

        logger.info(
            f"Installing {binary_name} {resolved.version} from {source.name}"
        )
        self.emit_progress(binary_name, 25.0, f"Downloading from {source.name}...")
        data = await self._with_backoff(
            lambda: self.client.get_bytes(resolved.url),
            f"Downloading {binary_name}",
        )

        if resolved.checksum_manifest:
            self.emit_progress(binary_name, 50.0, "Verifying checksum...")
            manifest_text = await self._with_backoff(
                lambda: self.client.get_text(resolved.checksum_manifest),
                f"Fetching checksums for {binary_name}",
            )
            expected = parse_manifest(manifest_text, resolved.asset_name)
            verify_digest(data, expected, resolved.asset_name)
        else:
            logger.debug(f"No checksum manifest for {source.name}; skipping verification")

        if source.packaged:
            self.emit_progress(binary_name, 60.0, "Extracting...")
            data = await asyncio.to_thread(
                extract_member,
                data,
                self.catalog.executable_name(binary_name),
                archive_format_for(resolved.url),
                _url_basename(resolved.url),
            )

        self.emit_progress(binary_name, 75.0, "Saving binary...")
        target = self.install_path(binary_name)
        await self._write_with_rollback(target, data)

        record = await asyncio.to_thread(
            self.metadata.record_install, binary_name, resolved.version, target
        )
        self.emit_progress(binary_name, 100.0, "Ready!")
        logger.info(f"Installed {binary_name} {resolved.version} at {target}")
        return record

    async def _write_with_rollback(self, target: Path, data: bytes) -> None:
        """
        Replace `target` with `data`, keeping `<target>.backup` until the new file is executable.

        Raises:
            InstallWriteError: If the bytes cannot be written into place.
            ExecutablePermissionError: If the executable bit cannot be set.
        """
        await asyncio.to_thread(os.makedirs, target.parent, exist_ok=True)
        backup = target.with_name(target.name + BACKUP_SUFFIX)
        had_previous = target.exists()
        if had_previous:
            try:
                await asyncio.to_thread(shutil.copy2, target, backup)
                logger.debug(f"Created backup of existing {target.name}")
            except OSError as e:
                raise InstallWriteError(
                    "Failed to create backup", path=str(backup), details=str(e)
                ) from e

        try:
            await self._atomic_write_bytes(target, data)
        except OSError as e:
            await self._restore(target, backup, had_previous)
            raise InstallWriteError(
                "Failed to write binary", path=str(target), details=str(e)
            ) from e

        if sys.platform != "win32":
            try:
                await asyncio.to_thread(os.chmod, target, EXECUTABLE_PERMISSIONS)
            except OSError as e:
                await self._restore(target, backup, had_previous)
                raise ExecutablePermissionError(
                    "Failed to set permissions", path=str(target), details=str(e)
                ) from e

        if had_previous:
            try:
                await asyncio.to_thread(os.remove, backup)
            except OSError as e:
                logger.debug(f"Could not remove backup {backup}: {e}")

    async def _atomic_write_bytes(self, target: Path, data: bytes) -> None:
        temp_fd, temp_name = tempfile.mkstemp(
            dir=str(target.parent), prefix=f".{target.name}.", suffix=".tmp"
        )
        os.close(temp_fd)
        try:
            async with aiofiles.open(temp_name, "wb") as f:
                await f.write(data)
            await asyncio.to_thread(os.replace, temp_name, target)
        finally:
            if os.path.exists(temp_name):
                try:
                    os.remove(temp_name)
                except OSError:
                    pass

    async def _restore(self, target: Path, backup: Path, had_previous: bool) -> None:
        if not had_previous:
            # Nothing to roll back to; never leave a half-installed binary behind
            if target.exists():
                try:
                    await asyncio.to_thread(os.remove, target)
                    logger.warning(f"Removed incomplete install of {target.name}")
                except OSError as e:
                    logger.error(f"Could not remove incomplete {target.name}: {e}")
            return
        if not backup.exists():
            return
        try:
            await asyncio.to_thread(shutil.copy2, backup, target)
            await asyncio.to_thread(os.remove, backup)
            logger.warning(f"Restored previous {target.name} from backup")
        except OSError as e:
            logger.error(f"Rollback of {target.name} failed: {e}")
