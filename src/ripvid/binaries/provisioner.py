"""
Startup provisioning and background refresh of the managed binaries.
"""

import asyncio
import os
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from ripvid.binaries.catalog import SourceCatalog
from ripvid.binaries.fetcher import Fetcher
from ripvid.binaries.metadata import BinaryRecord, MetadataStore
from ripvid.constants import FFMPEG_BINARY, FFPROBE_BINARY
from ripvid.exceptions import ProvisionError, SourcesExhaustedError
from ripvid.log_utils import logger


class BinaryProvisioner:
    """
    Makes sure every managed binary is installed and periodically refreshed.

    Parameters:
        catalog (SourceCatalog): Sources for the current platform.
        fetcher (Fetcher): Performs the individual installs.
        metadata (MetadataStore): Install records and refresh cadence.
    """

    def __init__(
        self, catalog: SourceCatalog, fetcher: Fetcher, metadata: MetadataStore
    ) -> None:
        self.catalog = catalog
        self.fetcher = fetcher
        self.metadata = metadata
        self._refresh_task: Optional[asyncio.Task] = None
        self._binary_locks: Dict[str, asyncio.Lock] = {}

    @property
    def data_dir(self) -> Path:
        return self.metadata.data_dir

    def binary_path(self, binary_name: str) -> Path:
        return self.fetcher.install_path(binary_name)

    def is_present(self, binary_name: str) -> bool:
        return self.binary_path(binary_name).is_file()

    def missing_binaries(self) -> List[str]:
        return [name for name in self.catalog.binaries if not self.is_present(name)]

    def ffmpeg_location(self) -> Optional[Path]:
        """Directory to pass to `--ffmpeg-location`, if both ffmpeg and ffprobe are installed."""
        if self.is_present(FFMPEG_BINARY) and self.is_present(FFPROBE_BINARY):
            return self.data_dir
        logger.debug("Managed ffmpeg/ffprobe not installed")
        return None

    def _lock_for(self, binary_name: str) -> asyncio.Lock:
        lock = self._binary_locks.get(binary_name)
        if lock is None:
            lock = asyncio.Lock()
            self._binary_locks[binary_name] = lock
        return lock

    async def provision(self, binary_name: str) -> BinaryRecord:
        """
        Install `binary_name`, trying its sources in order.

        Raises:
            SourcesExhaustedError: If every source failed (or there are none).
        """
        attempts: List[Tuple[str, BaseException]] = []
        sources = self.catalog.sources_for(binary_name)
        if not sources:
            logger.error(
                f"No download sources for {binary_name} on "
                f"{self.catalog.platform_key[0]}/{self.catalog.platform_key[1]}"
            )

        for source in sources:
            try:
                return await self.fetcher.install(binary_name, source)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning(f"{binary_name} source {source.name} failed: {e}")
                attempts.append((source.name, e))

        raise SourcesExhaustedError(binary_name, attempts)

    async def ensure_binary(self, binary_name: str) -> Path:
        """Return the installed path of `binary_name`, installing it first if needed."""
        async with self._lock_for(binary_name):
            if not self.is_present(binary_name):
                await self.provision(binary_name)
        return self.binary_path(binary_name)

    async def ensure_all_present(self) -> None:
        """
        Install every missing binary concurrently, then schedule a background refresh.

        Raises:
            ProvisionError: Listing each binary that could not be installed with its
            last error. Binaries that did install stay installed.
        """
        try:
            await asyncio.to_thread(os.makedirs, self.data_dir, exist_ok=True)
            missing = self.missing_binaries()
            if not missing:
                logger.debug("All managed binaries present")
                return

            logger.info(f"First run detected. Downloading: {', '.join(missing)}")
            self.fetcher.emit_progress("setup", 0.0, "Downloading required tools...")
            results = await asyncio.gather(
                *(self.ensure_binary(name) for name in missing),
                return_exceptions=True,
            )

            failures: List[Tuple[str, BaseException]] = []
            for name, result in zip(missing, results):
                if isinstance(result, asyncio.CancelledError):
                    raise result
                if isinstance(result, SourcesExhaustedError):
                    failures.append((name, result.last_error or result))
                elif isinstance(result, BaseException):
                    failures.append((name, result))
                else:
                    logger.info(f"{name} downloaded successfully")

            if failures:
                for name, error in failures:
                    logger.error(f"{name} download failed: {error}")
                raise ProvisionError(failures)

            self.fetcher.emit_progress("setup", 100.0, "All tools ready!")
        finally:
            self.schedule_refresh()

    def schedule_refresh(self) -> Optional[asyncio.Task]:
        """Start `refresh_if_due` as a detached task unless one is already running."""
        if self._refresh_task is not None and not self._refresh_task.done():
            return self._refresh_task
        try:
            self._refresh_task = asyncio.get_running_loop().create_task(
                self.refresh_if_due()
            )
        except RuntimeError:
            logger.debug("No running event loop; background refresh not scheduled")
            return None
        return self._refresh_task

    async def wait_for_refresh(self) -> None:
        """Await the background refresh task, if any."""
        task = self._refresh_task
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    async def refresh_if_due(self, force: bool = False) -> None:
        """
        Check installed binaries for new versions once per refresh interval.

        Never raises; failures are logged and the previous installs are kept.
        """
        try:
            due = force or await asyncio.to_thread(self.metadata.is_refresh_due)
            if not due:
                logger.debug("Binary refresh not due yet")
                return

            logger.info("Checking for binary updates...")
            for name in self.catalog.binaries:
                if not self.is_present(name):
                    continue
                try:
                    await self._refresh_binary(name)
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    logger.warning(f"Update check for {name} failed: {e}")

            await asyncio.to_thread(self.metadata.touch_last_check)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"Background update check failed: {e}")

    async def _refresh_binary(self, binary_name: str) -> None:
        sources = self.catalog.sources_for(binary_name)
        if not sources:
            return
        source = sources[0]
        resolved = await self.fetcher.resolve(source)
        record = await asyncio.to_thread(self.metadata.read, binary_name)
        path = self.binary_path(binary_name)

        if record is not None and record.version == resolved.version:
            logger.info(f"{binary_name} is already up to date ({resolved.version})")
            await asyncio.to_thread(
                self.metadata.record_install, binary_name, record.version, path
            )
            return

        current = record.version if record else "unknown"
        logger.info(f"Updating {binary_name} from {current} to {resolved.version}")
        async with self._lock_for(binary_name):
            await self.fetcher.install(binary_name, source, resolved)
