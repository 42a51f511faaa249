"""
Wiring of the provisioning and download components from a configuration mapping.
"""

from typing import Any, Dict, Optional

from ripvid import config as config_module
from ripvid.binaries.catalog import SourceCatalog, build_source_catalog
from ripvid.binaries.client import AsyncReleaseClient
from ripvid.binaries.fetcher import Fetcher
from ripvid.binaries.metadata import MetadataStore
from ripvid.binaries.provisioner import BinaryProvisioner
from ripvid.download.coordinator import DownloadCoordinator
from ripvid.download.supervisor import ProcessSupervisor
from ripvid.log_utils import logger
from ripvid.notifications import LoggingNotifier, Notifier


class Engine:
    """
    Owns one instance of every component and the HTTP session they share.

    Usage:
        async with Engine(config, notifier) as engine:
            await engine.provisioner.ensure_all_present()
            outcome = await engine.coordinator.download(request)
    """

    def __init__(
        self,
        config: Optional[Dict[str, Any]] = None,
        notifier: Optional[Notifier] = None,
        catalog: Optional[SourceCatalog] = None,
    ) -> None:
        self.config = dict(config) if config is not None else dict(config_module.DEFAULT_CONFIG)
        self.notifier: Notifier = notifier or LoggingNotifier()
        self.catalog = catalog or build_source_catalog()

        max_attempts = config_module.get_max_retries(self.config)
        initial_delay = config_module.get_retry_delay(self.config)

        self.client = AsyncReleaseClient(
            timeout=config_module.get_request_timeout(self.config)
        )
        self.metadata = MetadataStore(
            config_module.get_binaries_dir(self.config),
            refresh_interval=config_module.get_refresh_interval(self.config),
        )
        self.fetcher = Fetcher(
            self.client,
            self.metadata,
            self.catalog,
            notifier=self.notifier,
            max_attempts=max_attempts,
            initial_delay=initial_delay,
        )
        self.provisioner = BinaryProvisioner(self.catalog, self.fetcher, self.metadata)
        self.supervisor = ProcessSupervisor(notifier=self.notifier)
        self.coordinator = DownloadCoordinator(
            self.supervisor,
            provisioner=self.provisioner,
            notifier=self.notifier,
            credential_browsers=config_module.get_credential_browsers(self.config),
            max_attempts=max_attempts,
            initial_delay=initial_delay,
        )
        logger.debug(f"Engine ready for {self.catalog!r} in {self.metadata.data_dir}")

    async def __aenter__(self) -> "Engine":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def close(self) -> None:
        """Wait for background work, then close the HTTP session."""
        try:
            await self.coordinator.wait_closed()
            await self.provisioner.wait_for_refresh()
        finally:
            await self.client.close()
