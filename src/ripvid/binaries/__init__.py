"""
Managed binary provisioning.

Core Components:
- catalog: Per-platform download sources
- checksum: SHA-256 verification against published manifests
- archive: Executable extraction from zip/tar containers
- metadata: Installed version records and refresh cadence
- client: aiohttp client for releases and assets
- fetcher: Single install with verification and rollback
- provisioner: Startup provisioning and background refresh
"""

from .catalog import DownloadSource, SourceCatalog, build_source_catalog
from .client import AsyncReleaseClient, Release, ReleaseAsset
from .fetcher import Fetcher, ResolvedSource
from .metadata import BinaryRecord, MetadataStore
from .provisioner import BinaryProvisioner

__all__ = [
    "AsyncReleaseClient",
    "BinaryProvisioner",
    "BinaryRecord",
    "DownloadSource",
    "Fetcher",
    "MetadataStore",
    "Release",
    "ReleaseAsset",
    "ResolvedSource",
    "SourceCatalog",
    "build_source_catalog",
]
