"""
Persisted version/timestamp records for the managed binaries.

Layout inside the binaries directory:

- `<name>-info.json`: one BinaryRecord per managed binary
- `last-check.json`: shared timestamp of the last refresh check
"""

import os
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from ripvid.constants import (
    BINARY_INFO_SUFFIX,
    LAST_CHECK_FILE,
    REFRESH_INTERVAL_SECONDS,
)
from ripvid.log_utils import logger
from ripvid.utils import atomic_write_json, epoch_seconds, read_json


@dataclass
class BinaryRecord:
    """Installed version of one managed binary."""

    name: str
    version: str
    last_check: int
    path: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Optional["BinaryRecord"]:
        """
        Build a record from parsed JSON, ignoring unknown keys.

        Returns:
            Optional[BinaryRecord]: The record, or None if a required key is missing or malformed.
        """
        try:
            return cls(
                name=str(data["name"]),
                version=str(data["version"]),
                last_check=int(data["last_check"]),
                path=str(data["path"]),
            )
        except (KeyError, TypeError, ValueError):
            return None


def is_due(
    last_check: Optional[int],
    now: Optional[int] = None,
    interval: int = REFRESH_INTERVAL_SECONDS,
) -> bool:
    """
    Decide whether a refresh check is due.

    Returns:
        bool: `True` if no check was ever recorded or more than `interval` seconds
        have passed since `last_check`.
    """
    if last_check is None:
        return True
    current = epoch_seconds() if now is None else now
    return current - last_check > interval


class MetadataStore:
    """
    Reads and writes BinaryRecords and the shared last-check timestamp.

    Parameters:
        data_dir (Path): Directory holding the binaries and their metadata files.
        refresh_interval (int): Seconds between refresh checks.
    """

    def __init__(self, data_dir: Path, refresh_interval: int = REFRESH_INTERVAL_SECONDS):
        self.data_dir = Path(data_dir)
        self.refresh_interval = refresh_interval

    def record_path(self, binary_name: str) -> Path:
        return self.data_dir / f"{binary_name}{BINARY_INFO_SUFFIX}"

    @property
    def last_check_path(self) -> Path:
        return self.data_dir / LAST_CHECK_FILE

    def _ensure_dir(self) -> None:
        os.makedirs(self.data_dir, exist_ok=True)

    def read(self, binary_name: str) -> Optional[BinaryRecord]:
        """Return the stored record for `binary_name`, or None if absent or unreadable."""
        data = read_json(str(self.record_path(binary_name)))
        if not isinstance(data, dict):
            return None
        record = BinaryRecord.from_dict(data)
        if record is None:
            logger.warning(f"Ignoring malformed metadata for {binary_name}")
        return record

    def write(self, record: BinaryRecord) -> bool:
        """Atomically overwrite the record for `record.name`."""
        self._ensure_dir()
        written = atomic_write_json(str(self.record_path(record.name)), record.to_dict())
        if written:
            logger.debug(f"Saved metadata for {record.name} ({record.version})")
        return written

    def record_install(self, name: str, version: str, path: Path) -> BinaryRecord:
        """
        Write a fresh record stamped with the current time and touch the shared check file.

        Returns:
            BinaryRecord: The record that was written.
        """
        record = BinaryRecord(
            name=name, version=version, last_check=epoch_seconds(), path=str(path)
        )
        self.write(record)
        self.touch_last_check(record.last_check)
        return record

    def read_last_check(self) -> Optional[int]:
        """
        Return the shared last-check timestamp.

        Accepts both `{"last_check": N}` and a bare integer (older files).
        """
        data = read_json(str(self.last_check_path))
        if isinstance(data, dict):
            data = data.get("last_check")
        if isinstance(data, bool):
            return None
        try:
            return int(data) if data is not None else None
        except (TypeError, ValueError):
            return None

    def touch_last_check(self, timestamp: Optional[int] = None) -> bool:
        self._ensure_dir()
        return atomic_write_json(
            str(self.last_check_path),
            {"last_check": epoch_seconds() if timestamp is None else timestamp},
        )

    def is_refresh_due(
        self, binary_name: Optional[str] = None, now: Optional[int] = None
    ) -> bool:
        """
        Check the refresh cadence for one binary or for the whole group.

        Parameters:
            binary_name (Optional[str]): Binary whose record timestamp is checked; when None
                the shared last-check file is used.
            now (Optional[int]): Current epoch seconds (for tests).
        """
        if binary_name is None:
            last_check = self.read_last_check()
        else:
            record = self.read(binary_name)
            last_check = record.last_check if record else None
        return is_due(last_check, now, self.refresh_interval)
