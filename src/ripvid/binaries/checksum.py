"""
SHA-256 digests and checksum manifest handling.

Manifests follow the coreutils `sha256sum` layout published with GitHub
releases (e.g. yt-dlp's SHA2-256SUMS): one `<hex digest><whitespace><filename>`
record per line.
"""

import hashlib
from pathlib import Path
from typing import Optional, Union

from ripvid.exceptions import ChecksumMismatchError, ChecksumUnavailableError
from ripvid.log_utils import logger


def compute_digest(data: bytes) -> str:
    """Return the lowercase SHA-256 hex digest of `data`."""
    return hashlib.sha256(data).hexdigest()


def calculate_file_sha256(file_path: Union[str, Path]) -> Optional[str]:
    """
    Compute the SHA-256 hex digest of a file.

    Streams the file in chunks so large binaries are never loaded whole.

    Returns:
        The 64-character lowercase digest, or None if the file cannot be read.
    """
    try:
        sha256_hash = hashlib.sha256()
        with open(file_path, "rb") as f:
            for chunk in iter(lambda: f.read(65536), b""):
                sha256_hash.update(chunk)
        return sha256_hash.hexdigest()
    except OSError as e:
        logger.debug(f"Error calculating SHA-256 for {file_path}: {e}")
        return None


def parse_manifest(manifest_text: str, asset_name: str) -> str:
    """
    Find the published digest for `asset_name` in a checksum manifest.

    Lines with fewer than two fields are ignored. A leading `*` on the filename
    (binary-mode marker written by `sha256sum -b`) is tolerated.

    Parameters:
        manifest_text (str): Full manifest contents.
        asset_name (str): Exact filename to look up.

    Returns:
        str: The digest exactly as published.

    Raises:
        ChecksumUnavailableError: If no line names `asset_name`.
    """
    for line in manifest_text.splitlines():
        parts = line.split()
        if len(parts) < 2:
            continue
        digest, filename = parts[0], parts[1].lstrip("*")
        if filename == asset_name:
            logger.debug(f"Found checksum for {asset_name}: {digest}")
            return digest

    raise ChecksumUnavailableError(
        f"Checksum not found for {asset_name} in checksum file",
        asset_name=asset_name,
    )


def verify_digest(data: bytes, expected: str, asset_name: str) -> str:
    """
    Check `data` against a published digest, ignoring hex case.

    Returns:
        str: The computed digest.

    Raises:
        ChecksumMismatchError: If the digests differ.
    """
    actual = compute_digest(data)
    if actual.lower() != expected.strip().lower():
        logger.error(
            f"Checksum mismatch for {asset_name}! Expected: {expected}, Got: {actual}"
        )
        raise ChecksumMismatchError(asset_name, expected, actual)

    logger.info(f"Checksum verified for {asset_name}: {actual}")
    return actual
