"""
Extraction of a single executable from a downloaded container.
"""

import io
import posixpath
import tarfile
import zipfile
from typing import Optional

from ripvid.constants import ARCHIVE_TAR, ARCHIVE_ZIP
from ripvid.exceptions import CorruptedArchiveError, NotFoundInArchiveError
from ripvid.log_utils import logger


def _member_basename(member_name: str) -> str:
    """Basename of an archive member, accepting both `/` and `\\` separators."""
    return posixpath.basename(member_name.replace("\\", "/"))


def _extract_from_zip(data: bytes, executable_name: str) -> Optional[bytes]:
    with zipfile.ZipFile(io.BytesIO(data)) as archive:
        for info in archive.infolist():
            if info.is_dir():
                continue
            if _member_basename(info.filename) == executable_name:
                logger.debug(f"Found {executable_name} in zip as {info.filename}")
                return archive.read(info)
    return None


def _extract_from_tar(data: bytes, executable_name: str) -> Optional[bytes]:
    with tarfile.open(fileobj=io.BytesIO(data), mode="r:*") as archive:
        for member in archive:
            if not member.isfile():
                continue
            if _member_basename(member.name) == executable_name:
                logger.debug(f"Found {executable_name} in tar as {member.name}")
                extracted = archive.extractfile(member)
                if extracted is None:
                    return None
                with extracted:
                    return extracted.read()
    return None


def extract_member(
    data: bytes,
    executable_name: str,
    archive_format: str = ARCHIVE_ZIP,
    archive_name: Optional[str] = None,
) -> bytes:
    """
    Return the bytes of the first regular member named `executable_name`.

    Matching is on the member's basename, so the executable may sit in any
    subdirectory of the archive (release builds usually nest it under `bin/`).

    Parameters:
        data (bytes): The downloaded archive.
        executable_name (str): Filename to look for, e.g. `ffmpeg` or `ffmpeg.exe`.
        archive_format (str): `ARCHIVE_ZIP` or `ARCHIVE_TAR`.
        archive_name (Optional[str]): Name used in error messages.

    Raises:
        CorruptedArchiveError: If the container cannot be opened or the format is unknown.
        NotFoundInArchiveError: If no member matches.
    """
    try:
        if archive_format == ARCHIVE_ZIP:
            payload = _extract_from_zip(data, executable_name)
        elif archive_format == ARCHIVE_TAR:
            payload = _extract_from_tar(data, executable_name)
        else:
            raise CorruptedArchiveError(
                f"Unsupported archive format: {archive_format}",
                archive_name=archive_name,
            )
    except (zipfile.BadZipFile, tarfile.TarError, EOFError, OSError) as e:
        raise CorruptedArchiveError(
            f"Invalid {archive_format} archive", archive_name=archive_name, details=str(e)
        ) from e

    if payload is None:
        raise NotFoundInArchiveError(
            f"{executable_name} not found in {archive_format}",
            archive_name=archive_name,
        )
    return payload
