"""
Custom exceptions for ripvid.

This module defines domain-specific exceptions that categorize failures of
binary provisioning and download supervision, so callers can decide whether
to retry, fall back to another source, or surface the error to the user.
"""

from typing import List, Optional, Sequence, Tuple


class RipvidError(Exception):
    """
    Base exception for all ripvid errors.

    All custom exceptions in ripvid inherit from this class to allow for
    easy catching of all application-specific errors.
    """

    def __init__(self, message: str, details: str | None = None) -> None:
        """
        Initialize the exception.

        Args:
            message: The primary error message.
            details: Optional additional context about the error.
        """
        self.message = message
        self.details = details
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} - {self.details}"
        return self.message


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(RipvidError):
    """Exception raised when the configuration file cannot be read or parsed."""

    pass


# =============================================================================
# Download Errors
# =============================================================================


class DownloadError(RipvidError):
    """
    Base exception for transfer errors.

    Attributes:
        url: The URL that was being downloaded when the error occurred.
        retry_count: Number of retry attempts made before failure.
        is_retryable: Whether the error could be retried.
    """

    def __init__(
        self,
        message: str,
        url: str | None = None,
        retry_count: int = 0,
        is_retryable: bool = False,
        details: str | None = None,
    ) -> None:
        super().__init__(message, details)
        self.url = url
        self.retry_count = retry_count
        self.is_retryable = is_retryable


class NetworkError(DownloadError):
    """
    Exception raised for transport-level failures.

    This includes:
    - Connection timeouts
    - DNS resolution failures
    - Connection resets
    - Non-success HTTP responses (see HTTPError)
    """

    def __init__(
        self,
        message: str,
        url: str | None = None,
        retry_count: int = 0,
        is_retryable: bool = True,
        details: str | None = None,
    ) -> None:
        super().__init__(message, url, retry_count, is_retryable, details)


class HTTPError(NetworkError):
    """
    Exception raised when a server answers with a non-success status.

    Attributes:
        status_code: The HTTP status code returned by the server.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        url: str | None = None,
        is_retryable: bool = False,
        details: str | None = None,
    ) -> None:
        super().__init__(message, url, 0, is_retryable, details)
        self.status_code = status_code


# =============================================================================
# Integrity Errors
# =============================================================================


class ChecksumError(RipvidError):
    """
    Base exception for integrity verification failures.

    Integrity failures are never retried against the same source; the caller
    moves on to the next source, if any.
    """

    def __init__(
        self, message: str, asset_name: str | None = None, details: str | None = None
    ) -> None:
        super().__init__(message, details)
        self.asset_name = asset_name


class ChecksumUnavailableError(ChecksumError):
    """Exception raised when a checksum manifest has no line for the asset."""

    pass


class ChecksumMismatchError(ChecksumError):
    """
    Exception raised when a computed digest differs from the published one.

    Attributes:
        expected: Digest published in the checksum manifest.
        actual: Digest computed from the downloaded bytes.
    """

    def __init__(self, asset_name: str, expected: str, actual: str) -> None:
        super().__init__(
            f"Checksum mismatch for {asset_name}",
            asset_name=asset_name,
            details=f"Expected: {expected}, Got: {actual}",
        )
        self.expected = expected
        self.actual = actual


# =============================================================================
# Archive Errors
# =============================================================================


class ArchiveError(RipvidError):
    """
    Exception raised for container-related errors.

    Attributes:
        archive_name: Name of the problematic archive (usually its URL basename).
    """

    def __init__(
        self,
        message: str,
        archive_name: str | None = None,
        details: str | None = None,
    ) -> None:
        super().__init__(message, details)
        self.archive_name = archive_name


class CorruptedArchiveError(ArchiveError):
    """Exception raised when an archive is corrupted or in an unknown format."""

    pass


class NotFoundInArchiveError(ArchiveError):
    """Exception raised when the wanted executable is not inside the archive."""

    pass


# =============================================================================
# File System Errors
# =============================================================================


class FileSystemError(RipvidError):
    """
    Exception raised for install-time file system failures.

    Attributes:
        path: The file path that caused the error.
    """

    def __init__(
        self,
        message: str,
        path: str | None = None,
        details: str | None = None,
    ) -> None:
        super().__init__(message, details)
        self.path = path


class InstallWriteError(FileSystemError):
    """Exception raised when a verified binary cannot be written into place."""

    pass


class ExecutablePermissionError(FileSystemError):
    """Exception raised when the executable bit cannot be set on a binary."""

    pass


# =============================================================================
# API Errors
# =============================================================================


class APIError(RipvidError):
    """
    Exception raised for unusable release metadata.

    Attributes:
        endpoint: The API endpoint that was accessed.
    """

    def __init__(
        self,
        message: str,
        endpoint: str | None = None,
        details: str | None = None,
    ) -> None:
        super().__init__(message, details)
        self.endpoint = endpoint


class AssetNotFoundError(APIError):
    """Exception raised when a release has no asset for this platform."""

    pass


# =============================================================================
# Provisioning Errors
# =============================================================================


class ProvisionError(RipvidError):
    """
    Exception raised when one or more managed binaries could not be installed.

    Attributes:
        failures: (binary name, last error) pairs, one per failed binary.
    """

    def __init__(
        self,
        failures: Sequence[Tuple[str, BaseException]],
        message: str | None = None,
    ) -> None:
        self.failures: List[Tuple[str, BaseException]] = list(failures)
        summary = ", ".join(f"{name}: {error}" for name, error in self.failures)
        super().__init__(message or "Failed to download", summary or None)


class SourcesExhaustedError(ProvisionError):
    """
    Exception raised when every source of a single binary failed.

    Attributes:
        binary_name: The binary that could not be installed.
        attempts: (source name, error) pairs in the order they were tried.
    """

    def __init__(
        self, binary_name: str, attempts: Sequence[Tuple[str, BaseException]]
    ) -> None:
        self.binary_name = binary_name
        self.attempts = list(attempts)
        last_error: BaseException = (
            self.attempts[-1][1]
            if self.attempts
            else RipvidError(f"No download sources for {binary_name}")
        )
        super().__init__(
            [(binary_name, last_error)],
            message=f"All {binary_name} sources failed",
        )

    @property
    def last_error(self) -> Optional[BaseException]:
        return self.failures[0][1] if self.failures else None


# =============================================================================
# Process Errors
# =============================================================================


class ProcessError(RipvidError):
    """Base exception for subprocess supervision errors."""

    pass


class SpawnError(ProcessError):
    """
    Exception raised when an executable cannot be launched.

    Attributes:
        binary_path: The executable that failed to start.
    """

    def __init__(
        self, message: str, binary_path: str | None = None, details: str | None = None
    ) -> None:
        super().__init__(message, details)
        self.binary_path = binary_path


class CancelError(ProcessError):
    """Base exception for cancellation failures."""

    pass


class InvocationNotFoundError(CancelError):
    """Exception raised when no active invocation matches the given id."""

    def __init__(self, invocation_id: str) -> None:
        super().__init__(f"Download not found: {invocation_id}")
        self.invocation_id = invocation_id
