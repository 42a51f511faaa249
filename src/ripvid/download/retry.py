"""
Retry strategies: exponential backoff for transient failures and the
credential fallback sequence for downloads that need a logged-in session.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional, Sequence, TypeVar

from ripvid.constants import (
    DEFAULT_BACKOFF_ATTEMPTS,
    DEFAULT_BACKOFF_FACTOR,
    DEFAULT_INITIAL_BACKOFF_DELAY,
    MSG_CREDENTIALS_EXHAUSTED,
)
from ripvid.download.classify import (
    FailureKind,
    is_auth_error,
    is_decryption_error,
    is_retryable_error,
)
from ripvid.download.credentials import CredentialSource
from ripvid.log_utils import logger

T = TypeVar("T")


async def run_with_backoff(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int = DEFAULT_BACKOFF_ATTEMPTS,
    initial_delay: float = DEFAULT_INITIAL_BACKOFF_DELAY,
    backoff_factor: float = DEFAULT_BACKOFF_FACTOR,
    is_retryable: Callable[[BaseException], bool] = is_retryable_error,
    description: str = "operation",
) -> T:
    """
    Call `operation` until it succeeds, retrying retryable failures with exponential backoff.

    Parameters:
        operation: Zero-argument coroutine function to call.
        max_attempts (int): Total number of calls allowed (values below 1 are treated as 1).
        initial_delay (float): Seconds to wait before the second attempt.
        backoff_factor (float): Multiplier applied to the delay after each failure.
        is_retryable: Predicate deciding whether an exception is transient.
        description (str): Label used in log messages.

    Returns:
        The value returned by the first successful call.

    Raises:
        The last exception, when it is not retryable or attempts are exhausted.
    """
    attempts = max(1, int(max_attempts))
    delay = initial_delay

    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if attempt >= attempts or not is_retryable(e):
                logger.error(f"{description} failed after {attempt} attempt(s): {e}")
                raise

            logger.warning(
                f"{description} attempt {attempt}/{attempts} failed, "
                f"retrying in {delay:.1f}s: {e}"
            )
            await asyncio.sleep(delay)
            delay *= backoff_factor

    raise RuntimeError("unreachable")  # pragma: no cover


class AttemptStatus(Enum):
    SUCCESS = "success"
    PERMANENT = "permanent"
    CANCELLED = "cancelled"


@dataclass
class AttemptOutcome:
    """Result of one attempt of a retried operation."""

    status: AttemptStatus
    message: str = ""
    """User-facing reason for a failure"""

    kind: Optional[FailureKind] = None
    detail: str = ""
    """Raw diagnostic text (accumulated stderr)"""

    exit_code: Optional[int] = None

    @property
    def succeeded(self) -> bool:
        return self.status is AttemptStatus.SUCCESS

    @property
    def cancelled(self) -> bool:
        return self.status is AttemptStatus.CANCELLED

    @classmethod
    def success(cls) -> "AttemptOutcome":
        return cls(AttemptStatus.SUCCESS)

    @classmethod
    def cancelled_outcome(cls) -> "AttemptOutcome":
        return cls(AttemptStatus.CANCELLED, message="Download cancelled")

    def evidence(self) -> str:
        return f"{self.message}\n{self.detail}"


class CredentialFallback:
    """
    Runs an attempt without credentials, then once per usable credential source.

    The sequence is NO_AUTH, TRY_CREDENTIAL(0..n-1), EXHAUSTED. Credentials are
    engaged only when the unauthenticated attempt fails with authentication
    evidence; once engaged, every usable source is tried whatever the error.

    Parameters:
        sources (Sequence[CredentialSource]): Candidate sources in priority order.
        on_status (Optional[Callable[[str], None]]): Receives short status lines
            describing the progress of the sequence.
    """

    def __init__(
        self,
        sources: Sequence[CredentialSource],
        on_status: Optional[Callable[[str], None]] = None,
    ) -> None:
        self.sources = list(sources)
        self._on_status = on_status

    def _status(self, message: str) -> None:
        logger.info(message)
        if self._on_status:
            try:
                self._on_status(message)
            except Exception as e:
                logger.debug(f"Status callback error: {e}")

    async def run(
        self,
        attempt: Callable[[Optional[CredentialSource]], Awaitable[AttemptOutcome]],
    ) -> AttemptOutcome:
        """
        Drive the sequence.

        Parameters:
            attempt: Coroutine function called with None (no credentials) or a
                CredentialSource; returns the outcome of that attempt.

        Returns:
            AttemptOutcome: The first SUCCESS or CANCELLED outcome, the unauthenticated
            failure when it shows no authentication evidence, or a PERMANENT outcome
            carrying the exhaustion message.
        """
        logger.info("Attempt 1: downloading without authentication")
        outcome = await attempt(None)
        if outcome.succeeded or outcome.cancelled:
            return outcome

        if not is_auth_error(outcome.evidence()):
            logger.error(f"Download failed (not auth-related): {outcome.message}")
            return outcome

        self._status("Authentication required, retrying with browser cookies...")
        last_outcome = outcome

        for index, source in enumerate(self.sources):
            if not source.usable:
                logger.info(f"{source.name} not installed, skipping")
                continue

            logger.info(f"Attempt {index + 2}: using cookies from {source.name}")
            outcome = await attempt(source)
            if outcome.succeeded:
                logger.info(f"Download succeeded with {source.name} cookies")
                return outcome
            if outcome.cancelled:
                return outcome

            last_outcome = outcome
            if is_decryption_error(outcome.evidence()):
                self._status(
                    f"{source.name} cookie decryption failed, trying next browser..."
                )
            else:
                logger.error(f"Download failed with {source.name}: {outcome.message}")

        logger.error("All download attempts failed")
        return AttemptOutcome(
            AttemptStatus.PERMANENT,
            message=MSG_CREDENTIALS_EXHAUSTED,
            kind=last_outcome.kind,
            detail=last_outcome.detail,
            exit_code=last_outcome.exit_code,
        )
