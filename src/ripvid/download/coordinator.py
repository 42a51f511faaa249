"""
Download orchestration: resolve yt-dlp, run credential-fallback attempts under
one download id, translate output into notifications and handle cancellation.
"""

import asyncio
import json
import shutil
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence, Set

from ripvid.constants import (
    CREDENTIAL_BROWSERS,
    DEFAULT_BACKOFF_ATTEMPTS,
    DEFAULT_BACKOFF_FACTOR,
    DEFAULT_INITIAL_BACKOFF_DELAY,
    EVENT_DOWNLOAD_COMPLETE,
    EVENT_DOWNLOAD_PROCESSING,
    EVENT_DOWNLOAD_PROGRESS,
    EVENT_DOWNLOAD_STARTED,
    EVENT_DOWNLOAD_STATUS,
    MSG_PROCESSING,
    YTDLP_BINARY,
)
from ripvid.download.arguments import DownloadRequest, build_ytdlp_args, detect_platform
from ripvid.download.classify import classify_failure, failure_message
from ripvid.download.credentials import CredentialSource, detect_credential_sources
from ripvid.download.progress import is_post_processing, is_status_line, parse_progress
from ripvid.download.retry import (
    AttemptOutcome,
    AttemptStatus,
    CredentialFallback,
    run_with_backoff,
)
from ripvid.download.supervisor import (
    ProcessSupervisor,
    StderrLine,
    StdoutLine,
    Terminated,
)
from ripvid.exceptions import (
    InvocationNotFoundError,
    ProcessError,
    SpawnError,
)
from ripvid.log_utils import logger
from ripvid.notifications import Notifier, safe_emit

if TYPE_CHECKING:
    from ripvid.binaries.provisioner import BinaryProvisioner


@dataclass
class DownloadOutcome:
    id: str
    success: bool
    path: str
    error: Optional[str] = None
    cancelled: bool = False


class DownloadCoordinator:
    """
    Runs downloads through the ProcessSupervisor.

    Parameters:
        supervisor (ProcessSupervisor): Process registry shared with cancellation.
        provisioner (Optional[BinaryProvisioner]): Source of the managed yt-dlp and ffmpeg.
        notifier (Optional[Notifier]): Receives download lifecycle events.
        credential_browsers (Sequence[str]): Browser cookie stores to fall back to.
        max_attempts, initial_delay, backoff_factor: Backoff for resolving yt-dlp.
    """

    def __init__(
        self,
        supervisor: ProcessSupervisor,
        provisioner: Optional["BinaryProvisioner"] = None,
        notifier: Optional[Notifier] = None,
        credential_browsers: Sequence[str] = CREDENTIAL_BROWSERS,
        max_attempts: int = DEFAULT_BACKOFF_ATTEMPTS,
        initial_delay: float = DEFAULT_INITIAL_BACKOFF_DELAY,
        backoff_factor: float = DEFAULT_BACKOFF_FACTOR,
    ) -> None:
        self.supervisor = supervisor
        self.provisioner = provisioner
        self.notifier = notifier
        self.credential_browsers = list(credential_browsers)
        self.max_attempts = max_attempts
        self.initial_delay = initial_delay
        self.backoff_factor = backoff_factor
        self._downloads: Dict[str, DownloadRequest] = {}
        self._cancel_requested: Set[str] = set()
        self._tasks: Dict[str, asyncio.Task] = {}

    def _emit(self, event: str, payload: Dict[str, Any]) -> None:
        safe_emit(self.notifier, event, payload)

    async def resolve_ytdlp(self) -> str:
        """
        Path of the yt-dlp executable to run.

        Prefers the managed install (provisioned on demand with backoff) and falls
        back to a `yt-dlp` found on PATH.
        """
        if self.provisioner is not None:
            provisioner = self.provisioner
            try:
                path = await run_with_backoff(
                    lambda: provisioner.ensure_binary(YTDLP_BINARY),
                    max_attempts=self.max_attempts,
                    initial_delay=self.initial_delay,
                    backoff_factor=self.backoff_factor,
                    is_retryable=lambda _e: True,
                    description="Resolving yt-dlp",
                )
                logger.info(f"Using managed yt-dlp from: {path}")
                return str(path)
            except Exception as e:
                logger.warning(f"Managed yt-dlp unavailable, falling back to PATH: {e}")

        system_ytdlp = shutil.which(YTDLP_BINARY)
        if system_ytdlp:
            logger.info(f"Using system yt-dlp from: {system_ytdlp}")
            return system_ytdlp
        return YTDLP_BINARY

    def _ffmpeg_location(self) -> Optional[Path]:
        if self.provisioner is None:
            return None
        return self.provisioner.ffmpeg_location()

    async def download(
        self, request: DownloadRequest, download_id: Optional[str] = None
    ) -> DownloadOutcome:
        """
        Download `request` to completion.

        Emits `download-started`, per-attempt progress/processing/status events and
        exactly one terminal `download-complete`, unless the download is cancelled
        (cancellation emits `download-cancelled` instead).

        Raises:
            SpawnError: If yt-dlp cannot be launched (after emitting a failed
                `download-complete`).
        """
        download_id = download_id or str(uuid.uuid4())
        if download_id in self._downloads:
            raise ValueError(f"Download already active: {download_id}")
        self._downloads[download_id] = request

        try:
            self._emit(
                EVENT_DOWNLOAD_STARTED, {"id": download_id, "path": request.output_path}
            )
            platform_name = detect_platform(request.url) or "other"
            logger.info(f"Smart download initiated for: {request.url} ({platform_name})")

            binary_path = await self.resolve_ytdlp()
            ffmpeg_location = self._ffmpeg_location()
            sources = await asyncio.to_thread(
                detect_credential_sources, self.credential_browsers
            )

            async def attempt(credential: Optional[CredentialSource]) -> AttemptOutcome:
                if download_id in self._cancel_requested:
                    return AttemptOutcome.cancelled_outcome()
                args = build_ytdlp_args(request, credential, ffmpeg_location)
                return await self._run_attempt(binary_path, args, request, download_id)

            fallback = CredentialFallback(
                sources,
                on_status=lambda message: self._emit(
                    EVENT_DOWNLOAD_STATUS, {"id": download_id, "message": message}
                ),
            )
            try:
                outcome = await fallback.run(attempt)
            except SpawnError as e:
                logger.error(f"Download failed to start: {download_id} - {e}")
                self._emit(
                    EVENT_DOWNLOAD_COMPLETE,
                    {"id": download_id, "success": False, "error": str(e)},
                )
                raise

            return self._finish(download_id, request, outcome)
        except asyncio.CancelledError:
            if download_id not in self._cancel_requested:
                logger.info(f"Download task cancelled: {download_id}")
                self.supervisor.cancel_pending(download_id, request.output_path)
            raise
        finally:
            self._downloads.pop(download_id, None)
            self._cancel_requested.discard(download_id)

    def _finish(
        self, download_id: str, request: DownloadRequest, outcome: AttemptOutcome
    ) -> DownloadOutcome:
        if outcome.cancelled or download_id in self._cancel_requested:
            logger.info(f"Download cancelled: {download_id}")
            return DownloadOutcome(
                id=download_id, success=False, path=request.output_path, cancelled=True
            )

        if outcome.succeeded:
            logger.info(f"Download completed successfully: {download_id}")
            self._emit(
                EVENT_DOWNLOAD_COMPLETE,
                {"id": download_id, "success": True, "path": request.output_path},
            )
            return DownloadOutcome(id=download_id, success=True, path=request.output_path)

        logger.error(f"Download failed: {download_id} - {outcome.message}")
        self._emit(
            EVENT_DOWNLOAD_COMPLETE,
            {"id": download_id, "success": False, "error": outcome.message},
        )
        return DownloadOutcome(
            id=download_id,
            success=False,
            path=request.output_path,
            error=outcome.message,
        )

    async def _run_attempt(
        self,
        binary_path: str,
        args: List[str],
        request: DownloadRequest,
        download_id: str,
    ) -> AttemptOutcome:
        events, _handle = await self.supervisor.spawn(
            binary_path,
            args,
            invocation_id=download_id,
            url=request.url,
            output_path=request.output_path,
        )
        stderr_lines: List[str] = []
        exit_code: Optional[int] = None

        try:
            async for event in events:
                if isinstance(event, StdoutLine):
                    line = event.text
                    logger.debug(f"[stdout] {line}")
                    if is_post_processing(line):
                        logger.info("Video processing phase detected")
                        self._emit(
                            EVENT_DOWNLOAD_PROCESSING,
                            {"id": download_id, "message": MSG_PROCESSING},
                        )
                    progress = parse_progress(line)
                    if progress is not None:
                        self._emit(
                            EVENT_DOWNLOAD_PROGRESS,
                            {"id": download_id, **progress.to_dict()},
                        )
                elif isinstance(event, StderrLine):
                    line = event.text
                    logger.debug(f"[stderr] {line}")
                    stderr_lines.append(line)
                    if is_status_line(line):
                        self._emit(
                            EVENT_DOWNLOAD_STATUS, {"id": download_id, "message": line}
                        )
                elif isinstance(event, Terminated):
                    exit_code = event.exit_code
        finally:
            handle = self.supervisor.release(download_id)
            if handle is not None and handle.process.returncode is None:
                # Consumer went away while the process was still running
                logger.warning(f"Stopping orphaned download process: {download_id}")
                try:
                    handle.process.kill()
                except ProcessLookupError:
                    pass
                await handle.process.wait()

        if handle is None:
            # Removed by cancel() while running
            return AttemptOutcome.cancelled_outcome()

        if exit_code == 0:
            return AttemptOutcome.success()

        detail = "\n".join(stderr_lines)
        if exit_code is None:
            logger.error(f"Download terminated without exit code: {download_id}")
        else:
            logger.error(f"Download failed with exit code {exit_code}. Full stderr output:")
            logger.error(detail)
        kind = classify_failure(detail)
        return AttemptOutcome(
            AttemptStatus.PERMANENT,
            message=failure_message(kind, exit_code),
            kind=kind,
            detail=detail,
            exit_code=exit_code,
        )

    def start_download(
        self, request: DownloadRequest, download_id: Optional[str] = None
    ) -> str:
        """
        Run `download` in the background and return its id immediately.

        Failures of the background task are logged only; the terminal event has
        already been emitted by then.
        """
        download_id = download_id or str(uuid.uuid4())
        task = asyncio.get_running_loop().create_task(
            self.download(request, download_id)
        )
        self._tasks[download_id] = task
        task.add_done_callback(lambda t: self._on_task_done(download_id, t))
        return download_id

    def _on_task_done(self, download_id: str, task: asyncio.Task) -> None:
        self._tasks.pop(download_id, None)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Background download {download_id} failed: {error}")

    async def wait_closed(self) -> None:
        """Await every background download started with `start_download`."""
        tasks = list(self._tasks.values())
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def cancel(self, download_id: str) -> None:
        """
        Cancel an in-flight download.

        Raises:
            InvocationNotFoundError: If the download is unknown or already cancelled.
        """
        if download_id in self._cancel_requested:
            raise InvocationNotFoundError(download_id)

        try:
            self.supervisor.cancel(download_id)
        except InvocationNotFoundError:
            request = self._downloads.get(download_id)
            if request is None:
                raise
            # Between two attempts: no process to kill, stop the next one
            logger.info(f"Cancelling download between attempts: {download_id}")
            self.supervisor.cancel_pending(download_id, request.output_path)
        self._cancel_requested.add(download_id)

    async def get_video_info(self, url: str) -> Dict[str, Any]:
        """
        Fetch metadata for `url` with `yt-dlp --dump-json`.

        Raises:
            ProcessError: If yt-dlp exits with an error or prints invalid JSON.
        """
        binary_path = await self.resolve_ytdlp()
        exit_code, stdout, stderr = await self.supervisor.capture(
            binary_path, ["--no-playlist", "--dump-json", url]
        )
        if exit_code != 0:
            kind = classify_failure(stderr)
            raise ProcessError(failure_message(kind, exit_code), stderr.strip() or None)
        try:
            info = json.loads(stdout)
        except ValueError as e:
            raise ProcessError("Failed to parse video info", str(e)) from e
        if not isinstance(info, dict):
            raise ProcessError("Failed to parse video info", "expected a JSON object")
        return info
