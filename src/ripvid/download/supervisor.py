"""
Subprocess supervision for yt-dlp invocations.

Each running invocation is tracked in a registry keyed by an identifier so it
can be cancelled from anywhere. Output is exposed as an async stream of
events merging stdout and stderr lines, terminated by exactly one
Terminated event.
"""

import asyncio
import os
import threading
import uuid
from dataclasses import dataclass
from typing import AsyncIterator, Dict, List, Optional, Sequence, Tuple, Union

from ripvid.constants import EVENT_DOWNLOAD_CANCELLED, PARTIAL_DOWNLOAD_SUFFIX
from ripvid.exceptions import InvocationNotFoundError, SpawnError
from ripvid.log_utils import logger
from ripvid.notifications import Notifier, safe_emit

STREAM_LIMIT = 1024 * 1024


@dataclass(frozen=True)
class StdoutLine:
    text: str


@dataclass(frozen=True)
class StderrLine:
    text: str


@dataclass(frozen=True)
class Terminated:
    exit_code: Optional[int]
    """None when the process was killed by a signal"""


OutputEvent = Union[StdoutLine, StderrLine, Terminated]


@dataclass
class InvocationHandle:
    id: str
    process: asyncio.subprocess.Process
    url: str = ""
    output_path: str = ""


def _decode(raw: bytes) -> str:
    return raw.decode("utf-8", errors="replace").rstrip("\r\n")


def _exit_code(returncode: Optional[int]) -> Optional[int]:
    if returncode is None or returncode < 0:
        return None
    return returncode


class ProcessSupervisor:
    """
    Spawns processes, tracks them by id and cancels them on request.

    Parameters:
        notifier (Optional[Notifier]): Receives `download-cancelled` events.
    """

    def __init__(self, notifier: Optional[Notifier] = None) -> None:
        self.notifier = notifier
        self._lock = threading.Lock()
        self._handles: Dict[str, InvocationHandle] = {}

    def active_ids(self) -> List[str]:
        with self._lock:
            return list(self._handles)

    def get(self, invocation_id: str) -> Optional[InvocationHandle]:
        with self._lock:
            return self._handles.get(invocation_id)

    def _register(self, handle: InvocationHandle) -> None:
        with self._lock:
            if handle.id in self._handles:
                raise ValueError(f"Invocation already active: {handle.id}")
            self._handles[handle.id] = handle

    def _claim_id(self, invocation_id: Optional[str]) -> str:
        candidate = invocation_id or str(uuid.uuid4())
        with self._lock:
            if candidate in self._handles:
                raise ValueError(f"Invocation already active: {candidate}")
        return candidate

    async def spawn(
        self,
        binary_path: Union[str, os.PathLike],
        args: Sequence[str],
        invocation_id: Optional[str] = None,
        url: str = "",
        output_path: str = "",
    ) -> Tuple[AsyncIterator[OutputEvent], InvocationHandle]:
        """
        Launch `binary_path args...` and register it.

        Parameters:
            binary_path: Executable to run.
            args (Sequence[str]): Arguments, not including the executable.
            invocation_id (Optional[str]): Id to register under; a fresh uuid4 when None.
            url (str): Source URL, kept on the handle for diagnostics.
            output_path (str): Output file; its `.part` sibling is removed on cancel.

        Returns:
            (events, handle): The output event stream and the registered handle.

        Raises:
            ValueError: If `invocation_id` is already registered.
            SpawnError: If the executable cannot be launched.
        """
        handle_id = self._claim_id(invocation_id)
        try:
            process = await asyncio.create_subprocess_exec(
                str(binary_path),
                *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                limit=STREAM_LIMIT,
            )
        except OSError as e:
            raise SpawnError(
                f"Failed to start {binary_path}", binary_path=str(binary_path), details=str(e)
            ) from e

        handle = InvocationHandle(
            id=handle_id, process=process, url=url, output_path=output_path
        )
        try:
            self._register(handle)
        except ValueError:
            process.kill()
            await process.wait()
            raise
        logger.debug(f"Stored download handle: {handle_id} (pid {process.pid})")
        return self._events(process), handle

    async def _events(
        self, process: asyncio.subprocess.Process
    ) -> AsyncIterator[OutputEvent]:
        queue: asyncio.Queue = asyncio.Queue()

        async def pump(stream: Optional[asyncio.StreamReader], kind) -> None:
            try:
                if stream is None:
                    return
                while True:
                    try:
                        raw = await stream.readline()
                    except ValueError:
                        # Line longer than the stream limit
                        raw = await stream.read(STREAM_LIMIT)
                    if not raw:
                        break
                    await queue.put(kind(_decode(raw)))
            finally:
                await queue.put(None)

        readers = [
            asyncio.create_task(pump(process.stdout, StdoutLine)),
            asyncio.create_task(pump(process.stderr, StderrLine)),
        ]
        try:
            remaining = len(readers)
            while remaining:
                item = await queue.get()
                if item is None:
                    remaining -= 1
                    continue
                yield item
            returncode = await process.wait()
            yield Terminated(_exit_code(returncode))
        finally:
            for reader in readers:
                if not reader.done():
                    reader.cancel()
            await asyncio.gather(*readers, return_exceptions=True)

    def release(self, invocation_id: str) -> Optional[InvocationHandle]:
        """Remove a finished invocation; returns None if it was already removed (e.g. cancelled)."""
        with self._lock:
            handle = self._handles.pop(invocation_id, None)
        if handle is not None:
            logger.debug(f"Removed download handle: {invocation_id}")
        return handle

    def cancel(self, invocation_id: str) -> InvocationHandle:
        """
        Kill a running invocation, remove its partial output and emit `download-cancelled`.

        Raises:
            InvocationNotFoundError: If no invocation with that id is active.
        """
        with self._lock:
            handle = self._handles.pop(invocation_id, None)
        if handle is None:
            logger.warning(f"Download not found: {invocation_id}")
            raise InvocationNotFoundError(invocation_id)

        logger.info(f"Cancelling download: {invocation_id}")
        try:
            handle.process.kill()
        except ProcessLookupError:
            logger.debug(f"Process for {invocation_id} already exited")

        self.cancel_pending(invocation_id, handle.output_path)
        return handle

    def cancel_pending(self, invocation_id: str, output_path: str = "") -> None:
        """
        Finish a cancellation that has no running process to kill.

        Removes `<output_path>.part` if present and emits `download-cancelled`.
        """
        if output_path:
            part_file = f"{output_path}{PARTIAL_DOWNLOAD_SUFFIX}"
            if os.path.exists(part_file):
                try:
                    os.remove(part_file)
                    logger.info(f"Cleaned up temp file: {part_file}")
                except OSError as e:
                    logger.warning(f"Could not remove {part_file}: {e}")

        safe_emit(
            self.notifier,
            EVENT_DOWNLOAD_CANCELLED,
            {"id": invocation_id, "path": output_path},
        )

    async def capture(
        self, binary_path: Union[str, os.PathLike], args: Sequence[str]
    ) -> Tuple[Optional[int], str, str]:
        """
        Run a short untracked command to completion.

        Returns:
            (exit_code, stdout, stderr)

        Raises:
            SpawnError: If the executable cannot be launched.
        """
        try:
            process = await asyncio.create_subprocess_exec(
                str(binary_path),
                *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise SpawnError(
                f"Failed to start {binary_path}", binary_path=str(binary_path), details=str(e)
            ) from e

        stdout, stderr = await process.communicate()
        return (
            _exit_code(process.returncode),
            stdout.decode("utf-8", errors="replace"),
            stderr.decode("utf-8", errors="replace"),
        )
