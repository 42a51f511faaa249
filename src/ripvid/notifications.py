"""
Outward notification channel for ripvid.

Lifecycle and progress events are delivered as `(event_name, payload)` pairs
to a Notifier. A frontend supplies its own; the CLI uses a callback that
renders them, and LoggingNotifier is the fallback that only logs.
"""

from typing import Any, Callable, Dict, Optional, Protocol

from ripvid.log_utils import logger

Payload = Dict[str, Any]


class Notifier(Protocol):
    def emit(self, event: str, payload: Payload) -> None: ...


class CallbackNotifier:
    """Forwards every event to a plain callable `callback(event, payload)`."""

    def __init__(self, callback: Callable[[str, Payload], None]) -> None:
        self._callback = callback

    def emit(self, event: str, payload: Payload) -> None:
        self._callback(event, payload)


class LoggingNotifier:
    """Writes events to the package logger at debug level."""

    def emit(self, event: str, payload: Payload) -> None:
        logger.debug(f"{event}: {payload}")


def safe_emit(notifier: Optional[Notifier], event: str, payload: Payload) -> None:
    """
    Deliver an event, logging and ignoring any failure of the notifier.

    A broken frontend channel must never abort a download or an install.
    """
    if notifier is None:
        return
    try:
        notifier.emit(event, payload)
    except Exception as e:
        logger.warning(f"Error delivering {event} notification: {e}")
