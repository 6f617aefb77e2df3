"""Control channel readiness gate.

Wraps the ``oai-events`` data channel so that every send goes through one
explicit open check instead of ``readyState`` tests at each call site.
"""

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from realtime_webrtc.errors import ChannelError
from realtime_webrtc.events import ClientEvent, encode_event

logger = logging.getLogger(__name__)

OPEN = "open"


class ControlChannel:
    """Gate around a WebRTC data channel carrying realtime JSON events.

    The channel becomes usable only after the explicit ``open`` signal, which
    may arrive after media negotiation has completed. Once closed it never
    reopens.
    """

    def __init__(self, channel: Any) -> None:
        """Initialize gate and subscribe to channel events.

        Args:
            channel: Data channel exposing ``readyState``, ``send()``,
                ``close()`` and ``on(event, handler)`` (aiortc RTCDataChannel)
        """
        self._channel = channel
        self._opened = asyncio.Event()
        self._closed = False
        self._closed_locally = False

        self._open_handlers: list[Callable[[], None]] = []
        self._message_handlers: list[Callable[[str | bytes], None]] = []
        self._close_handlers: list[Callable[[bool], None]] = []

        channel.on("open", self._handle_open)
        channel.on("message", self._handle_message)
        channel.on("close", self._handle_close)

        # Channel may already be open when wrapped
        if getattr(channel, "readyState", None) == OPEN:
            self._opened.set()

    @property
    def label(self) -> str:
        return getattr(self._channel, "label", "")

    @property
    def is_open(self) -> bool:
        """Open signal received, not closed, and the underlying channel agrees."""
        return (
            self._opened.is_set()
            and not self._closed
            and getattr(self._channel, "readyState", None) == OPEN
        )

    @property
    def is_closed(self) -> bool:
        return self._closed

    def on_open(self, handler: Callable[[], None]) -> None:
        self._open_handlers.append(handler)

    def on_message(self, handler: Callable[[str | bytes], None]) -> None:
        self._message_handlers.append(handler)

    def on_close(self, handler: Callable[[bool], None]) -> None:
        """Register a close handler; it receives True when the close was unexpected."""
        self._close_handlers.append(handler)

    async def wait_open(self, timeout: float | None = None) -> None:
        """Wait for the explicit open signal.

        Raises:
            ChannelError: If the channel closes first or the timeout expires
        """
        if self._closed:
            raise ChannelError("Control channel is closed")

        try:
            await asyncio.wait_for(self._opened.wait(), timeout=timeout)
        except TimeoutError as e:
            raise ChannelError(f"Control channel did not open within {timeout}s") from e

        if self._closed:
            raise ChannelError("Control channel closed before opening")

    def send_event(self, event: ClientEvent) -> None:
        """Send an event frame.

        Raises:
            ChannelError: If the channel is not open
        """
        if not self.is_open:
            raise ChannelError(f"Data channel not ready, cannot send {event.type}")

        frame = encode_event(event)
        self._channel.send(frame)
        logger.debug("Event sent", extra={"type": event.type, "size": len(frame)})

    def try_send_event(self, event: ClientEvent) -> bool:
        """Send an event if the channel is open; otherwise drop it.

        Returns:
            True if the event was sent
        """
        if not self.is_open:
            logger.warning("Data channel not ready, dropping event", extra={"type": event.type})
            return False

        self.send_event(event)
        return True

    def close(self) -> None:
        """Close the channel locally. Idempotent."""
        if self._closed:
            return

        self._closed_locally = True
        self._mark_closed()
        self._channel.close()

    def _handle_open(self) -> None:
        if self._closed:
            return

        logger.info("Data channel opened", extra={"label": self.label})
        self._opened.set()
        for handler in list(self._open_handlers):
            handler()

    def _handle_message(self, data: str | bytes) -> None:
        if self._closed:
            return

        for handler in list(self._message_handlers):
            handler(data)

    def _handle_close(self) -> None:
        if self._closed:
            return

        logger.warning("Data channel closed by remote", extra={"label": self.label})
        self._mark_closed()

    def _mark_closed(self) -> None:
        self._closed = True
        # Wake any waiter so it observes the closed state
        self._opened.set()
        unexpected = not self._closed_locally
        for handler in list(self._close_handlers):
            handler(unexpected)
