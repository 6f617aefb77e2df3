"""Base peer transport abstraction.

Defines the interface the session negotiator drives to establish a WebRTC
connection, so the negotiation state machine does not depend on a specific
WebRTC stack.
"""

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import Any

from aiortc import MediaStreamTrack

TrackHandler = Callable[[MediaStreamTrack], Awaitable[None]]


class PeerTransport(ABC):
    """One WebRTC peer connection to the remote realtime service.

    A transport is owned by exactly one session and is never reused after
    ``close()``.
    """

    @abstractmethod
    def add_track(self, track: MediaStreamTrack) -> None:
        """Attach a local audio track for sending (and receiving) audio."""

    @abstractmethod
    def create_data_channel(self, label: str) -> Any:
        """Create the named control data channel.

        Must be called before ``create_offer()`` so the offer negotiates it.

        Returns:
            Data channel object exposing ``readyState``, ``send()``,
            ``close()`` and ``on(event, handler)``
        """

    @abstractmethod
    async def create_offer(self) -> str:
        """Generate the local offer and apply it as local description.

        Returns:
            Local session description (SDP text)
        """

    @abstractmethod
    async def apply_answer(self, sdp: str) -> None:
        """Apply the remote answer session description.

        Raises:
            ValueError: If the answer cannot be applied
        """

    @abstractmethod
    def on_track(self, handler: TrackHandler) -> None:
        """Register a coroutine called for each inbound remote track."""

    @abstractmethod
    async def close(self) -> None:
        """Close the peer connection and stop all transceivers."""

    @property
    @abstractmethod
    def track_count(self) -> int:
        """Number of local tracks attached for sending."""

    @property
    @abstractmethod
    def is_closed(self) -> bool:
        """Check if the transport has been closed."""
