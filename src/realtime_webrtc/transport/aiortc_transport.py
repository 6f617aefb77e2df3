"""aiortc implementation of the peer transport."""

import asyncio
import logging
from typing import Any

from aiortc import (
    MediaStreamTrack,
    RTCConfiguration,
    RTCIceServer,
    RTCPeerConnection,
    RTCSessionDescription,
)

from realtime_webrtc.transport.base import PeerTransport, TrackHandler

logger = logging.getLogger(__name__)


class AiortcTransport(PeerTransport):
    """Peer transport backed by ``aiortc.RTCPeerConnection``."""

    def __init__(self, ice_servers: list[str] | None = None) -> None:
        """Initialize peer connection.

        Args:
            ice_servers: STUN/TURN URLs (e.g. stun:stun.l.google.com:19302)
        """
        configuration = RTCConfiguration(
            iceServers=[RTCIceServer(urls=url) for url in (ice_servers or [])]
        )
        self._pc = RTCPeerConnection(configuration=configuration)
        self._track_count = 0
        self._closed = False
        self._track_handlers: list[TrackHandler] = []
        self._pending: set[asyncio.Task[None]] = set()

        @self._pc.on("track")
        def _on_track(track: MediaStreamTrack) -> None:
            logger.info("Received remote track", extra={"kind": track.kind})
            for handler in self._track_handlers:
                task = asyncio.ensure_future(handler(track))
                self._pending.add(task)
                task.add_done_callback(self._pending.discard)

        @self._pc.on("connectionstatechange")
        def _on_state_change() -> None:
            logger.info(
                "Peer connection state changed",
                extra={"state": self._pc.connectionState},
            )

    @property
    def track_count(self) -> int:
        return self._track_count

    @property
    def is_closed(self) -> bool:
        return self._closed

    def add_track(self, track: MediaStreamTrack) -> None:
        self._pc.addTrack(track)
        self._track_count += 1

    def create_data_channel(self, label: str) -> Any:
        return self._pc.createDataChannel(label)

    async def create_offer(self) -> str:
        # addTrack created a sendrecv audio transceiver, so the offer also
        # requests inbound audio.
        offer = await self._pc.createOffer()
        await self._pc.setLocalDescription(offer)
        return self._pc.localDescription.sdp

    async def apply_answer(self, sdp: str) -> None:
        await self._pc.setRemoteDescription(RTCSessionDescription(sdp=sdp, type="answer"))

    def on_track(self, handler: TrackHandler) -> None:
        self._track_handlers.append(handler)

    async def close(self) -> None:
        if self._closed:
            return

        self._closed = True
        for task in list(self._pending):
            task.cancel()
        await self._pc.close()
        logger.info("Peer connection closed")
