"""Transport layer for realtime sessions.

Provides the peer connection abstraction and the HTTP signaling exchange.
"""

from realtime_webrtc.transport.aiortc_transport import AiortcTransport
from realtime_webrtc.transport.base import PeerTransport, TrackHandler
from realtime_webrtc.transport.signaling import SdpExchangeClient

__all__ = [
    "AiortcTransport",
    "PeerTransport",
    "SdpExchangeClient",
    "TrackHandler",
]
