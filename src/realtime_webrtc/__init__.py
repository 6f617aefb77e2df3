"""OpenAI Realtime voice sessions over WebRTC.

Fetches an ephemeral credential from a token relay, negotiates a WebRTC
session with the Realtime API, and dispatches control channel events to a
conversation listener and model-callable tools.
"""

from realtime_webrtc.config import RealtimeConfig
from realtime_webrtc.controller import SessionController
from realtime_webrtc.errors import (
    AuthError,
    ChannelError,
    MediaAccessError,
    NegotiationError,
    RealtimeError,
    ToolError,
)
from realtime_webrtc.listener import ConversationListener, TurnState
from realtime_webrtc.session import RealtimeSession, SessionSnapshot, SessionState

__all__ = [
    "AuthError",
    "ChannelError",
    "ConversationListener",
    "MediaAccessError",
    "NegotiationError",
    "RealtimeConfig",
    "RealtimeError",
    "RealtimeSession",
    "SessionController",
    "SessionSnapshot",
    "SessionState",
    "ToolError",
    "TurnState",
]
