"""Notification interface for conversation rendering.

The core never touches a UI. It reports turn state, transcript and status
changes to a listener, and rendering is left to the implementation.
"""

from enum import Enum

from realtime_webrtc.transcript import TranscriptEntry


class TurnState(Enum):
    """Projection of the most recent turn-related event.

    - IDLE: No user speech in progress
    - USER_SPEAKING: Server VAD detected speech start
    - IDLE_PENDING: Speech stopped, audio not yet committed
    - PROCESSING: User audio committed, awaiting the response
    """

    IDLE = "idle"
    USER_SPEAKING = "user_speaking"
    IDLE_PENDING = "idle_pending"
    PROCESSING = "processing"


class ConversationListener:
    """Receives conversation notifications. All methods default to no-ops."""

    def on_status(self, message: str) -> None:
        """Human-readable status text (connection state, errors)."""

    def on_turn_state_changed(self, state: TurnState) -> None:
        """Turn state changed."""

    def on_transcript_updated(self, entry: TranscriptEntry) -> None:
        """A transcript entry was appended, or a partial entry was replaced."""
