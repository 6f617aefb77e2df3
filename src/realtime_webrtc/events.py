"""Realtime control channel message definitions.

Defines Pydantic models for the outbound events this client sends over the
``oai-events`` data channel, plus decoding helpers for inbound frames.
Frames are compact JSON text without newlines.
"""

import json
from typing import Any, Literal

from pydantic import BaseModel, Field

from realtime_webrtc.config import TurnDetectionConfig

# Inbound event types handled by the dispatcher
SPEECH_STARTED = "input_audio_buffer.speech_started"
SPEECH_STOPPED = "input_audio_buffer.speech_stopped"
AUDIO_COMMITTED = "input_audio_buffer.committed"
TRANSCRIPTION_PARTIAL = "conversation.item.input_audio_transcription"
TRANSCRIPTION_COMPLETED = "conversation.item.input_audio_transcription.completed"
AUDIO_TRANSCRIPT_DONE = "response.audio_transcript.done"
RESPONSE_DONE = "response.done"

Modality = Literal["audio", "text"]


class InputAudioTranscription(BaseModel):
    """Transcription settings for user audio."""

    model: str


class SessionSettings(BaseModel):
    """Payload of a ``session.update`` event."""

    instructions: str | None = None
    turn_detection: TurnDetectionConfig | None = None
    input_audio_transcription: InputAudioTranscription | None = None
    max_response_output_tokens: int | Literal["inf"] | None = None
    tools: list[dict[str, Any]] | None = None


class SessionUpdateEvent(BaseModel):
    """Client → Server: update session configuration."""

    type: Literal["session.update"] = "session.update"
    session: SessionSettings


class ResponseSettings(BaseModel):
    """Payload of a ``response.create`` event."""

    modalities: list[Modality] = Field(default_factory=lambda: ["audio", "text"])
    instructions: str | None = None
    max_output_tokens: int | Literal["inf"] | None = None
    tools: list[dict[str, Any]] | None = None


class ResponseCreateEvent(BaseModel):
    """Client → Server: request a model response."""

    type: Literal["response.create"] = "response.create"
    response: ResponseSettings


class InputText(BaseModel):
    type: Literal["input_text"] = "input_text"
    text: str


class ConversationItem(BaseModel):
    """A user-role message item."""

    type: Literal["message"] = "message"
    role: Literal["user", "assistant", "system"] = "user"
    content: list[InputText]


class ConversationItemCreateEvent(BaseModel):
    """Client → Server: add an item to the conversation."""

    type: Literal["conversation.item.create"] = "conversation.item.create"
    item: ConversationItem


# Union type for all client → server events
ClientEvent = SessionUpdateEvent | ResponseCreateEvent | ConversationItemCreateEvent


def user_text_item(text: str) -> ConversationItemCreateEvent:
    """Build a ``conversation.item.create`` carrying user text."""
    return ConversationItemCreateEvent(item=ConversationItem(content=[InputText(text=text)]))


def encode_event(event: ClientEvent) -> str:
    """Serialize an outbound event to a single JSON text frame."""
    return event.model_dump_json(exclude_none=True)


def decode_event(raw: str | bytes) -> dict[str, Any]:
    """Decode an inbound control channel frame.

    Args:
        raw: Text (or UTF-8 bytes) frame received on the data channel

    Returns:
        Event dictionary with a string ``type`` field

    Raises:
        ValueError: If the frame is not a JSON object with a string ``type``
    """
    if isinstance(raw, bytes):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ValueError(f"Frame is not valid UTF-8: {e}") from e

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON: {e}") from e

    if not isinstance(data, dict):
        raise ValueError(f"Event must be a JSON object, got {type(data).__name__}")

    if not isinstance(data.get("type"), str):
        raise ValueError("Event is missing a string 'type' field")

    return data
