"""Unit tests for the realtime event dispatcher.

Tests session configuration on open, the one-time greeting, routing of
server events to turn state and transcript updates, and function call
dispatch.
"""

import json
from unittest.mock import Mock

import pytest

from realtime_webrtc.channel import ControlChannel
from realtime_webrtc.config import RealtimeConfig
from realtime_webrtc.dispatcher import (
    PROCESSING_PLACEHOLDER,
    SPEAKING_PLACEHOLDER,
    EventDispatcher,
    GreetingLatch,
)
from realtime_webrtc.errors import ChannelError
from realtime_webrtc.listener import TurnState
from realtime_webrtc.tools.invoker import ToolInvoker
from realtime_webrtc.transcript import Speaker, Transcript
from tests.helpers.fakes import FakeDataChannel, RecordingListener

WEATHER_DECLARATION = {"type": "function", "name": "getWeatherData", "description": "Weather"}


@pytest.fixture
def config() -> RealtimeConfig:
    return RealtimeConfig()


@pytest.fixture
def raw_channel() -> FakeDataChannel:
    return FakeDataChannel()


@pytest.fixture
def listener() -> RecordingListener:
    return RecordingListener()


@pytest.fixture
def invoker() -> Mock:
    invoker = Mock(spec=ToolInvoker)
    invoker.declarations = [WEATHER_DECLARATION]
    return invoker


@pytest.fixture
def dispatcher(
    raw_channel: FakeDataChannel, config: RealtimeConfig, listener: RecordingListener
) -> EventDispatcher:
    return EventDispatcher(ControlChannel(raw_channel), config, listener=listener)


def _response_done(*output: dict) -> dict:
    return {"type": "response.done", "response": {"output": list(output)}}


# ============================================================================
# Channel Open Tests
# ============================================================================


class TestChannelOpen:
    """Test suite for greeting and session configuration."""

    def test_open_sends_greeting_then_session_update(
        self,
        dispatcher: EventDispatcher,
        raw_channel: FakeDataChannel,
        listener: RecordingListener,
    ) -> None:
        """Test first open greets and configures the session."""
        raw_channel.simulate_open()

        events = raw_channel.sent_events()
        assert [e["type"] for e in events] == ["response.create", "session.update"]

        greeting = events[0]["response"]
        assert greeting["modalities"] == ["audio", "text"]
        assert greeting["instructions"].startswith("Greet the user")
        assert greeting["max_output_tokens"] == 1024

        session = events[1]["session"]
        assert session["turn_detection"]["type"] == "server_vad"
        assert session["input_audio_transcription"] == {"model": "whisper-1"}
        assert session["max_response_output_tokens"] == 1024
        assert "tools" not in session

        assert listener.statuses == ["Connected to Realtime API"]

    def test_greeting_sent_once_across_sessions(self, config: RealtimeConfig) -> None:
        """Test the shared latch suppresses the greeting on reconnect."""
        greeting = GreetingLatch()
        first = FakeDataChannel()
        second = FakeDataChannel()
        EventDispatcher(ControlChannel(first), config, greeting=greeting)
        EventDispatcher(ControlChannel(second), config, greeting=greeting)

        first.simulate_open()
        second.simulate_open()

        assert first.sent_types() == ["response.create", "session.update"]
        assert second.sent_types() == ["session.update"]

    def test_greeting_latch_reset(self) -> None:
        """Test reset re-arms the greeting."""
        latch = GreetingLatch()
        assert latch.claim() is True
        assert latch.claim() is False

        latch.reset()
        assert latch.greeted is False
        assert latch.claim() is True

    def test_session_update_declares_tools(
        self, raw_channel: FakeDataChannel, config: RealtimeConfig, invoker: Mock
    ) -> None:
        """Test tool declarations are included when an invoker is present."""
        EventDispatcher(ControlChannel(raw_channel), config, tool_invoker=invoker)

        raw_channel.simulate_open()

        session = raw_channel.sent_events()[-1]["session"]
        assert session["tools"] == [WEATHER_DECLARATION]

    def test_session_update_without_transcription(self, raw_channel: FakeDataChannel) -> None:
        """Test input transcription is omitted when no model is configured."""
        config = RealtimeConfig()
        config.api.transcription_model = None
        EventDispatcher(ControlChannel(raw_channel), config)

        raw_channel.simulate_open()

        assert "input_audio_transcription" not in raw_channel.sent_events()[-1]["session"]


# ============================================================================
# Event Routing Tests
# ============================================================================


class TestEventRouting:
    """Test suite for inbound event routing."""

    def test_turn_sequence(
        self,
        dispatcher: EventDispatcher,
        raw_channel: FakeDataChannel,
        listener: RecordingListener,
    ) -> None:
        """Test a full user turn drives turn state and the transcript."""
        raw_channel.simulate_open()

        raw_channel.simulate_message({"type": "input_audio_buffer.speech_started"})
        assert dispatcher.transcript.last is not None
        assert dispatcher.transcript.last.text == SPEAKING_PLACEHOLDER

        raw_channel.simulate_message({"type": "input_audio_buffer.speech_stopped"})
        raw_channel.simulate_message({"type": "input_audio_buffer.committed"})
        assert dispatcher.transcript.last.text == PROCESSING_PLACEHOLDER

        raw_channel.simulate_message(
            {
                "type": "conversation.item.input_audio_transcription.completed",
                "transcript": "What's the weather in Oslo?",
            }
        )

        assert listener.turn_states == [
            TurnState.USER_SPEAKING,
            TurnState.IDLE_PENDING,
            TurnState.PROCESSING,
            TurnState.IDLE,
        ]
        assert len(dispatcher.transcript) == 1
        entry = dispatcher.transcript.last
        assert entry.text == "What's the weather in Oslo?"
        assert entry.is_final is True
        assert listener.statuses[-1] == "Connected"

    def test_late_completion_replaces_partial(
        self, dispatcher: EventDispatcher, raw_channel: FakeDataChannel
    ) -> None:
        """Test a completion arriving after the assistant reply replaces the partial."""
        raw_channel.simulate_message({"type": "input_audio_buffer.speech_started"})
        raw_channel.simulate_message({"type": "input_audio_buffer.committed"})
        raw_channel.simulate_message(
            {"type": "response.audio_transcript.done", "transcript": "Sure."}
        )
        raw_channel.simulate_message(
            {"type": "conversation.item.input_audio_transcription.completed", "transcript": "Hi"}
        )

        entries = [(e.speaker, e.text, e.is_final) for e in dispatcher.transcript.entries]
        assert entries == [
            (Speaker.USER, "Hi", True),
            (Speaker.ASSISTANT, "Sure.", True),
        ]

    def test_partial_transcription_updates_entry(
        self, dispatcher: EventDispatcher, raw_channel: FakeDataChannel
    ) -> None:
        """Test partial transcription replaces the placeholder."""
        raw_channel.simulate_message({"type": "input_audio_buffer.speech_started"})
        raw_channel.simulate_message(
            {"type": "conversation.item.input_audio_transcription", "transcript": "what's"}
        )

        assert len(dispatcher.transcript) == 1
        assert dispatcher.transcript.last.text == "what's"
        assert dispatcher.transcript.last.is_final is False

    def test_completed_without_transcript_ignored(
        self, dispatcher: EventDispatcher, raw_channel: FakeDataChannel
    ) -> None:
        """Test a completion event without text changes nothing."""
        raw_channel.simulate_message({"type": "input_audio_buffer.speech_started"})
        raw_channel.simulate_message(
            {"type": "conversation.item.input_audio_transcription.completed"}
        )

        assert dispatcher.turn_state is TurnState.USER_SPEAKING
        assert dispatcher.transcript.last.is_final is False

    def test_audio_transcript_done_appends_assistant(
        self, dispatcher: EventDispatcher, raw_channel: FakeDataChannel
    ) -> None:
        """Test assistant audio transcripts are appended."""
        raw_channel.simulate_message(
            {"type": "response.audio_transcript.done", "transcript": "Hello there!"}
        )

        entry = dispatcher.transcript.last
        assert entry.speaker is Speaker.ASSISTANT
        assert entry.text == "Hello there!"

    def test_unknown_event_ignored(
        self,
        dispatcher: EventDispatcher,
        raw_channel: FakeDataChannel,
        listener: RecordingListener,
    ) -> None:
        """Test unrecognized event types leave all state unchanged."""
        raw_channel.simulate_message({"type": "rate_limits.updated", "rate_limits": []})

        assert dispatcher.turn_state is TurnState.IDLE
        assert len(dispatcher.transcript) == 0
        assert listener.statuses == []
        assert listener.entries == []

    def test_malformed_frame_dropped(
        self, dispatcher: EventDispatcher, raw_channel: FakeDataChannel
    ) -> None:
        """Test frames that are not JSON objects are dropped."""
        raw_channel.simulate_message("{not json")
        raw_channel.simulate_message("[]")

        assert dispatcher.turn_state is TurnState.IDLE
        assert len(dispatcher.transcript) == 0


# ============================================================================
# Response Done Tests
# ============================================================================


class TestResponseDone:
    """Test suite for response.done output handling."""

    def test_message_and_function_call(
        self, raw_channel: FakeDataChannel, config: RealtimeConfig, invoker: Mock
    ) -> None:
        """Test a message item is appended and a function call is invoked once."""
        dispatcher = EventDispatcher(ControlChannel(raw_channel), config, tool_invoker=invoker)

        raw_channel.simulate_message(
            _response_done(
                {"type": "message", "content": [{"type": "text", "text": "Checking now."}]},
                {
                    "type": "function_call",
                    "name": "getWeatherData",
                    "arguments": '{"locationName": "Oslo"}',
                },
            )
        )

        assert [e.text for e in dispatcher.transcript.entries] == ["Checking now."]
        assert dispatcher.transcript.last.speaker is Speaker.ASSISTANT
        invoker.invoke.assert_called_once_with("getWeatherData", {"locationName": "Oslo"})

    def test_function_call_without_arguments(
        self, raw_channel: FakeDataChannel, config: RealtimeConfig, invoker: Mock
    ) -> None:
        """Test missing arguments decode as an empty object."""
        EventDispatcher(ControlChannel(raw_channel), config, tool_invoker=invoker)

        raw_channel.simulate_message(
            _response_done({"type": "function_call", "name": "getLocalWeatherData"})
        )

        invoker.invoke.assert_called_once_with("getLocalWeatherData", {})

    def test_malformed_arguments_dropped(
        self, raw_channel: FakeDataChannel, config: RealtimeConfig, invoker: Mock
    ) -> None:
        """Test a function call with invalid JSON arguments is not invoked."""
        EventDispatcher(ControlChannel(raw_channel), config, tool_invoker=invoker)

        raw_channel.simulate_message(
            _response_done(
                {"type": "function_call", "name": "getWeatherData", "arguments": "{lat: 1"},
            )
        )

        invoker.invoke.assert_not_called()

    def test_function_call_without_tools(
        self, dispatcher: EventDispatcher, raw_channel: FakeDataChannel
    ) -> None:
        """Test function calls are ignored when no tools are enabled."""
        raw_channel.simulate_message(
            _response_done({"type": "function_call", "name": "getWeatherData", "arguments": "{}"})
        )

        assert len(dispatcher.transcript) == 0

    def test_empty_output(self, dispatcher: EventDispatcher, raw_channel: FakeDataChannel) -> None:
        """Test response.done without output is a no-op."""
        raw_channel.simulate_message({"type": "response.done", "response": {"status": "failed"}})

        assert len(dispatcher.transcript) == 0


# ============================================================================
# Text Chat Tests
# ============================================================================


class TestSendUserText:
    """Test suite for typed text messages."""

    def test_send_user_text(
        self, dispatcher: EventDispatcher, raw_channel: FakeDataChannel
    ) -> None:
        """Test typed text sends an item and a text-only response request."""
        raw_channel.simulate_open()
        raw_channel.sent.clear()

        dispatcher.send_user_text("Hello")

        events = raw_channel.sent_events()
        assert [e["type"] for e in events] == ["conversation.item.create", "response.create"]
        assert events[0]["item"]["content"] == [{"type": "input_text", "text": "Hello"}]
        assert events[1]["response"]["modalities"] == ["text"]
        assert events[1]["response"]["instructions"].startswith("Talk quickly")
        assert dispatcher.transcript.last.text == "Hello"
        assert dispatcher.transcript.last.speaker is Speaker.USER

    def test_send_user_text_before_open(
        self, dispatcher: EventDispatcher, raw_channel: FakeDataChannel
    ) -> None:
        """Test typed text raises ChannelError before the channel opens."""
        with pytest.raises(ChannelError):
            dispatcher.send_user_text("Hello")

        assert raw_channel.sent == []
        assert len(dispatcher.transcript) == 0

    def test_send_user_text_includes_tools(
        self, raw_channel: FakeDataChannel, config: RealtimeConfig, invoker: Mock
    ) -> None:
        """Test text responses may call tools."""
        dispatcher = EventDispatcher(ControlChannel(raw_channel), config, tool_invoker=invoker)
        raw_channel.simulate_open()

        dispatcher.send_user_text("Weather in Oslo?")

        response = json.loads(raw_channel.sent[-1])["response"]
        assert response["tools"] == [WEATHER_DECLARATION]
