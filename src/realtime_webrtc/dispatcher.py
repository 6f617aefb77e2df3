"""Realtime event dispatcher.

Configures the session when the control channel opens and routes inbound
server events by their ``type`` field to transcript updates, turn state
notifications and tool invocations. Unrecognized event types are ignored.
"""

import json
import logging
from collections.abc import Callable
from typing import Any

from realtime_webrtc import events
from realtime_webrtc.channel import ControlChannel
from realtime_webrtc.config import RealtimeConfig
from realtime_webrtc.events import (
    InputAudioTranscription,
    ResponseCreateEvent,
    ResponseSettings,
    SessionSettings,
    SessionUpdateEvent,
    user_text_item,
)
from realtime_webrtc.listener import ConversationListener, TurnState
from realtime_webrtc.tools.invoker import ToolInvoker
from realtime_webrtc.transcript import Transcript

logger = logging.getLogger(__name__)

SPEAKING_PLACEHOLDER = "Speaking..."
PROCESSING_PLACEHOLDER = "Processing speech..."
PARTIAL_PLACEHOLDER = "User is speaking..."


class GreetingLatch:
    """Remembers whether the assistant has already greeted the user.

    Outlives individual sessions so a reconnect does not greet twice; only an
    explicit ``reset()`` re-arms it.
    """

    def __init__(self) -> None:
        self._greeted = False

    @property
    def greeted(self) -> bool:
        return self._greeted

    def claim(self) -> bool:
        """Return True exactly once until reset."""
        if self._greeted:
            return False
        self._greeted = True
        return True

    def reset(self) -> None:
        self._greeted = False


class EventDispatcher:
    """Routes control channel events for one session."""

    def __init__(
        self,
        channel: ControlChannel,
        config: RealtimeConfig,
        listener: ConversationListener | None = None,
        transcript: Transcript | None = None,
        greeting: GreetingLatch | None = None,
        tool_invoker: ToolInvoker | None = None,
    ) -> None:
        """Initialize dispatcher and subscribe to the channel.

        Args:
            channel: Control channel for this session
            config: Session configuration (instructions, turn detection, caps)
            listener: Receives turn, transcript and status notifications
            transcript: Transcript to update (a new one when omitted)
            greeting: Shared greeting latch (a new one when omitted)
            tool_invoker: Handles function calls; None disables function calling
        """
        self.channel = channel
        self.config = config
        self.listener = listener or ConversationListener()
        self.transcript = transcript if transcript is not None else Transcript()
        self.greeting = greeting or GreetingLatch()
        self.tool_invoker = tool_invoker
        self.turn_state = TurnState.IDLE

        self._handlers: dict[str, Callable[[dict[str, Any]], None]] = {
            events.SPEECH_STARTED: self._on_speech_started,
            events.SPEECH_STOPPED: self._on_speech_stopped,
            events.AUDIO_COMMITTED: self._on_audio_committed,
            events.TRANSCRIPTION_PARTIAL: self._on_transcription_partial,
            events.TRANSCRIPTION_COMPLETED: self._on_transcription_completed,
            events.AUDIO_TRANSCRIPT_DONE: self._on_audio_transcript_done,
            events.RESPONSE_DONE: self._on_response_done,
        }

        channel.on_open(self.handle_open)
        channel.on_message(self.handle_message)

    @property
    def tools(self) -> list[dict[str, Any]] | None:
        if self.tool_invoker is None:
            return None
        return self.tool_invoker.declarations

    def handle_open(self) -> None:
        """Greet once and push the session configuration."""
        self.listener.on_status("Connected to Realtime API")

        if self.greeting.claim():
            logger.info("Sending welcome message")
            self.channel.send_event(
                ResponseCreateEvent(
                    response=ResponseSettings(
                        modalities=["audio", "text"],
                        instructions=self.config.instructions.welcome,
                        max_output_tokens=self.config.api.max_output_tokens,
                    )
                )
            )

        self.channel.send_event(self.build_session_update())

    def build_session_update(self) -> SessionUpdateEvent:
        model = self.config.api.transcription_model
        transcription = InputAudioTranscription(model=model) if model else None

        return SessionUpdateEvent(
            session=SessionSettings(
                instructions=self.config.instructions.default,
                turn_detection=self.config.turn_detection,
                input_audio_transcription=transcription,
                max_response_output_tokens=self.config.api.max_output_tokens,
                tools=self.tools,
            )
        )

    def handle_message(self, raw: str | bytes) -> None:
        """Decode and route one inbound frame. Malformed frames are logged and dropped."""
        try:
            event = events.decode_event(raw)
        except ValueError as e:
            logger.warning("Dropping malformed event", extra={"error": str(e)})
            return

        event_type = event["type"]
        handler = self._handlers.get(event_type)
        if handler is None:
            logger.debug("Ignoring event", extra={"type": event_type})
            return

        logger.debug("Received event", extra={"type": event_type})
        handler(event)

    def send_user_text(self, text: str) -> None:
        """Send typed text and request a text-only response.

        Raises:
            ChannelError: If the control channel is not open
        """
        self.channel.send_event(user_text_item(text))
        self.channel.send_event(
            ResponseCreateEvent(
                response=ResponseSettings(
                    modalities=["text"],
                    instructions=self.config.instructions.default,
                    tools=self.tools,
                )
            )
        )
        self.listener.on_transcript_updated(self.transcript.append_user(text))

    def _set_turn_state(self, state: TurnState) -> None:
        if state is self.turn_state:
            return
        self.turn_state = state
        self.listener.on_turn_state_changed(state)

    def _on_speech_started(self, event: dict[str, Any]) -> None:
        self._set_turn_state(TurnState.USER_SPEAKING)
        self.listener.on_transcript_updated(self.transcript.start_user_turn(SPEAKING_PLACEHOLDER))
        self.listener.on_status("User speaking")

    def _on_speech_stopped(self, event: dict[str, Any]) -> None:
        self._set_turn_state(TurnState.IDLE_PENDING)
        self.listener.on_status("Speech stopped")

    def _on_audio_committed(self, event: dict[str, Any]) -> None:
        self._set_turn_state(TurnState.PROCESSING)
        self.listener.on_transcript_updated(
            self.transcript.update_user_partial(PROCESSING_PLACEHOLDER)
        )
        self.listener.on_status("Processing speech...")

    def _on_transcription_partial(self, event: dict[str, Any]) -> None:
        text = event.get("transcript") or event.get("text") or PARTIAL_PLACEHOLDER
        self.listener.on_transcript_updated(self.transcript.update_user_partial(str(text)))

    def _on_transcription_completed(self, event: dict[str, Any]) -> None:
        text = event.get("transcript")
        if not isinstance(text, str) or not text:
            return
        self.listener.on_transcript_updated(self.transcript.finalize_user(text))
        self._set_turn_state(TurnState.IDLE)
        self.listener.on_status("Connected")

    def _on_audio_transcript_done(self, event: dict[str, Any]) -> None:
        text = event.get("transcript")
        if isinstance(text, str) and text:
            self.listener.on_transcript_updated(self.transcript.append_assistant(text))

    def _on_response_done(self, event: dict[str, Any]) -> None:
        response = event.get("response")
        output = response.get("output") if isinstance(response, dict) else None
        if not isinstance(output, list):
            return

        for item in output:
            if not isinstance(item, dict):
                continue
            if item.get("type") == "message":
                self._append_message_item(item)
            elif item.get("type") == "function_call":
                self._dispatch_function_call(item)

    def _append_message_item(self, item: dict[str, Any]) -> None:
        content = item.get("content")
        if not isinstance(content, list) or not content or not isinstance(content[0], dict):
            return
        text = content[0].get("text")
        if isinstance(text, str) and text:
            self.listener.on_transcript_updated(self.transcript.append_assistant(text))

    def _dispatch_function_call(self, item: dict[str, Any]) -> None:
        name = item.get("name")
        if self.tool_invoker is None:
            logger.warning("Function call received but no tools are enabled", extra={"function": name})
            return

        raw_args = item.get("arguments") or "{}"
        try:
            args = json.loads(raw_args)
        except (TypeError, json.JSONDecodeError) as e:
            logger.warning(
                "Dropping function call with malformed arguments",
                extra={"function": name, "error": str(e)},
            )
            return

        if not isinstance(name, str) or not isinstance(args, dict):
            logger.warning("Dropping malformed function call", extra={"function": name})
            return

        self.tool_invoker.invoke(name, args)
