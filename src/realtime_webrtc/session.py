"""Realtime session negotiation.

Drives one WebRTC negotiation attempt against the Realtime API: fetch an
ephemeral credential, acquire local audio, create the offer with the
``oai-events`` control channel, exchange it for the remote answer, and tear
everything down on close or failure.
"""

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, replace
from enum import Enum

from aiortc import MediaStreamTrack

from realtime_webrtc.channel import ControlChannel
from realtime_webrtc.config import RealtimeConfig
from realtime_webrtc.credentials import CredentialClient
from realtime_webrtc.dispatcher import EventDispatcher, GreetingLatch
from realtime_webrtc.errors import (
    ChannelError,
    MediaAccessError,
    NegotiationError,
    RealtimeError,
    ToolError,
)
from realtime_webrtc.listener import ConversationListener
from realtime_webrtc.media import MediaProvider, MutableAudioTrack, RemoteAudioSink
from realtime_webrtc.tools.base import Tool
from realtime_webrtc.tools.invoker import ToolInvoker
from realtime_webrtc.transcript import Transcript
from realtime_webrtc.transport.base import PeerTransport
from realtime_webrtc.transport.signaling import SdpExchangeClient

logger = logging.getLogger(__name__)


class SessionState(Enum):
    """Negotiation state machine states.

    State Transitions:
    - IDLE → ACQUIRING_MEDIA (credential obtained)
    - ACQUIRING_MEDIA → OFFERING (local audio attached)
    - OFFERING → AWAITING_ANSWER (local description set)
    - AWAITING_ANSWER → CONNECTED (remote description applied)
    - * → CLOSED (close, failure, or unexpected channel loss)
    """

    IDLE = "idle"
    ACQUIRING_MEDIA = "acquiring_media"
    OFFERING = "offering"
    AWAITING_ANSWER = "awaiting_answer"
    CONNECTED = "connected"
    CLOSED = "closed"


# Valid state transitions
VALID_TRANSITIONS: dict[SessionState, set[SessionState]] = {
    SessionState.IDLE: {SessionState.ACQUIRING_MEDIA, SessionState.CLOSED},
    SessionState.ACQUIRING_MEDIA: {SessionState.OFFERING, SessionState.CLOSED},
    SessionState.OFFERING: {SessionState.AWAITING_ANSWER, SessionState.CLOSED},
    SessionState.AWAITING_ANSWER: {SessionState.CONNECTED, SessionState.CLOSED},
    SessionState.CONNECTED: {SessionState.CLOSED},
    SessionState.CLOSED: set(),  # Terminal state
}


@dataclass(frozen=True)
class SessionSnapshot:
    """Immutable view of a session: its state and the resources valid in it.

    - ACQUIRING_MEDIA: transport (local_track once capture succeeds)
    - OFFERING: transport, local_track, channel
    - AWAITING_ANSWER: as OFFERING plus local_sdp
    - CONNECTED: as AWAITING_ANSWER plus remote_sdp
    - CLOSED: no resources; error holds the failure, if any
    """

    state: SessionState = SessionState.IDLE
    transport: PeerTransport | None = None
    local_track: MutableAudioTrack | None = None
    channel: ControlChannel | None = None
    local_sdp: str | None = None
    remote_sdp: str | None = None
    error: RealtimeError | None = None

    def advance(self, new_state: SessionState, **changes: object) -> "SessionSnapshot":
        """Return the snapshot for ``new_state``.

        Raises:
            ValueError: If the transition is invalid
        """
        if new_state not in VALID_TRANSITIONS[self.state]:
            raise ValueError(f"Invalid state transition: {self.state.value} → {new_state.value}")
        return replace(self, state=new_state, **changes)

    def closed(self, error: RealtimeError | None = None) -> "SessionSnapshot":
        """Return the CLOSED snapshot, dropping all resources."""
        return self.advance(
            SessionState.CLOSED,
            transport=None,
            local_track=None,
            channel=None,
            error=error,
        )


TransportFactory = Callable[[], PeerTransport]


class RealtimeSession:
    """One negotiation attempt and the live session it produces.

    A session is single-use: after ``close()`` a new instance is required.
    Closing never waits for in-flight negotiation steps; a step that finishes
    after close discards its result and releases anything it acquired.
    """

    def __init__(
        self,
        config: RealtimeConfig,
        credentials: CredentialClient,
        signaling: SdpExchangeClient,
        media: MediaProvider,
        transport_factory: TransportFactory,
        listener: ConversationListener | None = None,
        transcript: Transcript | None = None,
        greeting: GreetingLatch | None = None,
        tools: Sequence[Tool] = (),
        audio_sink: RemoteAudioSink | None = None,
        session_id: str | None = None,
    ) -> None:
        """Initialize session.

        Args:
            config: Realtime configuration
            credentials: Relay credential client
            signaling: SDP offer/answer client
            media: Local audio provider
            transport_factory: Creates the peer transport for this attempt
            listener: Conversation notifications
            transcript: Transcript shared with the caller
            greeting: Greeting latch shared across sessions
            tools: Tools declared when function calling is enabled
            audio_sink: Consumer for the assistant's audio track
            session_id: Identifier for logging (generated when omitted)
        """
        self.config = config
        self.session_id = session_id or f"rt-{uuid.uuid4().hex[:12]}"
        self.listener = listener or ConversationListener()
        self.transcript = transcript if transcript is not None else Transcript()
        self.greeting = greeting or GreetingLatch()
        self.dispatcher: EventDispatcher | None = None

        self._credentials = credentials
        self._signaling = signaling
        self._media = media
        self._transport_factory = transport_factory
        self._tools = list(tools)
        self._audio_sink = audio_sink or RemoteAudioSink()

        self._snapshot = SessionSnapshot()
        self._closed = False
        self._media_held = False
        self._invoker: ToolInvoker | None = None
        self._released = asyncio.Event()
        self._background: set[asyncio.Task[None]] = set()

    @property
    def snapshot(self) -> SessionSnapshot:
        return self._snapshot

    @property
    def state(self) -> SessionState:
        return self._snapshot.state

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def channel(self) -> ControlChannel | None:
        return self._snapshot.channel

    def _transition(self, new_state: SessionState, **changes: object) -> None:
        old_state = self._snapshot.state
        self._snapshot = self._snapshot.advance(new_state, **changes)

        logger.info(
            "Session state transition",
            extra={
                "session_id": self.session_id,
                "from_state": old_state.value,
                "to_state": new_state.value,
            },
        )

    async def connect(self) -> SessionSnapshot:
        """Run the full negotiation.

        Returns:
            The CONNECTED snapshot, or the CLOSED snapshot if the session was
            closed while negotiating

        Raises:
            AuthError: Credential fetch failed (no media is requested)
            MediaAccessError: Capture device denied or unavailable
            NegotiationError: Offer/answer exchange failed, or an unexpected
                error interrupted negotiation
            RuntimeError: If called on a session that already started
        """
        if self._snapshot.state is not SessionState.IDLE or self._closed:
            raise RuntimeError("connect() may only be called once on a fresh session")

        self.listener.on_status("Connecting...")

        try:
            credential = await self._credentials.fetch_credential(
                self.config.api.model, self.config.api.voice
            )
            if self._closed:
                return self._discarded("credential")

            if not await self._acquire_media():
                return self._discarded("media")

            if not await self._create_offer():
                return self._discarded("offer")

            answer = await self._signaling.exchange(
                self._snapshot.local_sdp or "", credential, self.config.api.model
            )
            if self._closed:
                return self._discarded("answer")

            await self._apply_answer(answer)
            if self._closed:
                return self._discarded("answer")

        except RealtimeError as e:
            if self._closed:
                return self._discarded("error")
            await self._fail(e)
            raise
        except asyncio.CancelledError:
            if not self._closed:
                await self.close(error=NegotiationError("Negotiation cancelled"))
            raise
        except Exception as e:
            if self._closed:
                return self._discarded("error")
            error = NegotiationError(f"Negotiation failed: {e}")
            await self._fail(error)
            raise error from e

        self.listener.on_status("Connected")
        logger.info("WebRTC connection established", extra={"session_id": self.session_id})
        return self._snapshot

    async def _acquire_media(self) -> bool:
        """ACQUIRING_MEDIA: create transport, capture audio, attach the track."""
        transport = self._transport_factory()
        self._transition(SessionState.ACQUIRING_MEDIA, transport=transport)
        transport.on_track(self._on_remote_track)

        try:
            source = await self._media.acquire()
        except MediaAccessError:
            raise
        except Exception as e:
            raise MediaAccessError(f"Error accessing microphone: {e}") from e

        if self._closed:
            await self._media.release()
            return False

        self._media_held = True
        track = MutableAudioTrack(source)
        transport.add_track(track)
        self._snapshot = replace(self._snapshot, local_track=track)
        logger.info("Microphone setup complete", extra={"session_id": self.session_id})
        return True

    async def _create_offer(self) -> bool:
        """OFFERING: open the control channel and set the local description."""
        transport = self._require_transport()

        channel = ControlChannel(transport.create_data_channel(self.config.api.data_channel_label))
        channel.on_close(self._on_channel_closed)
        self._wire_conversation(channel)
        self._transition(SessionState.OFFERING, channel=channel)

        try:
            local_sdp = await transport.create_offer()
        except Exception as e:
            if self._closed:
                return False
            raise NegotiationError(f"Failed to create offer: {e}") from e

        if self._closed:
            return False

        self._transition(SessionState.AWAITING_ANSWER, local_sdp=local_sdp)
        return True

    async def _apply_answer(self, answer: str) -> None:
        """AWAITING_ANSWER → CONNECTED once the remote description is applied."""
        transport = self._require_transport()

        try:
            await transport.apply_answer(answer)
        except Exception as e:
            if self._closed:
                return
            raise NegotiationError(f"Failed to apply remote answer: {e}") from e

        if not self._closed:
            self._transition(SessionState.CONNECTED, remote_sdp=answer)

    def _require_transport(self) -> PeerTransport:
        transport = self._snapshot.transport
        if transport is None:
            raise RuntimeError(f"No transport in state {self._snapshot.state.value}")
        return transport

    def _wire_conversation(self, channel: ControlChannel) -> None:
        if self.config.tools.enabled and self._tools:
            self._invoker = ToolInvoker(
                channel,
                self._tools,
                default_instructions=self.config.instructions.default,
                on_error=self._on_tool_error,
            )

        self.dispatcher = EventDispatcher(
            channel,
            self.config,
            listener=self.listener,
            transcript=self.transcript,
            greeting=self.greeting,
            tool_invoker=self._invoker,
        )

    def _discarded(self, step: str) -> SessionSnapshot:
        logger.info(
            "Session closed during negotiation, discarding result",
            extra={"session_id": self.session_id, "step": step},
        )
        return self._snapshot

    async def _fail(self, error: RealtimeError) -> None:
        logger.error(
            "Session negotiation failed",
            extra={
                "session_id": self.session_id,
                "state": self._snapshot.state.value,
                "error_type": type(error).__name__,
                "error": str(error),
            },
        )
        await self.close(error=error)
        self.listener.on_status(f"Connection failed: {error}")

    async def wait_until_ready(self, timeout: float | None = None) -> ControlChannel:
        """Wait until the control channel has signalled open.

        Raises:
            ChannelError: If there is no channel, or it closes or times out first
        """
        channel = self._snapshot.channel
        if channel is None:
            raise ChannelError("Session has no control channel")
        await channel.wait_open(timeout=timeout)
        return channel

    def send_text(self, text: str) -> None:
        """Send a typed user message and request a text response.

        Raises:
            ChannelError: If the control channel is not open
        """
        if self.dispatcher is None or self._closed:
            raise ChannelError("Session is not connected")
        self.dispatcher.send_user_text(text)

    def set_microphone_enabled(self, enabled: bool) -> bool:
        """Mute or unmute the outgoing audio track.

        Returns:
            False if there is no local track to toggle
        """
        track = self._snapshot.local_track
        if track is None:
            return False

        track.enabled = enabled
        self.listener.on_status("Microphone active" if enabled else "Microphone muted")
        return True

    async def close(self, error: RealtimeError | None = None) -> None:
        """Release every resource held by the session. Idempotent."""
        if self._closed:
            await self._released.wait()
            return

        self._closed = True
        snapshot = self._snapshot
        self._snapshot = snapshot.closed(error)
        logger.info(
            "Session state transition",
            extra={
                "session_id": self.session_id,
                "from_state": snapshot.state.value,
                "to_state": SessionState.CLOSED.value,
            },
        )

        try:
            if self._invoker is not None:
                await self._release_step("tools", self._invoker.aclose())

            if snapshot.channel is not None:
                snapshot.channel.close()

            if snapshot.local_track is not None:
                snapshot.local_track.stop()

            if self._media_held:
                self._media_held = False
                await self._release_step("media", self._media.release())

            await self._release_step("audio_sink", self._audio_sink.stop())

            if snapshot.transport is not None:
                await self._release_step("transport", snapshot.transport.close())
        finally:
            self._released.set()

        logger.info("Session closed", extra={"session_id": self.session_id})

    async def _release_step(self, resource: str, action: Awaitable[None]) -> None:
        try:
            await action
        except Exception as e:
            logger.warning(
                "Error during session close",
                extra={"session_id": self.session_id, "resource": resource, "error": str(e)},
            )

    async def wait_released(self) -> None:
        """Wait until ``close()`` has released all resources."""
        await self._released.wait()

    async def _on_remote_track(self, track: MediaStreamTrack) -> None:
        if self._closed or track.kind != "audio":
            return
        await self._audio_sink.attach(track)

    def _on_channel_closed(self, unexpected: bool) -> None:
        if not unexpected or self._closed:
            return

        error = ChannelError("Control channel closed unexpectedly")
        logger.error("Control channel lost", extra={"session_id": self.session_id})
        self.listener.on_status("Disconnected from Realtime API")
        task = asyncio.ensure_future(self.close(error=error))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    def _on_tool_error(self, error: ToolError) -> None:
        self.listener.on_status(f"Tool error: {error}")
