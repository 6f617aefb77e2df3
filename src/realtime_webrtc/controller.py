"""Top-level connect/disconnect control.

Owns the objects that outlive a single session (HTTP clients, transcript,
greeting latch) and guarantees that a new session only starts acquiring
resources after the previous one has fully released them.
"""

import asyncio
import logging
from collections.abc import Callable

import aiohttp

from realtime_webrtc.config import RealtimeConfig
from realtime_webrtc.credentials import CredentialClient
from realtime_webrtc.dispatcher import GreetingLatch
from realtime_webrtc.errors import RealtimeError
from realtime_webrtc.listener import ConversationListener
from realtime_webrtc.media import MediaProvider, RemoteAudioSink, create_media_provider
from realtime_webrtc.session import RealtimeSession, SessionState, TransportFactory
from realtime_webrtc.tools import WeatherClient, build_weather_tools
from realtime_webrtc.transcript import Transcript
from realtime_webrtc.transport.aiortc_transport import AiortcTransport
from realtime_webrtc.transport.signaling import SdpExchangeClient

logger = logging.getLogger(__name__)


class SessionController:
    """Creates, connects and closes realtime sessions one at a time."""

    def __init__(
        self,
        config: RealtimeConfig,
        listener: ConversationListener | None = None,
        media_factory: Callable[[], MediaProvider] | None = None,
        transport_factory: TransportFactory | None = None,
        http_session: aiohttp.ClientSession | None = None,
    ) -> None:
        """Initialize controller.

        Args:
            config: Realtime configuration
            listener: Conversation notifications for every session
            media_factory: Creates the local audio provider per session
            transport_factory: Creates the peer transport per session
            http_session: Shared aiohttp session (created lazily when omitted)
        """
        self.config = config
        self.listener = listener or ConversationListener()
        self.transcript = Transcript()
        self.greeting = GreetingLatch()

        self._media_factory = media_factory or (lambda: create_media_provider(config.media))
        self._transport_factory = transport_factory or (
            lambda: AiortcTransport(ice_servers=config.api.ice_servers)
        )
        self._http = http_session
        self._owns_http = http_session is None
        self._session: RealtimeSession | None = None
        self._lock = asyncio.Lock()

        self._clients: tuple[CredentialClient, SdpExchangeClient, WeatherClient] | None = None

    @property
    def session(self) -> RealtimeSession | None:
        return self._session

    @property
    def is_connected(self) -> bool:
        return self._session is not None and self._session.state is SessionState.CONNECTED

    def _ensure_clients(self) -> tuple[CredentialClient, SdpExchangeClient, WeatherClient]:
        if self._http is None or self._http.closed:
            self._http = aiohttp.ClientSession()
            self._owns_http = True
            self._clients = None

        if self._clients is None:
            api = self.config.api
            self._clients = (
                CredentialClient(
                    api.relay_url, session=self._http, timeout_s=api.request_timeout_s
                ),
                SdpExchangeClient(
                    api.base_url, session=self._http, timeout_s=api.request_timeout_s
                ),
                WeatherClient(
                    self.config.tools.geocoding_url,
                    self.config.tools.forecast_url,
                    session=self._http,
                    timeout_s=self.config.tools.request_timeout_s,
                ),
            )
        return self._clients

    def _create_session(self) -> RealtimeSession:
        credentials, signaling, weather = self._ensure_clients()

        tools = build_weather_tools(self.config, weather) if self.config.tools.enabled else []
        return RealtimeSession(
            self.config,
            credentials=credentials,
            signaling=signaling,
            media=self._media_factory(),
            transport_factory=self._transport_factory,
            listener=self.listener,
            transcript=self.transcript,
            greeting=self.greeting,
            tools=tools,
            audio_sink=RemoteAudioSink(self.config.media.record_path),
        )

    async def connect(self) -> RealtimeSession:
        """Start a fresh session from a fully torn-down state.

        Returns the live session if one is already connected or connecting.

        Raises:
            RealtimeError: If negotiation fails (the session is already closed)
        """
        async with self._lock:
            previous = self._session
            if previous is not None and not previous.is_closed:
                return previous

            if previous is not None:
                await previous.wait_released()

            self.transcript.clear()
            session = self._create_session()
            self._session = session
            logger.info("Starting session", extra={"session_id": session.session_id})
            await session.connect()
            return session

    async def disconnect(self) -> None:
        """Close the current session immediately, even mid-negotiation."""
        session = self._session
        if session is None or session.is_closed:
            return

        await session.close()
        self.listener.on_status("Not connected")

    async def toggle(self) -> bool:
        """Connect when idle, disconnect when a session is live.

        Errors are reported through the listener, never raised.

        Returns:
            True if a session is connected afterwards
        """
        if self._session is not None and not self._session.is_closed:
            await self.disconnect()
            return False

        try:
            await self.connect()
        except RealtimeError as e:
            logger.error("Connection error", extra={"error_type": type(e).__name__, "error": str(e)})
            return False
        return self.is_connected

    async def aclose(self) -> None:
        """Close the current session and the shared HTTP session."""
        await self.disconnect()
        if self._session is not None:
            await self._session.wait_released()

        if self._owns_http and self._http is not None and not self._http.closed:
            await self._http.close()
        self._http = None
        self._clients = None
