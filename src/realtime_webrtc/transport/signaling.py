"""SDP offer/answer exchange with the realtime negotiation endpoint."""

import logging

import aiohttp

from realtime_webrtc.credentials import SessionCredential
from realtime_webrtc.errors import NegotiationError

logger = logging.getLogger(__name__)

SDP_CONTENT_TYPE = "application/sdp"


class SdpExchangeClient:
    """Posts the local offer and returns the remote answer.

    ``POST {base_url}?model={model}`` with a bearer credential and an
    ``application/sdp`` body; the response body is the answer SDP.
    """

    def __init__(
        self,
        base_url: str,
        session: aiohttp.ClientSession | None = None,
        timeout_s: float = 15.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._session = session
        self._owns_session = session is None
        self._timeout = aiohttp.ClientTimeout(total=timeout_s)

    def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def exchange(self, offer_sdp: str, credential: SessionCredential, model: str) -> str:
        """Exchange the local offer for the remote answer.

        Args:
            offer_sdp: Local session description
            credential: Ephemeral credential (consumed by this call)
            model: Realtime model identifier

        Returns:
            Remote answer SDP text

        Raises:
            NegotiationError: On non-2xx status, an empty or undecodable answer,
                or request failure
        """
        session = self._ensure_session()
        headers = {
            "Authorization": f"Bearer {credential.value}",
            "Content-Type": SDP_CONTENT_TYPE,
        }

        try:
            async with session.post(
                self.base_url,
                params={"model": model},
                data=offer_sdp,
                headers=headers,
                timeout=self._timeout,
            ) as response:
                if response.status >= 300:
                    raise NegotiationError(
                        f"Failed to connect: {response.status} {response.reason}",
                        status=response.status,
                    )
                body = await response.read()

        except aiohttp.ClientError as e:
            raise NegotiationError(f"SDP exchange failed: {e}") from e
        except TimeoutError as e:
            raise NegotiationError("SDP exchange timed out") from e

        try:
            answer = body.decode("utf-8")
        except UnicodeDecodeError as e:
            raise NegotiationError("Remote answer is not valid UTF-8") from e

        if not answer.strip():
            raise NegotiationError("Remote answer is empty")

        logger.debug("SDP answer received", extra={"answer_length": len(answer)})
        return answer
