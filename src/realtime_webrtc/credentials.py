"""Ephemeral credential client.

Requests a short-lived Realtime session key from the token relay. The key
authorizes exactly one SDP offer/answer exchange and is never persisted.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

import aiohttp

from realtime_webrtc.errors import AuthError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionCredential:
    """Opaque bearer credential for one negotiation attempt.

    Attributes:
        value: Bearer token (``client_secret.value``)
        expires_at: Expiry as Unix timestamp, if the relay reported one
        session: Informational session fields echoed by the relay
    """

    value: str = field(repr=False)
    expires_at: int | None = None
    session: dict[str, Any] = field(default_factory=dict, repr=False)


def _error_message(body: Any, default: str) -> str:
    """Extract a readable message from a relay error body ``{error|message}``."""
    if not isinstance(body, dict):
        return default

    message = body.get("message")
    if isinstance(message, str) and message:
        return message

    error = body.get("error")
    if isinstance(error, str) and error:
        return error
    if isinstance(error, dict) and isinstance(error.get("message"), str):
        return error["message"]

    return default


class CredentialClient:
    """Fetches session credentials from the relay's ``POST /session`` endpoint."""

    def __init__(
        self,
        relay_url: str,
        session: aiohttp.ClientSession | None = None,
        timeout_s: float = 15.0,
    ) -> None:
        """Initialize credential client.

        Args:
            relay_url: Relay base URL (e.g. http://localhost:3000)
            session: Shared aiohttp session (created lazily when omitted)
            timeout_s: Total request timeout in seconds
        """
        self.relay_url = relay_url.rstrip("/")
        self._session = session
        self._owns_session = session is None
        self._timeout = aiohttp.ClientTimeout(total=timeout_s)

    def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        """Close the aiohttp session if this client created it."""
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def fetch_credential(self, model_id: str, voice_id: str) -> SessionCredential:
        """Request a session credential for the given model and voice.

        Args:
            model_id: Realtime model identifier
            voice_id: Assistant voice

        Returns:
            SessionCredential for a single negotiation

        Raises:
            AuthError: If the relay responds non-2xx, the response lacks
                ``client_secret.value``, or the request fails
        """
        url = f"{self.relay_url}/session"
        session = self._ensure_session()

        logger.info("Requesting session credential", extra={"model": model_id, "voice": voice_id})

        try:
            async with session.post(
                url,
                json={"model": model_id, "voice": voice_id},
                timeout=self._timeout,
            ) as response:
                try:
                    body = await response.json(content_type=None)
                except ValueError:
                    body = None

                if response.status >= 300:
                    message = _error_message(body, "Failed to get session key")
                    logger.error(
                        "Relay rejected credential request",
                        extra={"status": response.status, "error": message},
                    )
                    raise AuthError(message, status=response.status)

        except aiohttp.ClientError as e:
            logger.error("Credential request failed", extra={"url": url, "error": str(e)})
            raise AuthError(f"Credential request failed: {e}") from e
        except TimeoutError as e:
            logger.error("Credential request timed out", extra={"url": url})
            raise AuthError("Credential request timed out") from e

        secret = body.get("client_secret") if isinstance(body, dict) else None
        value = secret.get("value") if isinstance(secret, dict) else None
        if not isinstance(value, str) or not value:
            raise AuthError("Relay response is missing client_secret.value")

        expires_at = secret.get("expires_at")
        credential = SessionCredential(
            value=value,
            expires_at=expires_at if isinstance(expires_at, int) else None,
            session={k: v for k, v in body.items() if k != "client_secret"},
        )

        logger.info(
            "Session credential received",
            extra={"expires_at": credential.expires_at, "key_length": len(value)},
        )
        return credential
