"""Token relay that exchanges a server-side API key for ephemeral Realtime session keys."""

from token_relay.server import create_app

__all__ = ["create_app"]
