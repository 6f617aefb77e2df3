"""Error taxonomy for realtime sessions.

None of these errors is retried automatically. Callers surface them as
status text and start a fresh connection attempt if the user asks for one.
"""


class RealtimeError(Exception):
    """Base class for all realtime session errors."""


class AuthError(RealtimeError):
    """Fetching the ephemeral session credential failed."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class MediaAccessError(RealtimeError):
    """The local capture device was denied or is unavailable."""


class NegotiationError(RealtimeError):
    """The SDP offer/answer exchange failed."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class ChannelError(RealtimeError):
    """The control channel is not open, or closed unexpectedly."""


class ToolError(RealtimeError):
    """An external lookup backing a function call failed."""

    def __init__(self, tool_name: str, message: str) -> None:
        super().__init__(f"{tool_name}: {message}")
        self.tool_name = tool_name
