"""Tool invoker.

Runs model-requested function calls in the background and feeds their
results back into the conversation as a regular user turn followed by a
fresh response request.
"""

import asyncio
import logging
from collections.abc import Callable, Iterable
from typing import Any

from realtime_webrtc.channel import ControlChannel
from realtime_webrtc.errors import ToolError
from realtime_webrtc.events import ResponseCreateEvent, ResponseSettings, user_text_item
from realtime_webrtc.tools.base import Tool, ToolResult

logger = logging.getLogger(__name__)


class ToolInvoker:
    """Dispatches function calls by name.

    The control channel is passed in explicitly; results that complete after
    the channel has closed are dropped without raising.
    """

    def __init__(
        self,
        channel: ControlChannel,
        tools: Iterable[Tool] = (),
        default_instructions: str | None = None,
        on_error: Callable[[ToolError], None] | None = None,
    ) -> None:
        """Initialize tool invoker.

        Args:
            channel: Control channel results are sent on
            tools: Tools available to the model
            default_instructions: Follow-up instructions when a tool gives none
            on_error: Called with each ToolError (e.g. to update status text)
        """
        self._channel = channel
        self._tools: dict[str, Tool] = {}
        self._default_instructions = default_instructions
        self._on_error = on_error
        self._pending: set[asyncio.Task[None]] = set()

        for tool in tools:
            self.register(tool)

    def register(self, tool: Tool) -> None:
        if tool.name in self._tools:
            raise ValueError(f"Tool already registered: {tool.name}")
        self._tools[tool.name] = tool

    @property
    def declarations(self) -> list[dict[str, Any]]:
        return [tool.declaration for tool in self._tools.values()]

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def invoke(self, name: str, args: dict[str, Any]) -> None:
        """Start a function call without waiting for it.

        Unknown names are logged and ignored.
        """
        tool = self._tools.get(name)
        if tool is None:
            logger.warning("Unknown function call ignored", extra={"function": name})
            return

        logger.info("Function call", extra={"function": name, "arguments": args})
        task = asyncio.create_task(self._run(tool, args), name=f"tool-{name}")
        self._pending.add(task)
        task.add_done_callback(self._on_task_done)

    async def wait_idle(self) -> None:
        """Wait for all in-flight invocations to finish."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def aclose(self) -> None:
        """Cancel in-flight invocations."""
        pending = list(self._pending)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    async def _run(self, tool: Tool, args: dict[str, Any]) -> None:
        try:
            result = await tool.run(args)
        except ToolError as e:
            logger.error("Function call failed", extra={"function": tool.name, "error": str(e)})
            if self._on_error is not None:
                self._on_error(e)
            return

        self._dispatch_result(tool.name, result)

    def _dispatch_result(self, name: str, result: ToolResult) -> None:
        if not self._channel.is_open:
            logger.info(
                "Channel closed before function result arrived, dropping",
                extra={"function": name},
            )
            return

        if not self._channel.try_send_event(user_text_item(result.as_message())):
            return

        self._channel.try_send_event(
            ResponseCreateEvent(
                response=ResponseSettings(
                    modalities=["audio", "text"],
                    instructions=result.instructions or self._default_instructions,
                )
            )
        )
        logger.info("Function result sent", extra={"function": name, "kind": result.kind})

    def _on_task_done(self, task: asyncio.Task[None]) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(
                "Unexpected function call failure",
                extra={"task": task.get_name(), "error": str(error)},
                exc_info=error,
            )
