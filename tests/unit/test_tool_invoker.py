"""Unit tests for the tool invoker."""

import asyncio
from typing import Any

import pytest

from realtime_webrtc.channel import ControlChannel
from realtime_webrtc.errors import ToolError
from realtime_webrtc.tools.base import Tool, ToolResult
from realtime_webrtc.tools.invoker import ToolInvoker
from tests.helpers.fakes import FakeDataChannel


class EchoTool(Tool):
    """Returns its arguments, optionally after a gate opens."""

    name = "echo"
    description = "Echo the arguments"
    parameters = {"type": "object", "properties": {"text": {"type": "string"}}}

    def __init__(self, gate: asyncio.Event | None = None, instructions: str | None = None):
        self.gate = gate
        self.instructions = instructions
        self.calls: list[dict[str, Any]] = []

    async def run(self, args: dict[str, Any]) -> ToolResult:
        self.calls.append(args)
        if self.gate is not None:
            await self.gate.wait()
        return ToolResult(kind="echo", payload=str(args.get("text")), instructions=self.instructions)


class FailingTool(Tool):
    name = "broken"
    description = "Always fails"

    async def run(self, args: dict[str, Any]) -> ToolResult:
        raise ToolError(self.name, "Location not found")


@pytest.fixture
def raw_channel() -> FakeDataChannel:
    channel = FakeDataChannel()
    channel.readyState = "open"
    return channel


@pytest.fixture
def channel(raw_channel: FakeDataChannel) -> ControlChannel:
    return ControlChannel(raw_channel)


def test_declarations() -> None:
    """Test declarations follow the function tool shape."""
    invoker = ToolInvoker(ControlChannel(FakeDataChannel()), [EchoTool(), FailingTool()])

    assert invoker.declarations == [
        {
            "type": "function",
            "name": "echo",
            "description": "Echo the arguments",
            "parameters": EchoTool.parameters,
        },
        {"type": "function", "name": "broken", "description": "Always fails"},
    ]


def test_register_duplicate_rejected() -> None:
    """Test registering the same name twice fails."""
    invoker = ToolInvoker(ControlChannel(FakeDataChannel()), [EchoTool()])

    with pytest.raises(ValueError, match="already registered"):
        invoker.register(EchoTool())


@pytest.mark.asyncio
async def test_unknown_function_ignored(
    channel: ControlChannel, raw_channel: FakeDataChannel
) -> None:
    """Test unknown names are a no-op."""
    invoker = ToolInvoker(channel, [EchoTool()])

    invoker.invoke("getStockPrice", {"symbol": "ACME"})
    await invoker.wait_idle()

    assert invoker.pending_count == 0
    assert raw_channel.sent == []


@pytest.mark.asyncio
async def test_result_sent_as_user_turn(
    channel: ControlChannel, raw_channel: FakeDataChannel
) -> None:
    """Test a result is sent as user text followed by an audio+text response."""
    tool = EchoTool(instructions="Describe it.")
    invoker = ToolInvoker(channel, [tool], default_instructions="Be brief.")

    invoker.invoke("echo", {"text": "sunny"})
    await invoker.wait_idle()

    events = raw_channel.sent_events()
    assert tool.calls == [{"text": "sunny"}]
    assert [e["type"] for e in events] == ["conversation.item.create", "response.create"]
    assert events[0]["item"]["content"][0]["text"] == "Here is the echo data: sunny"
    assert events[1]["response"] == {
        "modalities": ["audio", "text"],
        "instructions": "Describe it.",
    }


@pytest.mark.asyncio
async def test_default_instructions_used(
    channel: ControlChannel, raw_channel: FakeDataChannel
) -> None:
    """Test default instructions apply when the result carries none."""
    invoker = ToolInvoker(channel, [EchoTool()], default_instructions="Be brief.")

    invoker.invoke("echo", {"text": "x"})
    await invoker.wait_idle()

    assert raw_channel.sent_events()[-1]["response"]["instructions"] == "Be brief."


@pytest.mark.asyncio
async def test_result_after_close_dropped(
    channel: ControlChannel, raw_channel: FakeDataChannel
) -> None:
    """Test a result arriving after the channel closed is dropped silently."""
    gate = asyncio.Event()
    invoker = ToolInvoker(channel, [EchoTool(gate=gate)])

    invoker.invoke("echo", {"text": "late"})
    assert invoker.pending_count == 1

    channel.close()
    gate.set()
    await invoker.wait_idle()

    assert raw_channel.sent == []
    assert invoker.pending_count == 0


@pytest.mark.asyncio
async def test_tool_error_reported(channel: ControlChannel, raw_channel: FakeDataChannel) -> None:
    """Test ToolError is passed to on_error and nothing is sent."""
    errors: list[ToolError] = []
    invoker = ToolInvoker(channel, [FailingTool()], on_error=errors.append)

    invoker.invoke("broken", {})
    await invoker.wait_idle()

    assert len(errors) == 1
    assert errors[0].tool_name == "broken"
    assert str(errors[0]) == "broken: Location not found"
    assert raw_channel.sent == []


@pytest.mark.asyncio
async def test_aclose_cancels_pending(
    channel: ControlChannel, raw_channel: FakeDataChannel
) -> None:
    """Test aclose cancels in-flight invocations."""
    invoker = ToolInvoker(channel, [EchoTool(gate=asyncio.Event())])

    invoker.invoke("echo", {"text": "never"})
    await asyncio.sleep(0)
    await invoker.aclose()

    assert invoker.pending_count == 0
    assert raw_channel.sent == []
