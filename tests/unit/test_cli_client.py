"""Unit tests for the console client."""

from unittest.mock import AsyncMock, Mock, patch

import pytest

from realtime_webrtc.config import RealtimeConfig
from realtime_webrtc.errors import AuthError, ChannelError
from realtime_webrtc.session import RealtimeSession
from realtime_webrtc.transcript import Speaker, TranscriptEntry
from voice_client.cli_client import HELP_TEXT, CLIClient, ConsoleListener


@pytest.fixture
def client() -> CLIClient:
    client = CLIClient(RealtimeConfig())
    client.controller = Mock()
    client.controller.connect = AsyncMock()
    client.controller.disconnect = AsyncMock()
    client.controller.session = None
    return client


class TestConsoleListener:
    """Test suite for console rendering."""

    def test_final_entry_printed(self, capsys: pytest.CaptureFixture[str]) -> None:
        """Test final entries are labelled by speaker."""
        listener = ConsoleListener()

        listener.on_transcript_updated(TranscriptEntry(Speaker.ASSISTANT, "Hello!"))
        listener.on_transcript_updated(TranscriptEntry(Speaker.USER, "Hi"))

        output = capsys.readouterr().out
        assert "AI: Hello!" in output
        assert "You: Hi" in output

    def test_partial_entry_hidden_unless_verbose(
        self, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """Test partial entries only print in verbose mode."""
        entry = TranscriptEntry(Speaker.USER, "Speaking...", is_final=False)

        ConsoleListener().on_transcript_updated(entry)
        assert capsys.readouterr().out == ""

        ConsoleListener(verbose=True).on_transcript_updated(entry)
        assert "You: Speaking... ..." in capsys.readouterr().out

    def test_status_printed(self, capsys: pytest.CaptureFixture[str]) -> None:
        """Test status text is bracketed."""
        ConsoleListener().on_status("Connected")

        assert "[Connected]" in capsys.readouterr().out


class TestCLIClient:
    """Test suite for command handling."""

    def test_init(self) -> None:
        """Test CLIClient initialization."""
        client = CLIClient(RealtimeConfig(), verbose=True)

        assert client.verbose is True
        assert client.running is True
        assert client.controller.session is None

    @pytest.mark.asyncio
    async def test_quit(self, client: CLIClient) -> None:
        """Test /quit stops the input loop."""
        await client.handle_command("quit")

        assert client.running is False

    @pytest.mark.asyncio
    async def test_help(self, client: CLIClient, capsys: pytest.CaptureFixture[str]) -> None:
        """Test /help prints the command list."""
        await client.handle_command("help")

        assert HELP_TEXT in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_mute_without_session(
        self, client: CLIClient, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """Test /mute without a session reports it."""
        await client.handle_command("mute")

        assert "No active session" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_mute_and_unmute(self, client: CLIClient) -> None:
        """Test /mute and /unmute toggle the microphone."""
        session = Mock(spec=RealtimeSession)
        session.set_microphone_enabled.return_value = True
        client.controller.session = session

        await client.handle_command("mute")
        await client.handle_command("unmute")

        assert [c.args for c in session.set_microphone_enabled.call_args_list] == [
            (False,),
            (True,),
        ]

    @pytest.mark.asyncio
    async def test_connect_error_logged(self, client: CLIClient) -> None:
        """Test /connect failures do not escape the command loop."""
        client.controller.connect.side_effect = AuthError("Failed to get session key")

        await client.handle_command("connect")

        client.controller.connect.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_disconnect(self, client: CLIClient) -> None:
        """Test /disconnect closes the session."""
        await client.handle_command("disconnect")

        client.controller.disconnect.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_unknown_command(
        self, client: CLIClient, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """Test unknown commands print a hint."""
        await client.handle_command("dance")

        assert "Unknown command: dance" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_send_text_without_session(
        self, client: CLIClient, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """Test typed text without a session prints a hint."""
        await client.send_text("Hello")

        assert "Not connected" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_send_text(self, client: CLIClient) -> None:
        """Test typed text is forwarded to the session."""
        session = Mock(spec=RealtimeSession)
        client.controller.session = session

        await client.send_text("Hello")

        session.send_text.assert_called_once_with("Hello")

    @pytest.mark.asyncio
    async def test_send_text_channel_not_ready(
        self, client: CLIClient, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """Test ChannelError is reported, not raised."""
        session = Mock(spec=RealtimeSession)
        session.send_text.side_effect = ChannelError("Data channel not ready")
        client.controller.session = session

        await client.send_text("Hello")

        assert "Cannot send: Data channel not ready" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_input_loop_dispatches(self, client: CLIClient) -> None:
        """Test the input loop routes commands and text until EOF."""
        session = Mock(spec=RealtimeSession)
        client.controller.session = session
        lines = iter(["", "Hello", "/disconnect"])

        def fake_input(prompt: str = "") -> str:
            try:
                return next(lines)
            except StopIteration:
                raise EOFError from None

        with patch("builtins.input", side_effect=fake_input):
            await client.input_loop()

        session.send_text.assert_called_once_with("Hello")
        client.controller.disconnect.assert_awaited_once()
        assert client.running is False
