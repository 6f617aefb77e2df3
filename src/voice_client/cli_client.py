"""Console client for realtime voice sessions.

Connects to the Realtime API over WebRTC, prints status and transcript
updates, and sends typed lines as text chat messages.
"""

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path

from realtime_webrtc.config import RealtimeConfig
from realtime_webrtc.controller import SessionController
from realtime_webrtc.errors import ChannelError, RealtimeError
from realtime_webrtc.listener import ConversationListener, TurnState
from realtime_webrtc.transcript import Speaker, TranscriptEntry

logger = logging.getLogger(__name__)

HELP_TEXT = """
Commands:
  /mute       - Mute the microphone
  /unmute     - Unmute the microphone
  /connect    - Start a new session
  /disconnect - Close the current session
  /quit       - Exit client
  /help       - Show this help
"""


class ConsoleListener(ConversationListener):
    """Prints conversation notifications to stdout."""

    def __init__(self, verbose: bool = False) -> None:
        self.verbose = verbose

    def on_status(self, message: str) -> None:
        print(f"\n[{message}]")

    def on_turn_state_changed(self, state: TurnState) -> None:
        if self.verbose:
            print(f"\n(turn: {state.value})")

    def on_transcript_updated(self, entry: TranscriptEntry) -> None:
        if not entry.is_final and not self.verbose:
            return
        label = "You" if entry.speaker is Speaker.USER else "AI"
        marker = "" if entry.is_final else " ..."
        print(f"\n{label}: {entry.text}{marker}")


class CLIClient:
    """Interactive console client."""

    def __init__(self, config: RealtimeConfig, verbose: bool = False) -> None:
        self.config = config
        self.verbose = verbose
        self.running = True
        self.controller = SessionController(config, listener=ConsoleListener(verbose))

    async def handle_command(self, command: str) -> None:
        session = self.controller.session

        if command == "quit":
            self.running = False
            print("\nGoodbye!")

        elif command == "help":
            print(HELP_TEXT)

        elif command in ("mute", "unmute"):
            if session is None or not session.set_microphone_enabled(command == "unmute"):
                print("No active session")

        elif command == "connect":
            try:
                await self.controller.connect()
            except RealtimeError as e:
                logger.error("Connection error", extra={"error": str(e)})

        elif command == "disconnect":
            await self.controller.disconnect()

        else:
            print(f"Unknown command: {command}")
            print("Type /help for available commands")

    async def send_text(self, text: str) -> None:
        session = self.controller.session
        if session is None:
            print("Not connected. Type /connect to start a session.")
            return

        try:
            session.send_text(text)
        except ChannelError as e:
            logger.error("Data channel not ready", extra={"error": str(e)})
            print(f"Cannot send: {e}")

    async def input_loop(self) -> None:
        print("\n" + "=" * 60)
        print("Realtime Voice Client")
        print("=" * 60)
        print(HELP_TEXT)
        print("Speak, or type a message and press Enter:\n")

        loop = asyncio.get_running_loop()

        while self.running:
            try:
                text = await loop.run_in_executor(None, input, "")
            except EOFError:
                self.running = False
                break

            text = text.strip()
            if not text:
                continue

            if text.startswith("/"):
                await self.handle_command(text[1:].lower())
            else:
                await self.send_text(text)

    async def run(self) -> int:
        loop = asyncio.get_running_loop()

        def signal_handler() -> None:
            self.running = False
            print("\n\nInterrupted! Press Enter to exit.")

        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, signal_handler)

        try:
            try:
                await self.controller.connect()
            except RealtimeError as e:
                logger.error("Connection error", extra={"error": str(e)})
                print("Type /connect to retry, or /quit to exit.")

            await self.input_loop()
            return 0
        finally:
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.remove_signal_handler(sig)
            await self.controller.aclose()


def main() -> None:
    """Main entry point for the console client."""
    parser = argparse.ArgumentParser(description="Realtime voice chat over WebRTC")
    parser.add_argument(
        "--config",
        type=Path,
        default=Path("configs") / "realtime.yaml",
        help="Path to config YAML file (defaults apply if missing)",
    )
    parser.add_argument("--model", type=str, default=None, help="Realtime model override")
    parser.add_argument("--voice", type=str, default=None, help="Assistant voice override")
    parser.add_argument("--relay-url", type=str, default=None, help="Token relay base URL")
    parser.add_argument("--tools", action="store_true", help="Enable weather function calling")
    parser.add_argument(
        "--silent",
        action="store_true",
        help="Send silence instead of capturing the microphone",
    )
    parser.add_argument(
        "--record",
        type=Path,
        default=None,
        help="Save assistant audio to this file",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose logging")
    args = parser.parse_args()

    try:
        config = RealtimeConfig.from_yaml_with_defaults(args.config)
        overrides = {
            "model": args.model,
            "voice": args.voice,
            "relay_url": args.relay_url,
        }
        api = config.api.model_dump()
        api.update({k: v for k, v in overrides.items() if v is not None})
        config = config.model_copy(update={"api": type(config.api).model_validate(api)})
    except ValueError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        sys.exit(2)

    if args.tools:
        config.tools.enabled = True
    if args.silent:
        config.media.silent = True
    if args.record is not None:
        config.media.record_path = args.record

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else getattr(logging, config.log_level),
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )

    try:
        sys.exit(asyncio.run(CLIClient(config, verbose=args.verbose).run()))
    except KeyboardInterrupt:
        print("\nExiting...")
        sys.exit(0)


if __name__ == "__main__":
    main()
