"""Configuration schema for realtime voice sessions.

Defines Pydantic models for loading and validating client and relay
configuration from YAML files and environment variables.
"""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator

SUPPORTED_VOICES = [
    "alloy",
    "ash",
    "ballad",
    "coral",
    "echo",
    "sage",
    "shimmer",
    "verse",
]


class TurnDetectionConfig(BaseModel):
    """Server-side voice activity detection settings.

    Forwarded verbatim in ``session.update``; the client never interprets
    these timings itself.
    """

    type: Literal["server_vad"] = Field(default="server_vad", description="Only current option")
    threshold: float = Field(
        default=0.5,
        ge=0.0,
        le=1.0,
        description="Activation threshold (0-1)",
    )
    prefix_padding_ms: int = Field(
        default=400,
        ge=0,
        description="Audio included before detected speech",
    )
    silence_duration_ms: int = Field(
        default=700,
        ge=0,
        description="Silence required to end a turn",
    )
    create_response: bool = Field(
        default=True,
        description="Automatically request a response when the turn ends",
    )


class ApiConfig(BaseModel):
    """Realtime API endpoints and session options."""

    base_url: str = Field(
        default="https://api.openai.com/v1/realtime",
        description="WebRTC SDP negotiation endpoint",
    )
    model: str = Field(
        default="gpt-4o-realtime-preview-2024-12-17",
        min_length=1,
        description="Realtime model identifier",
    )
    voice: str = Field(default="verse", description="Assistant voice")
    relay_url: str = Field(
        default="http://localhost:3000",
        description="Base URL of the ephemeral token relay",
    )
    max_output_tokens: int | Literal["inf"] = Field(
        default=1024,
        description="Response length cap (tokens) or 'inf'",
    )
    transcription_model: str | None = Field(
        default="whisper-1",
        description="Input audio transcription model (None disables transcripts)",
    )
    ice_servers: list[str] = Field(
        default_factory=lambda: ["stun:stun.l.google.com:19302"],
        description="STUN/TURN server URLs",
    )
    data_channel_label: str = Field(default="oai-events", min_length=1)
    request_timeout_s: float = Field(
        default=15.0,
        gt=0,
        description="Timeout for credential and SDP exchange requests",
    )

    @field_validator("voice")
    @classmethod
    def validate_voice(cls, v: str) -> str:
        """Validate that the voice is one the Realtime API offers."""
        if v not in SUPPORTED_VOICES:
            raise ValueError(f"voice must be one of {SUPPORTED_VOICES}, got '{v}'")
        return v

    @field_validator("max_output_tokens")
    @classmethod
    def validate_max_output_tokens(cls, v: int | str) -> int | str:
        """Validate response cap range (1-4096 or 'inf')."""
        if isinstance(v, int) and not 1 <= v <= 4096:
            raise ValueError(f"max_output_tokens must be 1-4096 or 'inf', got {v}")
        return v

    @field_validator("relay_url", "base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"URL must start with http:// or https://, got '{v}'")
        return v.rstrip("/")


class InstructionsConfig(BaseModel):
    """Prompt instructions sent to the model."""

    welcome: str = Field(
        default=(
            "Greet the user and ask them what you can assist them with. "
            "Talk quickly and succinctly."
        ),
        description="One-time greeting instructions",
    )
    default: str = Field(
        default="Talk quickly and succinctly. Be concise. Time is of the essence.",
        description="Session-wide instructions",
    )
    weather: str = Field(
        default=(
            "Describe the weather in a conversational way for someone going for a walk. "
            "Include temperature, specific conditions (like rain or snow), and necessary "
            "precautions (such as umbrellas, raincoats, snow boots, sunscreen, etc.)."
        ),
        description="Instructions used when answering with weather tool results",
    )


class ToolsConfig(BaseModel):
    """Function-calling configuration.

    Disabled by default; the basic voice session declares no tools.
    """

    enabled: bool = Field(default=False, description="Declare tools and handle function calls")
    geocoding_url: str = Field(
        default="https://geocoding-api.open-meteo.com/v1/search",
        description="Open-Meteo geocoding endpoint",
    )
    forecast_url: str = Field(
        default="https://api.open-meteo.com/v1/forecast",
        description="Open-Meteo forecast endpoint",
    )
    default_latitude: float | None = Field(default=None, ge=-90.0, le=90.0)
    default_longitude: float | None = Field(default=None, ge=-180.0, le=180.0)
    request_timeout_s: float = Field(default=10.0, gt=0)

    @model_validator(mode="after")
    def validate_default_location(self) -> "ToolsConfig":
        """Latitude and longitude must be configured together."""
        if (self.default_latitude is None) != (self.default_longitude is None):
            raise ValueError("default_latitude and default_longitude must be set together")
        return self


class MediaConfig(BaseModel):
    """Local audio capture and remote audio playback."""

    input_device: str = Field(
        default="default",
        description="Capture device passed to FFmpeg (e.g. 'default', 'hw:0', ':0')",
    )
    input_format: str = Field(
        default="pulse",
        description="FFmpeg input format (pulse, alsa, avfoundation, dshow)",
    )
    silent: bool = Field(
        default=False,
        description="Send silence instead of capturing a microphone",
    )
    record_path: Path | None = Field(
        default=None,
        description="Write assistant audio to this file instead of discarding it",
    )


class RelayConfig(BaseModel):
    """Token relay server configuration."""

    host: str = Field(default="0.0.0.0", description="Bind host address")  # noqa: S104
    port: int = Field(default=3000, ge=1, le=65535, description="Bind port")
    upstream_url: str = Field(
        default="https://api.openai.com/v1/realtime/sessions",
        description="Endpoint that mints ephemeral session keys",
    )
    api_key: str | None = Field(
        default=None,
        description="Server-side OpenAI API key (normally from OPENAI_API_KEY)",
    )
    request_timeout_s: float = Field(default=15.0, gt=0)


class RealtimeConfig(BaseModel):
    """Root configuration."""

    api: ApiConfig = Field(default_factory=ApiConfig)
    turn_detection: TurnDetectionConfig = Field(default_factory=TurnDetectionConfig)
    instructions: InstructionsConfig = Field(default_factory=InstructionsConfig)
    tools: ToolsConfig = Field(default_factory=ToolsConfig)
    media: MediaConfig = Field(default_factory=MediaConfig)
    relay: RelayConfig = Field(default_factory=RelayConfig)

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels}, got '{v}'")
        return v.upper()

    @classmethod
    def from_yaml(cls, path: Path) -> "RealtimeConfig":
        """Load configuration from YAML file with environment variable overrides.

        Args:
            path: Path to YAML configuration file

        Returns:
            Loaded configuration

        Raises:
            FileNotFoundError: If configuration file doesn't exist
            ValueError: If YAML is invalid or validation fails
        """
        import yaml  # type: ignore[import-untyped]

        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")

        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise ValueError(f"Configuration root must be a mapping: {path}")

        return cls.model_validate(apply_env_overrides(data))

    @classmethod
    def from_yaml_with_defaults(cls, path: Path | None = None) -> "RealtimeConfig":
        """Load configuration from YAML or use defaults if file doesn't exist.

        Environment overrides apply in both cases.
        """
        if path is not None and path.exists():
            return cls.from_yaml(path)

        return cls.model_validate(apply_env_overrides({}))


def apply_env_overrides(data: dict) -> dict:
    """Overlay environment variables (and a local .env file) onto raw config data."""
    import os

    from dotenv import load_dotenv

    load_dotenv()

    if model := os.getenv("OPENAI_REALTIME_MODEL"):
        data.setdefault("api", {})["model"] = model

    if voice := os.getenv("OPENAI_REALTIME_VOICE"):
        data.setdefault("api", {})["voice"] = voice

    if relay_url := os.getenv("RELAY_URL"):
        data.setdefault("api", {})["relay_url"] = relay_url

    if api_key := os.getenv("OPENAI_API_KEY"):
        data.setdefault("relay", {})["api_key"] = api_key

    if port := os.getenv("PORT"):
        data.setdefault("relay", {})["port"] = int(port)

    if log_level := os.getenv("LOG_LEVEL"):
        data["log_level"] = log_level

    return data
