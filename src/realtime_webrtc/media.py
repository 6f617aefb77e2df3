"""Local audio capture and remote audio playback.

Wraps aiortc media helpers behind a small provider interface so the session
negotiator acquires exactly one capture device per attempt and can release it
from any state.
"""

import logging
from abc import ABC, abstractmethod
from pathlib import Path

import av
import av.error
import numpy as np
from aiortc import MediaStreamTrack
from aiortc.contrib.media import MediaBlackhole, MediaPlayer, MediaRecorder
from aiortc.mediastreams import AudioStreamTrack

from realtime_webrtc.config import MediaConfig
from realtime_webrtc.errors import MediaAccessError

logger = logging.getLogger(__name__)


class MutableAudioTrack(MediaStreamTrack):
    """Audio track that can be muted without renegotiating.

    While disabled, frames pulled from the source are replaced by silence of
    the same shape and timing, so the remote side keeps receiving a steady
    stream.
    """

    kind = "audio"

    def __init__(self, source: MediaStreamTrack) -> None:
        super().__init__()
        self._source = source
        self.enabled = True

    async def recv(self) -> av.AudioFrame:
        frame = await self._source.recv()
        if self.enabled:
            return frame

        samples = frame.to_ndarray()
        silent = av.AudioFrame.from_ndarray(
            np.zeros_like(samples),
            format=frame.format.name,
            layout=frame.layout.name,
        )
        silent.sample_rate = frame.sample_rate
        silent.pts = frame.pts
        silent.time_base = frame.time_base
        return silent

    def stop(self) -> None:
        super().stop()
        self._source.stop()


class MediaProvider(ABC):
    """Source of the local audio track for a session."""

    @abstractmethod
    async def acquire(self) -> MediaStreamTrack:
        """Acquire the capture device and return its audio track.

        Raises:
            MediaAccessError: If the device is denied or unavailable
        """

    @abstractmethod
    async def release(self) -> None:
        """Release the capture device. Safe to call when nothing is held."""


class MicrophoneProvider(MediaProvider):
    """Captures a system microphone through FFmpeg (PulseAudio, ALSA, ...)."""

    def __init__(self, device: str = "default", input_format: str = "pulse") -> None:
        self.device = device
        self.input_format = input_format
        self._player: MediaPlayer | None = None

    async def acquire(self) -> MediaStreamTrack:
        if self._player is not None:
            raise MediaAccessError("Capture device is already acquired")

        try:
            player = MediaPlayer(self.device, format=self.input_format)
        except (OSError, av.error.FFmpegError) as e:
            logger.error(
                "Failed to open capture device",
                extra={"device": self.device, "format": self.input_format, "error": str(e)},
            )
            raise MediaAccessError(f"Error accessing microphone: {e}") from e

        if player.audio is None:
            _stop_player(player)
            raise MediaAccessError(f"Capture device '{self.device}' has no audio stream")

        self._player = player
        logger.info(
            "Microphone acquired",
            extra={"device": self.device, "format": self.input_format},
        )
        return player.audio

    async def release(self) -> None:
        if self._player is None:
            return

        _stop_player(self._player)
        self._player = None
        logger.info("Microphone released", extra={"device": self.device})


class SilenceProvider(MediaProvider):
    """Sends silence; for text-only use or hosts without a microphone."""

    def __init__(self) -> None:
        self._track: AudioStreamTrack | None = None

    async def acquire(self) -> MediaStreamTrack:
        self._track = AudioStreamTrack()
        return self._track

    async def release(self) -> None:
        if self._track is not None:
            self._track.stop()
            self._track = None


def _stop_player(player: MediaPlayer) -> None:
    if player.audio is not None:
        player.audio.stop()
    if player.video is not None:
        player.video.stop()


def create_media_provider(config: MediaConfig) -> MediaProvider:
    """Select a media provider from configuration."""
    if config.silent:
        return SilenceProvider()
    return MicrophoneProvider(device=config.input_device, input_format=config.input_format)


class RemoteAudioSink:
    """Consumes the assistant's audio track.

    Records to a file when a path is given, otherwise discards frames so the
    track keeps flowing.
    """

    def __init__(self, record_path: Path | None = None) -> None:
        self.record_path = record_path
        self._sink: MediaRecorder | MediaBlackhole | None = None

    @property
    def is_attached(self) -> bool:
        return self._sink is not None

    async def attach(self, track: MediaStreamTrack) -> None:
        """Start consuming the remote audio track. Only the first track is used."""
        if self._sink is not None:
            logger.debug("Remote audio already attached, ignoring track", extra={"id": track.id})
            return

        if self.record_path is not None:
            self._sink = MediaRecorder(str(self.record_path))
        else:
            self._sink = MediaBlackhole()

        self._sink.addTrack(track)
        await self._sink.start()
        logger.info(
            "Remote audio attached",
            extra={"record_path": str(self.record_path) if self.record_path else None},
        )

    async def stop(self) -> None:
        if self._sink is None:
            return

        sink = self._sink
        self._sink = None
        await sink.stop()
