"""Conversation transcript projection.

Keeps the ordered list of user and assistant transcript entries derived from
realtime events. A user turn is represented by one entry that starts as a
partial placeholder and is replaced in place as transcription progresses, so
the completed transcript always replaces the latest partial rather than
appearing after it.

Typical usage:
    transcript = Transcript()

    transcript.update_user_partial("Speaking...")
    transcript.update_user_partial("what's the wea")
    transcript.finalize_user("What's the weather in Oslo?")
    transcript.append_assistant("It is sunny in Oslo.")
"""

import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum


class Speaker(Enum):
    USER = "user"
    ASSISTANT = "assistant"


@dataclass
class TranscriptEntry:
    """Single transcript entry.

    Attributes:
        speaker: Who produced the text.
        text: Transcript or message text.
        is_final: False while the entry is an in-progress user partial.
        timestamp: Unix timestamp of the last update.
    """

    speaker: Speaker
    text: str
    is_final: bool = True
    timestamp: float = field(default_factory=time.time)


class Transcript:
    """Ordered transcript with in-place partial replacement.

    Attributes:
        entries: Deque of entries, oldest first.
        max_size: Maximum number of entries kept; oldest are evicted.
    """

    def __init__(self, max_size: int = 500) -> None:
        self.entries: deque[TranscriptEntry] = deque(maxlen=max_size)
        self.max_size = max_size
        self._current_user: TranscriptEntry | None = None

    @property
    def last(self) -> TranscriptEntry | None:
        return self.entries[-1] if self.entries else None

    def _pending_user_entry(self) -> TranscriptEntry | None:
        """Return the open user-turn entry, wherever it sits in the transcript."""
        entry = self._current_user
        if entry is None or entry.is_final:
            return None
        if not any(existing is entry for existing in self.entries):
            # Evicted by max_size
            self._current_user = None
            return None
        return entry

    def start_user_turn(self, placeholder: str) -> TranscriptEntry:
        """Open a new partial user entry.

        A previous partial that never completed is closed as-is.
        """
        pending = self._pending_user_entry()
        if pending is not None:
            pending.is_final = True

        entry = TranscriptEntry(speaker=Speaker.USER, text=placeholder, is_final=False)
        self.entries.append(entry)
        self._current_user = entry
        return entry

    def update_user_partial(self, text: str) -> TranscriptEntry:
        """Replace the pending partial user entry, creating one if needed.

        Returns:
            The (new or updated) partial entry
        """
        entry = self._pending_user_entry()
        if entry is None:
            entry = TranscriptEntry(speaker=Speaker.USER, text=text, is_final=False)
            self.entries.append(entry)
            self._current_user = entry
        else:
            entry.text = text
            entry.timestamp = time.time()
        return entry

    def finalize_user(self, text: str) -> TranscriptEntry:
        """Replace the pending partial user entry with the completed transcript.

        The partial is replaced where it sits, even when assistant entries
        were appended after it. Appends a final entry when no partial is
        pending.
        """
        entry = self._pending_user_entry()
        self._current_user = None
        if entry is None:
            entry = TranscriptEntry(speaker=Speaker.USER, text=text)
            self.entries.append(entry)
        else:
            entry.text = text
            entry.is_final = True
            entry.timestamp = time.time()
        return entry

    def append_user(self, text: str) -> TranscriptEntry:
        """Append a final user entry (typed text)."""
        entry = TranscriptEntry(speaker=Speaker.USER, text=text)
        self.entries.append(entry)
        return entry

    def append_assistant(self, text: str) -> TranscriptEntry:
        """Append a final assistant entry."""
        entry = TranscriptEntry(speaker=Speaker.ASSISTANT, text=text)
        self.entries.append(entry)
        return entry

    def clear(self) -> None:
        """Clear all entries."""
        self.entries.clear()
        self._current_user = None

    def get_recent(self, count: int = 5) -> list[str]:
        """Get N most recent entry texts, most recent first."""
        recent = list(self.entries)[-count:]
        recent.reverse()
        return [entry.text for entry in recent]

    def __len__(self) -> int:
        return len(self.entries)

    def __repr__(self) -> str:
        return f"Transcript(size={len(self.entries)}, max_size={self.max_size})"
