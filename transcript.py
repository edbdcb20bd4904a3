"""Identity-indexed stores for transcript entries and recordings."""

from __future__ import annotations

import itertools
import logging
import re
from dataclasses import replace
from pathlib import Path
from typing import Iterator, Optional

from models import (
    TRANSLATION_FAILED_TEXT,
    AudioClip,
    EntryStatus,
    Language,
    LogEntry,
    Recording,
)

logger = logging.getLogger(__name__)


class TranscriptStore:
    """Append-only transcript.

    Entries are kept in a mapping keyed by id; display order is a separate
    list of ids. Updates always go through the id, never the position.
    """

    def __init__(self) -> None:
        self._ids = itertools.count(1)
        self._entries: dict[int, LogEntry] = {}
        self._order: list[int] = []

    def __len__(self) -> int:
        return len(self._order)

    def __iter__(self) -> Iterator[LogEntry]:
        return (self._entries[entry_id] for entry_id in self._order)

    def get(self, entry_id: int) -> LogEntry:
        return self._entries[entry_id]

    def append(self, text: str, language: Language) -> LogEntry:
        entry = LogEntry(id=next(self._ids), original_text=text, source_language=language)
        self._entries[entry.id] = entry
        self._order.append(entry.id)
        return entry

    def complete(self, entry_id: int, translated_text: str) -> Optional[LogEntry]:
        return self._settle(entry_id, translated_text, EntryStatus.TRANSLATED)

    def fail(self, entry_id: int) -> Optional[LogEntry]:
        return self._settle(entry_id, TRANSLATION_FAILED_TEXT, EntryStatus.FAILED)

    def _settle(self, entry_id: int, text: str, status: EntryStatus) -> Optional[LogEntry]:
        entry = self._entries[entry_id]
        if not entry.is_pending:
            logger.warning("Entry %d already settled as %s", entry_id, entry.status.value)
            return None
        settled = replace(entry, translated_text=text, status=status)
        self._entries[entry_id] = settled
        return settled

    def render_plain_text(self) -> str:
        blocks = []
        for entry in self:
            translated = entry.translated_text if entry.translated_text is not None else "..."
            blocks.append(
                f"[{entry.source_language.value}] {entry.original_text}\n"
                f"  ↳ [{entry.target_language.value}] {translated}"
            )
        return "\n\n".join(blocks)


class RecordingStore:
    def __init__(self) -> None:
        self._ids = itertools.count(1)
        self._recordings: dict[int, Recording] = {}
        self._order: list[int] = []

    def __len__(self) -> int:
        return len(self._order)

    def __iter__(self) -> Iterator[Recording]:
        return (self._recordings[recording_id] for recording_id in self._order)

    def get(self, recording_id: int) -> Recording:
        return self._recordings[recording_id]

    def add(self, clip: AudioClip) -> Recording:
        recording = Recording(
            id=next(self._ids),
            clip=clip,
            display_name=f"Recording - {clip.recorded_at:%Y-%m-%d %H:%M:%S}",
        )
        self._recordings[recording.id] = recording
        self._order.append(recording.id)
        return recording

    def delete(self, recording_id: int) -> bool:
        recording = self._recordings.pop(recording_id, None)
        if recording is None:
            return False
        self._order.remove(recording_id)
        recording.clip.release()
        return True

    def clear(self) -> None:
        for recording_id in list(self._order):
            self.delete(recording_id)

    def export(self, recording_id: int, directory: Path) -> Path:
        """Write a recording to ``directory`` as a WAV file and return its path."""
        recording = self._recordings[recording_id]
        filename = re.sub(r"[:/]", "-", recording.display_name) + ".wav"
        path = Path(directory) / filename
        path.write_bytes(recording.clip.data)
        return path
