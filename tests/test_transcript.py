from __future__ import annotations

from datetime import datetime
from pathlib import Path

import pytest

from models import TRANSLATION_FAILED_TEXT, AudioClip, EntryStatus, Language
from recorder import encode_wav
from transcript import RecordingStore, TranscriptStore


def _clip(seconds: float = 1.0) -> AudioClip:
    data = encode_wav(b"\x00\x00" * int(16000 * seconds))
    return AudioClip(
        data=data,
        duration_seconds=seconds,
        recorded_at=datetime(2024, 5, 1, 13, 45, 7),
    )


def test_entries_get_increasing_ids() -> None:
    store = TranscriptStore()
    first = store.append("一", Language.JAPANESE)
    second = store.append("二", Language.TRADITIONAL_CHINESE)

    assert (first.id, second.id) == (1, 2)
    assert [e.original_text for e in store] == ["一", "二"]
    assert first.translated_text is None
    assert first.status == EntryStatus.PENDING


def test_complete_updates_by_id_not_position() -> None:
    store = TranscriptStore()
    a = store.append("A", Language.JAPANESE)
    b = store.append("B", Language.JAPANESE)

    store.complete(b.id, "b")
    store.complete(a.id, "a")

    assert [(e.original_text, e.translated_text) for e in store] == [("A", "a"), ("B", "b")]


def test_settled_entry_never_reverts() -> None:
    store = TranscriptStore()
    entry = store.append("A", Language.JAPANESE)

    assert store.fail(entry.id) is not None
    assert store.complete(entry.id, "late") is None

    settled = store.get(entry.id)
    assert settled.status == EntryStatus.FAILED
    assert settled.translated_text == TRANSLATION_FAILED_TEXT


def test_unknown_entry_raises() -> None:
    with pytest.raises(KeyError):
        TranscriptStore().complete(99, "x")


def test_render_plain_text() -> None:
    store = TranscriptStore()
    entry = store.append("こんにちは", Language.JAPANESE)
    store.complete(entry.id, "你好")
    store.append("謝謝", Language.TRADITIONAL_CHINESE)

    assert store.render_plain_text() == (
        "[ja-JP] こんにちは\n  ↳ [zh-TW] 你好\n\n"
        "[zh-TW] 謝謝\n  ↳ [ja-JP] ..."
    )


def test_recordings_are_named_and_ordered() -> None:
    store = RecordingStore()
    first = store.add(_clip(1.0))
    second = store.add(_clip(75.0))

    assert [r.id for r in store] == [first.id, second.id]
    assert first.display_name == "Recording - 2024-05-01 13:45:07"
    assert first.duration_label == "0:01"
    assert second.duration_label == "1:15"


def test_delete_releases_clip_exactly_once() -> None:
    store = RecordingStore()
    recording = store.add(_clip())

    assert store.delete(recording.id) is True
    assert store.delete(recording.id) is False
    assert recording.clip.released is True
    assert recording.clip.release() is False
    assert len(store) == 0


def test_ids_are_not_reused_after_delete() -> None:
    store = RecordingStore()
    first = store.add(_clip())
    store.delete(first.id)
    second = store.add(_clip())

    assert second.id != first.id


def test_clear_releases_everything() -> None:
    store = RecordingStore()
    clips = [store.add(_clip()).clip for _ in range(3)]

    store.clear()

    assert all(clip.released for clip in clips)
    assert len(store) == 0


def test_export_writes_sanitized_wav(tmp_path: Path) -> None:
    store = RecordingStore()
    recording = store.add(_clip())

    path = store.export(recording.id, tmp_path)

    assert path.name == "Recording - 2024-05-01 13-45-07.wav"
    assert path.read_bytes() == recording.clip.data


def test_export_released_clip_raises(tmp_path: Path) -> None:
    store = RecordingStore()
    recording = store.add(_clip())
    recording.clip.release()

    with pytest.raises(ValueError):
        store.export(recording.id, tmp_path)
