"""Tests for transcript parsing, merging and the archive store."""

import hashlib
import json
from pathlib import Path

import pytest

from hookdesk.models import SessionTranscript, TranscriptEntry, TranscriptRole
from hookdesk.transcripts.archiver import (
    archive_transcript,
    build_entry,
    merge_entries,
    parse_transcript,
)
from hookdesk.transcripts.store import ArchiveStore, legacy_filename


def _user(text: str, ts: str | None) -> dict:
    return {"type": "user", "message": {"role": "user", "content": text}, "timestamp": ts}


def _assistant(text: str, ts: str | None, request_id: str | None = None, usage: dict | None = None) -> dict:
    message = {"role": "assistant", "content": [{"type": "text", "text": text}]}
    if usage:
        message["usage"] = usage
    record = {"type": "assistant", "message": message, "timestamp": ts}
    if request_id:
        record["requestId"] = request_id
    return record


class TestBuildEntry:
    def test_role_precedence(self) -> None:
        entry = build_entry({"role": "system", "type": "user", "message": {"role": "assistant", "content": "x"}})

        assert entry.role == TranscriptRole.SYSTEM
        assert entry.entry_type == "user"
        assert entry.message_role == "assistant"

    def test_text_from_content_blocks(self) -> None:
        entry = build_entry(
            {
                "type": "assistant",
                "message": {"content": ["plain", {"text": " block "}, {"content": "nested"}, {"type": "image"}]},
            }
        )

        assert entry.text == "plain block nested"
        assert entry.message_content_is_string is False

    def test_top_level_content_wins(self) -> None:
        entry = build_entry({"role": "user", "content": "  top  ", "message": {"content": "inner"}})

        assert entry.text == "top"

    def test_no_text_is_skipped(self) -> None:
        assert build_entry({"type": "user", "message": {"content": "   "}}) is None
        assert build_entry(["not", "an", "object"]) is None

    def test_unknown_role(self) -> None:
        entry = build_entry({"type": "summary", "text": "compacted"})

        assert entry.role == TranscriptRole.UNKNOWN

    def test_timestamps(self) -> None:
        iso = build_entry({"role": "user", "text": "a", "timestamp": "2024-01-02T03:04:05.678Z"})
        numeric = build_entry({"role": "user", "text": "a", "created_at": 1700000000.5})
        string_number = build_entry({"role": "user", "text": "a", "created_at": "1700000000"})

        assert iso.created_at == pytest.approx(1704164645.678)
        assert numeric.created_at == 1700000000.5
        assert string_number.created_at == 1700000000.0

    def test_meta_request_and_usage(self) -> None:
        entry = build_entry(
            {
                **_assistant("hi", "2024-01-01T00:00:00Z", "req_1", {"input_tokens": 3, "output_tokens": 4, "cache_read_input_tokens": 10}),
                "isMeta": True,
            }
        )

        assert entry.is_meta is True
        assert entry.request_id == "req_1"
        assert entry.usage.input_tokens == 3
        assert entry.usage.cache_read_input_tokens == 10
        assert entry.usage.cache_creation_input_tokens is None


class TestParseTranscript:
    def test_skips_bad_lines(self, write_transcript) -> None:
        path = write_transcript(
            [
                _user("hello", "2024-01-01T00:00:00Z"),
                "{ not json",
                "",
                {"type": "user", "message": {"content": ""}},
                _assistant("hi there", "2024-01-01T00:00:01Z"),
            ]
        )

        entries = parse_transcript(path)

        assert [e.text for e in entries] == ["hello", "hi there"]
        assert entries[0].message_content_is_string is True

    def test_missing_file_is_empty(self, tmp_path) -> None:
        assert parse_transcript(tmp_path / "nope.jsonl") == []


class TestMerge:
    def test_duplicates_removed_and_sorted(self) -> None:
        a = TranscriptEntry(role=TranscriptRole.USER, text="a", created_at=2.0)
        b = TranscriptEntry(role=TranscriptRole.ASSISTANT, text="b", created_at=3.0)
        early = TranscriptEntry(role=TranscriptRole.USER, text="early", created_at=1.0)
        a_again = TranscriptEntry(role=TranscriptRole.USER, text="a", created_at=2.0)

        merged = merge_entries([a, b], [a_again, early])

        assert [e.text for e in merged] == ["early", "a", "b"]
        assert merged[1].id == a.id

    def test_first_archive_is_taken_as_parsed(self) -> None:
        new = [
            TranscriptEntry(role=TranscriptRole.USER, text="late", created_at=9.0),
            TranscriptEntry(role=TranscriptRole.USER, text="early", created_at=1.0),
        ]

        assert merge_entries([], new) == new

    def test_ties_keep_existing_then_new_order(self) -> None:
        existing = [
            TranscriptEntry(role=TranscriptRole.USER, text=f"old{i}") for i in range(10)
        ]
        new = [
            TranscriptEntry(role=TranscriptRole.ASSISTANT, text=f"new{i}", created_at=0.0)
            for i in range(10)
        ]

        merged = merge_entries(existing, new)

        assert [e.text for e in merged] == [e.text for e in existing + new]


class TestArchiveTranscript:
    def test_archives_and_summarizes(self, write_transcript) -> None:
        path = write_transcript(
            [
                _user("first", "2024-01-01T00:00:00Z"),
                _assistant("answer one", "2024-01-01T00:00:01Z", "r1", {"input_tokens": 10, "output_tokens": 5}),
                _assistant("answer one", "2024-01-01T00:00:02Z", "r1", {"input_tokens": 10, "output_tokens": 5}),
                _user("second", "2024-01-01T00:00:03Z"),
                _assistant("answer two", "2024-01-01T00:00:04Z", "r2", {"input_tokens": 1, "output_tokens": 1}),
            ]
        )

        summary = archive_transcript("sess", path)

        assert summary.last_prompt == "second"
        assert summary.last_response == "answer two"
        assert summary.usage.input_tokens == 11
        assert summary.usage.output_tokens == 6
        stored = ArchiveStore().load("sess")
        assert len(stored.entries) == 5

    def test_rearchive_merges_without_duplicates(self, write_transcript) -> None:
        path = write_transcript([_user("first", "2024-01-01T00:00:00Z")])
        archive_transcript("sess", path)
        path = write_transcript(
            [_user("first", "2024-01-01T00:00:00Z"), _assistant("reply", "2024-01-01T00:00:01Z")]
        )

        summary = archive_transcript("sess", path)

        assert summary.last_response == "reply"
        assert [e.text for e in ArchiveStore().load("sess").entries] == ["first", "reply"]

    def test_untimestamped_lines_keep_log_order(self, write_transcript) -> None:
        records = []
        for i in range(20):
            records += [_user(f"q{i}", None), _assistant(f"a{i}", None)]
        expected = [text for i in range(20) for text in (f"q{i}", f"a{i}")]

        first = archive_transcript("sess", write_transcript(records))
        again = archive_transcript("sess", write_transcript(records + [_user("q20", None)]))

        assert (first.last_prompt, first.last_response) == ("q19", "a19")
        assert again.last_prompt == "q20"
        assert [e.text for e in ArchiveStore().load("sess").entries] == expected + ["q20"]

    def test_equal_timestamps_keep_log_order(self, write_transcript) -> None:
        ts = "2024-01-01T00:00:00Z"
        records = [_user("prompt", ts), _assistant("step", ts), _assistant("final", ts)]

        first = archive_transcript("sess", write_transcript(records))
        again = archive_transcript("sess", write_transcript(records))

        assert first.last_response == "final"
        assert again.last_response == "final"
        assert [e.text for e in ArchiveStore().load("sess").entries] == ["prompt", "step", "final"]

    def test_nothing_to_archive(self, write_transcript, tmp_path) -> None:
        empty = write_transcript([], name="empty.jsonl")

        assert archive_transcript("", empty) is None
        assert archive_transcript("sess", None) is None
        assert archive_transcript("sess", str(tmp_path / "missing.jsonl")) is None
        assert archive_transcript("sess", empty) is None

    def test_expands_home(self, write_transcript, monkeypatch, tmp_path) -> None:
        write_transcript([_user("hi", "2024-01-01T00:00:00Z")], name="home.jsonl")
        monkeypatch.setenv("HOME", str(tmp_path))

        assert archive_transcript("sess", "~/home.jsonl").last_prompt == "hi"


class TestArchiveStore:
    def test_hashed_filename(self, isolated_dirs) -> None:
        store = ArchiveStore()
        store.save(SessionTranscript(session_id="a/b"))

        expected = Path(isolated_dirs["data"]) / "archives" / f"{hashlib.sha256(b'a/b').hexdigest()}.json"
        assert expected.exists()
        assert store.archive_size("a/b") == expected.stat().st_size

    def test_legacy_archive_is_migrated(self) -> None:
        store = ArchiveStore()
        legacy = store.legacy_path_for("a/b")
        legacy.parent.mkdir(parents=True, exist_ok=True)
        legacy.write_text(
            SessionTranscript(session_id="a/b", last_prompt="old").model_dump_json(), encoding="utf-8"
        )

        loaded = store.load("a/b")

        assert loaded.last_prompt == "old"
        assert store.path_for("a/b").exists()

    def test_delete_removes_both_layouts(self) -> None:
        store = ArchiveStore()
        store.save(SessionTranscript(session_id="abc"))
        store.legacy_path_for("abc").write_text("{}", encoding="utf-8")

        store.delete("abc")

        assert not store.path_for("abc").exists()
        assert not store.legacy_path_for("abc").exists()
        assert store.archive_size("abc") == 0

    def test_corrupt_archive_is_absent(self) -> None:
        store = ArchiveStore()
        store.path_for("abc").parent.mkdir(parents=True, exist_ok=True)
        store.path_for("abc").write_text(json.dumps({"entries": "nope"}), encoding="utf-8")

        assert store.load("abc") is None


def test_legacy_filename() -> None:
    assert legacy_filename("abc-DEF_1") == "abc-DEF_1"
    assert legacy_filename("a/b c") == "a_b_c"
    assert legacy_filename("") == "session"
