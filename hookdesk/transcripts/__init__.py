"""Transcript archiving and prompt/response grouping."""

from hookdesk.transcripts.archiver import ArchiveSummary, archive_transcript, parse_transcript
from hookdesk.transcripts.grouper import TranscriptEntryCache, build_cache, filtered_entries
from hookdesk.transcripts.store import ArchiveStore, archive_store

__all__ = [
    "ArchiveStore",
    "ArchiveSummary",
    "TranscriptEntryCache",
    "archive_store",
    "archive_transcript",
    "build_cache",
    "filtered_entries",
    "parse_transcript",
]
