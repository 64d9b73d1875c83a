"""Tests for prompt/response grouping of transcript entries."""

from hookdesk.models import TokenUsage, TranscriptEntry, TranscriptRole
from hookdesk.transcripts.grouper import (
    build_cache,
    filtered_entries,
    find_final_assistant_ids,
    is_direct_user_input,
    is_intermediate_assistant,
)


def prompt(text: str) -> TranscriptEntry:
    return TranscriptEntry(
        role=TranscriptRole.USER,
        text=text,
        entry_type="user",
        message_role="user",
        message_content_is_string=True,
    )


def tool_result(text: str = "tool_result: ok") -> TranscriptEntry:
    return TranscriptEntry(
        role=TranscriptRole.USER,
        text=text,
        entry_type="user",
        message_role="user",
        message_content_is_string=False,
    )


def reply(text: str, request_id: str | None = None, tokens: int | None = None) -> TranscriptEntry:
    usage = TokenUsage(input_tokens=tokens, output_tokens=1) if tokens is not None else None
    return TranscriptEntry(
        role=TranscriptRole.ASSISTANT,
        text=text,
        entry_type="assistant",
        message_role="assistant",
        request_id=request_id,
        usage=usage,
    )


class TestDirectUserInput:
    def test_typed_prompt(self) -> None:
        assert is_direct_user_input(prompt("fix the bug")) is True

    def test_block_content_is_not_typed(self) -> None:
        assert is_direct_user_input(tool_result("looks normal")) is False

    def test_meta_is_not_typed(self) -> None:
        entry = prompt("caveat")
        entry.is_meta = True

        assert is_direct_user_input(entry) is False

    def test_system_markers(self) -> None:
        for text in ("<command-name>/clear</command-name>", "<system-reminder>x", "see tool_use_id 1"):
            assert is_direct_user_input(prompt(text)) is False

    def test_falls_back_to_role_without_type_info(self) -> None:
        assert is_direct_user_input(TranscriptEntry(role=TranscriptRole.USER, text="hi")) is True
        assert is_direct_user_input(TranscriptEntry(role=TranscriptRole.SYSTEM, text="hi")) is False

    def test_assistant_type_with_user_message_is_rejected(self) -> None:
        entry = TranscriptEntry(
            role=TranscriptRole.USER,
            text="hi",
            entry_type="assistant",
            message_role="user",
            message_content_is_string=True,
        )

        assert is_direct_user_input(entry) is False


class TestFinalAssistant:
    def test_last_assistant_of_each_group_is_final(self) -> None:
        lead = reply("orphan")
        p1, a1, t1, a2 = prompt("one"), reply("step"), tool_result(), reply("done one")
        p2, a3 = prompt("two"), reply("done two")
        entries = [lead, p1, a1, t1, a2, p2, a3]

        assert find_final_assistant_ids(entries) == {lead.id, a2.id, a3.id}
        assert is_intermediate_assistant(a1, entries) is True
        assert is_intermediate_assistant(a2, entries) is False
        assert is_intermediate_assistant(p1, entries) is False

    def test_filtered_hides_intermediate_and_tool_results(self) -> None:
        p1, a1, t1, a2 = prompt("one"), reply("step"), tool_result(), reply("done")
        entries = [p1, a1, t1, a2]

        assert filtered_entries(entries, show_detail=False) == [p1, a2]
        assert filtered_entries(entries, show_detail=True) == entries

    def test_empty(self) -> None:
        assert find_final_assistant_ids([]) == set()
        cache = build_cache([])
        assert cache.is_intermediate == {}
        assert cache.cumulative_usage == {}


class TestBuildCache:
    def test_usage_deduplicated_by_request_and_attached_to_final(self) -> None:
        p1 = prompt("go")
        a1 = reply("thinking", "r1", tokens=100)
        a2 = reply("thinking more", "r1", tokens=100)  # same request streamed twice
        t1 = tool_result()
        a3 = reply("answer", "r2", tokens=50)
        a4 = reply("no request id", None, tokens=5)
        entries = [p1, a1, a2, t1, a3, a4]

        cache = build_cache(entries)

        assert cache.is_intermediate == {a1.id: True, a2.id: True, a3.id: True, a4.id: False}
        assert list(cache.cumulative_usage) == [a4.id]
        usage = cache.cumulative_usage[a4.id]
        assert usage.input_tokens == 155
        assert usage.output_tokens == 3

    def test_groups_are_separate(self) -> None:
        lead = reply("before any prompt", "r0", tokens=7)
        p1, a1 = prompt("one"), reply("a", "r1", tokens=10)
        p2, a2 = prompt("two"), reply("b", "r1", tokens=20)  # request ids reset per group
        cache = build_cache([lead, p1, a1, p2, a2])

        assert cache.cumulative_usage[lead.id].input_tokens == 7
        assert cache.cumulative_usage[a1.id].input_tokens == 10
        assert cache.cumulative_usage[a2.id].input_tokens == 20

    def test_final_without_usage_gets_zero(self) -> None:
        p1, a1 = prompt("one"), reply("plain")

        cache = build_cache([p1, a1])

        assert cache.cumulative_usage[a1.id].total_tokens == 0
