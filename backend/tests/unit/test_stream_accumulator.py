"""Unit tests for StreamAccumulator."""

import json
from typing import AsyncIterator, List

import pytest

from backend.src.models.stream import StreamEvent
from backend.src.services.errors import MalformedToolCallError, ProviderError
from backend.src.services.stream_accumulator import StreamAccumulator


async def _events(items: List[StreamEvent]) -> AsyncIterator[StreamEvent]:
    for item in items:
        yield item


class TestTextAccumulation:
    """Text and reasoning buffers."""

    def test_concatenates_text_and_reasoning(self) -> None:
        acc = StreamAccumulator("groq")
        acc.feed(StreamEvent.reasoning("Je "))
        acc.feed(StreamEvent.text("Bon"))
        acc.feed(StreamEvent.reasoning("réfléchis"))
        acc.feed(StreamEvent.text("jour"))
        acc.feed(StreamEvent.done("stop"))

        turn = acc.finalize()

        assert turn.content == "Bonjour"
        assert turn.reasoning == "Je réfléchis"
        assert turn.tool_calls == []
        assert turn.finish_reason == "stop"

    def test_error_event_raises_provider_error(self) -> None:
        acc = StreamAccumulator("deepseek")
        acc.feed(StreamEvent.text("partial"))

        with pytest.raises(ProviderError) as excinfo:
            acc.feed(StreamEvent.error("deepseek API error: 503", http_status=503))

        assert excinfo.value.http_status == 503
        assert excinfo.value.provider == "deepseek"


class TestToolCallAssembly:
    """Tool-call deltas grouped by index."""

    def test_create_note_arguments_split_across_three_chunks(self) -> None:
        """One logical call streamed in pieces becomes one complete ToolCall."""
        acc = StreamAccumulator("deepseek")
        acc.feed(StreamEvent.tool_call(0, id_delta="call_1", name_delta="create_note", arguments_delta='{"sou'))
        acc.feed(StreamEvent.tool_call(0, arguments_delta='rce_title":'))
        acc.feed(StreamEvent.tool_call(0, arguments_delta='"X"}'))
        acc.feed(StreamEvent.done("tool_calls"))

        turn = acc.finalize()

        assert len(turn.tool_calls) == 1
        call = turn.tool_calls[0]
        assert call.id == "call_1"
        assert call.name == "create_note"
        assert call.arguments == '{"source_title":"X"}'
        assert json.loads(call.arguments) == {"source_title": "X"}

    def test_interleaved_indexes_are_kept_apart_and_ordered(self) -> None:
        acc = StreamAccumulator()
        acc.feed(StreamEvent.tool_call(1, id_delta="b", name_delta="move_note", arguments_delta='{"ref":'))
        acc.feed(StreamEvent.tool_call(0, id_delta="a", name_delta="create_note", arguments_delta="{}"))
        acc.feed(StreamEvent.tool_call(1, arguments_delta='"n1"}'))

        turn = acc.finalize()

        assert [tc.name for tc in turn.tool_calls] == ["create_note", "move_note"]
        assert turn.tool_calls[1].arguments == '{"ref":"n1"}'

    def test_incomplete_json_is_dropped(self) -> None:
        """A stream ending mid-string never yields an executable call."""
        acc = StreamAccumulator()
        acc.feed(StreamEvent.tool_call(0, id_delta="a", name_delta="create_note", arguments_delta='{"source_title": "X'))
        acc.feed(StreamEvent.tool_call(1, id_delta="b", name_delta="list_classeurs", arguments_delta="{}"))

        turn = acc.finalize()

        assert [tc.name for tc in turn.tool_calls] == ["list_classeurs"]
        assert len(turn.dropped) == 1
        assert isinstance(turn.dropped[0], MalformedToolCallError)
        assert turn.dropped[0].index == 0
        assert turn.dropped[0].name == "create_note"

    @pytest.mark.parametrize(
        "name, arguments",
        [
            ("", "{}"),
            ("get_note", ""),
            ("get_note", "{'ref': 'x'}"),
        ],
    )
    def test_missing_name_or_bad_arguments_are_dropped(self, name: str, arguments: str) -> None:
        acc = StreamAccumulator()
        acc.feed(StreamEvent.tool_call(0, id_delta="a", name_delta=name or None, arguments_delta=arguments or None))

        turn = acc.finalize()

        assert turn.tool_calls == []
        assert len(turn.dropped) == 1

    def test_repeated_full_name_is_not_duplicated(self) -> None:
        acc = StreamAccumulator()
        acc.feed(StreamEvent.tool_call(0, id_delta="a", name_delta="get_note", arguments_delta='{"ref":'))
        acc.feed(StreamEvent.tool_call(0, name_delta="get_note", arguments_delta='"n1"}'))

        assert acc.finalize().tool_calls[0].name == "get_note"

    def test_name_resent_with_same_id_before_arguments(self) -> None:
        acc = StreamAccumulator()
        acc.feed(StreamEvent.tool_call(0, id_delta="a", name_delta="list_classeurs"))
        acc.feed(StreamEvent.tool_call(0, id_delta="a", name_delta="list_classeurs"))
        acc.feed(StreamEvent.tool_call(0, arguments_delta="{}"))

        assert acc.finalize().tool_calls[0].name == "list_classeurs"

    def test_equal_name_fragments_are_concatenated(self) -> None:
        """A fragment equal to the name so far is still a fragment."""
        acc = StreamAccumulator()
        acc.feed(StreamEvent.tool_call(0, id_delta="a", name_delta="ab"))
        acc.feed(StreamEvent.tool_call(0, name_delta="ab"))
        acc.feed(StreamEvent.tool_call(0, arguments_delta="{}"))

        assert acc.finalize().tool_calls[0].name == "abab"

    def test_missing_id_gets_generated(self) -> None:
        acc = StreamAccumulator()
        acc.feed(StreamEvent.tool_call(0, name_delta="list_classeurs", arguments_delta="{}"))

        call = acc.finalize().tool_calls[0]

        assert call.id.startswith("call_")
        assert len(call.id) > len("call_")


class TestFinalize:
    """finalize() contract."""

    def test_finalize_is_idempotent(self) -> None:
        acc = StreamAccumulator()
        acc.feed(StreamEvent.text("ok"))
        acc.feed(StreamEvent.tool_call(0, name_delta="list_classeurs", arguments_delta="{}"))

        first = acc.finalize()
        second = acc.finalize()

        assert first is second
        assert second.tool_calls[0].id == first.tool_calls[0].id

    def test_feed_after_finalize_raises(self) -> None:
        acc = StreamAccumulator()
        acc.finalize()

        with pytest.raises(RuntimeError):
            acc.feed(StreamEvent.text("late"))

    @pytest.mark.asyncio
    async def test_consume_reads_whole_stream(self) -> None:
        acc = StreamAccumulator()

        turn = await acc.consume(
            _events([StreamEvent.text("Salut"), StreamEvent.done("stop")])
        )

        assert turn.content == "Salut"
        assert acc.finalize() is turn
