import asyncio
import json
import logging
from contextlib import aclosing

import pytest

from toolstream.config import SessionConfig
from toolstream.coordinator import CoordinatorState
from toolstream.errors import (
    LLMRecoverableError,
    ProviderError,
    ToolArgumentError,
    ToolExecutionError,
    TransportError,
    UnknownToolError,
)
from toolstream.events import CitationsChunk, ContentChunk
from toolstream.message import (
    MessageRole,
    ToolCallRequestMessage,
    ToolCallResultMessage,
    Transcript,
)
from toolstream.session import OutcomeStatus, StreamSession, start_stream
from toolstream.sse import sse_generator
from toolstream.tools import FunctionTool

from tests.conftest import (
    DONE,
    RecordingTool,
    annotation_line,
    content_line,
    finish_line,
    text_response,
    tool_call_line,
    tool_call_response,
)

USER_HI = [{"role": "user", "content": "hi"}]


async def collect(handle):
    return [chunk async for chunk in handle]


def texts(chunks):
    return [c.content for c in chunks if isinstance(c, ContentChunk)]


class BlockingTool(RecordingTool):
    """Tool that waits until released, flagging when it has started."""

    def __init__(self, name="slow"):
        super().__init__(name=name)
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def execute(self, arguments):
        self.calls.append(arguments)
        self.started.set()
        await self.release.wait()
        return "finally"


# ---------------------------------------------------------------------------
# Plain text responses
# ---------------------------------------------------------------------------

class TestPlainResponse:
    @pytest.mark.asyncio
    async def test_streams_deltas_in_order(self, mock_transport):
        mock_transport.responses.append([
            'data: {"choices":[{"delta":{"content":"Hel"}}]}',
            'data: {"choices":[{"delta":{"content":"lo"}}]}',
            'data: {"choices":[{"finish_reason":"stop"}]}',
            "data: [DONE]",
        ])
        handle, _ = start_stream(mock_transport, USER_HI, [], model="m")

        chunks = await collect(handle)

        assert chunks == [ContentChunk("Hel"), ContentChunk("lo")]
        assert handle.outcome.status is OutcomeStatus.SUCCESS
        assert handle.outcome.ended_with_done is True
        assert handle.coordinator.state is CoordinatorState.SUCCEEDED

    @pytest.mark.asyncio
    async def test_stop_never_issues_second_request(self, mock_transport):
        mock_transport.responses.append(text_response("Hello"))
        tool = RecordingTool()
        handle, _ = start_stream(mock_transport, USER_HI, [tool], model="m")

        await collect(handle)

        assert len(mock_transport.call_log) == 1
        assert tool.calls == []

    @pytest.mark.asyncio
    async def test_tool_calls_finish_without_calls_is_terminal(self, mock_transport):
        mock_transport.responses.append(text_response("odd", finish="tool_calls"))
        handle, _ = start_stream(mock_transport, USER_HI, [RecordingTool()], model="m")

        assert texts(await collect(handle)) == ["odd"]
        assert len(mock_transport.call_log) == 1

    @pytest.mark.asyncio
    async def test_first_request_advertises_tools(self, mock_transport, echo_tool):
        mock_transport.responses.append(text_response("ok"))
        handle, _ = start_stream(mock_transport, USER_HI, [echo_tool], model="m")
        await collect(handle)

        request = mock_transport.call_log[0]
        assert request.model == "m"
        assert request.tools == [echo_tool.definition()]
        assert request.messages == [{"role": "user", "content": "hi"}]

    @pytest.mark.asyncio
    async def test_no_tools_means_no_tools_key(self, mock_transport):
        mock_transport.responses.append(text_response("ok"))
        handle, _ = start_stream(mock_transport, USER_HI, [], model="m")
        await collect(handle)

        assert "tools" not in mock_transport.call_log[0].to_kwargs()

    @pytest.mark.asyncio
    async def test_run_returns_joined_result(self, mock_transport):
        mock_transport.responses.append(text_response("Hel", "lo"))
        session = StreamSession(mock_transport, model="m")

        result = await session.run(USER_HI)

        assert result.content == "Hello"
        assert result.citations == []
        assert result.outcome.ok

    @pytest.mark.asyncio
    async def test_unparseable_lines_are_skipped(self, mock_transport):
        mock_transport.responses.append([
            ": keep-alive",
            content_line("A"),
            "data: {not json",
            "event: ping",
            content_line("B"),
            finish_line("stop"),
            DONE,
        ])
        handle, _ = start_stream(mock_transport, USER_HI, [], model="m")

        assert texts(await collect(handle)) == ["A", "B"]
        assert handle.outcome.ok


# ---------------------------------------------------------------------------
# Tool round trip
# ---------------------------------------------------------------------------

class TestToolRoundTrip:
    @pytest.mark.asyncio
    async def test_known_and_unknown_tool(self, mock_transport):
        tool = RecordingTool()
        mock_transport.responses.append(tool_call_response([
            ("lookup", {"q": "weather"}, "call_1"),
            ("missing", {}, "call_2"),
        ]))
        mock_transport.responses.append(text_response("It is sunny."))
        handle, _ = start_stream(mock_transport, USER_HI, [tool], model="m")

        chunks = await collect(handle)

        assert texts(chunks) == ["It is sunny."]
        assert tool.calls == [{"q": "weather"}]
        assert len(mock_transport.call_log) == 2

        spliced = handle.outcome.transcripts[1]
        assert len(spliced) == 4
        request_msg = spliced.messages[1]
        assert isinstance(request_msg, ToolCallRequestMessage)
        assert [tc.id for tc in request_msg.tool_calls] == ["call_1", "call_2"]
        assert json.loads(request_msg.tool_calls[0].arguments) == {"q": "weather"}

        ok, failed = spliced.messages[2:]
        assert isinstance(ok, ToolCallResultMessage)
        assert (ok.tool_call_id, ok.content) == ("call_1", "looked up")
        assert failed.tool_call_id == "call_2"
        assert failed.content == "Error: tool 'missing' not found"

        records = handle.outcome.tool_calls
        assert [r.is_error for r in records] == [False, True]
        assert isinstance(records[1].error, UnknownToolError)

    @pytest.mark.asyncio
    async def test_follow_up_request_has_no_tools(self, mock_transport):
        mock_transport.responses.append(tool_call_response([("lookup", {}, "call_1")]))
        mock_transport.responses.append(text_response("done"))
        handle, _ = start_stream(mock_transport, USER_HI, [RecordingTool()], model="m")
        await collect(handle)

        first, follow_up = mock_transport.call_log
        assert first.tools
        assert follow_up.tools is None
        assert "tool_choice" not in follow_up.to_kwargs()

        wire = follow_up.messages
        assert wire[1]["role"] == "assistant"
        assert wire[1]["tool_calls"][0] == {
            "id": "call_1",
            "type": "function",
            "function": {"name": "lookup", "arguments": "{}"},
        }
        assert wire[2] == {"role": "tool", "content": "looked up", "tool_call_id": "call_1"}

    @pytest.mark.asyncio
    async def test_original_transcript_is_untouched(self, mock_transport):
        mock_transport.responses.append(tool_call_response([("lookup", {}, "call_1")]))
        mock_transport.responses.append(text_response("done"))
        transcript = Transcript.of(*USER_HI)
        handle = StreamSession(mock_transport, "m", [RecordingTool()]).start(transcript)
        await collect(handle)

        assert len(transcript) == 1
        assert handle.outcome.transcripts[0] is transcript

    @pytest.mark.asyncio
    async def test_empty_content_is_omitted_from_splice(self, mock_transport):
        mock_transport.responses.append(tool_call_response([("lookup", {}, "call_1")]))
        mock_transport.responses.append(text_response("done"))
        handle, _ = start_stream(mock_transport, USER_HI, [RecordingTool()], model="m")
        await collect(handle)

        assistant = mock_transport.call_log[1].messages[1]
        assert "content" not in assistant

    @pytest.mark.asyncio
    async def test_content_before_tool_calls_is_kept(self, mock_transport):
        mock_transport.responses.append(tool_call_response(
            [("lookup", {}, "call_1")], content="Let me check. ",
        ))
        mock_transport.responses.append(text_response("Found it."))
        handle, _ = start_stream(mock_transport, USER_HI, [RecordingTool()], model="m")

        chunks = await collect(handle)

        assert texts(chunks) == ["Let me check. ", "Found it."]
        assistant = mock_transport.call_log[1].messages[1]
        assert assistant["content"] == "Let me check. "

    @pytest.mark.asyncio
    async def test_function_tool_end_to_end(self, mock_transport, echo_tool):
        mock_transport.responses.append(tool_call_response(
            [("echo", {"text": "ping"}, "call_1")], chunk_size=3,
        ))
        mock_transport.responses.append(text_response("pong"))
        handle, _ = start_stream(mock_transport, USER_HI, [echo_tool], model="m")
        await collect(handle)

        record = handle.outcome.tool_calls[0]
        assert record.output == "ping"
        assert record.display_name == "Echo"

    @pytest.mark.asyncio
    async def test_second_tool_calls_round_is_ignored(self, mock_transport, caplog):
        tool = RecordingTool()
        mock_transport.responses.append(tool_call_response([("lookup", {}, "call_1")]))
        mock_transport.responses.append(tool_call_response([("lookup", {}, "call_9")]))
        handle, _ = start_stream(mock_transport, USER_HI, [tool], model="m")

        with caplog.at_level(logging.WARNING, logger="toolstream.coordinator"):
            await collect(handle)

        assert len(mock_transport.call_log) == 2
        assert len(tool.calls) == 1
        assert handle.outcome.ok
        assert any("ignoring" in r.message for r in caplog.records)

    @pytest.mark.asyncio
    async def test_id_less_fragments_join_by_index(self, mock_transport):
        tool = RecordingTool()
        mock_transport.responses.append([
            tool_call_line(0, name="lookup", arguments='{"q":'),
            tool_call_line(0, arguments=' "a"}'),
            finish_line("tool_calls"),
            DONE,
        ])
        mock_transport.responses.append(text_response("ok"))
        handle, _ = start_stream(mock_transport, USER_HI, [tool], model="m")
        await collect(handle)

        assert tool.calls == [{"q": "a"}]
        assert handle.outcome.tool_calls[0].call_id == "0"


class TestToolFailures:
    async def _run_single_call(self, mock_transport, tool, arguments):
        mock_transport.responses.append([
            tool_call_line(0, "call_1", tool.name, arguments),
            finish_line("tool_calls"),
            DONE,
        ])
        mock_transport.responses.append(text_response("sorry"))
        handle, _ = start_stream(mock_transport, USER_HI, [tool], model="m")
        chunks = await collect(handle)
        assert texts(chunks) == ["sorry"]
        assert handle.outcome.ok
        return handle.outcome.tool_calls[0]

    @pytest.mark.asyncio
    async def test_failing_summary_falls_back_to_label(self, mock_transport):
        def lookup(q: str):
            """Look something up."""
            return f"found {q}"

        tool = FunctionTool(lookup, summary=lambda args: args["missing"])
        record = await self._run_single_call(mock_transport, tool, '{"q": "x"}')

        assert record.is_error is False
        assert record.output == "found x"
        assert record.summary == "Lookup"
        assert len(mock_transport.call_log) == 2

    @pytest.mark.asyncio
    async def test_underscore_property_name(self, mock_transport):
        tool = RecordingTool(parameters={
            "type": "object",
            "properties": {"_id": {"type": "string"}},
            "required": ["_id"],
        })
        record = await self._run_single_call(mock_transport, tool, '{"_id": "a1"}')

        assert record.is_error is False
        assert tool.calls == [{"_id": "a1"}]

    @pytest.mark.asyncio
    async def test_string_for_integer_is_argument_error(self, mock_transport):
        tool = RecordingTool(parameters={
            "type": "object",
            "properties": {"index": {"type": "integer"}},
        })
        record = await self._run_single_call(mock_transport, tool, '{"index": "2"}')

        assert isinstance(record.error, ToolArgumentError)
        assert tool.calls == []

    @pytest.mark.asyncio
    async def test_invalid_json_arguments(self, mock_transport):
        tool = RecordingTool()
        record = await self._run_single_call(mock_transport, tool, '{"q": ')

        assert record.is_error
        assert isinstance(record.error, ToolArgumentError)
        assert record.output.startswith("Error: invalid arguments for lookup")
        assert tool.calls == []

    @pytest.mark.asyncio
    async def test_arguments_failing_schema(self, mock_transport):
        tool = RecordingTool(parameters={
            "type": "object",
            "properties": {"q": {"type": "string"}},
            "required": ["q"],
        })
        record = await self._run_single_call(mock_transport, tool, "{}")

        assert isinstance(record.error, ToolArgumentError)
        assert record.output.startswith("Error: ")
        assert tool.calls == []

    @pytest.mark.asyncio
    async def test_tool_raises(self, mock_transport):
        tool = RecordingTool(result=RuntimeError("boom"))
        record = await self._run_single_call(mock_transport, tool, "{}")

        assert isinstance(record.error, ToolExecutionError)
        assert record.output == "Error: calling lookup failed: boom"
        assert record.error.call_id == "call_1"

    @pytest.mark.asyncio
    async def test_recoverable_error_becomes_plain_result(self, mock_transport):
        tool = RecordingTool(result=LLMRecoverableError("Try a nearby city"))
        record = await self._run_single_call(mock_transport, tool, "{}")

        assert record.is_error is False
        assert record.output == "Try a nearby city"

    @pytest.mark.asyncio
    async def test_custom_error_prefix(self, mock_transport):
        mock_transport.responses.append(tool_call_response([("nope", {}, "call_1")]))
        mock_transport.responses.append(text_response("ok"))
        config = SessionConfig(tool_error_prefix="Tool failed")
        handle, _ = start_stream(mock_transport, USER_HI, [], model="m", config=config)
        await collect(handle)

        assert mock_transport.call_log[1].messages[2]["content"] == (
            "Tool failed: tool 'nope' not found"
        )

    @pytest.mark.asyncio
    async def test_non_string_result_is_json(self, mock_transport):
        tool = RecordingTool(result={"items": [1, 2]})
        record = await self._run_single_call(mock_transport, tool, "{}")

        assert json.loads(record.output) == {"items": [1, 2]}


# ---------------------------------------------------------------------------
# Citations
# ---------------------------------------------------------------------------

class TestCitations:
    @pytest.mark.asyncio
    async def test_citations_interleave_with_content(self, mock_transport):
        mock_transport.responses.append([
            content_line("See "),
            annotation_line("https://a.example", "A"),
            content_line("this."),
            annotation_line("https://b.example", "B"),
            finish_line("stop"),
            DONE,
        ])
        handle, _ = start_stream(mock_transport, USER_HI, [], model="m")

        chunks = await collect(handle)

        kinds = [type(c).__name__ for c in chunks]
        assert kinds == ["ContentChunk", "CitationsChunk", "ContentChunk", "CitationsChunk"]
        assert chunks[1].citations[0].url_citation.url == "https://a.example"
        assert [a.url_citation.title for a in handle.outcome.annotations] == ["A", "B"]

    @pytest.mark.asyncio
    async def test_run_collects_citations(self, mock_transport):
        mock_transport.responses.append([
            content_line("x"),
            annotation_line("https://a.example"),
            finish_line("stop"),
            DONE,
        ])
        result = await StreamSession(mock_transport, "m").run(USER_HI)

        assert [c.url_citation.url for c in result.citations] == ["https://a.example"]

    @pytest.mark.asyncio
    async def test_relay_as_sse_frames(self, mock_transport):
        mock_transport.responses.append([
            content_line("Hi"),
            annotation_line("https://a.example", "A"),
            finish_line("stop"),
            DONE,
        ])
        handle, _ = start_stream(mock_transport, USER_HI, [], model="m")

        frames = [f async for f in sse_generator(handle)]

        assert frames[0] == 'event: content\ndata: {"content": "Hi"}\n\n'
        assert frames[1].startswith("event: citations\n")
        assert "https://a.example" in frames[1]
        assert frames[-1] == "event: done\ndata: {}\n\n"


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------

class TestStreamFailures:
    @pytest.mark.asyncio
    async def test_error_payload_fails_once(self, mock_transport):
        mock_transport.responses.append([
            content_line("Hel"),
            '{"error": {"message": "Rate limited", "type": "rate_limit", "code": 429}}',
            content_line("lo"),
            DONE,
        ])
        handle, _ = start_stream(mock_transport, USER_HI, [], model="m")

        assert await handle.__anext__() == ContentChunk("Hel")
        with pytest.raises(ProviderError) as exc_info:
            await handle.__anext__()
        with pytest.raises(StopAsyncIteration):
            await handle.__anext__()

        err = exc_info.value
        assert (err.message, err.error_type, err.code) == ("Rate limited", "rate_limit", "429")
        assert handle.outcome.status is OutcomeStatus.FAILURE
        assert handle.outcome.kind == "provider"
        assert mock_transport.closed == 1

    @pytest.mark.asyncio
    async def test_error_as_data_line(self, mock_transport):
        mock_transport.responses.append([
            'data: {"error": {"message": "Upstream overloaded", "code": 502}}',
            DONE,
        ])
        handle, _ = start_stream(mock_transport, USER_HI, [], model="m")

        with pytest.raises(ProviderError, match="Upstream overloaded"):
            await collect(handle)

    @pytest.mark.asyncio
    async def test_error_during_follow_up(self, mock_transport):
        mock_transport.responses.append(tool_call_response([("lookup", {}, "call_1")]))
        mock_transport.responses.append(['{"error": {"message": "bad"}}'])
        handle, _ = start_stream(mock_transport, USER_HI, [RecordingTool()], model="m")

        with pytest.raises(ProviderError):
            await collect(handle)
        assert len(handle.outcome.tool_calls) == 1
        assert handle.coordinator.state is CoordinatorState.FAILED

    @pytest.mark.asyncio
    async def test_transport_error_on_open(self, mock_transport):
        mock_transport.responses.append(TransportError("connection refused"))
        handle, _ = start_stream(mock_transport, USER_HI, [], model="m")

        with pytest.raises(TransportError, match="connection refused"):
            await collect(handle)
        assert handle.outcome.kind == "transport"

    @pytest.mark.asyncio
    async def test_transport_error_mid_read(self, mock_transport):
        mock_transport.responses.append([content_line("Hel"), TransportError("reset")])
        handle, _ = start_stream(mock_transport, USER_HI, [], model="m")

        received = []
        with pytest.raises(TransportError):
            async for chunk in handle:
                received.append(chunk)

        assert received == [ContentChunk("Hel")]
        assert mock_transport.closed == 1

    @pytest.mark.asyncio
    async def test_missing_done_is_lenient_by_default(self, mock_transport, caplog):
        mock_transport.responses.append([content_line("Hi"), finish_line("stop")])
        handle, _ = start_stream(mock_transport, USER_HI, [], model="m")

        with caplog.at_level(logging.WARNING, logger="toolstream.coordinator"):
            chunks = await collect(handle)

        assert texts(chunks) == ["Hi"]
        assert handle.outcome.ok
        assert handle.outcome.ended_with_done is False
        assert any("[DONE]" in r.message for r in caplog.records)

    @pytest.mark.asyncio
    async def test_missing_done_fails_when_required(self, mock_transport):
        mock_transport.responses.append([content_line("Hi"), finish_line("stop")])
        config = SessionConfig(require_done=True)
        handle, _ = start_stream(mock_transport, USER_HI, [], model="m", config=config)

        with pytest.raises(TransportError, match="DONE"):
            await collect(handle)

    @pytest.mark.asyncio
    async def test_run_raises(self, mock_transport):
        mock_transport.responses.append(TransportError("down"))
        with pytest.raises(TransportError):
            await StreamSession(mock_transport, "m").run(USER_HI)


# ---------------------------------------------------------------------------
# Cancellation
# ---------------------------------------------------------------------------

class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancel_mid_stream(self, mock_transport):
        gate = asyncio.Event()
        mock_transport.responses.append([
            content_line("Hel"), gate, content_line("lo"), finish_line("stop"), DONE,
        ])
        handle, cancel = start_stream(mock_transport, USER_HI, [], model="m")

        assert await handle.__anext__() == ContentChunk("Hel")
        cancel()
        gate.set()

        assert await collect(handle) == []
        await asyncio.gather(handle._task, return_exceptions=True)

        assert handle.outcome.status is OutcomeStatus.CANCELLED
        assert mock_transport.closed == 1
        assert mock_transport.lines_read == 1
        assert len(mock_transport.call_log) == 1

    @pytest.mark.asyncio
    async def test_cancel_is_idempotent(self, mock_transport):
        mock_transport.responses.append(text_response("Hi"))
        handle, cancel = start_stream(mock_transport, USER_HI, [], model="m")

        cancel()
        cancel()

        assert await collect(handle) == []
        assert handle.outcome.status is OutcomeStatus.CANCELLED
        assert mock_transport.call_log == []

    @pytest.mark.asyncio
    async def test_cancel_after_success_keeps_outcome(self, mock_transport):
        mock_transport.responses.append(text_response("Hi"))
        handle, cancel = start_stream(mock_transport, USER_HI, [], model="m")
        await collect(handle)

        cancel()

        assert handle.outcome.status is OutcomeStatus.SUCCESS

    @pytest.mark.asyncio
    async def test_cancel_during_tool_execution(self, mock_transport):
        tool = BlockingTool()
        mock_transport.responses.append(tool_call_response(
            [("slow", {}, "call_1")], content="Working. ",
        ))
        mock_transport.responses.append(text_response("never"))
        handle, cancel = start_stream(mock_transport, USER_HI, [tool], model="m")

        assert await handle.__anext__() == ContentChunk("Working. ")
        await tool.started.wait()
        cancel()
        await asyncio.gather(handle._task, return_exceptions=True)

        assert await collect(handle) == []
        assert len(mock_transport.call_log) == 1
        assert handle.outcome.status is OutcomeStatus.CANCELLED
        assert handle.coordinator.state is CoordinatorState.CANCELLED

    @pytest.mark.asyncio
    async def test_cancel_wakes_blocked_consumer(self, mock_transport):
        gate = asyncio.Event()
        mock_transport.responses.append([gate, content_line("late"), DONE])
        handle, cancel = start_stream(mock_transport, USER_HI, [], model="m")

        pending = asyncio.ensure_future(handle.__anext__())
        await asyncio.sleep(0.01)
        cancel()

        with pytest.raises(StopAsyncIteration):
            await pending
        await asyncio.gather(handle._task, return_exceptions=True)

    @pytest.mark.asyncio
    async def test_context_manager_cancels_on_exit(self, mock_transport):
        gate = asyncio.Event()
        mock_transport.responses.append([content_line("a"), gate, DONE])
        handle, _ = start_stream(mock_transport, USER_HI, [], model="m")

        async with handle:
            async for _chunk in handle:
                break
        assert handle._task.done()

        assert handle.outcome.status is OutcomeStatus.CANCELLED
        assert mock_transport.closed == 1

    @pytest.mark.asyncio
    async def test_aclosing_releases_stream_after_break(self, mock_transport):
        gate = asyncio.Event()
        mock_transport.responses.append([content_line("a"), content_line("b"), gate, DONE])
        handle, _ = start_stream(mock_transport, USER_HI, [], model="m")

        async with aclosing(handle):
            async for _chunk in handle:
                break

        assert handle._task.done()
        assert mock_transport.closed == 1
        assert handle.outcome.status is OutcomeStatus.CANCELLED
        assert len(mock_transport.call_log) == 1

    @pytest.mark.asyncio
    async def test_aclose_after_success_is_harmless(self, mock_transport):
        mock_transport.responses.append(text_response("Hi"))
        handle, _ = start_stream(mock_transport, USER_HI, [], model="m")
        await collect(handle)

        await handle.aclose()

        assert handle.outcome.ok


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

class TestSessionConfig:
    @pytest.mark.asyncio
    async def test_system_prompt_and_memories_are_injected(self, mock_transport):
        mock_transport.responses.append(text_response("ok"))
        config = SessionConfig(system_prompt="Be brief.", memories=["Likes tea"])
        handle, _ = start_stream(mock_transport, USER_HI, [], model="m", config=config)
        await collect(handle)

        messages = mock_transport.call_log[0].messages
        assert messages[0] == {
            "role": "system",
            "content": "Be brief.\n\n## What I remember\n1. Likes tea",
        }
        assert messages[1] == {"role": "user", "content": "hi"}
        assert len(handle.outcome.transcripts[0]) == 1

    @pytest.mark.asyncio
    async def test_system_prompt_repeated_on_follow_up(self, mock_transport):
        mock_transport.responses.append(tool_call_response([("lookup", {}, "call_1")]))
        mock_transport.responses.append(text_response("ok"))
        config = SessionConfig(system_prompt="Be brief.")
        handle, _ = start_stream(
            mock_transport, USER_HI, [RecordingTool()], model="m", config=config,
        )
        await collect(handle)

        for request in mock_transport.call_log:
            assert request.messages[0]["role"] == MessageRole.SYSTEM.value

    def test_duplicate_tool_names_rejected(self, mock_transport):
        with pytest.raises(ValueError, match="Duplicate"):
            StreamSession(mock_transport, "m", [RecordingTool(), RecordingTool()]).start(USER_HI)
