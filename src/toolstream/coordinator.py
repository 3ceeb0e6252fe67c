"""Runs one streaming session with at most one tool round trip.

The coordinator streams the first response with the enabled tools
advertised.  If it finishes with ``tool_calls`` the calls are executed
in order, the results are spliced into a new transcript and exactly one
follow-up response is streamed without tools.
"""

import asyncio
import json
import logging
from collections.abc import AsyncIterator, Iterable
from dataclasses import dataclass, field
from enum import Enum

from toolstream.annotations import AnnotationCollector
from toolstream.capability import ToolCapability
from toolstream.config import SessionConfig
from toolstream.errors import (
    LLMRecoverableError,
    ProviderError,
    ToolArgumentError,
    ToolError,
    ToolExecutionError,
    ToolstreamError,
    TransportError,
    UnknownToolError,
)
from toolstream.events import (
    AnnotationDelta,
    CitationsChunk,
    ContentChunk,
    ContentDelta,
    Done,
    ErrorPayload,
    FinishReason,
    StreamChunk,
    ToolCallDelta,
)
from toolstream.instrumentation import (
    completion_span,
    record_error,
    record_finish,
    tool_span,
)
from toolstream.message import (
    ToolCallRequestMessage,
    ToolCallResultMessage,
    Transcript,
)
from toolstream.sse import decode_events
from toolstream.streaming import ToolCall, ToolCallAccumulator
from toolstream.transport import CompletionRequest, Transport

logger = logging.getLogger(__name__)

TOOL_CALLS = "tool_calls"


class CoordinatorState(Enum):
    REQUESTING = "requesting"
    STREAMING = "streaming"
    EXECUTING = "executing"
    SPLICING = "splicing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class ToolCallRecord:
    """What happened to one tool call the model asked for."""

    call_id: str
    name: str
    output: str
    is_error: bool = False
    display_name: str = ""
    summary: str = ""
    error: ToolError | None = None


@dataclass
class _Segment:
    """What one streamed response produced."""

    content: str = ""
    finish_reason: str | None = None
    ended_with_done: bool = False
    tool_calls: list[ToolCall] = field(default_factory=list)


class ToolExecutionCoordinator:
    """Drives one session: stream, run tools, splice, stream once more.

    ``iter()`` yields content and citation chunks from the initial
    response and, if the model asked for tools, from exactly one
    follow-up response.  Provider and transport errors propagate;
    tool errors are turned into tool results.

    Args:
        transport: Issues both requests.
        model: Model id sent with both requests.
        capabilities: The enabled tools for this session. Read-only.
        config: Session settings.
    """

    def __init__(
        self,
        transport: Transport,
        model: str,
        capabilities: Iterable[ToolCapability] = (),
        config: SessionConfig | None = None,
    ):
        self.transport = transport
        self.model = model
        self.config = config or SessionConfig()
        self.capabilities: dict[str, ToolCapability] = {}
        for capability in capabilities:
            if capability.name in self.capabilities:
                raise ValueError(f"Duplicate tool name: {capability.name}")
            self.capabilities[capability.name] = capability

        self.state = CoordinatorState.REQUESTING
        self.annotations = AnnotationCollector()
        self.requests: list[CompletionRequest] = []
        self.transcripts: list[Transcript] = []
        self.tool_records: list[ToolCallRecord] = []
        self.ended_with_done = False

    async def iter(self, transcript: Transcript) -> AsyncIterator[StreamChunk]:
        try:
            async for chunk in self._run(transcript):
                yield chunk
        except (asyncio.CancelledError, GeneratorExit):
            self.state = CoordinatorState.CANCELLED
            raise
        except BaseException:
            self.state = CoordinatorState.FAILED
            raise
        self.state = CoordinatorState.SUCCEEDED

    async def _run(self, transcript: Transcript) -> AsyncIterator[StreamChunk]:
        tools = [c.definition() for c in self.capabilities.values()] or None
        first = _Segment()
        async for chunk in self._stream_segment(transcript, tools, first, 0):
            yield chunk

        if first.finish_reason != TOOL_CALLS or not first.tool_calls:
            return

        self.state = CoordinatorState.EXECUTING
        records = []
        for tc in first.tool_calls:
            records.append(await self._execute_one(tc))
        self.tool_records.extend(records)

        self.state = CoordinatorState.SPLICING
        spliced = self.splice(transcript, first.content, first.tool_calls, records)

        # Tools are not advertised again: one round trip only.
        follow_up = _Segment()
        async for chunk in self._stream_segment(spliced, None, follow_up, 1):
            yield chunk
        if follow_up.finish_reason == TOOL_CALLS:
            logger.warning(
                f"Follow-up response asked for {len(follow_up.tool_calls)} "
                "more tool call(s); ignoring them"
            )

    def build_request(
        self, transcript: Transcript, tools: list[dict] | None,
    ) -> CompletionRequest:
        messages = transcript.to_wire()
        system_message = self.config.system_message()
        if system_message:
            messages = [{"role": "system", "content": system_message}, *messages]
        return CompletionRequest(model=self.model, messages=messages, tools=tools)

    async def _stream_segment(
        self,
        transcript: Transcript,
        tools: list[dict] | None,
        segment: _Segment,
        round_trip: int,
    ) -> AsyncIterator[StreamChunk]:
        self.state = CoordinatorState.REQUESTING
        request = self.build_request(transcript, tools)
        self.transcripts.append(transcript)
        self.requests.append(request)
        acc = ToolCallAccumulator()

        async with completion_span(self.transport.system, self.model, round_trip) as span:
            try:
                async with self.transport.stream_lines(request) as lines:
                    self.state = CoordinatorState.STREAMING
                    async for event in decode_events(lines):
                        if isinstance(event, ContentDelta):
                            if event.text:
                                segment.content += event.text
                                yield ContentChunk(event.text)
                        elif isinstance(event, ToolCallDelta):
                            acc.ingest(event.fragment)
                        elif isinstance(event, AnnotationDelta):
                            self.annotations.ingest(event.citations)
                            pending = self.annotations.drain()
                            if pending:
                                yield CitationsChunk(pending)
                        elif isinstance(event, FinishReason):
                            segment.finish_reason = event.reason
                        elif isinstance(event, ErrorPayload):
                            raise ProviderError(event.message, event.kind, event.code)
                        elif isinstance(event, Done):
                            segment.ended_with_done = True

                self.ended_with_done = segment.ended_with_done
                if not segment.ended_with_done:
                    if self.config.require_done:
                        raise TransportError("stream ended without [DONE]")
                    logger.warning("Stream ended without [DONE]; treating as complete")
            except ToolstreamError as e:
                record_error(span, e)
                raise
            record_finish(span, segment.finish_reason)

        segment.tool_calls = acc.snapshot()
        logger.debug(
            f"Round trip {round_trip} finished: reason={segment.finish_reason}, "
            f"{len(segment.tool_calls)} tool call(s)"
        )

    async def _execute_one(self, tc: ToolCall) -> ToolCallRecord:
        capability = self.capabilities.get(tc.name)
        try:
            if capability is None:
                raise UnknownToolError(
                    f"tool '{tc.name}' not found", tool_name=tc.name, call_id=tc.id,
                )
            try:
                arguments = json.loads(tc.arguments or "{}")
            except json.JSONDecodeError as e:
                raise ToolArgumentError(
                    f"invalid arguments for {tc.name}: {e}",
                    tool_name=tc.name, call_id=tc.id,
                ) from e
            arguments = capability.validate_arguments(arguments)
            summary = self._summarize(capability, arguments)
            logger.info(f"Calling {tc.name} with {arguments}")

            async with tool_span(tc.name, tc.id) as span:
                try:
                    output = await capability.execute(arguments)
                except LLMRecoverableError as e:
                    logger.info(f"Tool {tc.name} requested retry: {e}")
                    output = str(e)
                except Exception as e:
                    logger.error(f"Tool {tc.name} raised: {e}")
                    record_error(span, e)
                    raise ToolExecutionError(
                        f"calling {tc.name} failed: {e}",
                        tool_name=tc.name, call_id=tc.id,
                    ) from e
        except ToolError as e:
            e.tool_name = e.tool_name or tc.name
            e.call_id = e.call_id or tc.id
            logger.warning(f"Tool call {tc.id} ({tc.name}) failed: {e}")
            return ToolCallRecord(
                call_id=tc.id,
                name=tc.name,
                output=f"{self.config.tool_error_prefix}: {e}",
                is_error=True,
                display_name=capability.label if capability else tc.name,
                error=e,
            )

        if not isinstance(output, str):
            output = json.dumps(output)
        return ToolCallRecord(
            call_id=tc.id,
            name=tc.name,
            output=output,
            display_name=capability.label,
            summary=summary,
        )

    @staticmethod
    def _summarize(capability: ToolCapability, arguments: dict) -> str:
        try:
            return capability.summarize(arguments)
        except Exception as e:
            logger.warning(f"Summary for {capability.name} failed: {e}")
            return capability.label

    @staticmethod
    def splice(
        transcript: Transcript,
        content: str,
        tool_calls: list[ToolCall],
        records: list[ToolCallRecord],
    ) -> Transcript:
        """Derive the follow-up transcript.

        Appends one assistant message carrying every tool call, then one
        tool message per call in the same order.
        """
        return transcript.extend(
            ToolCallRequestMessage(content=content, tool_calls=tuple(tool_calls)),
            *(
                ToolCallResultMessage(content=r.output, tool_call_id=r.call_id)
                for r in records
            ),
        )
