"""Public entry point: one cancellable stream per request.

Example::

    session = StreamSession(OpenRouterTransport(), model="openai/gpt-4o-mini",
                            capabilities=registry.enabled_tools(agent_id))
    stream = session.start(Transcript.of({"role": "user", "content": "hi"}))
    async for chunk in stream:
        if isinstance(chunk, ContentChunk):
            print(chunk.content, end="")

Cancelling a stream abandons an in-flight tool call without waiting for
it.  Side effects a tool already committed (e.g. a stored memory) are
not rolled back.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from contextlib import aclosing
from dataclasses import dataclass, field
from enum import Enum

from toolstream.annotations import Annotation
from toolstream.capability import ToolCapability
from toolstream.config import SessionConfig
from toolstream.coordinator import ToolCallRecord, ToolExecutionCoordinator
from toolstream.errors import ToolstreamError
from toolstream.events import CitationsChunk, ContentChunk, StreamChunk
from toolstream.instrumentation import record_error, session_span
from toolstream.message import Message, Transcript
from toolstream.transport import CompletionRequest, Transport

logger = logging.getLogger(__name__)


class OutcomeStatus(Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    CANCELLED = "cancelled"


@dataclass
class StreamOutcome:
    """How a session ended, plus what it did on the way."""

    status: OutcomeStatus
    kind: str | None = None
    message: str | None = None
    error: BaseException | None = None
    requests: list[CompletionRequest] = field(default_factory=list)
    transcripts: list[Transcript] = field(default_factory=list)
    tool_calls: list[ToolCallRecord] = field(default_factory=list)
    annotations: list[Annotation] = field(default_factory=list)
    ended_with_done: bool = False

    @property
    def ok(self) -> bool:
        return self.status is OutcomeStatus.SUCCESS


@dataclass
class StreamResult:
    """A drained stream, see :meth:`StreamSession.run`."""

    content: str
    citations: list[Annotation]
    outcome: StreamOutcome


_END = object()


class StreamHandle:
    """Async iterator over one session's output.

    Yields :class:`ContentChunk` and :class:`CitationsChunk` items in
    arrival order.  Ends normally on success, raises the session's
    :class:`ToolstreamError` once on failure, and ends without further
    items once :meth:`cancel` has been called.

    The producer starts on the first pull and hands items over through a
    queue of ``config.queue_size`` slots, so it never runs far ahead of
    the caller.

    A caller that may stop early should use ``async with handle`` or
    ``contextlib.aclosing(handle)``; a bare ``break`` leaves the producer
    parked until :meth:`cancel` or :meth:`aclose` is called.
    """

    def __init__(self, coordinator: ToolExecutionCoordinator, transcript: Transcript,
                 queue_size: int = 1):
        self._coordinator = coordinator
        self._transcript = transcript
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self._task: asyncio.Task | None = None
        self._closed = False
        self._outcome: StreamOutcome | None = None

    @property
    def outcome(self) -> StreamOutcome | None:
        """Set once the session has ended; ``None`` while running."""
        return self._outcome

    @property
    def coordinator(self) -> ToolExecutionCoordinator:
        return self._coordinator

    def __aiter__(self) -> StreamHandle:
        return self

    async def __anext__(self) -> StreamChunk:
        if self._closed:
            raise StopAsyncIteration
        if self._task is None:
            self._task = asyncio.get_running_loop().create_task(self._produce())

        item = await self._queue.get()
        if self._closed:
            raise StopAsyncIteration
        if item is _END:
            self._closed = True
            if self._outcome is not None and self._outcome.error is not None:
                raise self._outcome.error
            raise StopAsyncIteration
        return item

    def cancel(self) -> None:
        """Stop the session. Safe to call repeatedly and after the end.

        No item is yielded after this returns and no follow-up request
        is issued.
        """
        if self._closed:
            return
        self._closed = True
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._finish(OutcomeStatus.CANCELLED)
        try:
            # Wake a caller blocked in __anext__.
            self._queue.put_nowait(_END)
        except asyncio.QueueFull:
            pass
        logger.info("Stream cancelled")

    async def aclose(self) -> None:
        """Cancel and wait for the producer to release the transport.

        Lets ``contextlib.aclosing(handle)`` clean up after a ``break``.
        """
        self.cancel()
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)

    async def __aenter__(self) -> StreamHandle:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    def _finish(self, status: OutcomeStatus, error: BaseException | None = None) -> None:
        if self._outcome is not None:
            return
        c = self._coordinator
        self._outcome = StreamOutcome(
            status=status,
            kind=getattr(error, "kind", "internal") if error is not None else None,
            message=str(error) if error is not None else None,
            error=error,
            requests=list(c.requests),
            transcripts=list(c.transcripts),
            tool_calls=list(c.tool_records),
            annotations=c.annotations.collected,
            ended_with_done=c.ended_with_done,
        )

    async def _produce(self) -> None:
        try:
            async with session_span(self._coordinator.model) as span:
                try:
                    async with aclosing(self._coordinator.iter(self._transcript)) as chunks:
                        async for chunk in chunks:
                            await self._queue.put(chunk)
                except Exception as e:
                    record_error(span, e)
                    raise
        except asyncio.CancelledError:
            self._finish(OutcomeStatus.CANCELLED)
            raise
        except ToolstreamError as e:
            logger.warning(f"Stream failed ({e.kind}): {e}")
            self._finish(OutcomeStatus.FAILURE, e)
        except Exception as e:
            logger.exception("Stream failed unexpectedly")
            self._finish(OutcomeStatus.FAILURE, e)
        else:
            self._finish(OutcomeStatus.SUCCESS)
        await self._queue.put(_END)


class StreamSession:
    """Streams completions for a transcript with a fixed set of tools.

    Args:
        transport: Where requests go.
        model: Model id.
        capabilities: Enabled tools, usually
            ``ToolRegistry.enabled_tools(agent_id)``.
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
        self.capabilities = list(capabilities)
        self.config = config or SessionConfig()

    def start(self, transcript: Transcript | list[Message | dict]) -> StreamHandle:
        if not isinstance(transcript, Transcript):
            transcript = Transcript.of(*transcript)
        coordinator = ToolExecutionCoordinator(
            self.transport, self.model, self.capabilities, self.config,
        )
        return StreamHandle(coordinator, transcript, self.config.queue_size)

    async def run(self, transcript: Transcript | list[Message | dict]) -> StreamResult:
        """Drain a stream and return everything it produced.

        Raises:
            ToolstreamError: If the session failed.
        """
        content = []
        citations: list[Annotation] = []
        async with aclosing(self.start(transcript)) as handle:
            async for chunk in handle:
                if isinstance(chunk, ContentChunk):
                    content.append(chunk.content)
                elif isinstance(chunk, CitationsChunk):
                    citations.extend(chunk.citations)
        return StreamResult(
            content="".join(content), citations=citations, outcome=handle.outcome,
        )


def start_stream(
    transport: Transport,
    transcript: Transcript | list[Message | dict],
    capabilities: Iterable[ToolCapability],
    model: str,
    config: SessionConfig | None = None,
) -> tuple[StreamHandle, Callable[[], None]]:
    """Start a session and return ``(output_iterator, cancel)``."""
    handle = StreamSession(transport, model, capabilities, config).start(transcript)
    return handle, handle.cancel
