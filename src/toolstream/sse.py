"""Server-Sent Events decoding and encoding.

:func:`decode_events` turns the lines of a chat-completions stream into
:class:`~toolstream.events.ProtocolEvent` objects.  Unknown or malformed
lines never abort a healthy stream; they are logged and skipped.

:func:`sse_generator` goes the other way and re-encodes the chunks a
session yields, for relaying to a browser.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from dataclasses import asdict

from pydantic import ValidationError

from toolstream.annotations import parse_annotations
from toolstream.errors import ProtocolError
from toolstream.events import (
    AnnotationDelta,
    CitationsChunk,
    ContentDelta,
    Done,
    ErrorPayload,
    FinishReason,
    ProtocolEvent,
    StreamChunk,
    ToolCallDelta,
)
from toolstream.streaming import ToolCallFragment, ToolCallKeys

logger = logging.getLogger(__name__)

DATA_PREFIX = "data: "
DONE_SENTINEL = "[DONE]"


def _field(error: dict, name: str, default: str = "unknown") -> str:
    value = error.get(name)
    if value is None:
        return default
    return value if isinstance(value, str) else str(value)


def _error_payload(body: dict) -> ErrorPayload:
    error = body["error"]
    if isinstance(error, str):
        return ErrorPayload(message=error)
    if not isinstance(error, dict):
        raise ProtocolError(f"unexpected error shape: {error!r}")
    return ErrorPayload(
        message=_field(error, "message", "Unknown error"),
        kind=_field(error, "type"),
        code=_field(error, "code"),
    )


def _decode_error_line(line: str) -> list[ProtocolEvent]:
    try:
        body = json.loads(line)
    except json.JSONDecodeError as e:
        raise ProtocolError(f"unparseable error line: {e}") from e
    if not isinstance(body, dict) or "error" not in body:
        raise ProtocolError("error line without an error object")
    return [_error_payload(body)]


def _decode_tool_calls(raw: list, keys: ToolCallKeys) -> list[ProtocolEvent]:
    events: list[ProtocolEvent] = []
    for item in raw:
        if not isinstance(item, dict):
            logger.debug("Skipping tool call fragment %r", item)
            continue
        index = item.get("index")
        call_id = item.get("id") or None
        function = item.get("function") or {}
        events.append(ToolCallDelta(ToolCallFragment(
            key=keys.key_for(index, call_id),
            name=function.get("name") or None,
            arguments_chunk=function.get("arguments") or "",
            index=index,
            call_id=call_id,
        )))
    return events


def _decode_payload(payload: str, keys: ToolCallKeys) -> list[ProtocolEvent]:
    try:
        body = json.loads(payload)
    except json.JSONDecodeError as e:
        raise ProtocolError(f"invalid JSON payload: {e}") from e
    if not isinstance(body, dict):
        raise ProtocolError("payload is not an object")

    choices = body.get("choices")
    if not choices:
        # OpenRouter reports mid-stream failures as a data line.
        if "error" in body:
            return [_error_payload(body)]
        return []
    if not isinstance(choices, list) or not isinstance(choices[0], dict):
        raise ProtocolError("choices is not a list of objects")

    choice = choices[0]
    delta = choice.get("delta")
    events: list[ProtocolEvent] = []
    if isinstance(delta, dict):
        content = delta.get("content")
        if isinstance(content, str):
            events.append(ContentDelta(content))

        tool_calls = delta.get("tool_calls")
        if isinstance(tool_calls, list):
            events.extend(_decode_tool_calls(tool_calls, keys))

        annotations = delta.get("annotations")
        if isinstance(annotations, list):
            try:
                events.append(AnnotationDelta(parse_annotations(annotations)))
            except ValidationError as e:
                logger.debug("Skipping malformed annotations: %s", e)

    finish_reason = choice.get("finish_reason")
    if finish_reason is not None:
        events.append(FinishReason(str(finish_reason)))
    return events


def decode_line(line: str, keys: ToolCallKeys | None = None) -> list[ProtocolEvent]:
    """Decode a single stream line into zero or more events.

    Args:
        line: One line from the transport, without the trailing newline.
        keys: Tool-call key assignments shared by all lines of the same
            response. A fresh one is used when omitted.
    """
    if keys is None:
        keys = ToolCallKeys()
    line = line.rstrip("\r\n")
    try:
        if line.startswith("{") and '"error"' in line:
            return _decode_error_line(line)
        if not line.startswith(DATA_PREFIX):
            return []
        payload = line[len(DATA_PREFIX):].strip()
        if payload == DONE_SENTINEL:
            return [Done()]
        return _decode_payload(payload, keys)
    except ProtocolError as e:
        logger.debug("Skipping line %r: %s", line, e)
        return []


async def decode_events(lines: AsyncIterator[str]) -> AsyncIterator[ProtocolEvent]:
    """Lazily decode a line stream. Single pass, stops after ``Done``."""
    keys = ToolCallKeys()
    async for line in lines:
        for event in decode_line(line, keys):
            yield event
            if isinstance(event, Done):
                return


async def sse_generator(
    chunks: AsyncIterator[StreamChunk],
) -> AsyncIterator[str]:
    """Convert session output chunks into SSE-formatted strings."""
    async for chunk in chunks:
        if isinstance(chunk, CitationsChunk):
            event_type = "citations"
            data = json.dumps({
                "citations": [c.model_dump() for c in chunk.citations],
            })
        else:
            event_type = "content"
            data = json.dumps(asdict(chunk))
        yield f"event: {event_type}\ndata: {data}\n\n"
    yield "event: done\ndata: {}\n\n"
