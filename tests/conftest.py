import asyncio
import json
from contextlib import asynccontextmanager

import pytest

from toolstream.capability import ToolCapability
from toolstream.transport import CompletionRequest, Transport
from toolstream.tools import tool


DONE = "data: [DONE]"


# ---------------------------------------------------------------------------
# Wire line builders (mirror the chat-completions chunk shape)
# ---------------------------------------------------------------------------

def data_line(payload: dict) -> str:
    return "data: " + json.dumps(payload)


def content_line(text: str) -> str:
    return data_line({"choices": [{"delta": {"content": text}}]})


def finish_line(reason: str) -> str:
    return data_line({"choices": [{"delta": {}, "finish_reason": reason}]})


def tool_call_line(
    index: int,
    call_id: str | None = None,
    name: str | None = None,
    arguments: str | None = None,
) -> str:
    call: dict = {"index": index}
    if call_id is not None:
        call["id"] = call_id
        call["type"] = "function"
    function = {}
    if name is not None:
        function["name"] = name
    if arguments is not None:
        function["arguments"] = arguments
    call["function"] = function
    return data_line({"choices": [{"delta": {"tool_calls": [call]}}]})


def annotation_line(url: str, title: str = "") -> str:
    return data_line({"choices": [{"delta": {"annotations": [{
        "type": "url_citation",
        "url_citation": {"url": url, "title": title},
    }]}}]})


def text_response(*parts: str, finish: str = "stop") -> list:
    """Lines for a plain text answer split into *parts*."""
    return [*(content_line(p) for p in parts), finish_line(finish), DONE]


def tool_call_response(
    calls: list[tuple[str, dict, str]],
    content: str | None = None,
    chunk_size: int = 4,
) -> list:
    """Lines for a response asking for *calls*.

    Each item is ``(func_name, args_dict, call_id)``.  Arguments are
    split into *chunk_size* pieces; only the first fragment of each call
    carries its id and name.
    """
    lines = []
    if content:
        lines.append(content_line(content))
    for index, (name, args, call_id) in enumerate(calls):
        arguments = json.dumps(args)
        pieces = [
            arguments[i:i + chunk_size]
            for i in range(0, len(arguments), chunk_size)
        ] or [""]
        lines.append(tool_call_line(index, call_id, name, pieces[0]))
        lines.extend(tool_call_line(index, arguments=p) for p in pieces[1:])
    lines.append(finish_line("tool_calls"))
    lines.append(DONE)
    return lines


# ---------------------------------------------------------------------------
# Mock transport
# ---------------------------------------------------------------------------

class MockTransport(Transport):
    """Transport that replays pre-queued line lists. No network calls.

    A queued item may be an exception (raised when the stream is
    opened).  Inside a line list, an :class:`asyncio.Event` pauses the
    stream until it is set and an exception is raised mid-read.
    """

    system = "mock"

    def __init__(self):
        self.responses: list = []
        self.call_log: list[CompletionRequest] = []
        self.lines_read = 0
        self.closed = 0

    @asynccontextmanager
    async def stream_lines(self, request: CompletionRequest):
        self.call_log.append(request)
        response = self.responses.pop(0)
        if isinstance(response, BaseException):
            raise response
        try:
            yield self._lines(response)
        finally:
            self.closed += 1

    async def _lines(self, items):
        for item in items:
            if isinstance(item, asyncio.Event):
                await item.wait()
                continue
            if isinstance(item, BaseException):
                raise item
            await asyncio.sleep(0)
            self.lines_read += 1
            yield item


class RecordingTool(ToolCapability):
    """Capability double that records every execution."""

    def __init__(self, name="lookup", result="looked up", parameters=None):
        self.name = name
        self.display_name = name.title()
        self.description = f"The {name} tool."
        if parameters is not None:
            self.parameters = parameters
        self.result = result
        self.calls: list[dict] = []

    async def execute(self, arguments):
        self.calls.append(arguments)
        if isinstance(self.result, BaseException):
            raise self.result
        return self.result


@pytest.fixture
def mock_transport():
    return MockTransport()


@pytest.fixture
def echo_tool():
    @tool
    def echo(text: str):
        """Echo the input text back.

        Args:
            text: What to echo.
        """
        return text
    return echo


@pytest.fixture
def sample_async_tool():
    @tool
    async def async_greet(name: str):
        """Async greeting."""
        return f"Hello async {name}"
    return async_greet
