"""Error taxonomy for streaming sessions.

Provider and transport errors end a session. Tool errors are recovered
per call: the coordinator turns them into a tool-role message so the
model still sees an answer for every ``tool_call_id`` it emitted.
"""


class ToolstreamError(Exception):
    """Base for all errors raised by toolstream."""

    kind = "toolstream"


class ProtocolError(ToolstreamError):
    """A wire line did not have the expected shape.

    Raised inside the decoder only; such lines are skipped.
    """

    kind = "protocol"


class ProviderError(ToolstreamError):
    """The provider reported an error in the stream or the response."""

    kind = "provider"

    def __init__(
        self, message: str, error_type: str = "unknown", code: str = "unknown",
    ):
        super().__init__(message)
        self.message = message
        self.error_type = error_type
        self.code = code


class TransportError(ToolstreamError):
    """Connection or I/O failure while talking to the endpoint."""

    kind = "transport"


class ToolError(ToolstreamError):
    """A single tool call could not produce a result."""

    kind = "tool"

    def __init__(self, message: str, tool_name: str = "", call_id: str = ""):
        super().__init__(message)
        self.tool_name = tool_name
        self.call_id = call_id


class ToolArgumentError(ToolError):
    kind = "tool_arguments"


class ToolExecutionError(ToolError):
    kind = "tool_execution"


class UnknownToolError(ToolError):
    kind = "unknown_tool"


class LLMRecoverableError(Exception):
    """Raise from a tool to hand a message back to the model.

    The message becomes the tool result verbatim and the call is not
    counted as an error, e.g. ``raise LLMRecoverableError("No such
    city, try a nearby one")``.
    """
