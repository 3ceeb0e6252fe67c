"""Streaming chat completions with tool-call orchestration."""

from toolstream.annotations import Annotation, AnnotationCollector, URLCitation
from toolstream.capability import ToolCapability
from toolstream.config import SessionConfig, configure_logging
from toolstream.coordinator import ToolCallRecord, ToolExecutionCoordinator
from toolstream.errors import (
    LLMRecoverableError,
    ProtocolError,
    ProviderError,
    ToolArgumentError,
    ToolError,
    ToolExecutionError,
    ToolstreamError,
    TransportError,
    UnknownToolError,
)
from toolstream.events import CitationsChunk, ContentChunk, StreamChunk
from toolstream.instrumentation import instrument, uninstrument
from toolstream.message import (
    Message,
    MessageRole,
    ToolCallRequestMessage,
    ToolCallResultMessage,
    Transcript,
)
from toolstream.registry import ToolRegistry
from toolstream.session import (
    OutcomeStatus,
    StreamHandle,
    StreamOutcome,
    StreamResult,
    StreamSession,
    start_stream,
)
from toolstream.tools import FunctionTool, tool
from toolstream.transport import (
    CompletionRequest,
    MistralTransport,
    OpenAICompatibleTransport,
    OpenAITransport,
    OpenRouterTransport,
    Transport,
)

__all__ = [
    "Annotation",
    "AnnotationCollector",
    "CitationsChunk",
    "CompletionRequest",
    "ContentChunk",
    "FunctionTool",
    "LLMRecoverableError",
    "Message",
    "MessageRole",
    "MistralTransport",
    "OpenAICompatibleTransport",
    "OpenAITransport",
    "OpenRouterTransport",
    "OutcomeStatus",
    "ProtocolError",
    "ProviderError",
    "SessionConfig",
    "StreamChunk",
    "StreamHandle",
    "StreamOutcome",
    "StreamResult",
    "StreamSession",
    "ToolArgumentError",
    "ToolCallRecord",
    "ToolCallRequestMessage",
    "ToolCallResultMessage",
    "ToolCapability",
    "ToolError",
    "ToolExecutionCoordinator",
    "ToolExecutionError",
    "ToolRegistry",
    "ToolstreamError",
    "Transcript",
    "Transport",
    "TransportError",
    "URLCitation",
    "UnknownToolError",
    "configure_logging",
    "instrument",
    "start_stream",
    "tool",
    "uninstrument",
]
