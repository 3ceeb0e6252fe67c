"""Events decoded from the wire and chunks handed to the caller."""

from __future__ import annotations

from dataclasses import dataclass, field

from toolstream.annotations import Annotation
from toolstream.streaming import ToolCallFragment


@dataclass(frozen=True)
class ProtocolEvent:
    """Base for all events decoded from SSE lines."""


@dataclass(frozen=True)
class ContentDelta(ProtocolEvent):
    text: str


@dataclass(frozen=True)
class ToolCallDelta(ProtocolEvent):
    fragment: ToolCallFragment


@dataclass(frozen=True)
class AnnotationDelta(ProtocolEvent):
    citations: list[Annotation] = field(default_factory=list)


@dataclass(frozen=True)
class FinishReason(ProtocolEvent):
    """Why the provider stopped, e.g. ``"stop"``, ``"length"``,
    ``"tool_calls"``."""

    reason: str


@dataclass(frozen=True)
class ErrorPayload(ProtocolEvent):
    """Out-of-band provider error."""

    message: str = "Unknown error"
    kind: str = "unknown"
    code: str = "unknown"


@dataclass(frozen=True)
class Done(ProtocolEvent):
    """The ``[DONE]`` sentinel. Nothing follows it."""


@dataclass(frozen=True)
class StreamChunk:
    """Base for items yielded to the caller."""


@dataclass(frozen=True)
class ContentChunk(StreamChunk):
    content: str


@dataclass(frozen=True)
class CitationsChunk(StreamChunk):
    citations: list[Annotation] = field(default_factory=list)
