from __future__ import annotations

from enum import Enum

from pydantic import (
    BaseModel,
    ConfigDict,
    field_serializer,
    field_validator,
    model_serializer,
)

from toolstream.streaming import ToolCall


class MessageRole(Enum):
    SYSTEM = "system"
    ASSISTANT = "assistant"
    USER = "user"
    TOOL = "tool"


class Message(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: MessageRole
    content: str = ""

    @field_validator("content", mode="before")
    @classmethod
    def _null_content(cls, content):
        # Assistant turns with tool calls arrive as {"content": null}.
        return "" if content is None else content

    @field_serializer('role')
    def serialize_role(self, role: MessageRole, _info) -> str:
        return role.value


class ToolCallRequestMessage(Message):
    """Assistant turn that asked for one or more tool calls."""

    role: MessageRole = MessageRole.ASSISTANT
    tool_calls: tuple[ToolCall, ...]

    @field_validator("tool_calls", mode="before")
    @classmethod
    def _parse_wire_tool_calls(cls, tool_calls):
        return tuple(
            ToolCall.from_wire(tc) if isinstance(tc, dict) else tc
            for tc in tool_calls
        )

    @field_serializer("tool_calls")
    def serialize_tool_calls(self, tool_calls: tuple[ToolCall, ...]) -> list[dict]:
        return [t.to_wire() for t in tool_calls]

    @model_serializer(mode="wrap")
    def _omit_empty_content(self, handler):
        # Providers treat a missing content key and "" differently.
        data = handler(self)
        if not data.get("content"):
            data.pop("content", None)
        return data


class ToolCallResultMessage(Message):
    role: MessageRole = MessageRole.TOOL
    tool_call_id: str


def _message_from_wire(data: dict) -> Message:
    if data.get("tool_calls"):
        return ToolCallRequestMessage.model_validate(data)
    if data.get("tool_call_id"):
        return ToolCallResultMessage.model_validate(data)
    return Message.model_validate(data)


class Transcript(BaseModel):
    """Ordered, immutable message history sent to the endpoint.

    Splicing never mutates a transcript; :meth:`extend` derives a new
    one so each request keeps its own provenance.
    """

    model_config = ConfigDict(frozen=True)

    messages: tuple[Message, ...] = ()

    @classmethod
    def of(cls, *messages: Message | dict) -> Transcript:
        """Build a transcript from messages or their wire dicts.

        Dicts carrying ``tool_calls`` or ``tool_call_id`` become the
        matching tool message type, so stored tool turns survive a
        round trip through :meth:`to_wire`.
        """
        return cls(messages=tuple(
            m if isinstance(m, Message) else _message_from_wire(m)
            for m in messages
        ))

    def extend(self, *messages: Message) -> Transcript:
        return Transcript(messages=(*self.messages, *messages))

    def to_wire(self) -> list[dict]:
        # Dump each message by its runtime type; dumping the tuple field
        # would serialise subclasses as plain Message and drop tool fields.
        return [m.model_dump() for m in self.messages]

    def __len__(self) -> int:
        return len(self.messages)
