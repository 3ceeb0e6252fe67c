"""Tool-call reassembly for streaming responses.

The decoder turns each ``delta.tool_calls[]`` element into a
:class:`ToolCallFragment`.  The :class:`ToolCallAccumulator` reassembles
calls whose arguments arrive in fragments across many events.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ToolCallFragment:
    """A fragment of a tool call from a streaming chunk.

    ``key`` routes the fragment to its accumulator slot.  It is the call
    id when the provider sent one, otherwise the positional index as a
    string.
    """

    key: str
    name: str | None = None
    arguments_chunk: str = ""
    index: int | None = None
    call_id: str | None = None


@dataclass
class ToolCall:
    """A resolved tool call ready for the transcript."""

    id: str = ""
    name: str = ""
    arguments: str = ""

    @classmethod
    def from_wire(cls, data: dict) -> ToolCall:
        """Inverse of :meth:`to_wire`."""
        function = data.get("function") or {}
        return cls(
            id=data.get("id") or "",
            name=function.get("name") or "",
            arguments=function.get("arguments") or "",
        )

    def to_wire(self) -> dict:
        return {
            "id": self.id,
            "type": "function",
            "function": {
                "name": self.name,
                "arguments": self.arguments,
            },
        }


class ToolCallKeys:
    """Assigns accumulator keys to fragments of one response.

    Providers usually send the call id only on the first fragment and
    the index on every fragment.  Once an index has a key, id-less
    fragments for it keep using that key.  An index that shows up again
    with a different id starts a new call.
    """

    def __init__(self) -> None:
        self._keys: dict[int | None, str] = {}
        self._ids: dict[int | None, str] = {}

    def key_for(self, index: int | None, call_id: str | None) -> str:
        known = self._keys.get(index)
        if not call_id:
            if known is None:
                known = str(index) if index is not None else "0"
                self._keys[index] = known
            return known

        seen_id = self._ids.get(index)
        if known is not None and seen_id in (None, call_id):
            # First id for a call that started without one, or a repeat.
            self._ids[index] = call_id
            return known

        self._keys[index] = call_id
        self._ids[index] = call_id
        return call_id


class ToolCallAccumulator:
    """Assembles complete tool calls from streaming fragments.

    Not safe for concurrent use; feed it from the single consumer of the
    decoded event stream.
    """

    def __init__(self) -> None:
        self._pending: dict[str, ToolCall] = {}

    def ingest(self, fragment: ToolCallFragment) -> None:
        tc = self._pending.get(fragment.key)
        if tc is None:
            tc = self._pending[fragment.key] = ToolCall()
        if fragment.call_id and not tc.id:
            tc.id = fragment.call_id
        if fragment.name and not tc.name:
            tc.name = fragment.name
        if fragment.arguments_chunk:
            tc.arguments += fragment.arguments_chunk

    def snapshot(self) -> list[ToolCall]:
        """Return copies of the calls seen so far, in first-seen order.

        Calls that never received an id use their key as the id.
        """
        return [
            ToolCall(id=tc.id or key, name=tc.name, arguments=tc.arguments)
            for key, tc in self._pending.items()
        ]

    def __len__(self) -> int:
        return len(self._pending)
