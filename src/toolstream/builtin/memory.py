"""Long-term memory tool.

Memories are shown to the model at the start of every conversation
under ``## What I remember``, numbered from 1: global memories first,
then the current agent's.  The model refers to them by that number.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

from toolstream.capability import ToolCapability

logger = logging.getLogger(__name__)

INVALID_INDEX = "Failed because the model picked an invalid memory index."


class MemoryStore(Protocol):
    """Where memories live. Persistence is the store's concern."""

    def global_memories(self) -> list[str]: ...

    def agent_memories(self, agent_id: str) -> list[str]: ...

    def set_global_memories(self, memories: list[str]) -> None: ...

    def set_agent_memories(self, agent_id: str, memories: list[str]) -> None: ...


class InMemoryMemoryStore:
    """Dict-backed :class:`MemoryStore` for tests and scripts."""

    def __init__(
        self,
        memories: list[str] | None = None,
        agents: dict[str, list[str]] | None = None,
    ):
        self._global = list(memories or [])
        self._agents = {k: list(v) for k, v in (agents or {}).items()}

    def global_memories(self) -> list[str]:
        return list(self._global)

    def agent_memories(self, agent_id: str) -> list[str]:
        return list(self._agents.get(agent_id, []))

    def set_global_memories(self, memories: list[str]) -> None:
        self._global = list(memories)

    def set_agent_memories(self, agent_id: str, memories: list[str]) -> None:
        self._agents[agent_id] = list(memories)


def render_memories(memories: list[str]) -> str:
    """Format memories the way the tool description refers to them."""
    if not memories:
        return ""
    lines = [f"{i}. {m}" for i, m in enumerate(memories, start=1)]
    return "## What I remember\n" + "\n".join(lines)


class MemoryCapability(ToolCapability):
    """Add, update or delete long-term memories.

    Args:
        store: Backing store for global and per-agent memories.
        agent_id: Agent whose memories new facts go to. ``None`` writes
            to the global list.
    """

    name = "memory"
    display_name = "Memory"
    icon = "brain"
    default_enabled = True
    description = (
        "Manage long-term memories that persist across conversations.\n"
        "Memories are shown to you at the start of every conversation under "
        "'## What I remember', numbered 1, 2, 3...\n\n"
        "Actions:\n"
        "- 'add': Save a new fact. Provide 'fact' with the text to store. Use "
        "this proactively when the user shares something worth remembering.\n"
        "- 'delete': Remove an existing memory. Provide 'index' with its number "
        "from the list. Only call this for memories that actually exist in the list.\n"
        "- 'update': Replace an existing memory with corrected text. Provide "
        "'index' with its number and 'fact' with the new text. Only call this "
        "for memories that actually exist in the list.\n\n"
        "IMPORTANT: For 'delete' and 'update', you MUST use the exact number "
        "shown next to the memory in '## What I remember'. Do not guess an "
        "index for a memory that is not in the list."
    )
    parameters = {
        "type": "object",
        "properties": {
            "action": {
                "type": "string",
                "enum": ["add", "update", "delete"],
                "description": "The operation to perform",
            },
            "fact": {
                "type": "string",
                "description": (
                    "Required for 'add' and 'update'. The text of the new "
                    "or corrected memory."
                ),
            },
            "index": {
                "type": "integer",
                "description": (
                    "Required for 'update' and 'delete'. The 1-based number "
                    "of the memory as shown in '## What I remember'."
                ),
            },
        },
        "required": ["action"],
    }

    def __init__(self, store: MemoryStore, agent_id: str | None = None):
        self.store = store
        self.agent_id = agent_id

    def bind(self, agent_id: str | None) -> MemoryCapability:
        return MemoryCapability(self.store, agent_id=agent_id)

    def memories(self) -> list[str]:
        """All memories visible to the bound agent, in display order."""
        visible = self.store.global_memories()
        if self.agent_id is not None:
            visible += self.store.agent_memories(self.agent_id)
        return visible

    def summarize(self, arguments: dict[str, Any]) -> str:
        action = arguments.get("action", "add")
        if action == "delete":
            return "Removed entry"
        if action == "update":
            return "Updated entry"
        return "Added entry"

    async def execute(self, arguments: dict[str, Any]) -> str:
        action = arguments.get("action")
        if action == "add":
            return self._add(arguments.get("fact"))
        if action == "delete":
            index = arguments.get("index")
            if not isinstance(index, int):
                raise ValueError("Missing index for delete")
            return self._replace(index, None)
        if action == "update":
            index = arguments.get("index")
            fact = arguments.get("fact")
            if not isinstance(index, int) or not _has_text(fact):
                raise ValueError("Missing index or fact for update")
            old = self._replace(index, fact)
            if old is None:
                return INVALID_INDEX
            return f"##### Before:\n{old}\n\n\n##### After:\n{fact}"
        raise ValueError(f"Unknown action: {action}")

    def _add(self, fact: str | None) -> str:
        if not _has_text(fact):
            raise ValueError("Missing or empty fact")
        if self.agent_id is not None:
            memories = self.store.agent_memories(self.agent_id)
            memories.append(fact)
            self.store.set_agent_memories(self.agent_id, memories)
        else:
            memories = self.store.global_memories()
            memories.append(fact)
            self.store.set_global_memories(memories)
        logger.info("Stored memory for %s", self.agent_id or "all agents")
        return fact

    def _replace(self, index: int, fact: str | None) -> str | None:
        """Update (or delete, when *fact* is None) the 1-based *index*.

        Returns the previous text, or ``None`` if the index is out of
        range.  A delete of a missing index returns ``""``.
        """
        i = index - 1
        memories = self.store.global_memories()
        if 0 <= i < len(memories):
            old = memories[i]
            if fact is None:
                del memories[i]
            else:
                memories[i] = fact
            self.store.set_global_memories(memories)
            return old

        if self.agent_id is not None:
            agent_index = i - len(memories)
            agent_memories = self.store.agent_memories(self.agent_id)
            if 0 <= agent_index < len(agent_memories):
                old = agent_memories[agent_index]
                if fact is None:
                    del agent_memories[agent_index]
                else:
                    agent_memories[agent_index] = fact
                self.store.set_agent_memories(self.agent_id, agent_memories)
                return old

        logger.warning("Memory index %s out of range", index)
        return "" if fact is None else None


def _has_text(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())
