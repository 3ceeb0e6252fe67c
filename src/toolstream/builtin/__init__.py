from toolstream.builtin.examples import random_fruit, user_name_tool
from toolstream.builtin.memory import (
    InMemoryMemoryStore,
    MemoryCapability,
    MemoryStore,
    render_memories,
)
from toolstream.builtin.web_search import SearchResult, WebSearchCapability

__all__ = [
    "InMemoryMemoryStore",
    "MemoryCapability",
    "MemoryStore",
    "SearchResult",
    "WebSearchCapability",
    "random_fruit",
    "render_memories",
    "user_name_tool",
]
