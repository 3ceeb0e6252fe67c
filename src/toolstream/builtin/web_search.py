from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from toolstream.capability import ToolCapability


@dataclass
class SearchResult:
    title: str
    url: str
    snippet: str = ""


SearchBackend = Callable[[str, int], Awaitable[list[SearchResult]]]


class WebSearchCapability(ToolCapability):
    """Search the web through an injected backend.

    The backend does the actual HTTP work; this class only exposes it to
    the model and formats the results as numbered plain text.

    Args:
        backend: ``async (query, max_results) -> list[SearchResult]``.
        max_results: Upper bound passed to the backend when the model
            does not ask for a specific count.
    """

    name = "web_search"
    display_name = "Web Search"
    icon = "globe"
    default_enabled = False
    description = (
        "Search the web for current information. Returns a numbered list "
        "of results with titles, URLs and snippets."
    )
    parameters = {
        "type": "object",
        "properties": {
            "query": {
                "type": "string",
                "description": "What to search for",
            },
            "max_results": {
                "type": "integer",
                "description": "How many results to return",
            },
        },
        "required": ["query"],
    }

    def __init__(self, backend: SearchBackend, max_results: int = 5):
        self.backend = backend
        self.max_results = max_results

    def summarize(self, arguments: dict[str, Any]) -> str:
        return f"Searched for \"{arguments.get('query', '')}\""

    async def execute(self, arguments: dict[str, Any]) -> str:
        query = arguments["query"]
        limit = arguments.get("max_results") or self.max_results
        results = await self.backend(query, min(limit, self.max_results))
        if not results:
            return f"No results found for \"{query}\"."
        return "\n\n".join(
            f"{i}. {r.title}\n{r.url}\n{r.snippet}".rstrip()
            for i, r in enumerate(results, start=1)
        )
