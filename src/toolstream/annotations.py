"""Citation annotations attached to streamed content.

OpenRouter's web search plugin sends ``delta.annotations`` entries of
type ``url_citation``; other providers may send nothing at all.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, TypeAdapter


class URLCitation(BaseModel):
    model_config = ConfigDict(frozen=True)

    url: str
    title: str | None = None
    content: str | None = None
    start_index: int | None = None
    end_index: int | None = None


class Annotation(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: str
    url_citation: URLCitation | None = None


_annotation_list = TypeAdapter(list[Annotation])


def parse_annotations(data: list) -> list[Annotation]:
    """Validate raw annotation dicts.

    Raises:
        pydantic.ValidationError: If any entry does not match.
    """
    return _annotation_list.validate_python(data)


class AnnotationCollector:
    """Accumulates citations in arrival order.

    Citations are positional and are never merged or de-duplicated.
    """

    def __init__(self) -> None:
        self._collected: list[Annotation] = []
        self._emitted = 0

    def ingest(self, citations: list[Annotation]) -> None:
        self._collected.extend(citations)

    def drain(self) -> list[Annotation]:
        """Return citations not yet handed out and mark them emitted."""
        pending = self._collected[self._emitted:]
        self._emitted = len(self._collected)
        return pending

    @property
    def collected(self) -> list[Annotation]:
        return list(self._collected)
