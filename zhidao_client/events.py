"""Wire models for the events streamed by ``/stream-question``.

Every SSE ``data:`` line carries one JSON object with a mandatory ``status``
discriminator; the remaining fields depend on the status. The payload models
below tolerate the absences the backend is known to produce and convert to the
domain models in ``models.py``.
"""

import json
import uuid
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import DecodeError
from .models import Citation, ImageResult, Paper, QueryResult


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class PaperPayload(_WireModel):
    """A paper as transmitted in ``papers``, ``selectedPapers`` or ``citations``."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    title: str
    authors: str = "Unknown Author"
    year: str = "Unknown Year"
    source: Optional[str] = None
    abstract: Optional[str] = None
    link: str = ""
    is_selected: bool = Field(default=False, alias="isSelected")
    is_cited: bool = Field(default=False, alias="isCited")

    @field_validator("id", mode="before")
    @classmethod
    def _fallback_id(cls, value: Any) -> str:
        if isinstance(value, bool) or not isinstance(value, (str, int)):
            return str(uuid.uuid4())
        return str(value)

    @field_validator("authors", mode="before")
    @classmethod
    def _fallback_authors(cls, value: Any) -> str:
        return value if isinstance(value, str) else "Unknown Author"

    @field_validator("year", mode="before")
    @classmethod
    def _fallback_year(cls, value: Any) -> str:
        if isinstance(value, str):
            return value
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return "Unknown Year"

    @field_validator("link", mode="before")
    @classmethod
    def _fallback_link(cls, value: Any) -> str:
        return value if isinstance(value, str) else ""

    def to_paper(self) -> Paper:
        return Paper(
            id=self.id,
            title=self.title,
            authors=self.authors,
            year=self.year,
            link=self.link,
            source=self.source,
            abstract=self.abstract,
            is_selected=self.is_selected,
            is_cited=self.is_cited,
        )


class CitationPayload(_WireModel):
    """One entry of ``result.citationMapping``."""
    key: str
    title: str
    authors: str = ""
    year: str = ""
    link: str = ""

    @field_validator("year", mode="before")
    @classmethod
    def _year_as_text(cls, value: Any) -> Any:
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value

    def to_citation(self) -> Citation:
        return Citation(
            key=self.key,
            title=self.title,
            authors=self.authors,
            year=self.year,
            link=self.link,
        )


class ImagePayload(_WireModel):
    url: str
    title: Optional[str] = None
    source: Optional[str] = None

    def to_image(self) -> ImageResult:
        return ImageResult(url=self.url, title=self.title, source=self.source)


class ResultPayload(_WireModel):
    """The terminal ``result`` object of a ``complete`` event."""
    answer: str
    query_word: Optional[str] = Field(default=None, alias="queryWord")
    citations: Optional[List[PaperPayload]] = None
    paper_analysis: Optional[str] = Field(default=None, alias="paperAnalysis")
    citation_mapping: Optional[List[CitationPayload]] = Field(default=None, alias="citationMapping")
    process_steps: Optional[List[str]] = Field(default=None, alias="processSteps")
    images: Optional[List[ImagePayload]] = None

    def to_result(self) -> QueryResult:
        return QueryResult(
            answer=self.answer,
            query_word=self.query_word,
            paper_analysis=self.paper_analysis,
            citations=[p.to_paper() for p in self.citations or []],
            citation_mapping=[c.to_citation() for c in self.citation_mapping or []],
            process_steps=list(self.process_steps or []),
            images=[i.to_image() for i in self.images or []],
        )


class StreamEvent(_WireModel):
    """One decoded event. Only ``status`` is mandatory."""
    status: str
    stage: Optional[str] = None
    message: Optional[str] = None
    token: Optional[str] = None
    count: Optional[int] = None
    error: Optional[str] = None
    can_answer: Optional[bool] = Field(default=None, alias="canAnswer")
    query_word: Optional[str] = Field(default=None, alias="queryWord")
    papers: Optional[List[PaperPayload]] = None
    selected_papers: Optional[List[PaperPayload]] = Field(default=None, alias="selectedPapers")
    images: Optional[List[ImagePayload]] = None
    result: Optional[ResultPayload] = None


def decode_event(payload: str) -> StreamEvent:
    """Decode one ``data:`` payload into a StreamEvent.

    Args:
        payload: The text after the ``data: `` prefix

    Returns:
        The decoded event

    Raises:
        DecodeError: If the payload is not a JSON object with a string
            ``status`` or a status-specific field has the wrong shape
    """
    try:
        data = json.loads(payload)
    except json.JSONDecodeError as e:
        raise DecodeError(f"Invalid JSON payload: {e}", payload) from e

    if not isinstance(data, dict):
        raise DecodeError("Event payload must be a JSON object", payload)
    if not isinstance(data.get("status"), str):
        raise DecodeError("Event payload is missing a string 'status' field", payload)

    try:
        return StreamEvent.model_validate(data)
    except ValidationError as e:
        raise DecodeError(
            f"Invalid '{data['status']}' event: {e.error_count()} field error(s)", payload
        ) from e
