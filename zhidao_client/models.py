"""Data models for the ZhiDao streaming client."""

from dataclasses import dataclass, field
from typing import List, Optional, Any, Dict
from enum import Enum


class Stage(str, Enum):
    """Pipeline stages, in the order the backend runs them."""
    EVALUATION = "evaluation"
    PAPER_RETRIEVAL = "paper_retrieval"
    PAPER_ANALYSIS = "paper_analysis"
    ANSWER_GENERATION = "answer_generation"

    @property
    def order(self) -> int:
        """Position of the stage in the pipeline (0-based)."""
        return list(Stage).index(self)

    @classmethod
    def parse(cls, name: Optional[str]) -> Optional["Stage"]:
        """Return the stage named ``name`` or None if it is not a pipeline stage."""
        try:
            return cls(name)
        except ValueError:
            return None


def citation_key(authors: str, year: str) -> str:
    """Derive the citation key used to correlate papers with citations.

    The key is the last whitespace-separated token of ``authors`` followed by
    ``year`` verbatim, e.g. ``"Jane Smith", "2023" -> "Smith2023"``.
    """
    tokens = authors.split()
    last_name = tokens[-1] if tokens else "Unknown"
    return f"{last_name}{year}"


@dataclass
class Paper:
    """A paper found by the retrieval stage."""
    id: str
    title: str
    authors: str
    year: str
    link: str = ""
    source: Optional[str] = None
    abstract: Optional[str] = None
    is_selected: bool = False
    is_cited: bool = False

    @property
    def citation_key(self) -> str:
        return citation_key(self.authors, self.year)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "title": self.title,
            "authors": self.authors,
            "year": self.year,
            "link": self.link,
            "source": self.source,
            "abstract": self.abstract,
            "is_selected": self.is_selected,
            "is_cited": self.is_cited,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Paper":
        return cls(
            id=data["id"],
            title=data["title"],
            authors=data.get("authors", ""),
            year=data.get("year", ""),
            link=data.get("link", ""),
            source=data.get("source"),
            abstract=data.get("abstract"),
            is_selected=data.get("is_selected", False),
            is_cited=data.get("is_cited", False),
        )


@dataclass
class Citation:
    """An entry of the final answer's citation mapping."""
    key: str
    title: str
    authors: str
    year: str
    link: str = ""


@dataclass
class ImageResult:
    """An image related to the question."""
    url: str
    title: Optional[str] = None
    source: Optional[str] = None


@dataclass
class QueryResult:
    """Terminal result carried by the ``complete`` event."""
    answer: str
    query_word: Optional[str] = None
    paper_analysis: Optional[str] = None
    citations: List[Paper] = field(default_factory=list)
    citation_mapping: List[Citation] = field(default_factory=list)
    process_steps: List[str] = field(default_factory=list)
    images: List[ImageResult] = field(default_factory=list)
