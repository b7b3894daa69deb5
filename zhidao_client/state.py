"""Observable state of the query currently being streamed.

``QueryState`` is the single mutable aggregate the event handlers write to.
All mutation happens under one re-entrant lock, and ``transaction()`` groups
a batch of mutations so subscribers are notified once per batch with an
immutable ``QueryStateSnapshot``.
"""

import copy
import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Tuple

from .models import Citation, ImageResult, Paper, QueryResult, Stage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QueryStateSnapshot:
    """Read-only copy of QueryState handed to renderers and storage."""
    current_stage: Optional[Stage] = None
    completed_stages: Tuple[Stage, ...] = ()
    papers: Tuple[Paper, ...] = ()
    selected_papers: Tuple[Paper, ...] = ()
    images: Tuple[ImageResult, ...] = ()
    accumulated_text: str = ""
    citation_map: Dict[str, Citation] = field(default_factory=dict)
    status_message: str = ""
    is_connected: bool = False
    is_streaming: bool = False
    is_complete: bool = False
    error: Optional[str] = None
    can_answer: Optional[bool] = None
    search_term: Optional[str] = None
    has_images: bool = False
    result: Optional[QueryResult] = None
    decode_error_count: int = 0

    @property
    def answer(self) -> str:
        """The answer text: streamed tokens, or the final result when none streamed."""
        if self.accumulated_text:
            return self.accumulated_text
        return self.result.answer if self.result else ""

    @property
    def cited_papers(self) -> Tuple[Paper, ...]:
        return tuple(p for p in self.papers if p.is_cited)


Listener = Callable[[QueryStateSnapshot], None]


class QueryState:
    """Mutable aggregate describing one query's progress."""

    def __init__(self):
        self._lock = threading.RLock()
        self._depth = 0
        self._dirty = False
        self._listeners: List[Listener] = []
        self._clear()

    def _clear(self):
        self.current_stage: Optional[Stage] = None
        self._completed: Dict[Stage, None] = {}
        self.papers: List[Paper] = []
        self.selected_papers: List[Paper] = []
        self.images: List[ImageResult] = []
        self._text_parts: List[str] = []
        self.citation_map: Dict[str, Citation] = {}
        self.status_message = ""
        self.is_connected = False
        self.is_streaming = False
        self.is_complete = False
        self.error: Optional[str] = None
        self.can_answer: Optional[bool] = None
        self.search_term: Optional[str] = None
        self.has_images = False
        self.result: Optional[QueryResult] = None
        self.decode_error_count = 0

    # -- observation -----------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a change listener. Returns a function that unsubscribes it."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe():
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    @contextmanager
    def transaction(self) -> Iterator["QueryState"]:
        """Hold the state lock for a batch of mutations.

        Listeners are called once, after the outermost transaction releases
        the lock, and only if something was changed.
        """
        with self._lock:
            self._depth += 1
            try:
                yield self
            finally:
                self._depth -= 1
                outermost = self._depth == 0
                notify = False
                if outermost and self._dirty:
                    self._dirty = False
                    notify = bool(self._listeners)
                if notify:
                    snapshot = self.snapshot()
                    listeners = list(self._listeners)
        if notify:
            self._notify(listeners, snapshot)

    def _notify(self, listeners: List[Listener], snapshot: QueryStateSnapshot):
        for listener in listeners:
            try:
                listener(snapshot)
            except Exception:
                logger.exception("State listener raised; continuing with remaining listeners")

    def _touch(self):
        self._dirty = True

    def snapshot(self) -> QueryStateSnapshot:
        with self._lock:
            return QueryStateSnapshot(
                current_stage=self.current_stage,
                completed_stages=tuple(self._completed),
                papers=tuple(copy.copy(p) for p in self.papers),
                selected_papers=tuple(copy.copy(p) for p in self.selected_papers),
                images=tuple(self.images),
                accumulated_text=self.accumulated_text,
                citation_map=dict(self.citation_map),
                status_message=self.status_message,
                is_connected=self.is_connected,
                is_streaming=self.is_streaming,
                is_complete=self.is_complete,
                error=self.error,
                can_answer=self.can_answer,
                search_term=self.search_term,
                has_images=self.has_images,
                result=self.result,
                decode_error_count=self.decode_error_count,
            )

    # -- derived fields --------------------------------------------------

    @property
    def completed_stages(self) -> Tuple[Stage, ...]:
        """Completed stages in the order they were completed."""
        with self._lock:
            return tuple(self._completed)

    @property
    def accumulated_text(self) -> str:
        with self._lock:
            if len(self._text_parts) > 1:
                self._text_parts[:] = ["".join(self._text_parts)]
            return self._text_parts[0] if self._text_parts else ""

    # -- mutation helpers ------------------------------------------------

    def reset(self):
        """Return every field to its fresh-instance default in one step."""
        with self.transaction():
            self._clear()
            self._touch()

    def set_status(self, message: str):
        with self.transaction():
            self.status_message = message
            self._touch()

    def mark_stage_completed(self, stage: Stage):
        with self.transaction():
            if stage not in self._completed:
                self._completed[stage] = None
                self._touch()

    def advance_stage(self, stage: Stage):
        """Make ``stage`` current, completing the stage it supersedes."""
        with self.transaction():
            previous = self.current_stage
            if previous is not None and previous != stage:
                if stage.order < previous.order:
                    logger.warning(
                        f"Stage regression from {previous.value} to {stage.value}; keeping completed stages"
                    )
                self.mark_stage_completed(previous)
            self.current_stage = stage
            self._touch()

    def add_or_update_papers(self, incoming: Iterable[Paper]) -> int:
        """Merge papers by id, keeping first-seen order.

        A paper already present is not duplicated; its ``is_selected`` and
        ``is_cited`` flags are OR-ed with the incoming ones.

        Returns:
            Number of papers that were newly added
        """
        added = 0
        with self.transaction():
            index = {p.id: p for p in self.papers}
            for paper in incoming:
                existing = index.get(paper.id)
                if existing is None:
                    self.papers.append(paper)
                    index[paper.id] = paper
                    added += 1
                else:
                    existing.is_selected = existing.is_selected or paper.is_selected
                    existing.is_cited = existing.is_cited or paper.is_cited
            self._touch()
        return added

    def mark_selected(self, selected: List[Paper]):
        """Flag collected papers chosen by the analysis stage.

        Selection events may identify papers only by title, so a paper is
        matched by id first and by exact title otherwise.
        """
        with self.transaction():
            by_id = {p.id: p for p in self.papers}
            for candidate in selected:
                match = by_id.get(candidate.id)
                if match is None:
                    match = next((p for p in self.papers if p.title == candidate.title), None)
                if match is not None:
                    match.is_selected = True
            self.selected_papers = list(selected)
            self._touch()

    def append_token(self, token: str):
        with self.transaction():
            self._text_parts.append(token)
            self._touch()

    def apply_citations(self, citations: Iterable[Citation]):
        """Store the citation mapping and flag every paper it cites."""
        with self.transaction():
            for citation in citations:
                self.citation_map[citation.key] = citation
            for paper in self.papers:
                if paper.citation_key in self.citation_map:
                    paper.is_cited = True
            self._touch()

    def add_images(self, images: Iterable[ImageResult]):
        with self.transaction():
            known = {image.url for image in self.images}
            for image in images:
                if image.url not in known:
                    self.images.append(image)
                    known.add(image.url)
            self.has_images = True
            self._touch()

    def fail(self, error: str, status_message: str):
        """Record a terminal error. Streaming always stops."""
        with self.transaction():
            self.error = error
            self.status_message = status_message
            self.is_streaming = False
            self._touch()

    def record_decode_error(self, status_message: str):
        with self.transaction():
            self.decode_error_count += 1
            self.status_message = status_message
            self._touch()

    def update(self, **fields):
        """Set plain fields (``is_streaming``, ``search_term`` ...) in one batch."""
        with self.transaction():
            for name, value in fields.items():
                if name.startswith("_") or not hasattr(self, name):
                    raise AttributeError(f"QueryState has no field {name!r}")
                setattr(self, name, value)
            self._touch()
