"""Routes decoded stream events to the handlers that update QueryState."""

import logging
from typing import Callable, Dict, Optional

from .events import StreamEvent, decode_event
from .messages import Messages
from .models import Stage
from .state import QueryState

logger = logging.getLogger(__name__)

# Substage id -> pipeline stage it finishes
SUBSTAGE_COMPLETES = {
    "evaluation_complete": Stage.EVALUATION,
    "papers_selected": Stage.PAPER_RETRIEVAL,
    "paper_analysis_complete": Stage.PAPER_ANALYSIS,
}


class EventClassifier:
    """Decodes payloads and applies each event to a QueryState.

    Handlers run synchronously in the order events are dispatched. Unknown
    statuses are logged and ignored so newer servers keep working.
    """

    def __init__(self, messages: Optional[Messages] = None):
        self.messages = messages or Messages()
        self._handlers: Dict[str, Callable[[StreamEvent, QueryState], None]] = {
            "connected": self._on_connected,
            "stage_update": self._on_stage_update,
            "substage_update": self._on_substage_update,
            "papers_finding": self._on_papers_finding,
            "images_found": self._on_images_found,
            "streaming": self._on_streaming,
            "token": self._on_token,
            "chunk_complete": self._on_chunk_complete,
            "complete": self._on_complete,
            "error": self._on_error,
        }

    def classify(self, payload: str, state: QueryState) -> StreamEvent:
        """Decode ``payload`` and dispatch it. DecodeError propagates to the caller."""
        event = decode_event(payload)
        self.dispatch(event, state)
        return event

    def dispatch(self, event: StreamEvent, state: QueryState):
        handler = self._handlers.get(event.status)
        if handler is None:
            logger.info(f"Ignoring unknown event status: {event.status}")
            return
        if event.status == "token":
            logger.debug("Received token event")
        else:
            logger.info(f"Received event: {event.status}")
        with state.transaction():
            handler(event, state)

    def _on_connected(self, event: StreamEvent, state: QueryState):
        state.update(
            is_connected=True,
            status_message=event.message or self.messages.get("connected"),
        )

    def _on_stage_update(self, event: StreamEvent, state: QueryState):
        if not event.stage:
            logger.warning("stage_update event without a stage")
            return
        stage = Stage.parse(event.stage)
        if stage is None:
            logger.warning(f"Unknown pipeline stage: {event.stage}")
        else:
            state.advance_stage(stage)
        state.set_status(event.message or self.messages.get("processing_stage", stage=event.stage))

    def _on_substage_update(self, event: StreamEvent, state: QueryState):
        substage = event.stage
        if not substage:
            logger.warning("substage_update event without a stage")
            return
        state.set_status(event.message or self.messages.get("processing_substage", substage=substage))

        if substage == "evaluation_complete":
            state.update(can_answer=event.can_answer)
        elif substage == "search_term_selected":
            state.update(search_term=event.query_word)
        elif substage == "papers_selected":
            if event.selected_papers is None:
                # Without the selection there is nothing to merge and the stage stays open.
                return
            state.mark_selected([p.to_paper() for p in event.selected_papers])

        completed = SUBSTAGE_COMPLETES.get(substage)
        if completed is not None:
            state.mark_stage_completed(completed)

    def _on_papers_finding(self, event: StreamEvent, state: QueryState):
        if event.papers is not None:
            added = state.add_or_update_papers(p.to_paper() for p in event.papers)
            logger.info(f"Found {len(event.papers)} papers ({added} new)")
        count = event.count if event.count is not None else len(event.papers or [])
        state.set_status(event.message or self.messages.get("papers_found", count=count))

    def _on_images_found(self, event: StreamEvent, state: QueryState):
        if event.images is not None:
            state.add_images(i.to_image() for i in event.images)
        count = event.count if event.count is not None else len(event.images or [])
        state.set_status(event.message or self.messages.get("images_found", count=count))

    def _on_streaming(self, event: StreamEvent, state: QueryState):
        state.set_status(event.message or self.messages.get("streaming"))

    def _on_token(self, event: StreamEvent, state: QueryState):
        if event.token is not None:
            state.append_token(event.token)

    def _on_chunk_complete(self, event: StreamEvent, state: QueryState):
        state.set_status(event.message or self.messages.get("chunk_complete"))

    def _on_complete(self, event: StreamEvent, state: QueryState):
        state.update(is_complete=True, is_streaming=False)
        if event.result is not None:
            result = event.result.to_result()
            state.update(result=result)
            if result.citation_mapping:
                state.apply_citations(result.citation_mapping)
            if result.images:
                state.add_images(result.images)
        state.set_status(self.messages.get("complete"))

    def _on_error(self, event: StreamEvent, state: QueryState):
        message = event.error or self.messages.get("unknown_error")
        logger.error(f"Server reported error: {message}")
        state.fail(message, self.messages.get("error", message=message))
