"""Request tracking and completion notifications.

A ``RequestTracker`` is created by whatever owns the stream session and
passed to it explicitly. It remembers which questions are in flight and
calls the registered handlers when one of them completes, so a front-end can
alert the user (terminal bell, desktop notification, ...).
"""

import logging
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass
class TrackedRequest:
    """A question whose answer is still streaming."""
    id: str
    query: str
    started_at: datetime


@dataclass
class CompletedRequest:
    """Passed to completion handlers."""
    id: str
    query: str
    started_at: datetime
    completed_at: datetime

    @property
    def duration_seconds(self) -> float:
        return (self.completed_at - self.started_at).total_seconds()


CompletionHandler = Callable[[CompletedRequest], None]


class RequestTracker:
    """Tracks in-flight requests and notifies handlers when they complete."""

    def __init__(self, handlers: Optional[List[CompletionHandler]] = None):
        self._lock = threading.Lock()
        self._active: Dict[str, TrackedRequest] = {}
        self._handlers: List[CompletionHandler] = list(handlers or [])

    def add_handler(self, handler: CompletionHandler):
        with self._lock:
            self._handlers.append(handler)

    def track(self, query: str) -> str:
        """Start tracking a request. Returns its id."""
        request = TrackedRequest(
            id=str(uuid.uuid4()),
            query=query,
            started_at=datetime.now(timezone.utc),
        )
        with self._lock:
            self._active[request.id] = request
        logger.debug(f"Tracking request {request.id}")
        return request.id

    def stop_tracking(self, request_id: str):
        """Forget a request without notifying (cancelled or failed)."""
        with self._lock:
            self._active.pop(request_id, None)

    def complete(self, request_id: str) -> Optional[CompletedRequest]:
        """Mark a request complete and notify every handler.

        Unknown ids (already completed or never tracked) are ignored.

        Returns:
            The completed request, or None if the id was not tracked
        """
        with self._lock:
            request = self._active.pop(request_id, None)
            handlers = list(self._handlers)
        if request is None:
            return None

        completed = CompletedRequest(
            id=request.id,
            query=request.query,
            started_at=request.started_at,
            completed_at=datetime.now(timezone.utc),
        )
        logger.info(f"Request {request.id} completed in {completed.duration_seconds:.1f}s")
        for handler in handlers:
            try:
                handler(completed)
            except Exception:
                logger.exception(f"Completion handler failed for request {request.id}")
        return completed

    def active_requests(self) -> List[TrackedRequest]:
        with self._lock:
            return list(self._active.values())
