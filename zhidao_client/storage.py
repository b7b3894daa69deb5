"""JSON history of finished conversations."""

import json
import logging
import os
import tempfile
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from .models import Paper
from .state import QueryStateSnapshot

logger = logging.getLogger(__name__)


@dataclass
class SavedConversation:
    """A completed question and its answer."""
    query: str
    answer: str
    papers: List[Paper] = field(default_factory=list)
    image_urls: List[str] = field(default_factory=list)
    completed_stages: List[str] = field(default_factory=list)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "query": self.query,
            "timestamp": self.timestamp.isoformat(),
            "answer": self.answer,
            "papers": [p.to_dict() for p in self.papers],
            "image_urls": self.image_urls,
            "completed_stages": self.completed_stages,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SavedConversation":
        return cls(
            id=data["id"],
            query=data["query"],
            timestamp=datetime.fromisoformat(data["timestamp"]),
            answer=data.get("answer", ""),
            papers=[Paper.from_dict(p) for p in data.get("papers", [])],
            image_urls=data.get("image_urls", []),
            completed_stages=data.get("completed_stages", []),
        )

    @classmethod
    def from_snapshot(cls, query: str, snapshot: QueryStateSnapshot) -> "SavedConversation":
        """Build a record from the final state of a completed query."""
        return cls(
            query=query,
            answer=snapshot.answer,
            papers=list(snapshot.papers),
            image_urls=[image.url for image in snapshot.images],
            completed_stages=[stage.value for stage in snapshot.completed_stages],
        )


class ConversationStore:
    """Keeps saved conversations in a single JSON file.

    The file is read once on construction and rewritten in full after every
    change.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._conversations: List[SavedConversation] = []
        self.load()

    def load(self) -> List[SavedConversation]:
        """(Re)read the history file. A missing file means an empty history."""
        if not self.path.exists():
            logger.debug(f"No saved conversations at {self.path}")
            self._conversations = []
            return []

        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            self._conversations = [SavedConversation.from_dict(item) for item in data]
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            logger.error(f"Error loading conversations from {self.path}: {e}")
            self._conversations = []
        return list(self._conversations)

    def conversations(self) -> List[SavedConversation]:
        """All saved conversations, newest first."""
        return sorted(self._conversations, key=lambda c: c.timestamp, reverse=True)

    def get(self, conversation_id: str) -> Optional[SavedConversation]:
        """Find a conversation by id or by a unique id prefix."""
        matches = [c for c in self._conversations if c.id.startswith(conversation_id)]
        exact = [c for c in matches if c.id == conversation_id]
        if exact:
            return exact[0]
        return matches[0] if len(matches) == 1 else None

    def save(self, conversation: SavedConversation) -> SavedConversation:
        self._conversations.append(conversation)
        self._write()
        return conversation

    def save_from_snapshot(self, query: str, snapshot: QueryStateSnapshot) -> SavedConversation:
        """Save the outcome of a finished query.

        Raises:
            ValueError: If the query did not complete successfully
        """
        if not snapshot.is_complete or snapshot.error is not None:
            raise ValueError("only completed conversations can be saved")
        return self.save(SavedConversation.from_snapshot(query, snapshot))

    def delete(self, conversation_id: str) -> bool:
        conversation = self.get(conversation_id)
        if conversation is None:
            return False
        self._conversations = [c for c in self._conversations if c.id != conversation.id]
        self._write()
        return True

    def delete_all(self):
        self._conversations = []
        self._write()

    def _write(self):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = json.dumps([c.to_dict() for c in self._conversations], ensure_ascii=False, indent=2)
        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=".conversations-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
            os.replace(tmp_path, self.path)
        except OSError:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise
