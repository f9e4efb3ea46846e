from __future__ import annotations

from enum import Enum
from typing import List, Sequence

from chatkeeper.utils.logger import get_logger

from .models import ChatMessage
from .store import SqlMessageStore

logger = get_logger(__name__)


class ReadPolicy(str, Enum):
    """Which end of the log a bounded read takes its records from."""

    OLDEST_FIRST = "oldest"
    MOST_RECENT = "recent"


class ChatLog:
    """Append-only, time-ordered log of conversation turns.

    Capacity is not enforced here; callers run
    :meth:`RetentionController.ensure_space_for` around their writes.
    """

    def __init__(self, store: SqlMessageStore) -> None:
        self.store = store

    def append(self, messages: Sequence[ChatMessage]) -> int:
        """Persist ``messages`` as one ordered batch.

        Raises ``PersistenceError`` / ``PersistenceUnavailable``; failures are
        never swallowed so the caller can decide how to react.
        """
        if not messages:
            return 0
        inserted = self.store.insert_ordered_batch([m.to_record() for m in messages])
        logger.debug("Appended %d message(s)", inserted)
        return inserted

    def read_oldest(self, limit: int) -> List[ChatMessage]:
        """Return the ``limit`` *oldest* turns, oldest → newest."""
        if limit <= 0:
            return []
        rows = self.store.find(sort=(("created_at", "asc"),), limit=limit)
        return [ChatMessage.from_record(r) for r in rows]

    def read_recent(self, limit: int) -> List[ChatMessage]:
        """Return the *most recent* ``limit`` turns.

        The list is returned in chronological order (oldest → newest) so that it
        can be fed to the model without additional sorting.
        """
        if limit <= 0:
            return []
        rows = self.store.find(sort=(("created_at", "desc"),), limit=limit)
        # Reverse so we go from oldest → newest.
        rows.reverse()
        return [ChatMessage.from_record(r) for r in rows]

    def read_bounded(self, limit: int, policy: ReadPolicy) -> List[ChatMessage]:
        policy = ReadPolicy(policy)
        if policy is ReadPolicy.OLDEST_FIRST:
            return self.read_oldest(limit)
        return self.read_recent(limit)

    def reset_all(self) -> int:
        """Delete every message. Administrative only."""
        deleted = self.store.delete_all()
        logger.warning("Chat log reset: %d message(s) deleted", deleted)
        return deleted
