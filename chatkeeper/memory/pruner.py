from __future__ import annotations

from dataclasses import dataclass

from chatkeeper.utils.logger import get_logger

from .chat_log import ChatLog

logger = get_logger(__name__)


@dataclass(frozen=True)
class PruneResult:
    requested: int
    deleted: int

    @property
    def shortfall(self) -> int:
        return max(0, self.requested - self.deleted)


class Pruner:
    """Delete the oldest records of a :class:`ChatLog`."""

    def __init__(self, chat_log: ChatLog) -> None:
        self.chat_log = chat_log

    def prune_oldest_n(self, n: int) -> PruneResult:
        """Delete the ``n`` records with the smallest ``created_at`` in one batch.

        Ties are resolved by insertion order.  Deleting fewer rows than
        requested is logged as a shortfall and not retried.
        """
        if n <= 0:
            return PruneResult(requested=max(n, 0), deleted=0)

        store = self.chat_log.store
        rows = store.find(sort=(("created_at", "asc"),), limit=n, projection=("id",))
        ids = [r["id"] for r in rows]
        deleted = store.delete_batch(ids) if ids else 0
        if len(ids) < n:
            logger.warning("prune_shortfall: log held %d record(s), requested %d", len(ids), n)
        if deleted < len(ids):
            logger.warning(
                "prune_shortfall: selected %d, deleted %d (requested %d)", len(ids), deleted, n
            )
        logger.info("Pruned oldest messages: %d", deleted)
        return PruneResult(requested=n, deleted=deleted)

    def reset_all(self) -> int:
        return self.chat_log.reset_all()
