from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from chatkeeper.utils.telemetry import TelemetrySink

from .chat_log import ChatLog
from .db import StoreHandle
from .estimator import Estimator
from .pruner import Pruner
from .retention import RetentionController
from .store import SqlMessageStore


@dataclass
class ChatHistory:
    """The components of one bounded chat log, wired to a single store handle."""

    handle: StoreHandle
    store: SqlMessageStore
    chat_log: ChatLog
    estimator: Estimator
    pruner: Pruner
    retention: RetentionController

    def close(self) -> None:
        self.handle.close()


def build_history(
    handle: StoreHandle,
    telemetry: Optional[TelemetrySink] = None,
    store: Optional[SqlMessageStore] = None,
) -> ChatHistory:
    settings = handle.settings
    store = store or SqlMessageStore(handle)
    chat_log = ChatLog(store)
    estimator = Estimator(store)
    pruner = Pruner(chat_log)
    retention = RetentionController(
        estimator,
        pruner,
        max_bytes=settings.max_bytes,
        target_ratio=settings.prune_target_ratio,
        telemetry=telemetry,
    )
    return ChatHistory(handle, store, chat_log, estimator, pruner, retention)
