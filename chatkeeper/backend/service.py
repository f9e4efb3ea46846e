from __future__ import annotations

"""Conversation handling: context read, model call, capacity check, append."""

from dataclasses import dataclass
from typing import Callable, List, Optional, Protocol, Sequence

from chatkeeper.memory.chat_log import ReadPolicy
from chatkeeper.memory.history import ChatHistory
from chatkeeper.memory.models import ChatMessage
from chatkeeper.memory.retention import RetentionDecision
from chatkeeper.utils.errors import PersistenceUnavailable, StorageError, retry
from chatkeeper.utils.logger import get_logger

logger = get_logger(__name__)

# Schedules ``fn(*args)`` to run later, e.g. ``BackgroundTasks.add_task``.
Scheduler = Callable[..., None]


class ModelClient(Protocol):
    def generate(self, history: Sequence[ChatMessage]) -> ChatMessage:
        ...


@dataclass(frozen=True)
class AgentReply:
    thoughts: str
    answer: str


def summarize_reply(message: ChatMessage) -> AgentReply:
    """Split a model turn into reasoning text and answer text."""
    thoughts, answer = "", ""
    for part in message.parts:
        if not part.text:
            continue
        if part.thought:
            thoughts += part.text
        else:
            answer += part.text
    return AgentReply(thoughts=thoughts, answer=answer)


class ConversationService:
    def __init__(
        self,
        history: ChatHistory,
        model_client: ModelClient,
        context_limit: int = 200,
        read_policy: ReadPolicy = ReadPolicy.MOST_RECENT,
    ) -> None:
        self.history = history
        self.model_client = model_client
        self.context_limit = context_limit
        self.read_policy = ReadPolicy(read_policy)

    def context(self) -> List[ChatMessage]:
        return self.history.chat_log.read_bounded(self.context_limit, self.read_policy)

    def general_agent(self, prompt: str, schedule: Optional[Scheduler] = None) -> AgentReply:
        """Answer ``prompt`` and persist the user/model pair.

        With ``schedule`` the capacity check is handed off and runs after the
        append, so the pair is already part of the estimate; otherwise it runs
        inline before the append.  Append failures always propagate.
        """
        user_turn = ChatMessage.user(prompt)
        model_turn = self.model_client.generate([*self.context(), user_turn])
        pair = [user_turn, model_turn]

        if schedule is not None:
            schedule(self.enforce_capacity, 0)
        else:
            self.enforce_capacity(sum(m.serialized_size() for m in pair))

        self._append(pair)
        return summarize_reply(model_turn)

    def enforce_capacity(self, bytes_needed: int) -> Optional[RetentionDecision]:
        """Run one retention cycle; failures are logged, the write still goes ahead."""
        try:
            return self.history.retention.ensure_space_for(bytes_needed)
        except StorageError as e:
            logger.warning("Capacity check failed, continuing without eviction: %s", e)
            return None

    @retry(max_attempts=3, delay=0.2, backoff=2.0, exceptions=PersistenceUnavailable)
    def _append(self, pair: List[ChatMessage]) -> int:
        return self.history.chat_log.append(pair)
