from __future__ import annotations

"""Thin wrapper around the chat-completion API.

The rest of the backend only calls :meth:`ChatModelClient.generate`, which
takes stored turns and returns the model's turn as a ``ChatMessage``.
"""

from typing import List, Optional, Sequence

import openai

from chatkeeper.memory.models import ChatMessage, MessagePart, Role
from chatkeeper.utils.errors import ModelError
from chatkeeper.utils.logger import get_logger

from .prompt_builder import build_messages

logger = get_logger(__name__)


class ChatModelClient:
    def __init__(
        self,
        client: openai.OpenAI,
        model: str,
        temperature: float = 0.3,
        max_tokens: Optional[int] = None,
    ) -> None:
        self.client = client
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens

    def generate(self, history: Sequence[ChatMessage]) -> ChatMessage:
        """Answer the last user turn in ``history``.

        Provider reasoning (``reasoning_content`` on OpenAI-compatible servers)
        is kept as a ``thought`` part ahead of the answer.
        """
        messages = build_messages(history)
        logger.info("Calling chat completion | model=%s | messages=%d", self.model, len(messages))
        options = {"temperature": self.temperature}
        if self.max_tokens is not None:
            options["max_tokens"] = self.max_tokens
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                **options,
            )
        except openai.OpenAIError as e:
            logger.error("Chat completion failed: %s", e)
            raise ModelError(f"Model call failed: {e}") from e

        if not response.choices:
            raise ModelError("Model response candidates are empty.")

        reply = response.choices[0].message
        parts: List[MessagePart] = []
        reasoning = getattr(reply, "reasoning_content", None)
        if reasoning:
            parts.append(MessagePart(text=reasoning, thought=True))
        if reply.content:
            parts.append(MessagePart(text=reply.content))
        if not parts:
            raise ModelError("Model returned an empty response.")

        return ChatMessage(
            role=Role.MODEL,
            parts=parts,
            thoughts=reasoning or None,
            has_thoughts=bool(reasoning),
            model=getattr(response, "model", None) or self.model,
        )
