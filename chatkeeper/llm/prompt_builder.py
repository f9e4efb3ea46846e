from __future__ import annotations

"""Prompt construction helpers for the conversation backend.

All model-facing messages should be assembled via this module so we maintain
one single source of truth for the system prompt and the history mapping.

Templates live in ``chatkeeper/llm/prompts/`` and use Jinja2 for simple
variable substitution.
"""

import datetime
from pathlib import Path
from typing import Dict, Iterable, List

import jinja2

from chatkeeper.memory.models import ChatMessage, Role

# ---------------------------------------------------------------------------
# Paths & Jinja environment
# ---------------------------------------------------------------------------

PROMPTS_DIR = Path(__file__).resolve().parent / "prompts"

# Lazy-initialised Jinja environment so we only pay the cost once.
_ENV: jinja2.Environment | None = None

# Stored roles → chat-completion roles.
_ROLE_MAP = {Role.USER: "user", Role.MODEL: "assistant"}


def _get_env() -> jinja2.Environment:
    global _ENV
    if _ENV is None:
        _ENV = jinja2.Environment(
            loader=jinja2.FileSystemLoader(str(PROMPTS_DIR)),
            autoescape=False,  # we do not render HTML
            trim_blocks=True,
            lstrip_blocks=True,
        )
    return _ENV


def message_text(message: ChatMessage) -> str:
    """Concatenate the answer parts of ``message``, skipping reasoning traces."""
    return "".join(p.text for p in message.parts if p.text and not p.thought)


# ---------------------------------------------------------------------------
# Public API – build the messages list
# ---------------------------------------------------------------------------

def build_messages(history: Iterable[ChatMessage]) -> List[Dict[str, str]]:
    """Return a list of OpenAI ChatCompletion-style messages.

    Parameters
    ----------
    history
        Stored turns in chronological order, ending with the current user
        turn.  Turns with no answer text (e.g. only reasoning parts) are
        dropped.
    """
    turns = [m for m in history if message_text(m)]
    system_prompt = _get_env().get_template("system_prompt.jinja").render(
        today=datetime.date.today().isoformat(),
        turns=max(len(turns) - 1, 0),
    )

    messages: List[Dict[str, str]] = [
        {"role": "system", "content": system_prompt},
    ]
    messages.extend({"role": _ROLE_MAP[m.role], "content": message_text(m)} for m in turns)
    return messages
