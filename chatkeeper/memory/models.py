from __future__ import annotations

"""Storage schema and message models for the chat history log.

``ChatMessage`` / ``MessagePart`` are the pydantic models handed around by the
conversation layer.  ``messages_table`` builds the SQLAlchemy table that
backs the log; the table name is configurable so several independent logs
can live side by side (e.g. in tests).
"""

import datetime
import json
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
)

# Keys that ``MessagePart`` models explicitly; anything else goes into ``extra``.
_PART_FIELDS = {"text", "thought"}


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def to_naive_utc(ts: datetime.datetime) -> datetime.datetime:
    """Normalise ``ts`` to a naive UTC datetime (SQLite drops tzinfo anyway)."""
    if ts.tzinfo is not None:
        ts = ts.astimezone(datetime.timezone.utc).replace(tzinfo=None)
    return ts


class Role(str, Enum):
    USER = "user"
    MODEL = "model"


class MessagePart(BaseModel):
    """One piece of a turn: plain text, or a reasoning trace when ``thought`` is set.

    Provider-specific attributes (inline data, function calls, ...) are kept
    in ``extra``.  Unknown keys passed at construction time are folded into
    ``extra`` so stored parts keep their flat wire shape.
    """

    model_config = ConfigDict(extra="forbid")

    text: Optional[str] = None
    thought: Optional[bool] = None
    extra: Dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _collect_extra(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        known = {k: v for k, v in data.items() if k in _PART_FIELDS}
        extra = dict(data.get("extra") or {})
        extra.update({k: v for k, v in data.items() if k not in _PART_FIELDS and k != "extra"})
        known["extra"] = extra
        return known

    @field_validator("extra")
    @classmethod
    def _extra_is_json(cls, value: Dict[str, Any]) -> Dict[str, Any]:
        # ``to_record`` flattens ``extra`` next to the modelled fields.
        reserved = sorted(set(value) & (_PART_FIELDS | {"extra"}))
        if reserved:
            raise ValueError(f"reserved part keys not allowed in extra: {', '.join(reserved)}")
        try:
            json.dumps(value)
        except (TypeError, ValueError) as e:
            raise ValueError(f"part attributes must be JSON-serialisable: {e}") from e
        return value

    def to_record(self) -> Dict[str, Any]:
        record: Dict[str, Any] = dict(self.extra)
        if self.text is not None:
            record["text"] = self.text
        if self.thought is not None:
            record["thought"] = self.thought
        return record


class ChatMessage(BaseModel):
    """A single conversation turn as stored in the log."""

    id: Optional[int] = None
    role: Role
    parts: List[MessagePart]
    created_at: datetime.datetime = Field(default_factory=utcnow)
    thoughts: Optional[str] = None
    has_thoughts: Optional[bool] = None
    model: Optional[str] = None
    archived: Optional[bool] = None

    @classmethod
    def user(cls, text: str, **kwargs: Any) -> "ChatMessage":
        return cls(role=Role.USER, parts=[MessagePart(text=text)], **kwargs)

    def to_record(self) -> Dict[str, Any]:
        """Row values for insertion (``id`` is assigned by the store)."""
        return {
            "role": self.role.value,
            "parts": [p.to_record() for p in self.parts],
            "created_at": to_naive_utc(self.created_at),
            "thoughts": self.thoughts,
            "has_thoughts": self.has_thoughts,
            "model": self.model,
            "archived": bool(self.archived),
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "ChatMessage":
        created = record["created_at"]
        if created.tzinfo is None:
            created = created.replace(tzinfo=datetime.timezone.utc)
        return cls(
            id=record.get("id"),
            role=record["role"],
            parts=record.get("parts") or [],
            created_at=created,
            thoughts=record.get("thoughts"),
            has_thoughts=record.get("has_thoughts"),
            model=record.get("model"),
            archived=record.get("archived"),
        )

    def serialized_size(self) -> int:
        return serialized_size(self.to_record())


def serialized_size(record: Dict[str, Any]) -> int:
    """Byte length of ``record`` as compact UTF-8 JSON."""
    payload = {k: v for k, v in record.items() if k != "id"}
    return len(
        json.dumps(payload, separators=(",", ":"), ensure_ascii=False, default=str).encode("utf-8")
    )


def messages_table(metadata: MetaData, name: str = "chat_messages") -> Table:
    """Return the table backing one chat log.

    Columns
    -------
    id
        Auto-increment primary key; breaks ``created_at`` ties by insertion order.
    role
        ``"user"`` or ``"model"``.
    parts
        JSON list of message parts.
    created_at
        Naive UTC timestamp, the ordering key of the log.
    """
    return Table(
        name,
        metadata,
        Column("id", Integer, primary_key=True, autoincrement=True),
        Column("role", String(16), nullable=False),
        Column("parts", JSON, nullable=False),
        Column("created_at", DateTime, nullable=False, default=lambda: to_naive_utc(utcnow())),
        Column("thoughts", Text, nullable=True),
        Column("has_thoughts", Boolean, nullable=True),
        Column("model", String(128), nullable=True),
        Column("archived", Boolean, nullable=False, default=False),
        Index(f"ix_{name}_created_at_id", "created_at", "id"),
    )
