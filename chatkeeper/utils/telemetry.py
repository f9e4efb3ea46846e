"""Structured observability events for the retention path."""
from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Protocol, Tuple

from loguru import logger


@dataclass(frozen=True)
class PruneEvent:
    """Outcome of one eviction pass."""

    requested: int
    deleted: int
    reason: str
    current_bytes: int
    avg_record_bytes: int
    estimate_source: str
    projected_bytes: int
    max_bytes: int

    @property
    def shortfall(self) -> int:
        return max(0, self.requested - self.deleted)

    def as_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["shortfall"] = self.shortfall
        return data


class TelemetrySink(Protocol):
    def emit(self, name: str, fields: Dict[str, Any]) -> None:
        ...


class LoguruTelemetry:
    """Default sink: one structured loguru record per event."""

    def emit(self, name: str, fields: Dict[str, Any]) -> None:
        logger.bind(event=name, **fields).info(f"{name} {fields}")


class RecordingTelemetry:
    """Keeps events in memory; handy for tests and debugging endpoints."""

    def __init__(self) -> None:
        self.events: List[Tuple[str, Dict[str, Any]]] = []

    def emit(self, name: str, fields: Dict[str, Any]) -> None:
        self.events.append((name, dict(fields)))

    def named(self, name: str) -> List[Dict[str, Any]]:
        return [fields for event, fields in self.events if event == name]
