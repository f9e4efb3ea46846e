from __future__ import annotations

"""Keep the chat log within its storage budget.

The budget is soft: decisions are based on an estimate, and concurrent
writers may push the footprint past ``max_bytes`` for a while.  Each call to
:meth:`RetentionController.ensure_space_for` is an independent
estimate → decide → prune cycle.
"""

import math
from dataclasses import dataclass
from typing import Optional

from chatkeeper.utils.errors import ConfigError
from chatkeeper.utils.logger import get_logger
from chatkeeper.utils.telemetry import LoguruTelemetry, PruneEvent, TelemetrySink

from .estimator import Estimate, Estimator
from .pruner import PruneResult, Pruner

logger = get_logger(__name__)

# Lower bound on the per-record size used for the eviction count.  Only keeps
# the division defined; real averages are never raised.
FLOOR_SIZE = 1


def compute_eviction_count(
    current_bytes: int,
    avg_record_bytes: int,
    bytes_needed: int,
    max_bytes: int,
    target_ratio: float,
    floor_size: int = FLOOR_SIZE,
) -> int:
    """Number of oldest records to delete; 0 when the write fits the budget."""
    projected = current_bytes + bytes_needed
    if projected <= max_bytes:
        return 0
    excess = max(0, projected - math.floor(max_bytes * target_ratio))
    return max(1, math.ceil(excess / max(avg_record_bytes, floor_size)))


@dataclass(frozen=True)
class RetentionDecision:
    estimate: Estimate
    projected_bytes: int
    eviction_count: int
    result: Optional[PruneResult] = None

    @property
    def evicted(self) -> int:
        return self.result.deleted if self.result else 0


class RetentionController:
    def __init__(
        self,
        estimator: Estimator,
        pruner: Pruner,
        max_bytes: int,
        target_ratio: float,
        telemetry: Optional[TelemetrySink] = None,
        floor_size: int = FLOOR_SIZE,
    ) -> None:
        if max_bytes <= 0:
            raise ConfigError(f"max_bytes must be positive, got {max_bytes}")
        if not 0 < target_ratio <= 1:
            raise ConfigError(f"target_ratio must be in (0, 1], got {target_ratio}")
        self.estimator = estimator
        self.pruner = pruner
        self.max_bytes = max_bytes
        self.target_ratio = target_ratio
        self.telemetry = telemetry or LoguruTelemetry()
        self.floor_size = floor_size

    def ensure_space_for(self, bytes_needed: int) -> RetentionDecision:
        """Evict the oldest records if writing ``bytes_needed`` would exceed the budget.

        Pruner errors (timeouts, lost connections) propagate to the caller.
        """
        estimate = self.estimator.estimate()
        projected = estimate.current_bytes + bytes_needed
        count = compute_eviction_count(
            estimate.current_bytes,
            estimate.avg_record_bytes,
            bytes_needed,
            self.max_bytes,
            self.target_ratio,
            self.floor_size,
        )
        if count == 0:
            return RetentionDecision(estimate, projected, 0)

        logger.info(
            "Budget exceeded (projected=%d, max=%d); evicting %d oldest record(s)",
            projected,
            self.max_bytes,
            count,
        )
        result = self.pruner.prune_oldest_n(count)
        event = PruneEvent(
            requested=result.requested,
            deleted=result.deleted,
            reason="budget_exceeded",
            current_bytes=estimate.current_bytes,
            avg_record_bytes=estimate.avg_record_bytes,
            estimate_source=estimate.source,
            projected_bytes=projected,
            max_bytes=self.max_bytes,
        )
        self.telemetry.emit("prune", event.as_dict())
        return RetentionDecision(estimate, projected, count, result)
