from __future__ import annotations

"""Best-effort storage footprint estimate for the chat log."""

import math
from dataclasses import dataclass

from chatkeeper.utils.errors import StorageError
from chatkeeper.utils.logger import get_logger

from .models import serialized_size
from .store import SqlMessageStore

logger = get_logger(__name__)

SAMPLE_SIZE = 50
DEFAULT_AVG_RECORD_BYTES = 1024


@dataclass(frozen=True)
class Estimate:
    current_bytes: int
    avg_record_bytes: int
    # "statistics", "sampling" or "default"
    source: str

    @property
    def degraded(self) -> bool:
        return self.source != "statistics"


class Estimator:
    """Estimate current usage and average record size.

    Native statistics are tried first.  When they are unavailable the
    estimate is derived from an approximate row count and the serialized
    size of the ``sample_size`` most recent rows, read whole so reasoning
    text and model metadata count.  :meth:`estimate` never raises.
    """

    def __init__(self, store: SqlMessageStore, sample_size: int = SAMPLE_SIZE) -> None:
        self.store = store
        self.sample_size = sample_size

    def estimate(self) -> Estimate:
        try:
            stats = self.store.collection_statistics()
        except StorageError as e:
            logger.warning("estimation_degraded: native statistics unavailable (%s); sampling", e)
        else:
            current = stats.storage_size_bytes or stats.data_size_bytes or 0
            return Estimate(current, stats.avg_object_size_bytes or 0, "statistics")

        try:
            return self._sample_estimate()
        except StorageError as e:
            logger.error(
                "estimation_degraded: sampling failed (%s); assuming %d-byte records",
                e,
                DEFAULT_AVG_RECORD_BYTES,
            )
            return Estimate(0, DEFAULT_AVG_RECORD_BYTES, "default")

    def _sample_estimate(self) -> Estimate:
        count = self.store.approximate_count()
        sample = self.store.find(
            sort=(("created_at", "desc"),),
            limit=self.sample_size,
        )
        if sample:
            avg = math.ceil(sum(serialized_size(r) for r in sample) / len(sample))
        else:
            avg = DEFAULT_AVG_RECORD_BYTES
        return Estimate(count * avg, avg, "sampling")
