from __future__ import annotations

"""SQLAlchemy-backed persistence engine for the chat log.

Every public method is one call against the database and runs in its own
transaction, so a batch insert or a batch delete is atomic on its own.
Nothing here is atomic *across* calls.
"""

from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

from sqlalchemy import delete, func, select, text
from sqlalchemy.engine import Connection
from sqlalchemy.exc import DBAPIError, OperationalError, SQLAlchemyError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from chatkeeper.utils.errors import (
    PersistenceError,
    PersistenceUnavailable,
    StatisticsUnavailable,
)
from chatkeeper.utils.logger import get_logger

from .db import StoreHandle

logger = get_logger(__name__)

# Keep well below SQLite's bound-parameter limit.
_DELETE_CHUNK = 500

# PostgreSQL lookups resolve the table through regclass, i.e. the search_path.
_PG_COUNT_SQL = "SELECT reltuples::bigint FROM pg_class WHERE oid = CAST(:name AS regclass)"
_PG_STATS_SQL = (
    "SELECT pg_total_relation_size(CAST(:name AS regclass)) AS storage, "
    "pg_table_size(CAST(:name AS regclass)) AS data, "
    "(SELECT reltuples FROM pg_class WHERE oid = CAST(:name AS regclass)) AS count"
)

SortSpec = Sequence[Tuple[str, str]]


@dataclass(frozen=True)
class CollectionStats:
    storage_size_bytes: int
    data_size_bytes: int
    avg_object_size_bytes: int


class SqlMessageStore:
    """Ordered batch insert, filtered find, batch delete and size statistics."""

    def __init__(self, handle: StoreHandle, native_statistics: Optional[bool] = None) -> None:
        self.handle = handle
        self.table = handle.table
        if native_statistics is None:
            native_statistics = handle.settings.native_stats
        self.native_statistics = native_statistics

    # ------------------------------------------------------------------
    # Connection helper
    # ------------------------------------------------------------------

    @contextmanager
    def _connect(self, operation: str, write: bool = False) -> Iterator[Connection]:
        engine = self.handle.engine
        try:
            with (engine.begin() if write else engine.connect()) as conn:
                yield conn
        except (OperationalError, PoolTimeoutError) as e:
            raise PersistenceUnavailable(f"{operation} failed: {e}") from e
        except DBAPIError as e:
            if e.connection_invalidated:
                raise PersistenceUnavailable(f"{operation} failed: {e}") from e
            raise PersistenceError(f"{operation} rejected: {e}") from e
        except SQLAlchemyError as e:
            raise PersistenceError(f"{operation} rejected: {e}") from e

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def insert_ordered_batch(self, records: Sequence[Mapping[str, Any]]) -> int:
        """Insert ``records`` in order inside one transaction."""
        if not records:
            return 0
        with self._connect("insert_ordered_batch", write=True) as conn:
            conn.execute(self.table.insert(), [dict(r) for r in records])
        return len(records)

    def delete_batch(self, ids: Sequence[int]) -> int:
        """Delete the rows whose id is in ``ids``; returns the deleted count."""
        ids = list(ids)
        if not ids:
            return 0
        deleted = 0
        with self._connect("delete_batch", write=True) as conn:
            for start in range(0, len(ids), _DELETE_CHUNK):
                chunk = ids[start:start + _DELETE_CHUNK]
                result = conn.execute(delete(self.table).where(self.table.c.id.in_(chunk)))
                deleted += result.rowcount
        return deleted

    def delete_all(self) -> int:
        with self._connect("delete_all", write=True) as conn:
            return conn.execute(delete(self.table)).rowcount

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def find(
        self,
        filters: Optional[Mapping[str, Any]] = None,
        sort: SortSpec = (("created_at", "asc"),),
        limit: Optional[int] = None,
        projection: Optional[Sequence[str]] = None,
    ) -> List[Dict[str, Any]]:
        """Return rows as dicts.

        ``filters`` maps column names to a value (equality) or a list/tuple
        (membership).  When sorting on anything but ``id``, ``id`` is appended
        in the same direction as the last key so ties keep insertion order.
        ``id`` is always part of the projection.
        """
        c = self.table.c
        if projection:
            columns = [c.id] + [c[name] for name in projection if name != "id"]
            stmt = select(*columns)
        else:
            stmt = select(self.table)

        for name, value in (filters or {}).items():
            if isinstance(value, (list, tuple, set)):
                stmt = stmt.where(c[name].in_(list(value)))
            else:
                stmt = stmt.where(c[name] == value)

        order = []
        direction = "asc"
        for name, direction in sort:
            order.append(c[name].desc() if direction == "desc" else c[name].asc())
        if sort and "id" not in {name for name, _ in sort}:
            order.append(c.id.desc() if direction == "desc" else c.id.asc())
        if order:
            stmt = stmt.order_by(*order)
        if limit is not None:
            stmt = stmt.limit(limit)

        with self._connect("find") as conn:
            return [dict(row) for row in conn.execute(stmt).mappings().all()]

    def approximate_count(self) -> int:
        """Cheap row count; PostgreSQL uses planner statistics."""
        with self._connect("approximate_count") as conn:
            if self.handle.dialect == "postgresql":
                estimate = conn.execute(
                    text(_PG_COUNT_SQL),
                    {"name": self.table.name},
                ).scalar()
                # -1 means the table was never analysed.
                if estimate is not None and estimate >= 0:
                    return int(estimate)
            return int(conn.execute(select(func.count()).select_from(self.table)).scalar() or 0)

    def collection_statistics(self) -> CollectionStats:
        """Native size statistics for the table.

        Raises ``StatisticsUnavailable`` when disabled, unsupported by the
        dialect, or when the statistics query fails (e.g. SQLite built
        without ``dbstat`` or missing privileges).
        """
        if not self.native_statistics:
            raise StatisticsUnavailable("native statistics disabled")

        dialect = self.handle.dialect
        name = self.table.name
        try:
            with self.handle.engine.connect() as conn:
                if dialect == "sqlite":
                    row = conn.execute(
                        text(
                            "SELECT COALESCE(SUM(pgsize), 0) AS storage, "
                            "COALESCE(SUM(payload), 0) AS data "
                            "FROM dbstat WHERE name = :name"
                        ),
                        {"name": name},
                    ).one()
                    storage, data = int(row.storage), int(row.data)
                    count = int(conn.execute(select(func.count()).select_from(self.table)).scalar() or 0)
                elif dialect == "postgresql":
                    row = conn.execute(text(_PG_STATS_SQL), {"name": name}).one()
                    storage, data = int(row.storage or 0), int(row.data or 0)
                    count = max(int(row.count or 0), 0)
                else:
                    raise StatisticsUnavailable(f"no native statistics for dialect {dialect!r}")
        except SQLAlchemyError as e:
            raise StatisticsUnavailable(f"statistics query failed: {e}") from e

        avg = data // count if count else 0
        return CollectionStats(storage_size_bytes=storage, data_size_bytes=data, avg_object_size_bytes=avg)
