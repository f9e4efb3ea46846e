from types import SimpleNamespace

import pytest
from sqlalchemy import MetaData

from chatkeeper.memory.models import messages_table
from chatkeeper.memory.store import CollectionStats, SqlMessageStore
from chatkeeper.utils.errors import StatisticsUnavailable

from conftest import make_message


def test_find_filters_and_projection(history):
    history.chat_log.append([make_message(i) for i in range(5)])
    ids = [r["id"] for r in history.store.find(projection=("id",))]

    rows = history.store.find(filters={"id": ids[1:3]}, projection=("role",))
    assert [r["id"] for r in rows] == ids[1:3]
    assert set(rows[0]) == {"id", "role"}

    (row,) = history.store.find(filters={"id": ids[0]})
    assert row["parts"] == [{"text": "message 0000"}]


def test_find_descending_with_limit(history):
    history.chat_log.append([make_message(i) for i in range(5)])
    rows = history.store.find(sort=(("created_at", "desc"),), limit=2, projection=("parts",))
    assert [r["parts"][0]["text"] for r in rows] == ["message 0004", "message 0003"]


def test_delete_batch_larger_than_one_chunk(history):
    history.chat_log.append([make_message(i) for i in range(1200)])
    ids = [r["id"] for r in history.store.find(projection=("id",))]

    assert history.store.delete_batch(ids[:1100]) == 1100
    assert history.store.approximate_count() == 100
    assert history.store.delete_batch([]) == 0


def test_statistics_disabled(history):
    with pytest.raises(StatisticsUnavailable):
        history.store.collection_statistics()


def test_sqlite_statistics_when_available(history):
    history.chat_log.append([make_message(i, text="y" * 500) for i in range(50)])
    store = SqlMessageStore(history.handle, native_statistics=True)
    try:
        stats = store.collection_statistics()
    except StatisticsUnavailable:
        pytest.skip("SQLite built without dbstat")
    assert stats.storage_size_bytes > 0
    assert stats.data_size_bytes > 50 * 500
    assert stats.avg_object_size_bytes > 500


class _Result:
    def __init__(self, value):
        self.value = value

    def scalar(self):
        return self.value

    def one(self):
        return self.value


class _RecordingConnection:
    """Stands in for a PostgreSQL connection; replays canned results in order."""

    def __init__(self, results):
        self.results = list(results)
        self.statements = []

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def execute(self, statement, params=None):
        self.statements.append((str(statement), params))
        return _Result(self.results.pop(0))


def _postgres_store(results):
    conn = _RecordingConnection(results)
    handle = SimpleNamespace(
        engine=SimpleNamespace(connect=lambda: conn),
        table=messages_table(MetaData(), "chat_messages"),
        settings=None,
        dialect="postgresql",
    )
    return SqlMessageStore(handle, native_statistics=True), conn


def test_postgres_statistics_resolve_table_by_oid():
    store, conn = _postgres_store([SimpleNamespace(storage=16384, data=8192, count=32.0)])

    stats = store.collection_statistics()

    assert stats == CollectionStats(storage_size_bytes=16384, data_size_bytes=8192, avg_object_size_bytes=256)
    ((sql, params),) = conn.statements
    assert params == {"name": "chat_messages"}
    # heap plus TOAST for the logical size, and no name match across schemas
    assert "pg_table_size(CAST(:name AS regclass))" in sql
    assert "pg_relation_size" not in sql
    assert "oid = CAST(:name AS regclass)" in sql
    assert "relname" not in sql


def test_postgres_approximate_count_resolves_table_by_oid():
    store, conn = _postgres_store([42])
    assert store.approximate_count() == 42
    sql, params = conn.statements[0]
    assert "oid = CAST(:name AS regclass)" in sql
    assert "relname" not in sql


def test_postgres_approximate_count_falls_back_when_never_analysed():
    store, conn = _postgres_store([-1, 7])
    assert store.approximate_count() == 7
    assert len(conn.statements) == 2
