from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict

from sqlalchemy import MetaData, Table, create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from chatkeeper.config import Settings
from chatkeeper.utils.errors import PersistenceUnavailable
from chatkeeper.utils.logger import get_logger

from .models import messages_table

logger = get_logger(__name__)

# ---------------------------------------------------------------------------
# Engine configuration
# ---------------------------------------------------------------------------


def _engine_options(url: str, timeout: float) -> Dict[str, Any]:
    """Driver options that bound every call by ``timeout`` seconds."""
    if url.startswith("sqlite"):
        # ``check_same_thread`` must be disabled for SQLite to allow usage from
        # FastAPI worker threads; ``timeout`` is the busy-wait on locked files.
        return {"connect_args": {"check_same_thread": False, "timeout": timeout}}

    options: Dict[str, Any] = {"pool_timeout": timeout, "pool_pre_ping": True}
    if url.startswith("postgresql"):
        options["connect_args"] = {
            "connect_timeout": max(1, int(timeout)),
            "options": f"-c statement_timeout={int(timeout * 1000)}",
        }
    return options


def create_store_engine(url: str, timeout: float) -> Engine:
    return create_engine(url, echo=False, **_engine_options(url, timeout))


# ---------------------------------------------------------------------------
# Public helpers
# ---------------------------------------------------------------------------


@dataclass
class StoreHandle:
    """Connection state for one chat log.

    Returned by :func:`init_store` and passed to every component that touches
    the database, so independent logs never share hidden state.
    """

    engine: Engine
    table: Table
    settings: Settings

    @property
    def dialect(self) -> str:
        return self.engine.dialect.name

    def close(self) -> None:
        self.engine.dispose()
        logger.info("Chat store connection closed")


def init_store(settings: Settings) -> StoreHandle:
    """Connect, verify the database answers, and create the table if missing.

    Raises ``PersistenceUnavailable`` when the database cannot be reached.
    """
    engine = create_store_engine(settings.db_url, settings.db_timeout_seconds)
    metadata = MetaData()
    table = messages_table(metadata, settings.table_name)
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        metadata.create_all(bind=engine)
    except SQLAlchemyError as e:
        engine.dispose()
        raise PersistenceUnavailable(f"Cannot reach chat store: {e}") from e

    logger.info("Chat store ready (dialect=%s, table=%s)", engine.dialect.name, table.name)
    return StoreHandle(engine=engine, table=table, settings=settings)
