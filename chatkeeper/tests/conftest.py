import datetime
import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[2]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from chatkeeper.config import Settings  # noqa: E402
from chatkeeper.memory.db import init_store  # noqa: E402
from chatkeeper.memory.history import build_history  # noqa: E402
from chatkeeper.memory.models import ChatMessage, MessagePart, Role  # noqa: E402
from chatkeeper.utils.telemetry import RecordingTelemetry  # noqa: E402

BASE_TS = datetime.datetime(2026, 1, 1, tzinfo=datetime.timezone.utc)


def make_message(i: int, role: Role = Role.USER, text: str | None = None, ts=None) -> ChatMessage:
    """Message ``i`` with a fixed-width timestamp ``i`` seconds after BASE_TS."""
    created = ts or BASE_TS + datetime.timedelta(seconds=i, microseconds=123456)
    return ChatMessage(role=role, parts=[MessagePart(text=text or f"message {i:04d}")], created_at=created)


@pytest.fixture
def settings(tmp_path):
    return Settings(
        db_url=f"sqlite:///{tmp_path / 'chat_mem.db'}",
        native_stats=False,
        db_timeout_seconds=1.0,
        admin_token="secret-admin",
    )


@pytest.fixture
def telemetry():
    return RecordingTelemetry()


@pytest.fixture
def history(settings, telemetry):
    hist = build_history(init_store(settings), telemetry=telemetry)
    yield hist
    hist.close()
