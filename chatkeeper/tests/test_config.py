import pytest

from chatkeeper.config import load_settings
from chatkeeper.memory.db import init_store
from chatkeeper.utils.errors import ConfigError, PersistenceUnavailable


def test_defaults():
    settings = load_settings({"CHATKEEPER_DB_URL": "sqlite:///chat.db"})
    assert settings.max_storage_mb == 480
    assert settings.max_bytes == 480 * 1024 * 1024
    assert settings.prune_target_ratio == 0.9
    assert settings.recent_message_limit == 200
    assert settings.read_policy == "recent"
    assert settings.native_stats is True
    assert settings.prune_in_background is False
    assert settings.table_name == "chat_messages"


def test_overrides():
    settings = load_settings({
        "CHATKEEPER_DB_URL": "sqlite:///chat.db",
        "CHAT_MAX_STORAGE_MB": "10",
        "CHAT_PRUNE_TARGET_RATIO": "0.5",
        "CHAT_READ_POLICY": "Oldest",
        "CHAT_PRUNE_IN_BACKGROUND": "yes",
        "CHAT_ADMIN_TOKEN": "t0k3n",
    })
    assert settings.max_bytes == 10 * 1024 * 1024
    assert settings.prune_target_ratio == 0.5
    assert settings.read_policy == "oldest"
    assert settings.prune_in_background is True
    assert settings.admin_token == "t0k3n"


def test_missing_db_url():
    with pytest.raises(ConfigError):
        load_settings({})


@pytest.mark.parametrize("name, value", [
    ("CHAT_MAX_STORAGE_MB", "lots"),
    ("CHAT_MAX_STORAGE_MB", "0"),
    ("CHAT_PRUNE_TARGET_RATIO", "1.2"),
    ("CHAT_PRUNE_TARGET_RATIO", "0"),
    ("CHAT_READ_POLICY", "random"),
    ("CHAT_RECENT_MESSAGE_LIMIT", "-1"),
])
def test_invalid_values(name, value):
    with pytest.raises(ConfigError):
        load_settings({"CHATKEEPER_DB_URL": "sqlite:///chat.db", name: value})


def test_unreachable_store_is_fatal(tmp_path):
    missing_dir = tmp_path / "does" / "not" / "exist"
    settings = load_settings({"CHATKEEPER_DB_URL": f"sqlite:///{missing_dir / 'chat.db'}"})
    with pytest.raises(PersistenceUnavailable):
        init_store(settings)


def test_independent_stores(tmp_path):
    a = init_store(load_settings({"CHATKEEPER_DB_URL": f"sqlite:///{tmp_path / 'a.db'}"}))
    b = init_store(load_settings({
        "CHATKEEPER_DB_URL": f"sqlite:///{tmp_path / 'a.db'}",
        "CHAT_TABLE_NAME": "other_messages",
    }))
    try:
        assert a.table.name == "chat_messages"
        assert b.table.name == "other_messages"
        assert a.table.metadata is not b.table.metadata
    finally:
        a.close()
        b.close()
