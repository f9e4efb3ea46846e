import datetime

import pytest
from pydantic import ValidationError

from chatkeeper.memory.models import ChatMessage, MessagePart, Role, serialized_size


def test_unknown_part_keys_move_into_extra():
    part = MessagePart.model_validate({"text": "hi", "inlineData": {"mimeType": "image/png"}})
    assert part.text == "hi"
    assert part.extra == {"inlineData": {"mimeType": "image/png"}}
    # Stored shape stays flat.
    assert part.to_record() == {"inlineData": {"mimeType": "image/png"}, "text": "hi"}


def test_part_extra_must_be_json():
    with pytest.raises(ValidationError):
        MessagePart(text="x", extra={"handle": object()})


@pytest.mark.parametrize("key", ["text", "thought", "extra"])
def test_part_extra_rejects_reserved_keys(key):
    # Would otherwise overwrite or nest under the flat stored fields.
    with pytest.raises(ValidationError):
        MessagePart(text="real", extra={key: "shadow"})
    with pytest.raises(ValidationError):
        MessagePart.model_validate({"text": "real", "extra": {key: "shadow"}})


def test_stored_part_reads_back_unchanged():
    part = MessagePart(text="real", thought=True, extra={"inlineData": {"mimeType": "image/png"}})
    assert MessagePart.model_validate(part.to_record()) == part


def test_role_is_restricted():
    with pytest.raises(ValidationError):
        ChatMessage(role="system", parts=[MessagePart(text="x")])


def test_record_uses_naive_utc():
    ts = datetime.datetime(2026, 5, 1, 12, 0, tzinfo=datetime.timezone(datetime.timedelta(hours=2)))
    record = ChatMessage.user("hello", created_at=ts).to_record()
    assert record["created_at"] == datetime.datetime(2026, 5, 1, 10, 0)
    assert record["role"] == "user"
    assert record["archived"] is False


def test_serialized_size_counts_utf8_bytes():
    ascii_msg = ChatMessage(role=Role.USER, parts=[MessagePart(text="aa")], created_at=datetime.datetime(2026, 1, 1))
    utf8_msg = ChatMessage(role=Role.USER, parts=[MessagePart(text="éé")], created_at=datetime.datetime(2026, 1, 1))
    assert utf8_msg.serialized_size() == ascii_msg.serialized_size() + 2
    assert serialized_size({"id": 123, "role": "user"}) == serialized_size({"role": "user"})
