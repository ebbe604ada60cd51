from __future__ import annotations

from relay.conversation import Conversation


def test_item_created_then_deltas_then_completed():
    conversation = Conversation()
    item = conversation.start({"id": "a1", "role": "assistant", "type": "message"})

    conversation.append_delta("a1", "Hello ")
    conversation.append_delta("a1", "there")
    conversation.complete("a1")

    assert item is not None
    assert item.text == "Hello there"
    assert item.completed
    assert [part.type for part in item.content] == ["audio_transcript", "audio_transcript"]


def test_completed_item_refuses_further_deltas():
    conversation = Conversation()
    conversation.start({"id": "a1", "role": "assistant", "status": "completed"})

    assert conversation.append_delta("a1", "late") is None
    assert conversation.get("a1").text == ""


def test_delta_before_item_created_starts_item():
    conversation = Conversation()
    item = conversation.append_delta("u1", "hi", role="user")

    assert item is not None
    assert item.role == "user"
    assert len(conversation) == 1
    # A later item-created for the same id keeps the streamed content.
    assert conversation.start({"id": "u1", "role": "user"}) is item


def test_item_content_is_read_from_created_event():
    conversation = Conversation()
    item = conversation.start(
        {
            "id": "s1",
            "role": "system",
            "content": [{"type": "input_text", "text": "Be brief."}],
        }
    )

    assert item.role == "system"
    assert item.text == "Be brief."
    assert [i.item_id for i in conversation.items()] == ["s1"]


def test_items_without_id_are_ignored():
    conversation = Conversation()
    assert conversation.start({"role": "user"}) is None
    assert len(conversation) == 0
