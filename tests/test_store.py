"""Tests for the SQLite conversation mirror."""

from cadence_chat.core import Message, Role, TextBlock, Thread, UnknownBlock


def make_message(id, thread_id="thread_1", created_at=100, content=None):
    return Message(
        id=id,
        thread_id=thread_id,
        role=Role.ASSISTANT,
        content=content or (TextBlock("hello"),),
        created_at=created_at,
    )


def test_threads_newest_first(chat_store):
    chat_store.insert_thread(Thread("old", 100))
    chat_store.insert_thread(Thread("new", 200))
    chat_store.save()

    assert [t.id for t in chat_store.fetch_threads()] == ["new", "old"]
    assert chat_store.fetch_threads("old") == [Thread("old", 100)]
    assert chat_store.fetch_threads("missing") == []


def test_content_blocks_round_trip(chat_store):
    chat_store.insert_thread(Thread("thread_1", 100))
    image = UnknownBlock(type="image_file", raw='{"image_file": {"file_id": "file_1"}, "type": "image_file"}')
    text = TextBlock("see chart", annotations=('{"type": "file_citation"}',))
    chat_store.insert_message(make_message("msg_1", content=(text, image)), 0)
    chat_store.save()

    [stored] = chat_store.fetch_messages("thread_1")
    assert stored.content == (text, image)
    assert stored.text == "see chart"


def test_messages_ordered_by_created_at_then_position(chat_store):
    chat_store.insert_thread(Thread("thread_1", 100))
    chat_store.insert_message(make_message("b", created_at=5), 1)
    chat_store.insert_message(make_message("a", created_at=5), 0)
    chat_store.insert_message(make_message("c", created_at=1), 2)
    chat_store.save()

    assert [m.id for m in chat_store.fetch_messages("thread_1")] == ["c", "a", "b"]


def test_delete_thread_cascades_to_messages(chat_store):
    chat_store.insert_thread(Thread("thread_1", 100))
    chat_store.insert_message(make_message("msg_1"), 0)
    chat_store.save()

    chat_store.delete_thread("thread_1")
    chat_store.save()

    assert chat_store.fetch_messages("thread_1") == []


def test_rollback_discards_unsaved_writes(chat_store):
    chat_store.insert_thread(Thread("thread_1", 100))
    chat_store.rollback()

    assert chat_store.fetch_threads() == []
