"""Merging the server's message list into the client's visible list.

The server is the authority for content and ordering. Messages are matched
by id only: two distinct messages with the same text must never merge.
"""

from collections.abc import Iterable, Sequence
from dataclasses import replace

from .core import Message


def _by_created_at(messages: Iterable[Message]) -> list[Message]:
    return sorted(messages, key=lambda m: m.created_at)


def reconcile(existing: Sequence[Message], server: Iterable[Message]) -> list[Message]:
    """Merge *server* into *existing*, ordered ascending by creation time.

    A server message with a known id keeps the existing id and takes every
    other field from the server. Optimistic messages the server does not know
    yet stay in place; anything else missing from the server is dropped.
    """
    existing_by_id = {m.id: m for m in existing}
    merged = []
    seen = set()
    for message in _by_created_at(server):
        current = existing_by_id.get(message.id)
        merged.append(replace(message, id=current.id) if current else message)
        seen.add(message.id)

    pending = [m for m in existing if m.is_local and m.id not in seen]
    return _by_created_at(merged + pending)


class MessageReconciler:
    """Owns the canonical in-memory message list for the visible thread."""

    def __init__(self, messages: Iterable[Message] = ()):
        self._messages = _by_created_at(messages)

    @property
    def messages(self) -> list[Message]:
        return self._messages

    def reset(self, messages: Iterable[Message]) -> None:
        self._messages = _by_created_at(messages)

    def append(self, message: Message) -> None:
        self._messages = [*self._messages, message]

    def remove(self, message_id: str) -> bool:
        if not any(m.id == message_id for m in self._messages):
            return False
        self._messages = [m for m in self._messages if m.id != message_id]
        return True

    def confirm(self, local_id: str, confirmed: Message) -> bool:
        """Replace the optimistic entry *local_id* with its server-confirmed version."""
        if not any(m.id == local_id for m in self._messages):
            return False
        others = [m for m in self._messages if m.id not in (local_id, confirmed.id)]
        self._messages = _by_created_at(others + [confirmed])
        return True

    def apply(self, server: Iterable[Message], force: bool = False) -> bool:
        """Reconcile *server* into the list; return True if the list changed.

        A forced apply replaces the whole list with the server's. The list
        object is left untouched when the result is element-wise identical.
        """
        merged = _by_created_at(server) if force else reconcile(self._messages, server)
        if merged == self._messages:
            return False
        self._messages = merged
        return True
