"""Mirror of remote threads and messages for offline display.

LocalStoreSync is the only writer of the ChatStore. The mirror is read first
on every load and overwritten from the remote whenever the network allows.
"""

import logging

from . import api
from .cancellation import CancellationToken
from .core import Message, Thread
from .errors import CadenceError, DecodingFailed
from .network import NetworkMonitor
from .store import ChatStore

logger = logging.getLogger(__name__)


class LocalStoreSync:
    def __init__(self, store: ChatStore, transport, monitor: NetworkMonitor):
        self.store = store
        self.transport = transport
        self.monitor = monitor

    def stored_threads(self) -> list[Thread]:
        return self.store.fetch_threads()

    def stored_messages(self, thread_id: str) -> list[Message]:
        return self.store.fetch_messages(thread_id)

    async def load_threads(self, token: CancellationToken | None = None) -> list[Thread]:
        """Return the remote thread list when reachable, else the stored one."""
        stored = self.stored_threads()
        if not self.monitor.is_connected:
            return stored

        try:
            remote = await self.fetch_remote_threads(token)
        except CadenceError as e:
            logger.warning("Falling back to stored threads: %s", e)
            return stored

        self.sync_stored_threads(remote)
        return remote

    async def fetch_remote_threads(self, token: CancellationToken | None = None) -> list[Thread]:
        data = await self.transport.send(api.list_threads(), token)
        items = data.get("data")
        if not isinstance(items, list):
            raise DecodingFailed("Thread list response has no data array")
        threads = [Thread.from_dict(item) for item in items]
        threads.sort(key=lambda t: t.created_at, reverse=True)
        return threads

    def sync_stored_threads(self, remote: list[Thread]):
        """Delete stored threads absent remotely and upsert the rest."""
        stored = {t.id: t for t in self.store.fetch_threads()}
        remote_ids = {t.id for t in remote}

        try:
            for thread_id in stored:
                if thread_id not in remote_ids:
                    self.store.delete_thread(thread_id)

            for thread in remote:
                if thread.id in stored:
                    self.store.update_thread(thread)
                else:
                    self.store.insert_thread(thread)

            self.store.save()
        except Exception:
            self.store.rollback()
            raise

        logger.info("Synced %d threads to the local store", len(remote))

    def sync_stored_messages(self, thread_id: str, messages: list[Message]):
        """Replace the stored message set for *thread_id* with *messages*."""
        if not self.store.fetch_threads(thread_id):
            logger.debug("Thread %s is not stored; skipping message sync", thread_id)
            return

        try:
            self.store.delete_messages(thread_id)
            for position, message in enumerate(messages):
                self.store.insert_message(message, position)
            self.store.save()
        except Exception:
            self.store.rollback()
            raise

    def remember_thread(self, thread: Thread):
        if self.store.fetch_threads(thread.id):
            self.store.update_thread(thread)
        else:
            self.store.insert_thread(thread)
        self.store.save()

    def forget_thread(self, thread_id: str):
        self.store.delete_thread(thread_id)
        self.store.save()
