"""Group threads into date buckets for the thread list."""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum

from .core import Thread


class ThreadGroup(str, Enum):
    TODAY = "Today"
    YESTERDAY = "Yesterday"
    LAST_WEEK = "Last Week"
    EARLIER = "Earlier"


@dataclass
class GroupedThreads:
    group: ThreadGroup
    threads: list[Thread]

    @property
    def title(self) -> str:
        return self.group.value

    @property
    def count(self) -> int:
        return len(self.threads)


def _group_for(thread: Thread, now: datetime) -> ThreadGroup:
    created = datetime.fromtimestamp(thread.created_at, tz=now.tzinfo or timezone.utc)
    days = (now.date() - created.date()).days
    if days <= 0:
        return ThreadGroup.TODAY
    if days == 1:
        return ThreadGroup.YESTERDAY
    if days <= 7:
        return ThreadGroup.LAST_WEEK
    return ThreadGroup.EARLIER


def group_threads_by_date(threads: list[Thread], now: datetime | None = None) -> list[GroupedThreads]:
    """Bucket *threads* by age, in Today → Earlier order, omitting empty groups."""
    now = now or datetime.now(timezone.utc)
    buckets: dict[ThreadGroup, list[Thread]] = {}
    for thread in threads:
        buckets.setdefault(_group_for(thread, now), []).append(thread)

    return [GroupedThreads(group, buckets[group]) for group in ThreadGroup if group in buckets]
