"""
Bounded, most-recent-first buffer of timeline events.

Events are inserted at the head in arrival order (not ``created_at``
order). Eviction is batched: the buffer may hold up to ``max_size`` events,
and the insertion that would exceed it truncates the buffer in one step to
the ``retain_size`` most recently inserted events. With the defaults the
length therefore stays within 80..100 once warmed up.

Duplicate ids are dropped while the original is still buffered, so a relay
replaying stored events (e.g. on a new session) does not double entries.
Evicted ids are forgotten.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterator
from typing import TYPE_CHECKING

from feedbrotr.nips.nip01 import reapply_filter

from .configs import BufferConfig


if TYPE_CHECKING:
    from feedbrotr.models.event import TimelineEvent
    from feedbrotr.nips.nip01 import FilterSettings


class TimelineBuffer:
    """Most-recent-first event buffer with batched truncation."""

    def __init__(self, config: BufferConfig | None = None) -> None:
        self._config = config or BufferConfig()
        self._events: list[TimelineEvent] = []
        # id -> number of buffered copies (more than one only without dedup)
        self._ids: Counter[str] = Counter()

    def insert(self, event: TimelineEvent) -> bool:
        """Insert *event* at the head.

        Returns:
            False if the event was dropped as a duplicate.
        """
        if self._config.dedup and event.id in self._ids:
            return False

        self._events.insert(0, event)
        self._ids[event.id] += 1

        if len(self._events) > self._config.max_size:
            evicted = self._events[self._config.retain_size :]
            del self._events[self._config.retain_size :]
            for e in evicted:
                self._ids[e.id] -= 1
                if not self._ids[e.id]:
                    del self._ids[e.id]
        return True

    def authors(self) -> list[str]:
        """Distinct author pubkeys, most recent first."""
        return list(dict.fromkeys(event.pubkey for event in self._events))

    def visible(self) -> list[TimelineEvent]:
        """Events the current filter decision allows."""
        return [event for event in self._events if event.allowed]

    def refilter(self, settings: FilterSettings) -> None:
        """Recompute every event's ``allowed`` flag for new *settings*."""
        self._events = reapply_filter(self._events, settings)

    def clear(self) -> None:
        self._events.clear()
        self._ids.clear()

    @property
    def events(self) -> list[TimelineEvent]:
        """Snapshot of the buffer, most recent first."""
        return list(self._events)

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self) -> Iterator[TimelineEvent]:
        return iter(list(self._events))

    def __contains__(self, event_id: object) -> bool:
        return event_id in self._ids
