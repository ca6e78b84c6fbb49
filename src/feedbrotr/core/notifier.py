"""
Per-store change notification.

A [ChangeNotifier][feedbrotr.core.notifier.ChangeNotifier] is a
"something changed, re-read everything" channel. The owning
[KeyedStore][feedbrotr.core.store.KeyedStore] calls
[notify()][feedbrotr.core.notifier.ChangeNotifier.notify] after every
mutating operation; observers receive an empty signal and respond with a
full rescan through ``iterate()``, never a delta.

Two observation styles are supported:

* Callback registry: [subscribe()][feedbrotr.core.notifier.ChangeNotifier.subscribe]
  registers a callable invoked synchronously on every ``notify()`` and
  returns a function that removes it.
* Async stream: [changes()][feedbrotr.core.notifier.ChangeNotifier.changes]
  yields once immediately (the current state is always worth reading), then
  once per observed change. Notifications that arrive while the consumer is
  busy collapse into a single pending tick.

Examples:
    ```python
    notifier = ChangeNotifier("circles")
    circles = CircleTable(backend, notifier=notifier)

    async for _ in notifier.changes():
        view.render(await circles.list())
    ```
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable


logger = logging.getLogger("feedbrotr.core.notifier")

ChangeCallback = Callable[[], None]


class ChangeNotifier:
    """Single-slot broadcast signal for one store.

    Attributes:
        name: Label used in diagnostics (usually the table name).
        version: Number of ``notify()`` calls so far. Observers can compare
            versions to tell whether anything changed since their last read.
    """

    __slots__ = ("_callbacks", "_waiters", "name", "version")

    def __init__(self, name: str = "") -> None:
        self.name = name
        self.version = 0
        self._callbacks: list[ChangeCallback] = []
        self._waiters: set[asyncio.Event] = set()

    def subscribe(self, callback: ChangeCallback) -> Callable[[], None]:
        """Register *callback* and return a function that unregisters it."""
        self._callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unsubscribe

    def notify(self) -> None:
        """Signal that the store changed.

        Callbacks run synchronously in registration order. A raising
        callback is logged and does not prevent the others from running.
        """
        self.version += 1
        for callback in list(self._callbacks):
            try:
                callback()
            except Exception:  # Intentionally broad: observer error boundary
                logger.exception("change_callback_failed store=%s", self.name)
        for waiter in self._waiters:
            waiter.set()

    async def changes(self) -> AsyncIterator[None]:
        """Yield once now, then once after each batch of notifications."""
        pending = asyncio.Event()
        pending.set()
        self._waiters.add(pending)
        try:
            while True:
                await pending.wait()
                pending.clear()
                yield None
        finally:
            self._waiters.discard(pending)

    @property
    def observer_count(self) -> int:
        """Number of registered callbacks plus active ``changes()`` streams."""
        return len(self._callbacks) + len(self._waiters)
