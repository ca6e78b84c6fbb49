"""
Persisted table of circles with the built-in "Following" default.

[CircleTable][feedbrotr.services.circles.CircleTable] wraps a
[KeyedStore][feedbrotr.core.store.KeyedStore] of
[Circle][feedbrotr.models.circle.Circle] values and adds the default-circle
rules:

* [iterate()][feedbrotr.services.circles.CircleTable.iterate] always starts
  with [FOLLOWING][feedbrotr.models.circle.FOLLOWING], whatever the
  predicate and whatever is stored.
* The default is never written: ``put_circle()`` rejects the reserved id and
  ``delete_circle("")`` is a no-op.
* [resolve()][feedbrotr.services.circles.CircleTable.resolve] maps "no
  circle" (``None``, ``""``, or a deleted id) to the default.

Views observe [notifier][feedbrotr.services.circles.CircleTable.notifier]
and re-read the whole list on every tick.
"""

from __future__ import annotations

import builtins
import time
from collections.abc import AsyncIterator, Callable
from typing import TYPE_CHECKING

from feedbrotr.core.logger import Logger
from feedbrotr.core.store import KeyedStore
from feedbrotr.models.circle import DEFAULT_CIRCLE_ID, FOLLOWING, Circle
from feedbrotr.models.constants import TableName


if TYPE_CHECKING:
    from feedbrotr.core.notifier import ChangeNotifier
    from feedbrotr.core.store import StoreBackend


class CircleTable:
    """User-defined circles plus the synthesized default.

    Args:
        backend: Storage backend for the ``circles`` table.
        notifier: Change channel shared with views.
        clock: Source of the ``created`` stamp.
    """

    def __init__(
        self,
        backend: StoreBackend,
        *,
        notifier: ChangeNotifier | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store: KeyedStore[Circle] = KeyedStore(
            TableName.CIRCLES,
            backend,
            encode=Circle.to_document,
            decode=Circle.from_document,
            notifier=notifier,
            clock=clock,
        )
        self._logger = Logger("circles")

    @property
    def notifier(self) -> ChangeNotifier:
        return self._store.notifier

    async def iterate(
        self, predicate: Callable[[Circle], bool] | None = None
    ) -> AsyncIterator[Circle]:
        """Yield the default circle, then stored circles accepted by *predicate*."""
        yield FOLLOWING
        async for key, circle in self._store.iterate():
            # a stray row under the reserved key must not shadow the default
            if key == DEFAULT_CIRCLE_ID:
                continue
            if predicate is None or predicate(circle):
                yield circle

    async def list(self) -> builtins.list[Circle]:
        """All circles, default first, then stored circles in key order."""
        return [circle async for circle in self.iterate()]

    async def get(self, circle_id: str) -> Circle | None:
        if circle_id == DEFAULT_CIRCLE_ID:
            return FOLLOWING
        return await self._store.get(circle_id)

    async def resolve(self, circle_id: str | None) -> Circle:
        """Return the circle for *circle_id*, falling back to the default."""
        if not circle_id:
            return FOLLOWING
        return await self._store.get(circle_id) or FOLLOWING

    async def put_circle(self, circle: Circle) -> Circle:
        """Create or replace a circle. The stored ``created`` is always the write time.

        Raises:
            ValueError: If *circle* uses the reserved default id.
            StoreError: If the write fails.
        """
        if circle.is_default:
            raise ValueError("the default circle cannot be stored")
        stored = await self._store.put(circle.id, circle)
        self._logger.info("circle_saved", id=circle.id, name=circle.name)
        return stored

    async def delete_circle(self, circle_id: str) -> None:
        """Delete a circle. Deleting the default circle does nothing."""
        if circle_id == DEFAULT_CIRCLE_ID:
            self._logger.debug("circle_delete_ignored", reason="default")
            return
        await self._store.delete(circle_id)
        self._logger.info("circle_deleted", id=circle_id)

    async def wipe(self) -> int:
        """Delete every stored circle. Only the default remains afterwards."""
        return await self._store.wipe_all()
