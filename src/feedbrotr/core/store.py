"""
Generic persisted keyed store.

A [KeyedStore][feedbrotr.core.store.KeyedStore] is an ordered
``key -> document`` table identified by a logical table name (``"circles"``,
``"profiles"``). Values are typed models converted to and from JSON
documents by an ``encode``/``decode`` pair; the store knows nothing about
relays or event semantics.

Contract:

* ``put(key, value)`` is an upsert and stamps ``created`` with the current
  epoch seconds, overwriting any caller-supplied value for that field.
* ``iterate(predicate)`` lazily yields ``(key, value)`` pairs in key order.
* ``wipe_all()`` deletes entries one by one (not transactional: a failure
  partway leaves a partial deletion) and emits exactly one notification.
* Every mutating call notifies the store's
  [ChangeNotifier][feedbrotr.core.notifier.ChangeNotifier].
* Backend failures surface as [StoreError][feedbrotr.exceptions.StoreError].
  Nothing is retried at this level.

Two backends implement the [StoreBackend][feedbrotr.core.store.StoreBackend]
protocol: [MemoryBackend][feedbrotr.core.store.MemoryBackend] for
in-process use and tests, and
[PostgresBackend][feedbrotr.core.store.PostgresBackend] for durable storage
through the asyncpg [Pool][feedbrotr.core.pool.Pool].

Examples:
    ```python
    store = KeyedStore(
        "circles",
        MemoryBackend(),
        encode=Circle.to_document,
        decode=Circle.from_document,
    )
    await store.put("c1", Circle(id="c1", name="Friends"))
    async for key, circle in store.iterate(lambda key, c: c.name.startswith("F")):
        ...
    ```
"""

from __future__ import annotations

import json
import time
from collections.abc import AsyncIterator, Callable, Mapping
from typing import TYPE_CHECKING, Any, Generic, Protocol, TypeVar

import asyncpg

from feedbrotr.exceptions import StoreError

from .logger import Logger
from .notifier import ChangeNotifier


if TYPE_CHECKING:
    from .pool import Pool


T = TypeVar("T")

Document = dict[str, Any]
Predicate = Callable[[str, T], bool]


# ---------------------------------------------------------------------------
# Backends
# ---------------------------------------------------------------------------


class StoreBackend(Protocol):
    """Storage primitive shared by all keyed stores.

    One backend instance may host many logical tables.
    """

    async def put(self, table: str, key: str, document: Document) -> None: ...

    async def get(self, table: str, key: str) -> Document | None: ...

    async def delete(self, table: str, key: str) -> None: ...

    async def keys(self, table: str) -> list[str]: ...

    def scan(self, table: str) -> AsyncIterator[tuple[str, Document]]: ...


class MemoryBackend:
    """In-process backend holding serialized JSON per table.

    Documents are stored as JSON text so that callers never share mutable
    state with the store and non-serializable values fail on ``put``, as
    they would with a durable backend.
    """

    def __init__(self) -> None:
        self._tables: dict[str, dict[str, str]] = {}

    async def put(self, table: str, key: str, document: Document) -> None:
        try:
            encoded = json.dumps(document)
        except (TypeError, ValueError) as e:
            raise StoreError(f"{table}/{key}: document is not JSON serializable: {e}") from e
        self._tables.setdefault(table, {})[key] = encoded

    async def get(self, table: str, key: str) -> Document | None:
        encoded = self._tables.get(table, {}).get(key)
        return None if encoded is None else json.loads(encoded)

    async def delete(self, table: str, key: str) -> None:
        self._tables.get(table, {}).pop(key, None)

    async def keys(self, table: str) -> list[str]:
        return sorted(self._tables.get(table, {}))

    async def scan(self, table: str) -> AsyncIterator[tuple[str, Document]]:
        rows = self._tables.get(table, {})
        for key in sorted(rows):
            encoded = rows.get(key)
            if encoded is not None:
                yield key, json.loads(encoded)


class PostgresBackend:
    """Durable backend storing every logical table in one JSONB table.

    Scans use keyset pagination (``key > last_key ORDER BY key LIMIT n``)
    so iteration stays lazy without holding a transaction open.

    Args:
        pool: Connected [Pool][feedbrotr.core.pool.Pool].
        page_size: Rows fetched per scan page.
    """

    SCHEMA = (
        "CREATE TABLE IF NOT EXISTS keyed_store ("
        " tbl TEXT NOT NULL,"
        " key TEXT NOT NULL,"
        " value JSONB NOT NULL,"
        " PRIMARY KEY (tbl, key))"
    )

    def __init__(self, pool: Pool, *, page_size: int = 500) -> None:
        self._pool = pool
        self._page_size = page_size

    async def _run(self, operation: str, coro_factory: Callable[[], Any]) -> Any:
        try:
            return await coro_factory()
        except (asyncpg.PostgresError, ConnectionError, OSError, RuntimeError) as e:
            raise StoreError(f"{operation} failed: {e}") from e

    async def ensure_schema(self) -> None:
        """Create the backing table if it does not exist."""
        await self._run("ensure_schema", lambda: self._pool.execute(self.SCHEMA))

    async def put(self, table: str, key: str, document: Document) -> None:
        await self._run(
            "put",
            lambda: self._pool.execute(
                "INSERT INTO keyed_store (tbl, key, value) VALUES ($1, $2, $3) "
                "ON CONFLICT (tbl, key) DO UPDATE SET value = EXCLUDED.value",
                table,
                key,
                document,
            ),
        )

    async def get(self, table: str, key: str) -> Document | None:
        row = await self._run(
            "get",
            lambda: self._pool.fetchrow(
                "SELECT value FROM keyed_store WHERE tbl = $1 AND key = $2", table, key
            ),
        )
        return None if row is None else dict(row["value"])

    async def delete(self, table: str, key: str) -> None:
        await self._run(
            "delete",
            lambda: self._pool.execute(
                "DELETE FROM keyed_store WHERE tbl = $1 AND key = $2", table, key
            ),
        )

    async def keys(self, table: str) -> list[str]:
        rows = await self._run(
            "keys",
            lambda: self._pool.fetch(
                "SELECT key FROM keyed_store WHERE tbl = $1 ORDER BY key", table
            ),
        )
        return [row["key"] for row in rows]

    async def scan(self, table: str) -> AsyncIterator[tuple[str, Document]]:
        # key >= '' on the first page so an empty-string key is not skipped
        query = (
            "SELECT key, value FROM keyed_store WHERE tbl = $1 AND key {op} $2 "
            "ORDER BY key LIMIT $3"
        )
        op, last_key = ">=", ""
        while True:
            rows = await self._run(
                "scan",
                lambda sql=query.format(op=op), last=last_key: self._pool.fetch(
                    sql, table, last, self._page_size
                ),
            )
            for row in rows:
                yield row["key"], dict(row["value"])
            if len(rows) < self._page_size:
                return
            op, last_key = ">", rows[-1]["key"]


# ---------------------------------------------------------------------------
# Keyed Store
# ---------------------------------------------------------------------------


class KeyedStore(Generic[T]):
    """Typed, persisted, ordered key -> value table.

    Args:
        name: Logical table name.
        backend: Storage backend shared with other tables.
        encode: Converts a value to its JSON document.
        decode: Rebuilds a value from its key and JSON document.
        notifier: Change channel for this store. A private one is created
            when omitted.
        clock: Source of the ``created`` stamp (epoch seconds).
    """

    def __init__(
        self,
        name: str,
        backend: StoreBackend,
        *,
        encode: Callable[[T], Mapping[str, Any]],
        decode: Callable[[str, Mapping[str, Any]], T],
        notifier: ChangeNotifier | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.name = name
        self._backend = backend
        self._encode = encode
        self._decode = decode
        self._notifier = notifier if notifier is not None else ChangeNotifier(name)
        self._clock = clock
        self._logger = Logger(f"store.{name}")

    @property
    def notifier(self) -> ChangeNotifier:
        """The change channel notified after every mutation."""
        return self._notifier

    async def put(self, key: str, value: T) -> T:
        """Upsert *value* under *key*, stamping ``created`` at call time.

        Returns:
            The value as stored, including the fresh ``created`` stamp.

        Raises:
            StoreError: If the backend write fails.
        """
        document = dict(self._encode(value))
        document["created"] = int(self._clock())
        await self._backend.put(self.name, key, document)
        self._logger.debug("put", key=key)
        self._notifier.notify()
        return self._decode(key, document)

    async def get(self, key: str) -> T | None:
        """Return the value stored under *key*, or None."""
        document = await self._backend.get(self.name, key)
        return None if document is None else self._decode(key, document)

    async def has(self, key: str) -> bool:
        """Whether *key* is present."""
        return await self._backend.get(self.name, key) is not None

    async def delete(self, key: str) -> None:
        """Remove *key*. Deleting a missing key still notifies observers."""
        await self._backend.delete(self.name, key)
        self._logger.debug("delete", key=key)
        self._notifier.notify()

    async def keys(self) -> list[str]:
        """All stored keys in order."""
        return await self._backend.keys(self.name)

    async def iterate(self, predicate: Predicate[T] | None = None) -> AsyncIterator[tuple[str, T]]:
        """Lazily yield ``(key, value)`` pairs accepted by *predicate*, in key order."""
        async for key, document in self._backend.scan(self.name):
            value = self._decode(key, document)
            if predicate is None or predicate(key, value):
                yield key, value

    async def values(self, predicate: Predicate[T] | None = None) -> list[T]:
        """Collect the values yielded by [iterate()][feedbrotr.core.store.KeyedStore.iterate]."""
        return [value async for _, value in self.iterate(predicate)]

    async def wipe_all(self) -> int:
        """Delete every entry one at a time, then notify once.

        Not transactional. If listing or a delete fails, the entries removed
        so far stay removed, observers are still notified once, and the error
        propagates.

        Returns:
            Number of entries removed.

        Raises:
            StoreError: If listing or deleting fails.
        """
        removed = 0
        try:
            for key in await self._backend.keys(self.name):
                await self._backend.delete(self.name, key)
                removed += 1
        except StoreError:
            self._logger.error("wipe_interrupted", removed=removed)
            raise
        finally:
            self._notifier.notify()
        self._logger.info("wiped", removed=removed)
        return removed
