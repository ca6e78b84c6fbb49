"""
Persisted profile cache keyed by public key.

[ProfileTable][feedbrotr.services.profiles.store.ProfileTable] is the
single authoritative copy of every cached
[Profile][feedbrotr.models.profile.Profile]. The latest ``put`` for a key
wins. Verification results go through
[set_verified()][feedbrotr.services.profiles.store.ProfileTable.set_verified],
which only applies a result to the record it was computed for.

The local user's relationship to an identity lives on the same record:
[follow()][feedbrotr.services.profiles.store.ProfileTable.follow],
[block()][feedbrotr.services.profiles.store.ProfileTable.block] and
[unfollow()][feedbrotr.services.profiles.store.ProfileTable.unfollow] set it,
and the follow, block and public lists read it back.
"""

from __future__ import annotations

import asyncio
import builtins
import time
from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING

from feedbrotr.core.logger import Logger
from feedbrotr.core.store import KeyedStore
from feedbrotr.models.constants import ProfileStatus, TableName
from feedbrotr.models.profile import Profile


if TYPE_CHECKING:
    from feedbrotr.core.notifier import ChangeNotifier
    from feedbrotr.core.store import StoreBackend


class ProfileTable:
    """Cached author profiles.

    Writes are serialized with an ``asyncio.Lock`` so that the
    read-compare-write in ``set_verified()`` cannot interleave with a
    newer ``put()`` for the same key.

    Args:
        backend: Storage backend for the ``profiles`` table.
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
        self._store: KeyedStore[Profile] = KeyedStore(
            TableName.PROFILES,
            backend,
            encode=Profile.to_document,
            decode=Profile.from_document,
            notifier=notifier,
            clock=clock,
        )
        self._write_lock = asyncio.Lock()
        self._logger = Logger("profiles")

    @property
    def notifier(self) -> ChangeNotifier:
        return self._store.notifier

    async def get(self, pubkey: str) -> Profile | None:
        return await self._store.get(pubkey)

    async def has(self, pubkey: str) -> bool:
        return await self._store.has(pubkey)

    async def put(self, profile: Profile) -> Profile:
        """Insert or replace the profile for ``profile.pubkey``."""
        async with self._write_lock:
            return await self._store.put(profile.pubkey, profile)

    async def put_metadata(self, profile: Profile) -> Profile:
        """Store freshly parsed metadata, keeping the cached ``status`` and ``circle``."""
        async with self._write_lock:
            current = await self._store.get(profile.pubkey)
            if current is not None:
                profile = profile.with_status(current.status, current.circle)
            return await self._store.put(profile.pubkey, profile)

    async def delete(self, pubkey: str) -> None:
        async with self._write_lock:
            await self._store.delete(pubkey)

    async def set_verified(self, pubkey: str, event_id: str, verified: bool) -> bool:
        """Record a verification result computed for the kind 0 event *event_id*.

        The result is discarded if the cached record was since replaced by
        one parsed from a different event, or removed.

        Returns:
            True if the result was applied.
        """
        async with self._write_lock:
            current = await self._store.get(pubkey)
            if current is None or current.event_id != event_id:
                self._logger.debug(
                    "verification_stale",
                    pubkey=pubkey,
                    event_id=event_id,
                    current_event_id=current.event_id if current else None,
                )
                return False
            await self._store.put(pubkey, current.with_verified(verified))
        self._logger.debug("verification_applied", pubkey=pubkey, verified=verified)
        return True

    async def missing(self, authors: Iterable[str]) -> builtins.list[str]:
        """Distinct *authors*, in first-seen order, whose metadata is not cached.

        An identity followed or blocked before any kind 0 event arrived has a
        record without ``event_id`` and is still reported missing.
        """
        result: builtins.list[str] = []
        seen: set[str] = set()
        for pubkey in authors:
            if pubkey in seen:
                continue
            seen.add(pubkey)
            profile = await self._store.get(pubkey)
            if profile is None or not profile.event_id:
                result.append(pubkey)
        return result

    async def list(
        self, predicate: Callable[[Profile], bool] | None = None
    ) -> builtins.list[Profile]:
        """All cached profiles in key order, optionally filtered."""
        if predicate is None:
            return await self._store.values()
        return await self._store.values(lambda _key, profile: predicate(profile))

    async def search(self, text: str) -> builtins.list[Profile]:
        """Profiles whose name, pubkey, about or nip05 contains *text*.

        An empty search returns every profile.
        """
        if not text:
            return await self.list()
        return await self.list(lambda profile: profile.matches(text))

    # -------------------------------------------------------------------------
    # Relationships
    # -------------------------------------------------------------------------

    async def _set_status(
        self, pubkey: str, status: ProfileStatus, circle: str | None = None
    ) -> Profile:
        async with self._write_lock:
            current = await self._store.get(pubkey) or Profile(pubkey=pubkey)
            stored = await self._store.put(pubkey, current.with_status(status, circle))
        self._logger.info("profile_status_changed", pubkey=pubkey, status=status.name, circle=circle)
        return stored

    async def follow(self, pubkey: str, circle: str | None = None) -> Profile:
        """Follow *pubkey* in *circle* (``None`` for the default circle).

        Creates a metadata-less record if the identity is not cached yet.
        """
        return await self._set_status(pubkey, ProfileStatus.FOLLOW, circle)

    async def block(self, pubkey: str) -> Profile:
        return await self._set_status(pubkey, ProfileStatus.BLOCK)

    async def unfollow(self, pubkey: str) -> Profile:
        """Return *pubkey* to the public list. Also lifts a block."""
        return await self._set_status(pubkey, ProfileStatus.PUBLIC)

    async def follow_list(self, circle: str | None = None) -> builtins.list[Profile]:
        """Followed identities, optionally only those assigned to *circle*."""
        if circle is None:
            return await self.list(lambda p: p.status == ProfileStatus.FOLLOW)
        return await self.list(lambda p: p.status == ProfileStatus.FOLLOW and p.circle == circle)

    async def block_list(self) -> builtins.list[Profile]:
        return await self.list(lambda p: p.status == ProfileStatus.BLOCK)

    async def public_list(self) -> builtins.list[Profile]:
        """Cached identities that are neither followed nor blocked."""
        return await self.list(lambda p: p.status == ProfileStatus.PUBLIC)

    async def wipe(self) -> int:
        async with self._write_lock:
            return await self._store.wipe_all()
