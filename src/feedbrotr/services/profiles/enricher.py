"""
Lazy author profile resolution with directory verification.

[ProfileEnricher][feedbrotr.services.profiles.enricher.ProfileEnricher]
opens kind 0 subscriptions for authors that are not cached yet, turns every
valid profile event into a cached
[Profile][feedbrotr.models.profile.Profile], and then verifies the claimed
name against the NIP-05 directory in a background task.

Two ways to ask for profiles, both going through
[fetch_missing()][feedbrotr.services.profiles.enricher.ProfileEnricher.fetch_missing]:

* batch: every author in the timeline after its initial EOSE;
* incremental: the author of each live event
  ([fetch_author()][feedbrotr.services.profiles.enricher.ProfileEnricher.fetch_author]).

An author that is cached, or already covered by an open fetch, is never
requested again. Every fetch subscription closes itself on EOSE.

Verification tasks are tagged with the profile's ``event_id``; a result is
written only if the cached record still carries that id
(see [ProfileTable.set_verified()][feedbrotr.services.profiles.store.ProfileTable.set_verified]).
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import aiohttp

from feedbrotr.core.logger import Logger
from feedbrotr.core.metrics import DIRECTORY_LOOKUP_SECONDS
from feedbrotr.exceptions import ProfileParseError, RelayNotConnectedError, StoreError
from feedbrotr.models.constants import EventKind
from feedbrotr.nips import nip05
from feedbrotr.nips.nip01 import (
    parse_profile,
    sanitize_profile,
    unescape_text,
    validate_profile,
)
from feedbrotr.nips.nip05 import DirectoryConfig
from feedbrotr.utils.relay import RelayFilter


if TYPE_CHECKING:
    from feedbrotr.models.profile import Profile
    from feedbrotr.utils.relay import RelayConnection, Subscription

    from .store import ProfileTable


@dataclass(slots=True)
class EnricherCounters:
    """Per-session enrichment counters, read by the owning service."""

    fetches: int = 0
    profiles_cached: int = 0
    profiles_invalid: int = 0
    profiles_unparseable: int = 0
    verified: int = 0
    unverified: int = 0
    stale: int = 0

    def reset(self) -> None:
        self.fetches = 0
        self.profiles_cached = 0
        self.profiles_invalid = 0
        self.profiles_unparseable = 0
        self.verified = 0
        self.unverified = 0
        self.stale = 0


class ProfileEnricher:
    """Fetches, caches and verifies author profiles over one relay connection.

    Args:
        connection: Connected relay used for kind 0 subscriptions.
        profiles: Profile cache.
        directory: Directory settings. Verification is skipped when
            ``directory.enabled`` is False.
        session: aiohttp session for directory lookups. Created lazily and
            closed by [close()][feedbrotr.services.profiles.enricher.ProfileEnricher.close]
            when omitted.
    """

    def __init__(
        self,
        connection: RelayConnection,
        profiles: ProfileTable,
        *,
        directory: DirectoryConfig | None = None,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._connection = connection
        self._profiles = profiles
        self._directory = directory or DirectoryConfig()
        self._session = session
        self._owns_session = session is None
        self._subscriptions: dict[str, tuple[Subscription, frozenset[str]]] = {}
        self._pending: set[str] = set()
        self._tasks: set[asyncio.Task[None]] = set()
        self._closed = False
        self._logger = Logger("enricher")
        self.counters = EnricherCounters()

    @property
    def pending_authors(self) -> frozenset[str]:
        """Authors covered by a fetch that has not reached EOSE yet."""
        return frozenset(self._pending)

    @property
    def open_subscriptions(self) -> int:
        return len(self._subscriptions)

    @property
    def verification_tasks(self) -> int:
        return len(self._tasks)

    # -------------------------------------------------------------------------
    # Fetching
    # -------------------------------------------------------------------------

    async def fetch_missing(self, authors: Iterable[str]) -> Subscription | None:
        """Open one kind 0 subscription for the uncached authors in *authors*.

        Returns:
            The new subscription, or None if nothing needed fetching or the
            relay is not connected.
        """
        if self._closed:
            return None
        self._forget_inactive()

        missing = [a for a in await self._profiles.missing(authors) if a not in self._pending]
        if not missing:
            return None

        wanted = frozenset(missing)
        try:
            sub = await self._connection.subscribe(
                RelayFilter(kinds=(EventKind.SET_METADATA,), authors=tuple(missing)),
                on_event=self._on_profile,
                on_eose=self._on_fetch_eose,
            )
        except RelayNotConnectedError as e:
            self._logger.warning("profile_fetch_failed", authors=len(missing), error=str(e))
            return None

        self._subscriptions[sub.id] = (sub, wanted)
        self._pending |= wanted
        self.counters.fetches += 1
        self._logger.debug("profile_fetch_opened", sub_id=sub.id, authors=len(missing))
        return sub

    async def fetch_author(self, pubkey: str) -> Subscription | None:
        """Incremental fetch for the author of a live event."""
        return await self.fetch_missing((pubkey,))

    async def _on_fetch_eose(self, sub: Subscription) -> None:
        self._forget(sub.id)
        await sub.unsubscribe()

    def _forget(self, sub_id: str) -> None:
        entry = self._subscriptions.pop(sub_id, None)
        if entry is not None:
            self._pending -= entry[1]

    def _forget_inactive(self) -> None:
        # subscriptions the relay CLOSED or that died with the socket
        for sub_id, (sub, _) in list(self._subscriptions.items()):
            if not sub.is_active:
                self._forget(sub_id)

    # -------------------------------------------------------------------------
    # Ingestion
    # -------------------------------------------------------------------------

    async def _on_profile(self, envelope: Any) -> None:
        if not validate_profile(envelope):
            self.counters.profiles_invalid += 1
            return

        event = sanitize_profile(envelope)
        try:
            profile = parse_profile(event)
        except ProfileParseError as e:
            self.counters.profiles_unparseable += 1
            self._logger.warning("profile_parse_failed", pubkey=event.pubkey, error=str(e))
            return

        try:
            stored = await self._profiles.put_metadata(profile)
        except StoreError as e:
            self._logger.error("profile_store_failed", pubkey=profile.pubkey, error=str(e))
            return

        self.counters.profiles_cached += 1
        self._logger.debug("profile_cached", pubkey=stored.pubkey, name=stored.name)

        if self._directory.enabled and not self._closed:
            task = asyncio.create_task(
                self._verify(stored), name=f"verify:{stored.pubkey[:8]}"
            )
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    # -------------------------------------------------------------------------
    # Verification
    # -------------------------------------------------------------------------

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession()
        return self._session

    async def _verify(self, profile: Profile) -> None:
        start = time.monotonic()
        # the cached name is escaped for display; the directory knows the claimed one
        claimed = unescape_text(profile.name)
        verified = await nip05.verify(self._get_session(), claimed, profile.pubkey, self._directory)
        DIRECTORY_LOOKUP_SECONDS.observe(time.monotonic() - start)

        try:
            applied = await self._profiles.set_verified(profile.pubkey, profile.event_id, verified)
        except StoreError as e:
            self._logger.error("verification_store_failed", pubkey=profile.pubkey, error=str(e))
            return

        if not applied:
            self.counters.stale += 1
        elif verified:
            self.counters.verified += 1
        else:
            self.counters.unverified += 1

    async def drain(self) -> None:
        """Wait for every in-flight verification task to finish."""
        while self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    # -------------------------------------------------------------------------
    # Teardown
    # -------------------------------------------------------------------------

    async def close(self) -> None:
        """Close every fetch subscription and cancel every verification task."""
        self._closed = True

        subscriptions = [sub for sub, _ in self._subscriptions.values()]
        self._subscriptions.clear()
        self._pending.clear()
        for sub in subscriptions:
            await sub.unsubscribe()

        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()

        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

        self._logger.debug(
            "enricher_closed", subscriptions=len(subscriptions), cancelled_tasks=len(tasks)
        )
