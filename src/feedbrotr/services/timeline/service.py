"""Timeline service for FeedBrotr.

Keeps a bounded buffer of recent text notes from one relay and lazily
resolves the profiles of their authors.

One [run()][feedbrotr.services.timeline.Timeline.run] is one relay session:

1. Connect and subscribe to ``{kinds: [1], since: now - since_window}``.
2. For every pushed envelope: discard it while ``filters.paused``, then
   [validate()][feedbrotr.nips.nip01.validate],
   [sanitize()][feedbrotr.nips.nip01.sanitize] and
   [filter_event()][feedbrotr.nips.nip01.filter_event]; accepted events go
   to the head of the [TimelineBuffer][feedbrotr.services.timeline.buffer.TimelineBuffer].
3. On the timeline EOSE, fetch the profiles of every buffered author that is
   not cached (batch mode). From then on, each accepted live event triggers
   a fetch for its author if needed (incremental mode).
4. The session ends when the relay disconnects, shutdown is requested, or
   ``max_session_duration`` elapses. Teardown closes the timeline
   subscription, every profile subscription, every verification task, and
   the socket.

There is no reconnect inside a session;
[run_forever()][feedbrotr.core.base_service.BaseService.run_forever]
starts the next session after ``interval`` seconds.

Examples:
    ```python
    from feedbrotr.core import load_yaml
    from feedbrotr.services import Timeline

    timeline = Timeline.from_dict(load_yaml("config/timeline.yaml"))
    async with timeline:
        await timeline.run_forever()
    ```
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from typing import TYPE_CHECKING, Any, ClassVar

from feedbrotr.core.base_service import BaseService
from feedbrotr.core.notifier import ChangeNotifier
from feedbrotr.core.pool import Pool
from feedbrotr.core.store import MemoryBackend, PostgresBackend
from feedbrotr.models.constants import ProfileStatus, ServiceName
from feedbrotr.nips.nip01 import describe_settings, filter_event, sanitize, validate
from feedbrotr.services.circles import CircleTable
from feedbrotr.services.profiles import ProfileEnricher, ProfileTable
from feedbrotr.utils.relay import RelayConnection, RelayFilter

from .buffer import TimelineBuffer
from .configs import TimelineConfig


if TYPE_CHECKING:
    from types import TracebackType

    from feedbrotr.core.store import StoreBackend
    from feedbrotr.models.circle import Circle
    from feedbrotr.nips.nip01 import FilterSettings
    from feedbrotr.utils.relay import RelayConfig, Subscription


ConnectionFactory = Callable[["RelayConfig"], RelayConnection]


class Timeline(BaseService[TimelineConfig]):
    """Relay timeline ingestion with profile enrichment.

    Attributes:
        buffer: Recent accepted events, most recent first.
        profiles: Cached author profiles.
        circles: User-defined circles.
        timeline_notifier: Ticks whenever the buffer changes.

    Args:
        config: Service configuration.
        backend: Store backend for circles and profiles. Built from
            ``config.store`` when omitted.
        connection_factory: Creates the relay connection for each session.
        clock: Wall clock used for the ``since`` bound.
    """

    SERVICE_NAME: ClassVar[ServiceName] = ServiceName.TIMELINE
    CONFIG_CLASS: ClassVar[type[TimelineConfig]] = TimelineConfig

    def __init__(
        self,
        config: TimelineConfig | None = None,
        *,
        backend: StoreBackend | None = None,
        connection_factory: ConnectionFactory = RelayConnection,
        clock: Callable[[], float] = time.time,
    ) -> None:
        super().__init__(config=config or TimelineConfig())
        self._config: TimelineConfig
        self._pool: Pool | None = None
        self._postgres: PostgresBackend | None = None
        self._backend = backend if backend is not None else self._build_backend()
        self._connection_factory = connection_factory
        self._clock = clock
        self._settings = self._config.filters

        self.buffer = TimelineBuffer(self._config.buffer)
        self.profiles = ProfileTable(self._backend, notifier=ChangeNotifier("profiles"))
        self.circles = CircleTable(self._backend, notifier=ChangeNotifier("circles"))
        self.timeline_notifier = ChangeNotifier("timeline")

        self._connection: RelayConnection | None = None
        self._enricher: ProfileEnricher | None = None
        self._timeline_sub: Subscription | None = None
        self._initial_load_done = False

    def _build_backend(self) -> StoreBackend:
        store = self._config.store
        if store.backend == "postgres" and store.pool is not None:
            self._pool = Pool(store.pool)
            self._postgres = PostgresBackend(self._pool, page_size=store.page_size)
            return self._postgres
        return MemoryBackend()

    # -------------------------------------------------------------------------
    # Filter settings
    # -------------------------------------------------------------------------

    @property
    def settings(self) -> FilterSettings:
        return self._settings

    def update_settings(self, settings: FilterSettings) -> None:
        """Switch filter settings and re-filter the buffered events."""
        self._settings = settings
        self.buffer.refilter(settings)
        self.timeline_notifier.notify()
        self._logger.info("filters_updated", summary=describe_settings(settings))

    def describe_filters(self) -> str:
        """Summary of the active filters for display."""
        return describe_settings(self._settings)

    @property
    def initial_load_done(self) -> bool:
        """Whether the timeline subscription of the current session reached EOSE."""
        return self._initial_load_done

    async def circle_of(self, pubkey: str) -> Circle | None:
        """Circle a followed identity belongs to, or None if it is not followed.

        A missing or deleted circle id resolves to the default circle.
        """
        profile = await self.profiles.get(pubkey)
        if profile is None or profile.status != ProfileStatus.FOLLOW:
            return None
        return await self.circles.resolve(profile.circle)

    # -------------------------------------------------------------------------
    # Session
    # -------------------------------------------------------------------------

    async def run(self) -> None:
        """Run one relay session until disconnect, shutdown or timeout."""
        connection = self._connection_factory(self._config.relay)
        enricher = ProfileEnricher(connection, self.profiles, directory=self._config.directory)
        disconnected = asyncio.Event()
        connection.on_disconnect(lambda _conn: disconnected.set())
        connection.on_notice(self._on_notice)

        self._connection = connection
        self._enricher = enricher
        session_start = time.monotonic()

        try:
            await connection.connect()
            self.set_gauge("connected", 1)
            await self.on_connected(connection)
            reason = await self._wait_session_end(disconnected)
        finally:
            await self._teardown()
            self.set_gauge("connected", 0)

        self._report(enricher)
        self._logger.info(
            "session_ended",
            reason=reason,
            buffered=len(self.buffer),
            duration_s=round(time.monotonic() - session_start, 2),
        )

    async def on_connected(self, connection: RelayConnection) -> None:
        """Reset the buffer and open the timeline subscription."""
        self.buffer.clear()
        self._initial_load_done = False
        self.timeline_notifier.notify()

        since = int(self._clock()) - self._config.since_window
        self._timeline_sub = await connection.subscribe(
            RelayFilter(kinds=tuple(self._config.kinds), since=since),
            on_event=self._on_timeline_event,
            on_eose=self._on_timeline_eose,
        )
        self._logger.info(
            "timeline_subscribed", relay=connection.url, since=since, kinds=self._config.kinds
        )

    async def _wait_session_end(self, disconnected: asyncio.Event) -> str:
        waiters = {
            asyncio.create_task(disconnected.wait(), name="disconnected"),
            asyncio.create_task(self._shutdown_event.wait(), name="shutdown"),
        }
        try:
            done, _ = await asyncio.wait(
                waiters,
                timeout=self._config.max_session_duration,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            for waiter in waiters:
                waiter.cancel()
            await asyncio.gather(*waiters, return_exceptions=True)
        return next(iter(done)).get_name() if done else "max_session_duration"

    async def _teardown(self) -> None:
        timeline_sub, self._timeline_sub = self._timeline_sub, None
        enricher, self._enricher = self._enricher, None
        connection, self._connection = self._connection, None

        if timeline_sub is not None:
            await timeline_sub.unsubscribe()
        if enricher is not None:
            await enricher.close()
        if connection is not None:
            await connection.close()

    def _report(self, enricher: ProfileEnricher) -> None:
        counters = enricher.counters
        self.inc_counter("profile_fetches", counters.fetches)
        self.inc_counter("profiles_cached", counters.profiles_cached)
        self.inc_counter("profiles_invalid", counters.profiles_invalid + counters.profiles_unparseable)
        self.inc_counter("profiles_verified", counters.verified)
        self.inc_counter("profiles_unverified", counters.unverified)
        self.inc_counter("verifications_stale", counters.stale)
        self._logger.info(
            "enrichment_summary",
            fetches=counters.fetches,
            cached=counters.profiles_cached,
            invalid=counters.profiles_invalid,
            unparseable=counters.profiles_unparseable,
            verified=counters.verified,
            unverified=counters.unverified,
            stale=counters.stale,
        )

    # -------------------------------------------------------------------------
    # Relay callbacks
    # -------------------------------------------------------------------------

    async def _on_timeline_event(self, envelope: Any) -> None:
        self.inc_counter("events_received")

        if self._settings.paused:
            self.inc_counter("events_paused")
            return

        if not validate(envelope):
            self.inc_counter("events_invalid")
            return

        event = sanitize(envelope)
        if not filter_event(event, self._settings):
            self.inc_counter("events_filtered")
            return

        if not self.buffer.insert(event):
            self.inc_counter("events_duplicate")
            return

        self.inc_counter("events_buffered")
        self.set_gauge("buffer_size", len(self.buffer))
        self.timeline_notifier.notify()

        if self._initial_load_done and self._enricher is not None:
            await self._enricher.fetch_author(event.pubkey)

    async def _on_timeline_eose(self, _sub: Subscription) -> None:
        self._initial_load_done = True
        self._logger.info("timeline_initial_load_done", buffered=len(self.buffer))
        if self._enricher is not None:
            await self._enricher.fetch_missing(self.buffer.authors())

    def _on_notice(self, message: Any) -> None:
        self._logger.info("relay_notice", message=message)

    # -------------------------------------------------------------------------
    # Context Manager
    # -------------------------------------------------------------------------

    async def __aenter__(self) -> Timeline:
        await super().__aenter__()
        if self._pool is not None and self._postgres is not None:
            await self._pool.connect()
            await self._postgres.ensure_schema()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self._teardown()
        if self._pool is not None:
            await self._pool.close()
        await super().__aexit__(exc_type, exc_val, exc_tb)
