"""
Single-relay WebSocket connection speaking the NIP-01 client protocol.

[RelayConnection][feedbrotr.utils.relay.RelayConnection] owns one aiohttp
WebSocket and a reader task that dispatches relay messages
(``EVENT``, ``EOSE``, ``NOTICE``, ``CLOSED``) to
[Subscription][feedbrotr.utils.relay.Subscription] handlers in the order the
relay sent them.

State machine:

```text
DISCONNECTED --connect()--> CONNECTING --handshake ok--> CONNECTED
     ^                          |                            |
     +------handshake failed----+      relay closed socket   |
     +-----------------------------------or close()----------+
```

* ``connect()`` is idempotent once connected; concurrent callers are
  serialized and later ones return without a second handshake.
* ``subscribe()`` is only valid while CONNECTED. Calling it in any other
  state raises [RelayNotConnectedError][feedbrotr.exceptions.RelayNotConnectedError]
  immediately; nothing is queued.
* There is no reconnect logic. After a disconnect the owner may call
  ``connect()`` again; subscriptions from the previous session stay ended.

Handlers may be plain callables or coroutine functions. They run inside the
reader task one at a time, so a handler must not wait for later messages on
the same connection (e.g. ``await sub.wait_eose()``); spawn a task instead.

Examples:
    ```python
    async with RelayConnection(RelayConfig(url="wss://relay.damus.io")) as relay:
        sub = await relay.subscribe(RelayFilter(kinds=(1,), since=now - 300))
        sub.on_event(handle_event).on_eose(handle_eose)
        await sub.wait_eose()
        await sub.unsubscribe()
    ```
"""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import itertools
import json
import logging
import secrets
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

import aiohttp
from pydantic import BaseModel, Field

from feedbrotr.exceptions import RelayConnectionError, RelayNotConnectedError
from feedbrotr.models.constants import ConnectionState


logger = logging.getLogger("feedbrotr.utils.relay")

Handler = Callable[..., Any]


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class RelayConfig(BaseModel):
    """Connection settings for a single relay.

    Attributes:
        url: WebSocket URL of the relay.
        connect_timeout: Handshake timeout in seconds.
        heartbeat: WebSocket ping interval in seconds (``None`` disables).
        max_message_size: Largest accepted relay message in bytes.
    """

    url: str = Field(default="wss://relay.damus.io", pattern=r"^wss?://")
    connect_timeout: float = Field(default=10.0, gt=0.0, description="Handshake timeout")
    heartbeat: float | None = Field(default=30.0, gt=0.0, description="Ping interval")
    max_message_size: int = Field(
        default=4 * 1024 * 1024, ge=1024, description="Max relay message size (bytes)"
    )


@dataclass(frozen=True, slots=True)
class RelayFilter:
    """NIP-01 subscription filter.

    Unset fields are omitted from the wire form, so an empty filter matches
    everything the relay is willing to send.
    """

    kinds: tuple[int, ...] = ()
    authors: tuple[str, ...] = ()
    since: int | None = None
    limit: int | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        if self.kinds:
            data["kinds"] = list(self.kinds)
        if self.authors:
            data["authors"] = list(self.authors)
        if self.since is not None:
            data["since"] = self.since
        if self.limit is not None:
            data["limit"] = self.limit
        return data


async def _call_handlers(handlers: Iterable[Handler], *args: Any) -> None:
    """Invoke handlers in registration order, awaiting coroutine results."""
    for handler in list(handlers):
        try:
            result = handler(*args)
            if inspect.isawaitable(result):
                await result
        except Exception:  # Intentionally broad: handler error boundary
            logger.exception("relay_handler_failed handler=%r", handler)


# ---------------------------------------------------------------------------
# Subscription
# ---------------------------------------------------------------------------


class Subscription:
    """One open ``REQ`` on a [RelayConnection][feedbrotr.utils.relay.RelayConnection].

    Attributes:
        id: Subscription id sent to the relay.
        filters: Filters the subscription was opened with.
        close_reason: Message from a relay-sent ``CLOSED``, if any.
    """

    def __init__(
        self, connection: RelayConnection, sub_id: str, filters: tuple[RelayFilter, ...]
    ) -> None:
        self.id = sub_id
        self.filters = filters
        self.close_reason: str | None = None
        self._connection = connection
        self._event_handlers: list[Handler] = []
        self._eose_handlers: list[Handler] = []
        self._eose_received = False
        self._active = True
        self._settled = asyncio.Event()

    def on_event(self, handler: Handler) -> Subscription:
        """Register *handler(envelope)* for every ``EVENT`` on this subscription."""
        self._event_handlers.append(handler)
        return self

    def on_eose(self, handler: Handler) -> Subscription:
        """Register *handler(subscription)* for the one-shot ``EOSE`` signal."""
        self._eose_handlers.append(handler)
        return self

    @property
    def is_active(self) -> bool:
        """False once unsubscribed, closed by the relay, or disconnected."""
        return self._active

    @property
    def eose_received(self) -> bool:
        return self._eose_received

    async def wait_eose(self, timeout: float | None = None) -> bool:  # noqa: ASYNC109
        """Wait until EOSE arrives or the subscription ends.

        Returns:
            True if EOSE was received.
        """
        try:
            await asyncio.wait_for(self._settled.wait(), timeout=timeout)
        except TimeoutError:
            return False
        return self._eose_received

    async def unsubscribe(self) -> None:
        """Stop delivery and send ``CLOSE`` if still connected. Idempotent."""
        if not self._active:
            return
        self._end()
        await self._connection._release(self)

    async def _deliver_event(self, envelope: Any) -> None:
        if self._active:
            await _call_handlers(self._event_handlers, envelope)

    async def _deliver_eose(self) -> None:
        if not self._active or self._eose_received:
            return
        self._eose_received = True
        self._settled.set()
        await _call_handlers(self._eose_handlers, self)

    def _end(self, reason: str | None = None) -> None:
        self._active = False
        if reason is not None:
            self.close_reason = reason
        self._settled.set()

    def __repr__(self) -> str:
        return f"Subscription(id={self.id!r}, active={self._active}, eose={self._eose_received})"


# ---------------------------------------------------------------------------
# Connection
# ---------------------------------------------------------------------------


class RelayConnection:
    """Lifecycle of one WebSocket connection to one relay.

    Args:
        config: Relay settings.
        session: Optional shared aiohttp session. When omitted, the
            connection creates and closes its own.
    """

    def __init__(
        self,
        config: RelayConfig | None = None,
        *,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._config = config or RelayConfig()
        self._session = session
        self._owns_session = session is None
        self._ws: aiohttp.ClientWebSocketResponse | None = None
        self._reader: asyncio.Task[None] | None = None
        self._state = ConnectionState.DISCONNECTED
        self._lock = asyncio.Lock()
        self._subscriptions: dict[str, Subscription] = {}
        self._counter = itertools.count(1)
        self._prefix = secrets.token_hex(4)
        self._connect_listeners: list[Handler] = []
        self._disconnect_listeners: list[Handler] = []
        self._notice_listeners: list[Handler] = []

    @property
    def url(self) -> str:
        return self._config.url

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    @property
    def subscriptions(self) -> list[Subscription]:
        """Currently open subscriptions."""
        return list(self._subscriptions.values())

    # -------------------------------------------------------------------------
    # Listeners
    # -------------------------------------------------------------------------

    def on_connect(self, listener: Handler) -> None:
        """Register *listener(connection)* called after each successful handshake."""
        self._connect_listeners.append(listener)

    def on_disconnect(self, listener: Handler) -> None:
        """Register *listener(connection)* called when the socket goes away."""
        self._disconnect_listeners.append(listener)

    def on_notice(self, listener: Handler) -> None:
        """Register *listener(message)* for relay ``NOTICE`` messages."""
        self._notice_listeners.append(listener)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def connect(self) -> None:
        """Open the WebSocket and start the reader task.

        Raises:
            RelayConnectionError: If the handshake fails or times out. The
                state returns to DISCONNECTED.
        """
        async with self._lock:
            if self._state is ConnectionState.CONNECTED:
                return

            self._state = ConnectionState.CONNECTING
            logger.info("relay_connecting url=%s", self.url)
            try:
                if self._session is None:
                    self._session = aiohttp.ClientSession()
                async with asyncio.timeout(self._config.connect_timeout):
                    self._ws = await self._session.ws_connect(
                        self.url,
                        heartbeat=self._config.heartbeat,
                        max_msg_size=self._config.max_message_size,
                    )
            except (aiohttp.ClientError, TimeoutError, OSError) as e:
                self._state = ConnectionState.DISCONNECTED
                await self._release_session()
                logger.warning("relay_connect_failed url=%s error=%s", self.url, e)
                raise RelayConnectionError(
                    f"{self.url}: {str(e) or type(e).__name__}"
                ) from e

            self._state = ConnectionState.CONNECTED
            self._reader = asyncio.create_task(self._read_loop(), name=f"relay-reader:{self.url}")

        logger.info("relay_connected url=%s", self.url)
        await _call_handlers(self._connect_listeners, self)

    async def close(self) -> None:
        """Close the socket, end every subscription and fire disconnect listeners."""
        async with self._lock:
            was_connected = self._state is ConnectionState.CONNECTED
            self._state = ConnectionState.DISCONNECTED
            self._end_subscriptions("connection closed")

            reader, self._reader = self._reader, None
            if reader is not None and reader is not asyncio.current_task():
                reader.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await reader

            ws, self._ws = self._ws, None
            if ws is not None:
                await ws.close()
            await self._release_session()

        if was_connected:
            logger.info("relay_closed url=%s", self.url)
            await _call_handlers(self._disconnect_listeners, self)

    async def _release_session(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    def _end_subscriptions(self, reason: str) -> None:
        for sub in self._subscriptions.values():
            sub._end(reason)
        self._subscriptions.clear()

    async def __aenter__(self) -> RelayConnection:
        await self.connect()
        return self

    async def __aexit__(self, *_exc: object) -> None:
        await self.close()

    # -------------------------------------------------------------------------
    # Subscriptions
    # -------------------------------------------------------------------------

    async def subscribe(
        self,
        *filters: RelayFilter,
        sub_id: str | None = None,
        on_event: Handler | None = None,
        on_eose: Handler | None = None,
    ) -> Subscription:
        """Send ``REQ`` and return the new subscription.

        Handlers passed here are registered before ``REQ`` is sent, so no
        message can arrive ahead of them.

        Raises:
            RelayNotConnectedError: If the connection is not CONNECTED.
            ValueError: If no filter is given.
        """
        if not self.is_connected:
            raise RelayNotConnectedError(
                f"cannot subscribe to {self.url} while {self._state.value}"
            )
        if not filters:
            raise ValueError("at least one filter is required")

        sub_id = sub_id or f"{self._prefix}:{next(self._counter)}"
        sub = Subscription(self, sub_id, tuple(filters))
        if on_event is not None:
            sub.on_event(on_event)
        if on_eose is not None:
            sub.on_eose(on_eose)
        self._subscriptions[sub_id] = sub
        try:
            await self._send(["REQ", sub_id, *(f.to_dict() for f in filters)])
        except RelayNotConnectedError:
            self._subscriptions.pop(sub_id, None)
            sub._end("send failed")
            raise
        logger.debug("relay_subscribed url=%s sub_id=%s filters=%d", self.url, sub_id, len(filters))
        return sub

    async def _release(self, sub: Subscription) -> None:
        if self._subscriptions.pop(sub.id, None) is None or not self.is_connected:
            return
        try:
            await self._send(["CLOSE", sub.id])
        except RelayNotConnectedError as e:
            logger.debug("relay_close_not_sent sub_id=%s error=%s", sub.id, e)
        else:
            logger.debug("relay_unsubscribed url=%s sub_id=%s", self.url, sub.id)

    async def _send(self, message: list[Any]) -> None:
        ws = self._ws
        if ws is None or ws.closed:
            raise RelayNotConnectedError(f"{self.url}: socket is closed")
        try:
            await ws.send_str(json.dumps(message))
        except (aiohttp.ClientError, ConnectionError) as e:
            raise RelayNotConnectedError(f"{self.url}: send failed: {e}") from e

    # -------------------------------------------------------------------------
    # Reader
    # -------------------------------------------------------------------------

    async def _read_loop(self) -> None:
        ws = self._ws
        if ws is None:
            return
        async for msg in ws:
            if msg.type is aiohttp.WSMsgType.TEXT:
                await self._dispatch(msg.data)
            elif msg.type is aiohttp.WSMsgType.ERROR:
                logger.warning("relay_socket_error url=%s error=%s", self.url, ws.exception())
                break
        await self._on_remote_close(ws)

    async def _on_remote_close(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        async with self._lock:
            if self._ws is not ws:
                return
            self._state = ConnectionState.DISCONNECTED
            self._reader = None
            self._ws = None
            self._end_subscriptions("relay disconnected")
            await ws.close()
            await self._release_session()

        logger.warning("relay_disconnected url=%s code=%s", self.url, ws.close_code)
        await _call_handlers(self._disconnect_listeners, self)

    async def _dispatch(self, raw: str) -> None:
        try:
            message = json.loads(raw)
        except json.JSONDecodeError:
            logger.debug("relay_message_invalid url=%s reason=json", self.url)
            return
        if not isinstance(message, list) or not message or not isinstance(message[0], str):
            logger.debug("relay_message_invalid url=%s reason=shape", self.url)
            return

        kind, args = message[0], message[1:]

        if kind == "EVENT" and len(args) >= 2:
            sub = self._subscriptions.get(args[0])
            if sub is not None:
                await sub._deliver_event(args[1])
        elif kind == "EOSE" and args:
            sub = self._subscriptions.get(args[0])
            if sub is not None:
                await sub._deliver_eose()
        elif kind == "CLOSED" and args:
            sub = self._subscriptions.pop(args[0], None)
            reason = str(args[1]) if len(args) > 1 else ""
            if sub is not None:
                sub._end(reason)
            logger.info("relay_subscription_closed url=%s sub_id=%s reason=%s", self.url, args[0], reason)
        elif kind == "NOTICE" and args:
            logger.info("relay_notice url=%s message=%s", self.url, args[0])
            await _call_handlers(self._notice_listeners, args[0])
        else:
            logger.debug("relay_message_ignored url=%s kind=%s", self.url, kind)

    def __repr__(self) -> str:
        return f"RelayConnection(url={self.url!r}, state={self._state.value})"
