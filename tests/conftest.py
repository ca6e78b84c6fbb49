"""
Pytest configuration and shared fixtures for FeedBrotr tests.

Provides:
- Signed NIP-01 envelopes built with nostr-sdk
- Factories for TimelineEvent and Profile values
- A scripted in-memory WebSocket and the RelayConnection wired to it
- An in-memory store backend
"""

import asyncio
import json
import logging
from collections.abc import Callable
from types import SimpleNamespace
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import aiohttp
import pytest
from nostr_sdk import EventBuilder, Keys, Kind, Tag

from feedbrotr.core.store import MemoryBackend
from feedbrotr.models.event import TimelineEvent
from feedbrotr.models.profile import Profile
from feedbrotr.utils.relay import RelayConfig, RelayConnection


# ============================================================================
# Logging Configuration
# ============================================================================


@pytest.fixture(scope="session", autouse=True)
def setup_logging() -> None:
    """Configure logging for tests."""
    logging.basicConfig(level=logging.DEBUG)


# ============================================================================
# Helpers
# ============================================================================


async def settle(rounds: int = 20) -> None:
    """Give background tasks (relay reader, verification) a chance to run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


def hex_id(n: int) -> str:
    """Deterministic 64-char hex id for *n*."""
    return f"{n:064x}"


# ============================================================================
# Signed Envelopes
# ============================================================================


@pytest.fixture
def keys() -> Keys:
    return Keys.generate()


@pytest.fixture
def sign() -> Callable[..., dict[str, Any]]:
    """Factory building a signed envelope dict.

    Usage: ``sign(keys, "content", kind=1, tags=[["t", "nostr"]])``.
    """

    def _sign(
        keys: Keys,
        content: str = "hello nostr",
        *,
        kind: int = 1,
        tags: list[list[str]] | None = None,
    ) -> dict[str, Any]:
        builder = EventBuilder(Kind(kind), content)
        if tags:
            builder = builder.tags([Tag.parse(tag) for tag in tags])
        event = builder.sign_with_keys(keys)
        return json.loads(event.as_json())

    return _sign


@pytest.fixture
def sign_profile(sign: Callable[..., dict[str, Any]]) -> Callable[..., dict[str, Any]]:
    """Factory building a signed kind 0 envelope from profile fields."""

    def _sign_profile(keys: Keys, **fields: Any) -> dict[str, Any]:
        return sign(keys, json.dumps(fields), kind=0)

    return _sign_profile


# ============================================================================
# Model Factories
# ============================================================================


@pytest.fixture
def make_event() -> Callable[..., TimelineEvent]:
    """Factory for TimelineEvent values with deterministic hex fields."""

    def _make_event(
        n: int = 1,
        *,
        pubkey: str | None = None,
        content: str = "gm",
        tags: tuple[tuple[str, ...], ...] = (),
        created_at: int = 1_700_000_000,
    ) -> TimelineEvent:
        return TimelineEvent(
            id=hex_id(n),
            pubkey=pubkey or "b" * 64,
            created_at=created_at,
            kind=1,
            tags=tags,
            content=content,
            sig="c" * 128,
        )

    return _make_event


@pytest.fixture
def make_profile() -> Callable[..., Profile]:
    """Factory for Profile values."""

    def _make_profile(
        pubkey: str = "a" * 64,
        *,
        name: str = "alice",
        event_id: str = "e" * 64,
        **fields: Any,
    ) -> Profile:
        return Profile(pubkey=pubkey, name=name, event_id=event_id, **fields)

    return _make_profile


@pytest.fixture
def backend() -> MemoryBackend:
    return MemoryBackend()


# ============================================================================
# Relay
# ============================================================================


class FakeWebSocket:
    """Scripted stand-in for ``aiohttp.ClientWebSocketResponse``.

    Messages pushed with ``feed()`` are yielded to the connection's reader in
    order; ``drop()`` simulates the relay closing the socket.
    """

    def __init__(self) -> None:
        self.sent: list[list[Any]] = []
        self.closed = False
        self.close_code: int | None = None
        self._inbox: asyncio.Queue[SimpleNamespace | None] = asyncio.Queue()

    def feed(self, *message: Any) -> None:
        self.feed_raw(json.dumps(list(message)))

    def feed_raw(self, data: str) -> None:
        self._inbox.put_nowait(SimpleNamespace(type=aiohttp.WSMsgType.TEXT, data=data))

    def drop(self) -> None:
        self.close_code = 1006
        self._inbox.put_nowait(None)

    def sent_of(self, verb: str) -> list[list[Any]]:
        return [message for message in self.sent if message[0] == verb]

    async def send_str(self, data: str) -> None:
        if self.closed:
            raise ConnectionResetError("socket closed")
        self.sent.append(json.loads(data))

    async def close(self) -> None:
        self.closed = True
        self._inbox.put_nowait(None)

    def exception(self) -> BaseException | None:
        return None

    def __aiter__(self) -> "FakeWebSocket":
        return self

    async def __anext__(self) -> SimpleNamespace:
        message = await self._inbox.get()
        if message is None:
            self.closed = True
            raise StopAsyncIteration
        return message


@pytest.fixture
def fake_ws() -> FakeWebSocket:
    return FakeWebSocket()


@pytest.fixture
def fake_session(fake_ws: FakeWebSocket) -> MagicMock:
    session = MagicMock(spec=aiohttp.ClientSession)
    session.ws_connect = AsyncMock(return_value=fake_ws)
    session.close = AsyncMock()
    return session


@pytest.fixture
def relay_config() -> RelayConfig:
    return RelayConfig(url="wss://relay.example.com", connect_timeout=1.0, heartbeat=None)


@pytest.fixture
def connection(relay_config: RelayConfig, fake_session: MagicMock) -> RelayConnection:
    """A disconnected RelayConnection whose socket is ``fake_ws``."""
    return RelayConnection(relay_config, session=fake_session)


@pytest.fixture(name="settle")
def settle_fixture() -> Callable[..., Any]:
    return settle
