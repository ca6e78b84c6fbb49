"""
Unit tests for utils.relay module.

Tests:
- RelayConfig and RelayFilter wire form
- Connection state machine: connect, failed connect, close, remote close
- subscribe() preconditions and REQ framing
- Message dispatch: EVENT, EOSE, CLOSED, NOTICE, malformed input
- Subscription lifecycle: unsubscribe, wait_eose, handler isolation
"""

import asyncio
from unittest.mock import AsyncMock

import aiohttp
import pytest
from pydantic import ValidationError

from feedbrotr.exceptions import RelayConnectionError, RelayNotConnectedError
from feedbrotr.models.constants import ConnectionState
from feedbrotr.utils.relay import RelayConfig, RelayConnection, RelayFilter


class TestRelayConfig:
    def test_defaults(self):
        config = RelayConfig()
        assert config.url == "wss://relay.damus.io"
        assert config.connect_timeout == 10.0

    def test_rejects_non_websocket_url(self):
        with pytest.raises(ValidationError):
            RelayConfig(url="https://relay.damus.io")


class TestRelayFilter:
    def test_empty(self):
        assert RelayFilter().to_dict() == {}

    def test_full(self):
        relay_filter = RelayFilter(kinds=(0,), authors=("a" * 64,), since=100, limit=5)
        assert relay_filter.to_dict() == {
            "kinds": [0],
            "authors": ["a" * 64],
            "since": 100,
            "limit": 5,
        }

    def test_since_zero_is_kept(self):
        assert RelayFilter(since=0).to_dict() == {"since": 0}


# ============================================================================
# Lifecycle
# ============================================================================


class TestConnect:
    async def test_connect(self, connection, fake_session):
        assert connection.state is ConnectionState.DISCONNECTED
        await connection.connect()
        assert connection.is_connected
        fake_session.ws_connect.assert_awaited_once()
        assert fake_session.ws_connect.await_args.args[0] == "wss://relay.example.com"
        await connection.close()

    async def test_connect_is_idempotent(self, connection, fake_session):
        await connection.connect()
        await connection.connect()
        assert fake_session.ws_connect.await_count == 1
        await connection.close()

    async def test_connect_listeners(self, connection):
        seen = []
        connection.on_connect(lambda conn: seen.append(conn.state))
        await connection.connect()
        assert seen == [ConnectionState.CONNECTED]
        await connection.close()

    async def test_failed_connect(self, connection, fake_session):
        fake_session.ws_connect.side_effect = aiohttp.ClientConnectionError("refused")
        with pytest.raises(RelayConnectionError, match="refused"):
            await connection.connect()
        assert connection.state is ConnectionState.DISCONNECTED

    async def test_connect_timeout(self, connection, fake_session):
        fake_session.ws_connect.side_effect = TimeoutError()
        with pytest.raises(RelayConnectionError, match="TimeoutError"):
            await connection.connect()
        assert connection.state is ConnectionState.DISCONNECTED

    async def test_shared_session_is_not_closed(self, connection, fake_session):
        await connection.connect()
        await connection.close()
        fake_session.close.assert_not_awaited()

    async def test_context_manager(self, connection, fake_ws):
        async with connection as relay:
            assert relay.is_connected
        assert not connection.is_connected
        assert fake_ws.closed


class TestClose:
    async def test_close_ends_subscriptions_and_notifies(self, connection):
        disconnects = []
        connection.on_disconnect(lambda conn: disconnects.append(conn))
        await connection.connect()
        sub = await connection.subscribe(RelayFilter(kinds=(1,)))

        await connection.close()

        assert not sub.is_active
        assert sub.close_reason == "connection closed"
        assert connection.subscriptions == []
        assert disconnects == [connection]

    async def test_close_when_disconnected_is_silent(self, connection):
        disconnects = []
        connection.on_disconnect(disconnects.append)
        await connection.close()
        assert disconnects == []

    async def test_remote_close(self, connection, fake_ws, settle):
        disconnects = []
        connection.on_disconnect(disconnects.append)
        await connection.connect()
        sub = await connection.subscribe(RelayFilter(kinds=(1,)))

        fake_ws.drop()
        await settle()

        assert connection.state is ConnectionState.DISCONNECTED
        assert not sub.is_active
        assert sub.close_reason == "relay disconnected"
        assert disconnects == [connection]

    async def test_subscribe_after_remote_close(self, connection, fake_ws, settle):
        await connection.connect()
        fake_ws.drop()
        await settle()
        with pytest.raises(RelayNotConnectedError):
            await connection.subscribe(RelayFilter(kinds=(1,)))


# ============================================================================
# Subscriptions
# ============================================================================


class TestSubscribe:
    async def test_requires_connection(self, connection, fake_ws):
        with pytest.raises(RelayNotConnectedError, match="disconnected"):
            await connection.subscribe(RelayFilter(kinds=(1,)))
        assert fake_ws.sent == []

    async def test_requires_filter(self, connection):
        await connection.connect()
        with pytest.raises(ValueError, match="filter"):
            await connection.subscribe()
        await connection.close()

    async def test_sends_req(self, connection, fake_ws):
        await connection.connect()
        sub = await connection.subscribe(
            RelayFilter(kinds=(1,), since=100), RelayFilter(kinds=(0,), authors=("a" * 64,))
        )
        assert fake_ws.sent == [
            ["REQ", sub.id, {"kinds": [1], "since": 100}, {"kinds": [0], "authors": ["a" * 64]}]
        ]
        assert connection.subscriptions == [sub]
        await connection.close()

    async def test_unique_ids(self, connection):
        await connection.connect()
        first = await connection.subscribe(RelayFilter(kinds=(1,)))
        second = await connection.subscribe(RelayFilter(kinds=(1,)))
        assert first.id != second.id
        await connection.close()

    async def test_explicit_id(self, connection, fake_ws):
        await connection.connect()
        sub = await connection.subscribe(RelayFilter(kinds=(1,)), sub_id="timeline")
        assert sub.id == "timeline"
        assert fake_ws.sent[0][1] == "timeline"
        await connection.close()

    async def test_send_failure_rolls_back(self, connection, fake_ws):
        await connection.connect()
        fake_ws.send_str = AsyncMock(side_effect=ConnectionResetError("reset"))
        with pytest.raises(RelayNotConnectedError, match="send failed"):
            await connection.subscribe(RelayFilter(kinds=(1,)))
        assert connection.subscriptions == []
        await connection.close()

    async def test_unsubscribe_sends_close_once(self, connection, fake_ws):
        await connection.connect()
        sub = await connection.subscribe(RelayFilter(kinds=(1,)))
        await sub.unsubscribe()
        await sub.unsubscribe()
        assert fake_ws.sent_of("CLOSE") == [["CLOSE", sub.id]]
        assert not sub.is_active
        assert connection.subscriptions == []
        await connection.close()

    async def test_unsubscribe_after_disconnect_sends_nothing(self, connection, fake_ws):
        await connection.connect()
        sub = await connection.subscribe(RelayFilter(kinds=(1,)))
        await connection.close()
        await sub.unsubscribe()
        assert fake_ws.sent_of("CLOSE") == []


class TestDispatch:
    async def test_events_in_order_then_eose(self, connection, fake_ws, settle):
        received = []
        await connection.connect()
        sub = await connection.subscribe(
            RelayFilter(kinds=(1,)),
            on_event=lambda env: received.append(env["id"]),
            on_eose=lambda s: received.append(f"eose:{s.id}"),
        )

        fake_ws.feed("EVENT", sub.id, {"id": "1"})
        fake_ws.feed("EVENT", sub.id, {"id": "2"})
        fake_ws.feed("EOSE", sub.id)
        fake_ws.feed("EVENT", sub.id, {"id": "3"})
        await settle()

        assert received == ["1", "2", f"eose:{sub.id}", "3"]
        assert sub.eose_received
        await connection.close()

    async def test_eose_is_one_shot(self, connection, fake_ws, settle):
        eoses = []
        await connection.connect()
        sub = await connection.subscribe(RelayFilter(kinds=(1,)), on_eose=eoses.append)
        fake_ws.feed("EOSE", sub.id)
        fake_ws.feed("EOSE", sub.id)
        await settle()
        assert eoses == [sub]
        await connection.close()

    async def test_async_handlers_are_awaited(self, connection, fake_ws, settle):
        received = []

        async def handler(envelope):
            await asyncio.sleep(0)
            received.append(envelope)

        await connection.connect()
        sub = await connection.subscribe(RelayFilter(kinds=(1,)), on_event=handler)
        fake_ws.feed("EVENT", sub.id, {"id": "1"})
        await settle()
        assert received == [{"id": "1"}]
        await connection.close()

    async def test_chained_handlers(self, connection, fake_ws, settle):
        first, second = [], []
        await connection.connect()
        sub = await connection.subscribe(RelayFilter(kinds=(1,)))
        sub.on_event(first.append).on_event(second.append)
        fake_ws.feed("EVENT", sub.id, {"id": "1"})
        await settle()
        assert first == second == [{"id": "1"}]
        await connection.close()

    async def test_failing_handler_does_not_stop_delivery(self, connection, fake_ws, settle):
        received = []

        def broken(_envelope):
            raise RuntimeError("handler bug")

        await connection.connect()
        sub = await connection.subscribe(RelayFilter(kinds=(1,)))
        sub.on_event(broken).on_event(received.append)
        fake_ws.feed("EVENT", sub.id, {"id": "1"})
        fake_ws.feed("EVENT", sub.id, {"id": "2"})
        await settle()
        assert [e["id"] for e in received] == ["1", "2"]
        assert connection.is_connected
        await connection.close()

    async def test_unknown_subscription_ignored(self, connection, fake_ws, settle):
        received = []
        await connection.connect()
        await connection.subscribe(RelayFilter(kinds=(1,)), on_event=received.append)
        fake_ws.feed("EVENT", "someone-else", {"id": "1"})
        await settle()
        assert received == []
        await connection.close()

    async def test_events_after_unsubscribe_dropped(self, connection, fake_ws, settle):
        received = []
        await connection.connect()
        sub = await connection.subscribe(RelayFilter(kinds=(1,)), on_event=received.append)
        await sub.unsubscribe()
        fake_ws.feed("EVENT", sub.id, {"id": "late"})
        await settle()
        assert received == []
        await connection.close()

    async def test_closed_by_relay(self, connection, fake_ws, settle):
        await connection.connect()
        sub = await connection.subscribe(RelayFilter(kinds=(1,)))
        fake_ws.feed("CLOSED", sub.id, "error: too many subscriptions")
        await settle()
        assert not sub.is_active
        assert sub.close_reason == "error: too many subscriptions"
        assert connection.subscriptions == []
        await connection.close()

    async def test_notice(self, connection, fake_ws, settle):
        notices = []
        connection.on_notice(notices.append)
        await connection.connect()
        fake_ws.feed("NOTICE", "rate limited")
        await settle()
        assert notices == ["rate limited"]
        await connection.close()

    @pytest.mark.parametrize(
        "raw", ["not json", "{}", "[]", "[1, 2]", '["OK", "id", true, ""]', '["EVENT"]']
    )
    async def test_malformed_messages_ignored(self, connection, fake_ws, settle, raw):
        await connection.connect()
        fake_ws.feed_raw(raw)
        await settle()
        assert connection.is_connected
        await connection.close()


class TestWaitEose:
    async def test_returns_true_after_eose(self, connection, fake_ws):
        await connection.connect()
        sub = await connection.subscribe(RelayFilter(kinds=(1,)))
        fake_ws.feed("EOSE", sub.id)
        assert await sub.wait_eose(timeout=1) is True
        await connection.close()

    async def test_returns_false_when_ended_first(self, connection):
        await connection.connect()
        sub = await connection.subscribe(RelayFilter(kinds=(1,)))
        await connection.close()
        assert await sub.wait_eose(timeout=1) is False

    async def test_timeout(self, connection):
        await connection.connect()
        sub = await connection.subscribe(RelayFilter(kinds=(1,)))
        assert await sub.wait_eose(timeout=0.01) is False
        await connection.close()
