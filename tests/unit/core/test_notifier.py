"""
Unit tests for core.notifier module.

Tests:
- Callback subscription and removal
- Version counting
- Failing callbacks do not block the others
- changes() async stream: immediate first tick and coalescing
"""

import asyncio
import logging

from feedbrotr.core.notifier import ChangeNotifier


class TestCallbacks:
    def test_notify_calls_callbacks_in_order(self):
        notifier = ChangeNotifier("circles")
        calls = []
        notifier.subscribe(lambda: calls.append("a"))
        notifier.subscribe(lambda: calls.append("b"))
        notifier.notify()
        assert calls == ["a", "b"]

    def test_unsubscribe(self):
        notifier = ChangeNotifier()
        calls = []
        unsubscribe = notifier.subscribe(lambda: calls.append(1))
        unsubscribe()
        unsubscribe()
        notifier.notify()
        assert calls == []
        assert notifier.observer_count == 0

    def test_version_counts_notifications(self):
        notifier = ChangeNotifier()
        assert notifier.version == 0
        notifier.notify()
        notifier.notify()
        assert notifier.version == 2

    def test_failing_callback_is_isolated(self, caplog):
        notifier = ChangeNotifier("profiles")
        calls = []

        def broken():
            raise RuntimeError("view crashed")

        notifier.subscribe(broken)
        notifier.subscribe(lambda: calls.append(1))
        with caplog.at_level(logging.ERROR):
            notifier.notify()
        assert calls == [1]
        assert "change_callback_failed" in caplog.text


class TestChanges:
    async def test_first_tick_is_immediate(self):
        notifier = ChangeNotifier()
        stream = notifier.changes()
        await asyncio.wait_for(anext(stream), timeout=1)
        await stream.aclose()

    async def test_notifications_coalesce(self):
        notifier = ChangeNotifier()
        stream = notifier.changes()
        await anext(stream)

        notifier.notify()
        notifier.notify()
        notifier.notify()
        await asyncio.wait_for(anext(stream), timeout=1)
        assert notifier.version == 3

        next_tick = asyncio.ensure_future(anext(stream))
        await asyncio.sleep(0)
        assert not next_tick.done()
        notifier.notify()
        await asyncio.wait_for(next_tick, timeout=1)
        await stream.aclose()

    async def test_stream_counts_as_observer(self):
        notifier = ChangeNotifier()
        stream = notifier.changes()
        await anext(stream)
        assert notifier.observer_count == 1
        await stream.aclose()
        assert notifier.observer_count == 0
