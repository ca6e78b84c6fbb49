"""
Unit tests for services.timeline.buffer module.

Tests:
- Head insertion in arrival order
- Batched truncation (max_size / retain_size)
- Duplicate handling
- authors(), refilter(), visible(), clear()
"""

from feedbrotr.nips.nip01 import FilterSettings
from feedbrotr.services.timeline import BufferConfig, TimelineBuffer


def _fill(buffer, make_event, count, start=1):
    for n in range(start, start + count):
        assert buffer.insert(make_event(n))


class TestInsert:
    def test_most_recent_insert_first(self, make_event):
        buffer = TimelineBuffer()
        buffer.insert(make_event(1, created_at=2_000_000_000))
        buffer.insert(make_event(2, created_at=1_000_000_000))

        # arrival order, not created_at order
        assert [e.id for e in buffer] == [f"{2:064x}", f"{1:064x}"]

    def test_grows_up_to_max_size(self, make_event):
        buffer = TimelineBuffer()
        _fill(buffer, make_event, 100)
        assert len(buffer) == 100

    def test_truncates_to_retain_size_past_max(self, make_event):
        buffer = TimelineBuffer()
        _fill(buffer, make_event, 101)

        assert len(buffer) == 80
        ids = [e.id for e in buffer.events]
        assert ids[0] == f"{101:064x}"
        assert ids[-1] == f"{22:064x}"
        assert ids == [f"{n:064x}" for n in range(101, 21, -1)]

    def test_length_stays_bounded(self, make_event):
        buffer = TimelineBuffer()
        for n in range(1, 500):
            buffer.insert(make_event(n))
            assert len(buffer) <= 100
        assert len(buffer) >= 80

    def test_custom_sizes(self, make_event):
        buffer = TimelineBuffer(BufferConfig(max_size=3, retain_size=1))
        _fill(buffer, make_event, 4)
        assert [e.id for e in buffer] == [f"{4:064x}"]


class TestDuplicates:
    def test_duplicate_dropped(self, make_event):
        buffer = TimelineBuffer()
        assert buffer.insert(make_event(1))
        assert not buffer.insert(make_event(1))
        assert len(buffer) == 1

    def test_evicted_id_can_return(self, make_event):
        buffer = TimelineBuffer(BufferConfig(max_size=2, retain_size=1))
        _fill(buffer, make_event, 3)
        assert f"{1:064x}" not in buffer
        assert buffer.insert(make_event(1))

    def test_dedup_disabled(self, make_event):
        buffer = TimelineBuffer(BufferConfig(dedup=False))
        assert buffer.insert(make_event(1))
        assert buffer.insert(make_event(1))
        assert len(buffer) == 2

    def test_dedup_disabled_evicting_one_copy_keeps_the_other(self, make_event):
        buffer = TimelineBuffer(BufferConfig(max_size=3, retain_size=2, dedup=False))
        buffer.insert(make_event(1))
        buffer.insert(make_event(2))
        buffer.insert(make_event(1))
        buffer.insert(make_event(3))

        # older copy of 1 and event 2 were evicted, the newer copy of 1 remains
        assert [e.id for e in buffer] == [f"{3:064x}", f"{1:064x}"]
        assert f"{1:064x}" in buffer
        assert f"{2:064x}" not in buffer

    def test_contains(self, make_event):
        buffer = TimelineBuffer()
        buffer.insert(make_event(7))
        assert f"{7:064x}" in buffer
        assert f"{8:064x}" not in buffer


class TestAuthors:
    def test_distinct_most_recent_first(self, make_event):
        buffer = TimelineBuffer()
        buffer.insert(make_event(1, pubkey="a" * 64))
        buffer.insert(make_event(2, pubkey="b" * 64))
        buffer.insert(make_event(3, pubkey="a" * 64))

        assert buffer.authors() == ["a" * 64, "b" * 64]

    def test_empty(self):
        assert TimelineBuffer().authors() == []


class TestRefilter:
    def test_refilter_updates_visible(self, make_event):
        buffer = TimelineBuffer()
        buffer.insert(make_event(1, content="gm"))
        buffer.insert(make_event(2, content="free sats airdrop"))

        buffer.refilter(FilterSettings(hide_spam=True))
        assert [e.id for e in buffer.visible()] == [f"{1:064x}"]
        assert len(buffer) == 2

        buffer.refilter(FilterSettings(hide_spam=False))
        assert len(buffer.visible()) == 2

    def test_refilter_is_idempotent(self, make_event):
        buffer = TimelineBuffer()
        buffer.insert(make_event(1, content="airdrop"))
        settings = FilterSettings()
        buffer.refilter(settings)
        first = buffer.events
        buffer.refilter(settings)
        assert buffer.events == first

    def test_refilter_keeps_order(self, make_event):
        buffer = TimelineBuffer()
        _fill(buffer, make_event, 5)
        buffer.refilter(FilterSettings())
        assert [e.id for e in buffer] == [f"{n:064x}" for n in range(5, 0, -1)]


class TestClear:
    def test_clear(self, make_event):
        buffer = TimelineBuffer()
        _fill(buffer, make_event, 3)
        buffer.clear()
        assert len(buffer) == 0
        assert f"{1:064x}" not in buffer
        assert buffer.insert(make_event(1))

    def test_events_is_a_snapshot(self, make_event):
        buffer = TimelineBuffer()
        buffer.insert(make_event(1))
        snapshot = buffer.events
        buffer.insert(make_event(2))
        assert len(snapshot) == 1
