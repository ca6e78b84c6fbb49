"""
Unit tests for services.timeline.configs module.

Tests:
- Defaults
- BufferConfig size relation
- StoreConfig pool requirement
- TimelineConfig nesting from dicts
"""

import pytest
from pydantic import ValidationError

from feedbrotr.services.timeline import BufferConfig, StoreConfig, TimelineConfig


class TestBufferConfig:
    def test_defaults(self):
        config = BufferConfig()
        assert config.max_size == 100
        assert config.retain_size == 80
        assert config.dedup is True

    def test_retain_equal_to_max(self):
        assert BufferConfig(max_size=10, retain_size=10).retain_size == 10

    def test_retain_above_max_rejected(self):
        with pytest.raises(ValidationError, match="retain_size"):
            BufferConfig(max_size=10, retain_size=11)

    def test_zero_rejected(self):
        with pytest.raises(ValidationError):
            BufferConfig(max_size=0)


class TestStoreConfig:
    def test_memory_default(self):
        config = StoreConfig()
        assert config.backend == "memory"
        assert config.pool is None

    def test_postgres_requires_pool(self):
        with pytest.raises(ValidationError, match="store.pool is required"):
            StoreConfig(backend="postgres")

    def test_postgres_with_pool(self, monkeypatch):
        monkeypatch.setenv("FEEDBROTR_DB_PASSWORD", "secret")
        config = StoreConfig(backend="postgres", pool={"database": {"database": "cache"}})
        assert config.pool is not None
        assert config.pool.database.database == "cache"

    def test_unknown_backend_rejected(self):
        with pytest.raises(ValidationError):
            StoreConfig(backend="sqlite")


class TestTimelineConfig:
    def test_defaults(self):
        config = TimelineConfig()
        assert config.kinds == [1]
        assert config.since_window == 300
        assert config.max_session_duration is None
        assert config.filters.hide_spam is True
        assert config.directory.enabled is True
        assert config.store.backend == "memory"
        assert config.interval == 30.0
        assert config.metrics.enabled is False

    def test_nested_dict(self):
        config = TimelineConfig.model_validate(
            {
                "relay": {"url": "wss://nos.lol"},
                "buffer": {"max_size": 50, "retain_size": 40},
                "filters": {"hide_invoice": False},
                "directory": {"enabled": False},
            }
        )
        assert config.relay.url == "wss://nos.lol"
        assert config.buffer.max_size == 50
        assert config.filters.hide_invoice is False
        assert config.directory.enabled is False

    def test_empty_kinds_rejected(self):
        with pytest.raises(ValidationError):
            TimelineConfig(kinds=[])

    def test_negative_since_window_rejected(self):
        with pytest.raises(ValidationError):
            TimelineConfig(since_window=-1)

    def test_interval_floor(self):
        with pytest.raises(ValidationError):
            TimelineConfig(interval=0.5)
