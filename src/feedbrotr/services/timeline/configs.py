"""Timeline service configuration models.

See Also:
    [Timeline][feedbrotr.services.timeline.Timeline]: The service class that
        consumes these configurations.
    [BaseServiceConfig][feedbrotr.core.base_service.BaseServiceConfig]:
        Base class providing ``interval``, ``max_consecutive_failures`` and
        ``metrics``.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field, ValidationInfo, field_validator, model_validator

from feedbrotr.core.base_service import BaseServiceConfig
from feedbrotr.core.pool import PoolConfig
from feedbrotr.models.constants import EventKind
from feedbrotr.nips.nip01 import FilterSettings
from feedbrotr.nips.nip05 import DirectoryConfig
from feedbrotr.utils.relay import RelayConfig


class BufferConfig(BaseModel):
    """Size policy of the timeline buffer.

    When an insertion takes the buffer past ``max_size`` it is truncated in
    one step to the ``retain_size`` most recent events.
    """

    max_size: int = Field(default=100, ge=1, description="Largest buffer length")
    retain_size: int = Field(default=80, ge=1, description="Length kept after truncation")
    dedup: bool = Field(default=True, description="Drop events whose id is already buffered")

    @field_validator("retain_size")
    @classmethod
    def validate_retain_size(cls, v: int, info: ValidationInfo) -> int:
        """Ensure retain_size <= max_size."""
        max_size = info.data.get("max_size", 100)
        if v > max_size:
            raise ValueError(f"retain_size ({v}) must be <= max_size ({max_size})")
        return v


class StoreConfig(BaseModel):
    """Where the circle and profile tables live.

    ``memory`` keeps everything in process. ``postgres`` requires ``pool``
    and stores every table in one ``keyed_store`` JSONB table.
    """

    backend: Literal["memory", "postgres"] = Field(default="memory")
    pool: PoolConfig | None = Field(default=None, description="Required for postgres")
    page_size: int = Field(default=500, ge=1, description="Rows per scan page (postgres)")

    @model_validator(mode="after")
    def validate_pool(self) -> StoreConfig:
        """A postgres backend needs pool settings."""
        if self.backend == "postgres" and self.pool is None:
            raise ValueError("store.pool is required when store.backend is 'postgres'")
        return self


class TimelineConfig(BaseServiceConfig):
    """Configuration for the [Timeline][feedbrotr.services.timeline.Timeline] service.

    ``interval`` is the pause between relay sessions: the relay layer never
    reconnects by itself, so the service loop starts the next session.
    """

    relay: RelayConfig = Field(default_factory=RelayConfig)
    kinds: list[int] = Field(
        default_factory=lambda: [EventKind.TEXT_NOTE.value],
        min_length=1,
        description="Event kinds shown in the timeline",
    )
    since_window: int = Field(
        default=300, ge=0, description="Seconds of history requested on connect"
    )
    max_session_duration: float | None = Field(
        default=None, gt=0.0, description="End a session after this many seconds"
    )
    buffer: BufferConfig = Field(default_factory=BufferConfig)
    filters: FilterSettings = Field(default_factory=FilterSettings)
    directory: DirectoryConfig = Field(default_factory=DirectoryConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
