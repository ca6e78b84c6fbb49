"""Timeline service package.

Re-exports all public symbols::

    from feedbrotr.services.timeline import Timeline, TimelineConfig
"""

from .buffer import TimelineBuffer
from .configs import BufferConfig, StoreConfig, TimelineConfig
from .service import Timeline


__all__ = [
    "BufferConfig",
    "StoreConfig",
    "Timeline",
    "TimelineBuffer",
    "TimelineConfig",
]
