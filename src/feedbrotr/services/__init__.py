"""The timeline service and the stores it owns.

Services are the top layer of the diamond DAG, depending on
[feedbrotr.core][feedbrotr.core], [feedbrotr.nips][feedbrotr.nips],
[feedbrotr.utils][feedbrotr.utils], and [feedbrotr.models][feedbrotr.models].

```text
RelayConnection -> validate/sanitize/filter -> TimelineBuffer
                                  \\-> ProfileEnricher -> ProfileTable
```

Attributes:
    Timeline: One relay session per ``run()``: timeline subscription,
        bounded buffer, batch and incremental profile enrichment.
    ProfileTable: Persisted profile cache with version-tagged verification.
    ProfileEnricher: Kind 0 fetches and NIP-05 directory verification.
    CircleTable: User-defined circles with the built-in ``Following``
        sentinel.

Examples:
    ```python
    from feedbrotr.core import load_yaml
    from feedbrotr.services import Timeline

    timeline = Timeline.from_dict(load_yaml("config/timeline.yaml"))
    async with timeline:
        await timeline.run_forever()
    ```
"""

from .circles import CircleTable
from .profiles import EnricherCounters, ProfileEnricher, ProfileTable
from .timeline import (
    BufferConfig,
    StoreConfig,
    Timeline,
    TimelineBuffer,
    TimelineConfig,
)


__all__ = [
    "BufferConfig",
    "CircleTable",
    "EnricherCounters",
    "ProfileEnricher",
    "ProfileTable",
    "StoreConfig",
    "Timeline",
    "TimelineBuffer",
    "TimelineConfig",
]
