r"""FeedBrotr -- Nostr timeline ingestion and profile cache.

A client-side ingestion layer: one relay connection feeds a bounded,
spam-filtered timeline buffer, and the authors of buffered notes are
lazily resolved into a persisted, NIP-05 verified profile cache.

Architecture follows a **diamond DAG** dependency structure where imports
flow strictly downward:

```text
              services         Timeline, profile enrichment, circles
             /   |   \
          core  nips  utils    Store, notifier, logging / NIP-01, NIP-05 / relay, HTTP
             \   |   /
              models           Pure frozen dataclasses (zero I/O)
```

Attributes:
    models: Pure frozen dataclasses. Zero I/O, depends only on stdlib.
    core: Keyed store, change notifier, connection pool, base service,
        logging, metrics.
    nips: NIP-01 event validation and filtering, NIP-05 directory
        verification.
    utils: Relay WebSocket connection and bounded HTTP reads.
    services: The timeline service and the tables it owns.
    exceptions: The FeedBrotr exception hierarchy.

Note:
    For lightweight usage, import directly from subpackages::

        from feedbrotr.models import Profile
        from feedbrotr.core import KeyedStore

    Top-level imports (``from feedbrotr import Profile``) use lazy loading
    and resolve on first access.
"""

import importlib
from importlib.metadata import version as _get_version


__version__ = _get_version("feedbrotr")

__all__ = [
    "BaseService",
    "ChangeNotifier",
    "Circle",
    "CircleTable",
    "ConfigurationError",
    "ConnectivityError",
    "DirectoryLookupError",
    "FeedBrotrError",
    "KeyedStore",
    "Logger",
    "MemoryBackend",
    "PostgresBackend",
    "Profile",
    "ProfileEnricher",
    "ProfileParseError",
    "ProfileTable",
    "ProtocolError",
    "RelayConnection",
    "RelayConnectionError",
    "RelayNotConnectedError",
    "StoreError",
    "Timeline",
    "TimelineBuffer",
    "TimelineConfig",
    "TimelineEvent",
]

_LAZY_IMPORTS: dict[str, tuple[str, str]] = {
    "BaseService": ("feedbrotr.core", "BaseService"),
    "ChangeNotifier": ("feedbrotr.core", "ChangeNotifier"),
    "KeyedStore": ("feedbrotr.core", "KeyedStore"),
    "Logger": ("feedbrotr.core", "Logger"),
    "MemoryBackend": ("feedbrotr.core", "MemoryBackend"),
    "PostgresBackend": ("feedbrotr.core", "PostgresBackend"),
    "ConfigurationError": ("feedbrotr.exceptions", "ConfigurationError"),
    "ConnectivityError": ("feedbrotr.exceptions", "ConnectivityError"),
    "DirectoryLookupError": ("feedbrotr.exceptions", "DirectoryLookupError"),
    "FeedBrotrError": ("feedbrotr.exceptions", "FeedBrotrError"),
    "ProfileParseError": ("feedbrotr.exceptions", "ProfileParseError"),
    "ProtocolError": ("feedbrotr.exceptions", "ProtocolError"),
    "RelayConnectionError": ("feedbrotr.exceptions", "RelayConnectionError"),
    "RelayNotConnectedError": ("feedbrotr.exceptions", "RelayNotConnectedError"),
    "StoreError": ("feedbrotr.exceptions", "StoreError"),
    "Circle": ("feedbrotr.models", "Circle"),
    "Profile": ("feedbrotr.models", "Profile"),
    "TimelineEvent": ("feedbrotr.models", "TimelineEvent"),
    "RelayConnection": ("feedbrotr.utils.relay", "RelayConnection"),
    "CircleTable": ("feedbrotr.services", "CircleTable"),
    "ProfileEnricher": ("feedbrotr.services", "ProfileEnricher"),
    "ProfileTable": ("feedbrotr.services", "ProfileTable"),
    "Timeline": ("feedbrotr.services", "Timeline"),
    "TimelineBuffer": ("feedbrotr.services", "TimelineBuffer"),
    "TimelineConfig": ("feedbrotr.services", "TimelineConfig"),
}


def __getattr__(name: str) -> object:
    if name in _LAZY_IMPORTS:
        module_path, attr_name = _LAZY_IMPORTS[name]
        module = importlib.import_module(module_path)
        value = getattr(module, attr_name)
        globals()[name] = value  # Cache for subsequent access
        return value
    raise AttributeError(f"module 'feedbrotr' has no attribute {name!r}")


def __dir__() -> list[str]:
    return __all__
