"""Core layer providing the foundation for all FeedBrotr services.

Sits in the middle of the diamond DAG -- depends only on
``feedbrotr.models`` and is depended upon by ``feedbrotr.services``.

Attributes:
    KeyedStore: Generic persisted ordered ``key -> value`` table with
        upsert, predicate iteration, and wipe. See
        [KeyedStore][feedbrotr.core.store.KeyedStore].
    MemoryBackend, PostgresBackend: Storage backends for keyed stores.
    ChangeNotifier: Per-store "something changed" channel. See
        [ChangeNotifier][feedbrotr.core.notifier.ChangeNotifier].
    Pool: Async PostgreSQL connection pool with retry/backoff.
    BaseService: Abstract generic base class with lifecycle management
        and Prometheus metrics integration.
    Logger: Structured logger supporting key=value and JSON output modes.
    MetricsServer: Prometheus ``/metrics`` HTTP endpoint.
    load_yaml: Safe YAML loading with ``yaml.safe_load()``.

Examples:
    ```python
    from feedbrotr.core import ChangeNotifier, KeyedStore, MemoryBackend

    store = KeyedStore("profiles", MemoryBackend(), encode=..., decode=...)
    ```
"""

from .base_service import (
    BaseService,
    BaseServiceConfig,
    ConfigT,
)
from .logger import Logger, StructuredFormatter, format_kv_pairs
from .metrics import (
    DIRECTORY_LOOKUP_SECONDS,
    SERVICE_COUNTER,
    SERVICE_GAUGE,
    SERVICE_INFO,
    MetricsConfig,
    MetricsServer,
    start_metrics_server,
)
from .notifier import ChangeNotifier
from .pool import (
    DatabaseConfig,
    Pool,
    PoolConfig,
    PoolLimitsConfig,
    PoolRetryConfig,
)
from .store import KeyedStore, MemoryBackend, PostgresBackend, StoreBackend
from .yaml import load_yaml


__all__ = [
    "DIRECTORY_LOOKUP_SECONDS",
    "SERVICE_COUNTER",
    "SERVICE_GAUGE",
    "SERVICE_INFO",
    "BaseService",
    "BaseServiceConfig",
    "ChangeNotifier",
    "ConfigT",
    "DatabaseConfig",
    "KeyedStore",
    "Logger",
    "MemoryBackend",
    "MetricsConfig",
    "MetricsServer",
    "Pool",
    "PoolConfig",
    "PoolLimitsConfig",
    "PoolRetryConfig",
    "PostgresBackend",
    "StoreBackend",
    "StructuredFormatter",
    "format_kv_pairs",
    "load_yaml",
    "start_metrics_server",
]
